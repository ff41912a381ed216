"""Microsoft Graph access: the retrying client, typed errors and request builders."""

from .client import GraphClientConfig, GraphClientFactory, RequestStats
from .errors import (
    AuthenticationError,
    GraphAPIError,
    GraphErrorCategory,
    NotFoundError,
    PermissionError,
    RateLimitError,
    ReportTimeoutError,
)
from .rate_limiter import RequestThrottle, RetryPolicy
from .requests import GraphRequest

__all__ = [
    "GraphClientFactory",
    "GraphClientConfig",
    "RequestStats",
    "GraphRequest",
    "GraphAPIError",
    "GraphErrorCategory",
    "AuthenticationError",
    "PermissionError",
    "NotFoundError",
    "RateLimitError",
    "ReportTimeoutError",
    "RequestThrottle",
    "RetryPolicy",
]
