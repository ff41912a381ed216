from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Sequence


class GraphErrorCategory(StrEnum):
    PERMISSION = "permission"
    AUTHENTICATION = "authentication"
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    RATE_LIMIT = "rate_limit"
    NETWORK = "network"
    SERVER = "server"
    TIMEOUT = "timeout"
    PARSE = "parse"
    UNKNOWN = "unknown"


# Read permissions DeviceDNA needs, by the data they unlock.
READ_PERMISSIONS: tuple[str, ...] = (
    "Device.Read.All",
    "GroupMember.Read.All",
    "DeviceManagementManagedDevices.Read.All",
    "DeviceManagementConfiguration.Read.All",
    "DeviceManagementApps.Read.All",
)

_TRANSIENT = frozenset(
    {GraphErrorCategory.RATE_LIMIT, GraphErrorCategory.NETWORK, GraphErrorCategory.SERVER}
)
_PERMANENT = frozenset(
    {
        GraphErrorCategory.AUTHENTICATION,
        GraphErrorCategory.PERMISSION,
        GraphErrorCategory.NOT_FOUND,
        GraphErrorCategory.VALIDATION,
    }
)
_SUGGESTIONS: dict[GraphErrorCategory, str] = {
    GraphErrorCategory.AUTHENTICATION: "Sign in again with an account that has access to the tenant.",
    GraphErrorCategory.PERMISSION: "Grant the app registration the read permissions listed for this data category.",
    GraphErrorCategory.NETWORK: "Check connectivity to graph.microsoft.com and run the collection again.",
    GraphErrorCategory.SERVER: "Check connectivity to graph.microsoft.com and run the collection again.",
    GraphErrorCategory.TIMEOUT: "The Intune report did not finish in time. Run the collection again later.",
}


@dataclass(slots=True)
class GraphAPIError(Exception):
    """A Microsoft Graph call that failed after any retries were spent."""

    message: str
    category: GraphErrorCategory = GraphErrorCategory.UNKNOWN
    status_code: int | None = None
    code: str | None = None
    retry_after: str | None = None
    inner_error: Exception | None = None
    request_method: str | None = None
    request_url: str | None = None
    request_id: str | None = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.message

    @property
    def recovery_suggestion(self) -> str | None:
        category = GraphErrorCategory(self.category)
        if category is GraphErrorCategory.RATE_LIMIT:
            if self.retry_after:
                return f"Microsoft Graph throttled the request; it asked for a {self.retry_after} second pause."
            return "Microsoft Graph throttled the request. Run the collection again later."
        return _SUGGESTIONS.get(category)

    @property
    def required_permissions(self) -> Sequence[str] | None:
        if GraphErrorCategory(self.category) is GraphErrorCategory.PERMISSION:
            return list(READ_PERMISSIONS)
        return None

    @property
    def is_retriable(self) -> bool:
        if GraphErrorCategory(self.category) in _TRANSIENT:
            return True
        return self.status_code is not None and 500 <= self.status_code <= 599

    @property
    def is_permanent(self) -> bool:
        """Failures that a retry will never fix (400/401/403/404)."""

        return GraphErrorCategory(self.category) in _PERMANENT


class RateLimitError(GraphAPIError):
    def __init__(
        self, message: str = "Rate limited", retry_after: str | None = None
    ) -> None:
        super().__init__(
            message=message,
            category=GraphErrorCategory.RATE_LIMIT,
            status_code=429,
            retry_after=retry_after,
        )


class AuthenticationError(GraphAPIError):
    def __init__(self, message: str = "Authentication failed") -> None:
        super().__init__(
            message=message,
            category=GraphErrorCategory.AUTHENTICATION,
            status_code=401,
        )


class PermissionError(GraphAPIError):
    def __init__(self, message: str = "Insufficient permissions") -> None:
        super().__init__(
            message=message,
            category=GraphErrorCategory.PERMISSION,
            status_code=403,
        )


class NotFoundError(GraphAPIError):
    def __init__(self, message: str = "Resource not found") -> None:
        super().__init__(
            message=message,
            category=GraphErrorCategory.NOT_FOUND,
            status_code=404,
        )


class ReportTimeoutError(GraphAPIError):
    def __init__(self, message: str = "Report export timed out") -> None:
        super().__init__(message=message, category=GraphErrorCategory.TIMEOUT)


def error_for_status(
    status: int,
    message: str,
    *,
    code: str | None = None,
    retry_after: str | None = None,
    request_id: str | None = None,
) -> GraphAPIError:
    """Typed error for an HTTP failure status."""

    match status:
        case 401:
            error: GraphAPIError = AuthenticationError(message)
        case 403:
            error = PermissionError(message)
        case 404:
            error = NotFoundError(message)
        case 429:
            error = RateLimitError(message, retry_after=retry_after)
        case _ if 500 <= status <= 599:
            error = GraphAPIError(message=message, category=GraphErrorCategory.SERVER)
        case _ if 400 <= status <= 499:
            error = GraphAPIError(message=message, category=GraphErrorCategory.VALIDATION)
        case _:
            error = GraphAPIError(message=message)
    error.status_code = status
    error.code = code
    error.retry_after = retry_after
    error.request_id = request_id
    return error


__all__ = [
    "AuthenticationError",
    "GraphAPIError",
    "GraphErrorCategory",
    "NotFoundError",
    "PermissionError",
    "READ_PERMISSIONS",
    "RateLimitError",
    "ReportTimeoutError",
    "error_for_status",
]
