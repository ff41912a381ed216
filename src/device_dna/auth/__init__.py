"""Authentication helpers for DeviceDNA."""

from .auth_manager import AuthManager, AuthenticatedUser, auth_manager
from .token_cache import TokenCacheManager
from .types import AccessToken, AuthMode, TokenProvider

__all__ = [
    "AccessToken",
    "AuthManager",
    "AuthMode",
    "AuthenticatedUser",
    "TokenCacheManager",
    "TokenProvider",
    "auth_manager",
]
