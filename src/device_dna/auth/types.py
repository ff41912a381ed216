"""Authentication type definitions."""

from __future__ import annotations

from enum import StrEnum
from typing import Callable, NamedTuple, Sequence


class AuthMode(StrEnum):
    INTERACTIVE = "interactive"
    CLIENT_SECRET = "client_secret"


class AccessToken(NamedTuple):
    """OAuth access token as handed to the Graph client."""

    token: str
    expires_on: int
    """Expiry in Unix time."""


TokenProvider = Callable[[Sequence[str]], AccessToken]


__all__ = ["AccessToken", "AuthMode", "TokenProvider"]
