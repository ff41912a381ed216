from __future__ import annotations

import asyncio
import errno
import socket
from dataclasses import dataclass
from enum import Enum
from typing import Iterator

import httpx

from device_dna.graph.errors import GraphAPIError, GraphErrorCategory


class ErrorSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(slots=True)
class ErrorDescriptor:
    """Human-facing summary of a failure, used for collection issues and CLI output."""

    headline: str
    detail: str
    severity: ErrorSeverity = ErrorSeverity.ERROR
    transient: bool = False
    suggestion: str | None = None

    def summary(self) -> str:
        parts = [self.headline, self.detail]
        if self.suggestion:
            parts.append(self.suggestion)
        return " ".join(parts)


_GRAPH_HEADLINES: dict[GraphErrorCategory, str] = {
    GraphErrorCategory.RATE_LIMIT: "Microsoft Graph throttled the request.",
    GraphErrorCategory.NETWORK: "Network issue contacting Microsoft Graph.",
    GraphErrorCategory.SERVER: "Microsoft Graph returned a server error.",
    GraphErrorCategory.AUTHENTICATION: "Authentication is required to call Microsoft Graph.",
    GraphErrorCategory.PERMISSION: "The signed-in account lacks required Graph permissions.",
    GraphErrorCategory.NOT_FOUND: "The requested Graph resource does not exist.",
    GraphErrorCategory.VALIDATION: "Microsoft Graph rejected the request.",
    GraphErrorCategory.TIMEOUT: "An Intune report did not complete in time.",
    GraphErrorCategory.PARSE: "Microsoft Graph returned an unexpected payload.",
}

_GRAPH_SEVERITY: dict[GraphErrorCategory, ErrorSeverity] = {
    GraphErrorCategory.NOT_FOUND: ErrorSeverity.INFO,
    GraphErrorCategory.AUTHENTICATION: ErrorSeverity.ERROR,
    GraphErrorCategory.PERMISSION: ErrorSeverity.ERROR,
}

# Socket failures that mean "offline or unreachable" rather than a bug.
_UNREACHABLE = frozenset(
    code
    for code in (
        getattr(errno, "EHOSTUNREACH", None),
        getattr(errno, "ENETDOWN", None),
        getattr(errno, "ENETUNREACH", None),
        getattr(errno, "ECONNREFUSED", None),
        getattr(errno, "ECONNRESET", None),
        getattr(errno, "ETIMEDOUT", None),
    )
    if code is not None
)


def _chain(error: BaseException) -> Iterator[BaseException]:
    """The exception followed by its causes, outermost first."""

    seen: set[int] = set()
    current: BaseException | None = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def _describe_graph(error: GraphAPIError) -> ErrorDescriptor:
    category = GraphErrorCategory(error.category)
    return ErrorDescriptor(
        headline=_GRAPH_HEADLINES.get(category, "Microsoft Graph request failed."),
        detail=f"{error.code}: {error}" if error.code else str(error),
        severity=_GRAPH_SEVERITY.get(category, ErrorSeverity.WARNING),
        transient=error.is_retriable,
        suggestion=error.recovery_suggestion,
    )


def _describe_transport(root: BaseException) -> ErrorDescriptor | None:
    if isinstance(root, httpx.TimeoutException):
        headline = "Temporary timeout contacting Microsoft Graph."
        suggestion = "Check your network connection and retry shortly."
    elif isinstance(root, asyncio.TimeoutError):
        headline = "Operation timed out before Microsoft Graph responded."
        suggestion = None
    elif isinstance(root, socket.gaierror):
        headline = "DNS lookup failed while contacting Microsoft Graph."
        suggestion = "Verify internet connectivity or DNS configuration."
    elif isinstance(root, OSError) and root.errno in _UNREACHABLE:
        headline = "Network connection issue encountered."
        suggestion = "Retry once your connection is stable."
    else:
        return None
    return ErrorDescriptor(
        headline=headline,
        detail=f"{type(root).__name__}: {root}",
        severity=ErrorSeverity.WARNING,
        transient=True,
        suggestion=suggestion,
    )


def describe_exception(error: BaseException) -> ErrorDescriptor:
    """Summarise an exception for the collection issues list and the CLI.

    A :class:`GraphAPIError` anywhere in the cause chain wins; otherwise the
    innermost exception decides whether the failure looks like a transient
    network problem.
    """

    chain = list(_chain(error))
    for item in chain:
        if isinstance(item, GraphAPIError):
            return _describe_graph(item)

    transport = _describe_transport(chain[-1])
    if transport is not None:
        return transport
    return ErrorDescriptor(
        headline="Collection step failed.",
        detail=f"{type(error).__name__}: {error}",
    )


__all__ = [
    "ErrorDescriptor",
    "ErrorSeverity",
    "describe_exception",
]
