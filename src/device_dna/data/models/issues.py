from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Iterator

from device_dna.graph.errors import GraphAPIError, GraphErrorCategory
from device_dna.utils import get_logger, sanitize_log_message


logger = get_logger(__name__)


class IssueSeverity(StrEnum):
    ERROR = "Error"
    WARNING = "Warning"
    INFO = "Info"


_SEVERITY_BY_CATEGORY: dict[GraphErrorCategory, IssueSeverity] = {
    GraphErrorCategory.AUTHENTICATION: IssueSeverity.ERROR,
    GraphErrorCategory.PERMISSION: IssueSeverity.ERROR,
    GraphErrorCategory.NOT_FOUND: IssueSeverity.INFO,
    GraphErrorCategory.RATE_LIMIT: IssueSeverity.WARNING,
    GraphErrorCategory.NETWORK: IssueSeverity.WARNING,
    GraphErrorCategory.SERVER: IssueSeverity.WARNING,
    GraphErrorCategory.TIMEOUT: IssueSeverity.WARNING,
    GraphErrorCategory.PARSE: IssueSeverity.WARNING,
    GraphErrorCategory.VALIDATION: IssueSeverity.WARNING,
    GraphErrorCategory.UNKNOWN: IssueSeverity.WARNING,
}


def severity_for(category: GraphErrorCategory | None) -> IssueSeverity:
    if category is None:
        return IssueSeverity.WARNING
    return _SEVERITY_BY_CATEGORY.get(GraphErrorCategory(category), IssueSeverity.WARNING)


@dataclass(slots=True, frozen=True)
class CollectionIssue:
    severity: IssueSeverity
    phase: str
    message: str
    category: GraphErrorCategory | None = None

    def to_report(self) -> dict[str, str | None]:
        return {
            "severity": self.severity.value,
            "phase": self.phase,
            "message": self.message,
            "category": self.category.value if self.category else None,
        }


@dataclass(slots=True)
class IssueLog:
    """Accumulates the degraded steps of one collection run.

    Passed explicitly to every resolver and collector; nothing is global.
    """

    _issues: list[CollectionIssue] = field(default_factory=list)

    def add(
        self,
        severity: IssueSeverity,
        phase: str,
        message: str,
        *,
        category: GraphErrorCategory | None = None,
    ) -> CollectionIssue:
        issue = CollectionIssue(
            severity=severity,
            phase=phase,
            message=sanitize_log_message(message),
            category=category,
        )
        self._issues.append(issue)
        logger.info(
            "Collection issue recorded",
            severity=issue.severity.value,
            phase=phase,
            message=issue.message,
        )
        return issue

    def error(self, phase: str, message: str, **kwargs) -> CollectionIssue:
        return self.add(IssueSeverity.ERROR, phase, message, **kwargs)

    def warning(self, phase: str, message: str, **kwargs) -> CollectionIssue:
        return self.add(IssueSeverity.WARNING, phase, message, **kwargs)

    def info(self, phase: str, message: str, **kwargs) -> CollectionIssue:
        return self.add(IssueSeverity.INFO, phase, message, **kwargs)

    def record_error(
        self,
        phase: str,
        error: GraphAPIError,
        *,
        context: str | None = None,
    ) -> CollectionIssue:
        """Record a Graph failure with severity derived from its category."""

        category = GraphErrorCategory(error.category)
        message = str(error) or category.value
        if context:
            message = f"{context}: {message}"
        if error.status_code is not None:
            message = f"{message} (HTTP {error.status_code})"
        return self.add(severity_for(category), phase, message, category=category)

    def for_phase(self, phase: str) -> list[CollectionIssue]:
        return [issue for issue in self._issues if issue.phase == phase]

    def by_severity(self, severity: IssueSeverity) -> list[CollectionIssue]:
        return [issue for issue in self._issues if issue.severity is severity]

    def __iter__(self) -> Iterator[CollectionIssue]:
        return iter(list(self._issues))

    def __len__(self) -> int:
        return len(self._issues)


__all__ = ["CollectionIssue", "IssueLog", "IssueSeverity", "severity_for"]
