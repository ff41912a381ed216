from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Type, TypeVar

from pydantic import ValidationError

from device_dna.data.models import GraphBaseModel, IssueLog
from device_dna.graph.errors import GraphErrorCategory
from device_dna.utils import get_logger


logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=GraphBaseModel)


@dataclass(slots=True)
class ValidationIssue:
    """A Graph record that could not be turned into its model."""

    resource: str
    identifier: str | None
    fields: tuple[str, ...] = ()

    def describe(self) -> str:
        subject = f" {self.identifier}" if self.identifier else ""
        failed = ", ".join(self.fields) or "unknown"
        return f"Skipped malformed {self.resource} record{subject} ({failed})"


def _failed_fields(exc: ValidationError) -> tuple[str, ...]:
    return tuple(
        ".".join(str(part) for part in error.get("loc", ())) or "<root>"
        for error in exc.errors()
    )


class GraphResponseValidator:
    """Parse Graph payloads into models, dropping records that do not fit.

    Dropped records are logged and, when an ``IssueLog`` is supplied,
    recorded there as parse warnings under ``phase``.
    """

    def __init__(
        self,
        resource: str,
        *,
        issues: IssueLog | None = None,
        phase: str | None = None,
    ) -> None:
        self._resource = resource
        self._issue_log = issues
        self._phase = phase or resource
        self._issues: list[ValidationIssue] = []

    def parse(self, model: Type[ModelT], payload: Any) -> ModelT | None:
        if not isinstance(payload, dict):
            self._reject(ValidationIssue(self._resource, None, (type(payload).__name__,)))
            return None
        try:
            return model.from_graph(payload)
        except ValidationError as exc:
            raw_id = payload.get("id")
            self._reject(
                ValidationIssue(
                    self._resource,
                    str(raw_id) if raw_id is not None else None,
                    _failed_fields(exc),
                )
            )
            return None

    def parse_many(self, model: Type[ModelT], payloads: Iterable[Any]) -> list[ModelT]:
        parsed = (self.parse(model, payload) for payload in payloads)
        return [item for item in parsed if item is not None]

    def issues(self) -> list[ValidationIssue]:
        return list(self._issues)

    def _reject(self, issue: ValidationIssue) -> None:
        self._issues.append(issue)
        logger.warning(
            "Graph payload validation failed",
            resource=issue.resource,
            identifier=issue.identifier,
            fields=list(issue.fields),
        )
        if self._issue_log is not None:
            self._issue_log.warning(
                self._phase,
                issue.describe(),
                category=GraphErrorCategory.PARSE,
            )


__all__ = ["GraphResponseValidator", "ValidationIssue"]
