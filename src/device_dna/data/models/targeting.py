from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .assignment import AssignmentIntent
from .filters import AppliedFilter


NOT_TARGETED = "Not Targeted"
EXCLUDED = "Excluded"
EXCLUDED_LABEL_PREFIX = "Excluded: "
ALL_DEVICES_LABEL = "All Devices"
ALL_USERS_LABEL = "All Licensed Users"


@dataclass(slots=True, frozen=True)
class TargetingResult:
    """Verdict of evaluating one object's assignments against a device."""

    status: str = NOT_TARGETED
    matched_group_labels: tuple[str, ...] = ()
    applied_filter: AppliedFilter | None = None
    intent: AssignmentIntent | None = None

    @property
    def is_excluded(self) -> bool:
        return self.status == EXCLUDED

    @property
    def is_targeted(self) -> bool:
        return self.status not in (NOT_TARGETED, EXCLUDED)

    @property
    def matched_any_group(self) -> bool:
        return any(
            not label.startswith(EXCLUDED_LABEL_PREFIX)
            for label in self.matched_group_labels
        )


@dataclass(slots=True)
class TargetedItem:
    """A policy, app or script paired with its targeting verdict.

    ``details`` holds the per-kind flat fields the report carries verbatim.
    """

    id: str
    display_name: str
    kind: str
    targeting: TargetingResult
    description: str | None = None
    platform: str | None = None
    policy_type: str | None = None
    assigned_group_ids: tuple[str, ...] = ()
    details: dict[str, Any] = field(default_factory=dict)


__all__ = [
    "ALL_DEVICES_LABEL",
    "ALL_USERS_LABEL",
    "EXCLUDED",
    "EXCLUDED_LABEL_PREFIX",
    "NOT_TARGETED",
    "TargetedItem",
    "TargetingResult",
]
