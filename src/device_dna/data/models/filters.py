from __future__ import annotations

from dataclasses import dataclass

from pydantic import AliasChoices, Field

from .assignment import FilterMode
from .common import TimestampedResource


class AssignmentFilter(TimestampedResource):
    display_name: str = Field(
        alias="displayName",
        validation_alias=AliasChoices("displayName", "name"),
    )
    description: str | None = None
    platform: str | None = None
    rule: str | None = None


@dataclass(slots=True, frozen=True)
class AppliedFilter:
    filter_id: str
    display_name: str
    mode: FilterMode

    @classmethod
    def from_catalog(cls, entry: AssignmentFilter, mode: FilterMode) -> "AppliedFilter":
        return cls(filter_id=entry.id, display_name=entry.display_name, mode=mode)

    def to_report(self) -> dict[str, str]:
        return {
            "id": self.filter_id,
            "displayName": self.display_name,
            "mode": self.mode.value,
        }


__all__ = ["AppliedFilter", "AssignmentFilter"]
