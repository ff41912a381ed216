from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from pydantic import AliasChoices, Field

from .common import GraphResource


GROUP_ODATA_TYPE = "#microsoft.graph.group"
DYNAMIC_MEMBERSHIP_MARKER = "DynamicMembership"


class MembershipType(StrEnum):
    DYNAMIC = "Dynamic"
    ASSIGNED = "Assigned"


class MembershipSource(StrEnum):
    DEVICE = "Device"
    USER = "User"


class DirectoryObject(GraphResource):
    """Entry of a ``transitiveMemberOf`` collection (groups, roles, units)."""

    odata_type: str | None = Field(default=None, alias="@odata.type")
    display_name: str | None = Field(
        default=None,
        alias="displayName",
        validation_alias=AliasChoices("displayName", "name"),
    )
    description: str | None = None
    group_types: list[str] | None = Field(default=None, alias="groupTypes")
    membership_rule: str | None = Field(default=None, alias="membershipRule")

    @property
    def is_group(self) -> bool:
        return self.odata_type == GROUP_ODATA_TYPE

    @property
    def membership_type(self) -> MembershipType:
        if (self.membership_rule or "").strip():
            return MembershipType.DYNAMIC
        if DYNAMIC_MEMBERSHIP_MARKER in (self.group_types or []):
            return MembershipType.DYNAMIC
        return MembershipType.ASSIGNED


@dataclass(slots=True, frozen=True)
class GroupMembership:
    group_id: str
    display_name: str
    membership_type: MembershipType = MembershipType.ASSIGNED
    description: str | None = None
    source: MembershipSource = MembershipSource.DEVICE

    @classmethod
    def from_directory_object(
        cls,
        entry: DirectoryObject,
        *,
        source: MembershipSource = MembershipSource.DEVICE,
    ) -> "GroupMembership":
        return cls(
            group_id=entry.id,
            display_name=entry.display_name or entry.id,
            membership_type=entry.membership_type,
            description=entry.description,
            source=source,
        )

    def to_report(self) -> dict[str, object]:
        return {
            "id": self.group_id,
            "displayName": self.display_name,
            "groupType": self.membership_type.value,
            "description": self.description,
            "source": self.source.value,
        }


__all__ = [
    "DYNAMIC_MEMBERSHIP_MARKER",
    "DirectoryObject",
    "GROUP_ODATA_TYPE",
    "GroupMembership",
    "MembershipSource",
    "MembershipType",
]
