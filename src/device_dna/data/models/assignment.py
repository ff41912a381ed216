from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, Field, field_validator

from .common import GraphBaseModel
from .device import usable_id


class TargetKind(StrEnum):
    ALL_DEVICES = "AllDevices"
    ALL_USERS = "AllUsers"
    GROUP = "Group"
    EXCLUDE_GROUP = "ExcludeGroup"


class FilterMode(StrEnum):
    INCLUDE = "Include"
    EXCLUDE = "Exclude"

    @classmethod
    def _missing_(cls, value: object):
        if isinstance(value, str):
            normalised = value.lower()
            for member in cls:
                if member.value.lower() == normalised:
                    return member
        return None


class AssignmentIntent(StrEnum):
    REQUIRED = "Required"
    AVAILABLE = "Available"
    UNINSTALL = "Uninstall"
    AVAILABLE_WITHOUT_ENROLLMENT = "AvailableWithoutEnrollment"

    @classmethod
    def _missing_(cls, value: object):
        if isinstance(value, str):
            normalised = value.lower()
            for member in cls:
                if member.value.lower() == normalised:
                    return member
        return None


_TARGET_KINDS: dict[str, TargetKind] = {
    "#microsoft.graph.allDevicesAssignmentTarget": TargetKind.ALL_DEVICES,
    "#microsoft.graph.allLicensedUsersAssignmentTarget": TargetKind.ALL_USERS,
    "#microsoft.graph.groupAssignmentTarget": TargetKind.GROUP,
    "#microsoft.graph.exclusionGroupAssignmentTarget": TargetKind.EXCLUDE_GROUP,
}


class AssignmentTarget(GraphBaseModel):
    """Raw ``target`` block of any Intune assignment."""

    odata_type: str | None = Field(default=None, alias="@odata.type")
    group_id: str | None = Field(default=None, alias="groupId")
    filter_id: str | None = Field(
        default=None,
        alias="deviceAndAppManagementAssignmentFilterId",
        validation_alias=AliasChoices(
            "deviceAndAppManagementAssignmentFilterId",
            "assignmentFilterId",
        ),
    )
    filter_type: str | None = Field(
        default=None,
        alias="deviceAndAppManagementAssignmentFilterType",
    )

    @property
    def kind(self) -> TargetKind | None:
        return _TARGET_KINDS.get(self.odata_type or "")


class GraphAssignment(GraphBaseModel):
    """Assignment entry as expanded on a policy, app or script."""

    id: str | None = None
    intent: str | None = None
    target: AssignmentTarget | None = None

    @field_validator("target", mode="before")
    @classmethod
    def _coerce_target(cls, value: Any) -> Any:
        # Some endpoints return ``target: null`` for orphaned assignments.
        if value is None or isinstance(value, (dict, AssignmentTarget)):
            return value
        return None


@dataclass(slots=True, frozen=True)
class Assignment:
    """Normalised assignment used by the targeting evaluator."""

    target_kind: TargetKind
    group_id: str | None = None
    filter_id: str | None = None
    filter_mode: FilterMode | None = None
    intent: AssignmentIntent | None = None

    @classmethod
    def from_graph(cls, payload: GraphAssignment) -> "Assignment | None":
        """Convert a Graph assignment; unsupported target types yield ``None``."""

        target = payload.target
        if target is None:
            return None
        kind = target.kind
        if kind is None:
            return None
        group_id = target.group_id or None
        if kind in (TargetKind.GROUP, TargetKind.EXCLUDE_GROUP) and group_id is None:
            return None
        if kind in (TargetKind.ALL_DEVICES, TargetKind.ALL_USERS):
            group_id = None

        filter_id = usable_id(target.filter_id)
        filter_mode: FilterMode | None = None
        if filter_id is not None:
            try:
                filter_mode = FilterMode(target.filter_type or "")
            except ValueError:
                filter_mode = None
            if filter_mode is None:
                # Graph reports ``none`` when a stale filter id is left behind.
                filter_id = None

        intent: AssignmentIntent | None = None
        if payload.intent:
            try:
                intent = AssignmentIntent(payload.intent)
            except ValueError:
                intent = None

        return cls(
            target_kind=kind,
            group_id=group_id,
            filter_id=filter_id,
            filter_mode=filter_mode,
            intent=intent,
        )


def normalise_assignments(payloads: list[GraphAssignment] | None) -> list[Assignment]:
    assignments: list[Assignment] = []
    for payload in payloads or []:
        assignment = Assignment.from_graph(payload)
        if assignment is not None:
            assignments.append(assignment)
    return assignments


__all__ = [
    "Assignment",
    "AssignmentIntent",
    "AssignmentTarget",
    "FilterMode",
    "GraphAssignment",
    "TargetKind",
    "normalise_assignments",
]
