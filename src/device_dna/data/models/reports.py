from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Annotated, Any

from pydantic import BeforeValidator, Field

from .common import GraphBaseModel


STATUS_NOT_APPLICABLE = "NotApplicable"
STATUS_SUCCEEDED = "Succeeded"
STATUS_ERROR = "Error"

_STATUS_LABELS = {
    1: STATUS_NOT_APPLICABLE,
    2: STATUS_SUCCEEDED,
    5: STATUS_ERROR,
}


def status_label(code: int | None) -> str:
    """Map a report ``PolicyStatus`` code onto its label."""

    if code is None:
        return "Unknown"
    return _STATUS_LABELS.get(code, f"Unknown{code}")


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


# Report cells come back as empty strings rather than nulls.
OptionalText = Annotated[str | None, BeforeValidator(_blank_to_none)]
OptionalInt = Annotated[int | None, BeforeValidator(_blank_to_none)]
OptionalTimestamp = Annotated[datetime | None, BeforeValidator(_blank_to_none)]


class ReportRow(GraphBaseModel):
    """One row of the per-device configuration policy status report."""

    policy_id: str = Field(alias="PolicyId")
    policy_name: OptionalText = Field(default=None, alias="PolicyName")
    policy_type: OptionalText = Field(default=None, alias="PolicyBaseTypeName")
    platform: OptionalText = Field(default=None, alias="UnifiedPolicyPlatformType")
    status_code: OptionalInt = Field(default=None, alias="PolicyStatus")
    user_principal_name: OptionalText = Field(default=None, alias="UPN")
    user_id: OptionalText = Field(default=None, alias="UserId")
    last_modified: OptionalTimestamp = Field(
        default=None, alias="PspdpuLastModifiedTimeUtc"
    )

    @property
    def has_user(self) -> bool:
        return bool(self.user_principal_name)


class SettingErrorRow(GraphBaseModel):
    policy_id: str = Field(alias="PolicyId")
    setting_name: OptionalText = Field(default=None, alias="SettingName")
    setting_id: OptionalText = Field(default=None, alias="SettingId")
    setting_status: OptionalInt = Field(default=None, alias="SettingStatus")
    error_code: OptionalInt = Field(default=None, alias="ErrorCode")

    def to_report(self) -> dict[str, Any]:
        return {
            "settingName": self.setting_name or self.setting_id,
            "errorCode": self.error_code,
            "settingStatus": self.setting_status,
        }


class NotDeployedReason(StrEnum):
    NOT_MEMBER = "Device is not a member of any target group"
    FILTERED = "Excluded by assignment filter"
    UNKNOWN = "Reason unknown"


@dataclass(slots=True)
class DeploymentState:
    """Authoritative deployment outcome for one policy on the device."""

    policy_id: str
    display_name: str
    is_deployed: bool
    status_code: str | None = None
    policy_type: str | None = None
    platform: str | None = None
    reported_user_principal_name: str | None = None
    per_setting_errors: list[SettingErrorRow] = field(default_factory=list)
    not_deployed_reason: NotDeployedReason | None = None
    is_placeholder: bool = False
    last_modified: datetime | None = None
    assigned_groups: list[str] = field(default_factory=list)

    def to_report(self) -> dict[str, Any]:
        return {
            "policyId": self.policy_id,
            "displayName": self.display_name,
            "policyType": self.policy_type,
            "platform": self.platform,
            "isDeployed": self.is_deployed,
            "status": self.status_code,
            "userPrincipalName": self.reported_user_principal_name,
            "settingErrors": [row.to_report() for row in self.per_setting_errors],
            "notDeployedReason": (
                self.not_deployed_reason.value if self.not_deployed_reason else None
            ),
            "isPlaceholder": self.is_placeholder,
            "assignedGroups": list(self.assigned_groups),
            "lastModified": (
                self.last_modified.isoformat() if self.last_modified else None
            ),
        }


class ExportJobStatus(StrEnum):
    UNKNOWN = "unknown"
    NOT_STARTED = "notStarted"
    IN_PROGRESS = "inProgress"
    COMPLETED = "completed"
    FAILED = "failed"

    @classmethod
    def _missing_(cls, value: object):
        return cls.UNKNOWN


class ExportJob(GraphBaseModel):
    id: str
    report_name: str | None = Field(default=None, alias="reportName")
    status: ExportJobStatus = ExportJobStatus.UNKNOWN
    url: str | None = None
    request_date_time: datetime | None = Field(default=None, alias="requestDateTime")
    expiration_date_time: datetime | None = Field(
        default=None, alias="expirationDateTime"
    )

    @property
    def is_finished(self) -> bool:
        return self.status in (ExportJobStatus.COMPLETED, ExportJobStatus.FAILED)


def rows_from_table(payload: dict[str, Any]) -> list[dict[str, Any]]:
    """Turn a ``{"Schema": [...], "Values": [[...]]}`` report into dict rows."""

    schema = payload.get("Schema") or payload.get("schema") or []
    values = payload.get("Values") or payload.get("values") or []
    # Malformed schema entries keep their slot so later columns stay aligned.
    columns = [
        (column.get("Column") or column.get("column")) if isinstance(column, dict) else None
        for column in schema
    ]
    rows: list[dict[str, Any]] = []
    for raw in values:
        if not isinstance(raw, list):
            continue
        rows.append(
            {name: value for name, value in zip(columns, raw) if name is not None}
        )
    return rows


__all__ = [
    "DeploymentState",
    "ExportJob",
    "ExportJobStatus",
    "NotDeployedReason",
    "ReportRow",
    "STATUS_ERROR",
    "STATUS_NOT_APPLICABLE",
    "STATUS_SUCCEEDED",
    "SettingErrorRow",
    "rows_from_table",
    "status_label",
]
