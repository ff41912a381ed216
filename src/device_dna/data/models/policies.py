from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, Field

from .assignment import GraphAssignment
from .common import GraphBaseModel, GraphResource, TimestampedResource


class AssignedResource(TimestampedResource):
    """Any Intune object returned with ``$expand=assignments``."""

    odata_type: str | None = Field(default=None, alias="@odata.type")
    display_name: str = Field(
        alias="displayName",
        validation_alias=AliasChoices("displayName", "name"),
    )
    description: str | None = None
    assignments: list[GraphAssignment] | None = None


class DeviceConfigurationProfile(AssignedResource):
    version: int | None = None


class SettingsCatalogPolicy(AssignedResource):
    platforms: str | None = None
    technologies: str | None = None
    setting_count: int | None = Field(default=None, alias="settingCount")


class AdministrativeTemplatePolicy(AssignedResource):
    pass


class CompliancePolicy(AssignedResource):
    version: int | None = None


class CompliancePolicyState(GraphResource):
    """Per-policy compliance state reported for one managed device."""

    display_name: str | None = Field(default=None, alias="displayName")
    state: str | None = None
    platform_type: str | None = Field(default=None, alias="platformType")
    setting_count: int | None = Field(default=None, alias="settingCount")


class MobileApp(AssignedResource):
    publisher: str | None = None
    display_version: str | None = Field(
        default=None,
        alias="displayVersion",
        validation_alias=AliasChoices("displayVersion", "version"),
    )
    is_assigned: bool | None = Field(default=None, alias="isAssigned")


class MobileAppIntentState(GraphBaseModel):
    application_id: str | None = Field(default=None, alias="applicationId")
    display_name: str | None = Field(default=None, alias="displayName")
    mobile_app_intent: str | None = Field(default=None, alias="mobileAppIntent")
    display_version: str | None = Field(default=None, alias="displayVersion")
    install_state: str | None = Field(default=None, alias="installState")


class MobileAppIntentAndStates(GraphBaseModel):
    id: str | None = None
    managed_device_identifier: str | None = Field(
        default=None, alias="managedDeviceIdentifier"
    )
    user_id: str | None = Field(default=None, alias="userId")
    mobile_app_list: list[MobileAppIntentState] | None = Field(
        default=None, alias="mobileAppList"
    )


class HealthScript(AssignedResource):
    publisher: str | None = None
    run_as_account: str | None = Field(default=None, alias="runAsAccount")
    is_global_script: bool | None = Field(default=None, alias="isGlobalScript")


class HealthScriptRunState(GraphBaseModel):
    id: str | None = None
    detection_state: str | None = Field(default=None, alias="detectionState")
    remediation_state: str | None = Field(default=None, alias="remediationState")
    last_state_update_date_time: datetime | None = Field(
        default=None, alias="lastStateUpdateDateTime"
    )
    last_sync_date_time: datetime | None = Field(default=None, alias="lastSyncDateTime")
    managed_device: dict[str, Any] | None = Field(default=None, alias="managedDevice")

    def to_report(self) -> dict[str, Any]:
        return {
            "detectionState": self.detection_state,
            "remediationState": self.remediation_state,
            "lastStateUpdateDateTime": (
                self.last_state_update_date_time.isoformat()
                if self.last_state_update_date_time
                else None
            ),
        }


class SettingDefinition(GraphBaseModel):
    id: str | None = None
    display_name: str | None = Field(default=None, alias="displayName")
    name: str | None = None


class SettingsCatalogSetting(GraphBaseModel):
    """One entry of ``configurationPolicies/{id}/settings``."""

    id: str | None = None
    setting_instance: dict[str, Any] | None = Field(
        default=None, alias="settingInstance"
    )
    setting_definitions: list[SettingDefinition] | None = Field(
        default=None, alias="settingDefinitions"
    )

    @property
    def definition_id(self) -> str | None:
        if not self.setting_instance:
            return None
        value = self.setting_instance.get("settingDefinitionId")
        return value if isinstance(value, str) else None

    def display_name(self) -> str:
        definition_id = self.definition_id
        for definition in self.setting_definitions or []:
            if definition.id == definition_id and (
                definition.display_name or definition.name
            ):
                return definition.display_name or definition.name or ""
        return definition_id or self.id or "Unknown setting"

    def display_value(self) -> str:
        instance = self.setting_instance or {}
        for key in ("choiceSettingValue", "simpleSettingValue"):
            block = instance.get(key)
            if isinstance(block, dict) and "value" in block:
                value = block["value"]
                if isinstance(value, str) and value.startswith(
                    f"{self.definition_id}_"
                ):
                    # Choice values are prefixed with the definition id.
                    return value[len(self.definition_id or "") + 1 :]
                return str(value)
        collection = instance.get("simpleSettingCollectionValue")
        if isinstance(collection, list):
            return ", ".join(
                str(item.get("value"))
                for item in collection
                if isinstance(item, dict) and item.get("value") is not None
            )
        if instance.get("groupSettingCollectionValue"):
            return "(group setting)"
        return ""


__all__ = [
    "AdministrativeTemplatePolicy",
    "AssignedResource",
    "CompliancePolicy",
    "CompliancePolicyState",
    "DeviceConfigurationProfile",
    "HealthScript",
    "HealthScriptRunState",
    "MobileApp",
    "MobileAppIntentAndStates",
    "MobileAppIntentState",
    "SettingDefinition",
    "SettingsCatalogPolicy",
    "SettingsCatalogSetting",
]
