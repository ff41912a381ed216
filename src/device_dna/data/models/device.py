from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from pydantic import Field

from .common import GraphResource


class DirectoryDevice(GraphResource):
    """Entra ID ``device`` object. ``id`` is the directory object id."""

    device_id: str | None = Field(default=None, alias="deviceId")
    display_name: str | None = Field(default=None, alias="displayName")
    is_managed: bool | None = Field(default=None, alias="isManaged")
    is_compliant: bool | None = Field(default=None, alias="isCompliant")
    approximate_last_sign_in_date_time: datetime | None = Field(
        default=None, alias="approximateLastSignInDateTime"
    )
    operating_system: str | None = Field(default=None, alias="operatingSystem")
    operating_system_version: str | None = Field(
        default=None, alias="operatingSystemVersion"
    )
    trust_type: str | None = Field(default=None, alias="trustType")


class ManagedDevice(GraphResource):
    """Intune ``managedDevice``. ``id`` is the Intune device id."""

    device_name: str | None = Field(default=None, alias="deviceName")
    azure_ad_device_id: str | None = Field(default=None, alias="azureADDeviceId")
    user_id: str | None = Field(default=None, alias="userId")
    user_principal_name: str | None = Field(default=None, alias="userPrincipalName")
    compliance_state: str | None = Field(default=None, alias="complianceState")
    last_sync_date_time: datetime | None = Field(default=None, alias="lastSyncDateTime")
    operating_system: str | None = Field(default=None, alias="operatingSystem")
    os_version: str | None = Field(default=None, alias="osVersion")
    management_agent: str | None = Field(default=None, alias="managementAgent")


# Intune reports an all-zero GUID when the device never registered in Entra ID.
EMPTY_GUID = "00000000-0000-0000-0000-000000000000"


def usable_id(value: str | None) -> str | None:
    if not value or value == EMPTY_GUID:
        return None
    return value


@dataclass(slots=True, frozen=True)
class DeviceIdentity:
    """Single view of one device across the directory and Intune.

    ``directory_object_id`` drives group lookups, ``hardware_device_id``
    correlates with Intune, ``managed_device_id`` keys Intune reports. Any of
    them may be ``None`` when resolution could not fill it.
    """

    device_name: str
    directory_object_id: str | None = None
    hardware_device_id: str | None = None
    managed_device_id: str | None = None
    display_name: str | None = None
    is_managed: bool | None = None
    is_compliant: bool | None = None
    operating_system: str | None = None
    primary_user_id: str | None = None
    primary_user_principal_name: str | None = None

    @property
    def can_evaluate_targeting(self) -> bool:
        return self.directory_object_id is not None

    def to_report(self) -> dict[str, object]:
        return {
            "deviceName": self.device_name,
            "displayName": self.display_name or self.device_name,
            "azureAdObjectId": self.directory_object_id,
            "azureAdDeviceId": self.hardware_device_id,
            "intuneDeviceId": self.managed_device_id,
            "isManaged": self.is_managed,
            "isCompliant": self.is_compliant,
            "operatingSystem": self.operating_system,
            "primaryUser": self.primary_user_principal_name,
        }


__all__ = [
    "DeviceIdentity",
    "DirectoryDevice",
    "EMPTY_GUID",
    "ManagedDevice",
    "usable_id",
]
