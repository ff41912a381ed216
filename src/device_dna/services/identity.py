from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Sequence

from device_dna.data.models import (
    DeviceIdentity,
    DirectoryDevice,
    IssueLog,
    ManagedDevice,
)
from device_dna.data.models.device import usable_id
from device_dna.graph.errors import GraphAPIError, GraphErrorCategory
from device_dna.graph.requests import (
    directory_devices_by_device_id_request,
    directory_devices_by_name_request,
    managed_devices_by_azure_id_request,
    managed_devices_by_name_request,
)
from device_dna.services.base import GraphCollectionService, Phase
from device_dna.utils import get_logger


logger = get_logger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _timestamp(value: datetime | None) -> datetime:
    if value is None:
        return _EPOCH
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _same_id(left: str | None, right: str | None) -> bool:
    return bool(left and right and left.lower() == right.lower())


def choose_directory_device(
    candidates: Sequence[DirectoryDevice],
    hardware_device_id: str | None = None,
) -> DirectoryDevice | None:
    """Pick one directory record when several share a display name.

    Order: exact hardware id match, then the only managed record, then the
    managed record that signed in last, then the latest sign-in overall.
    """

    if not candidates:
        return None
    if hardware_device_id:
        for candidate in candidates:
            if _same_id(candidate.device_id, hardware_device_id):
                return candidate
    if len(candidates) == 1:
        return candidates[0]
    managed = [candidate for candidate in candidates if candidate.is_managed]
    if len(managed) == 1:
        return managed[0]
    pool = managed or list(candidates)
    return max(
        pool,
        key=lambda device: _timestamp(device.approximate_last_sign_in_date_time),
    )


def choose_managed_device(candidates: Sequence[ManagedDevice]) -> ManagedDevice | None:
    if not candidates:
        return None
    return max(candidates, key=lambda device: _timestamp(device.last_sync_date_time))


@dataclass(slots=True)
class _IdentityDraft:
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

    def apply_directory(self, device: DirectoryDevice) -> None:
        self.directory_object_id = device.id
        self.hardware_device_id = usable_id(device.device_id) or self.hardware_device_id
        self.display_name = device.display_name or self.display_name
        self.is_managed = device.is_managed
        self.is_compliant = device.is_compliant
        self.operating_system = device.operating_system or self.operating_system

    def apply_managed(self, device: ManagedDevice) -> None:
        self.managed_device_id = device.id
        if self.hardware_device_id is None:
            self.hardware_device_id = usable_id(device.azure_ad_device_id)
        if self.is_managed is None:
            self.is_managed = True
        if self.is_compliant is None and device.compliance_state:
            self.is_compliant = device.compliance_state.lower() == "compliant"
        self.display_name = self.display_name or device.device_name
        self.operating_system = self.operating_system or device.operating_system
        self.primary_user_id = usable_id(device.user_id)
        self.primary_user_principal_name = device.user_principal_name or None

    def freeze(self) -> DeviceIdentity:
        return DeviceIdentity(
            device_name=self.device_name,
            directory_object_id=self.directory_object_id,
            hardware_device_id=self.hardware_device_id,
            managed_device_id=self.managed_device_id,
            display_name=self.display_name,
            is_managed=self.is_managed,
            is_compliant=self.is_compliant,
            operating_system=self.operating_system,
            primary_user_id=self.primary_user_id,
            primary_user_principal_name=self.primary_user_principal_name,
        )


class IdentityResolver(GraphCollectionService):
    """Reconcile the Entra ID and Intune records of one device.

    Never raises for Graph failures: each lookup that fails leaves its fields
    empty and adds an entry to the issue log.
    """

    resource = "devices"

    async def resolve(
        self,
        device_name: str,
        hardware_device_id: str | None = None,
        *,
        issues: IssueLog,
    ) -> DeviceIdentity:
        name = device_name.strip()
        supplied_id = usable_id((hardware_device_id or "").strip() or None)
        draft = _IdentityDraft(device_name=name, hardware_device_id=supplied_id)

        directory = await self._directory_by_name(name, supplied_id, issues)
        if directory is not None:
            draft.apply_directory(directory)

        managed = await self._managed_device(draft, issues)
        if managed is not None:
            draft.apply_managed(managed)

        if draft.directory_object_id is None and draft.hardware_device_id:
            recovered = await self._directory_by_device_id(
                draft.hardware_device_id,
                issues,
            )
            if recovered is not None:
                draft.apply_directory(recovered)

        if draft.directory_object_id and not draft.hardware_device_id:
            issues.warning(
                Phase.IDENTITY,
                f"MDM correlation unavailable for '{name}': the Entra ID record has "
                "no device id, so Intune data cannot be matched. Group membership "
                "is still evaluated.",
            )

        identity = draft.freeze()
        logger.info(
            "Device identity resolved",
            device_name=name,
            directory_object_id=identity.directory_object_id,
            hardware_device_id=identity.hardware_device_id,
            managed_device_id=identity.managed_device_id,
        )
        return identity

    # ----------------------------------------------------------------- Phases

    async def _directory_by_name(
        self,
        name: str,
        hardware_device_id: str | None,
        issues: IssueLog,
    ) -> DirectoryDevice | None:
        try:
            candidates = await self._collect_models(
                directory_devices_by_name_request(name),
                DirectoryDevice,
                issues=issues,
                phase=Phase.IDENTITY,
            )
        except GraphAPIError as exc:
            logger.warning("Entra ID lookup by name failed", device_name=name, error=str(exc))
            issues.record_error(Phase.IDENTITY, exc, context="Entra ID device lookup")
            return None
        if not candidates:
            issues.warning(
                Phase.IDENTITY,
                f"Device '{name}' not found in Entra ID",
                category=GraphErrorCategory.NOT_FOUND,
            )
            return None
        chosen = choose_directory_device(candidates, hardware_device_id)
        if len(candidates) > 1:
            logger.info(
                "Multiple Entra ID devices share the display name",
                device_name=name,
                matches=len(candidates),
                chosen=chosen.id if chosen else None,
            )
        return chosen

    async def _managed_device(
        self,
        draft: _IdentityDraft,
        issues: IssueLog,
    ) -> ManagedDevice | None:
        if draft.hardware_device_id:
            request = managed_devices_by_azure_id_request(draft.hardware_device_id)
        else:
            request = managed_devices_by_name_request(draft.device_name)
        try:
            candidates = await self._collect_models(
                request,
                ManagedDevice,
                issues=issues,
                phase=Phase.IDENTITY,
                resource="managedDevices",
            )
        except GraphAPIError as exc:
            logger.warning(
                "Intune managed device lookup failed",
                device_name=draft.device_name,
                error=str(exc),
            )
            issues.record_error(Phase.IDENTITY, exc, context="Intune device lookup")
            return None
        chosen = choose_managed_device(candidates)
        if chosen is None:
            logger.info("No Intune managed device record", device_name=draft.device_name)
            if draft.directory_object_id is not None:
                issues.info(
                    Phase.IDENTITY,
                    f"Device '{draft.device_name}' is not enrolled in Intune",
                )
        return chosen

    async def _directory_by_device_id(
        self,
        hardware_device_id: str,
        issues: IssueLog,
    ) -> DirectoryDevice | None:
        try:
            candidates = await self._collect_models(
                directory_devices_by_device_id_request(hardware_device_id),
                DirectoryDevice,
                issues=issues,
                phase=Phase.IDENTITY,
            )
        except GraphAPIError as exc:
            issues.record_error(
                Phase.IDENTITY,
                exc,
                context="Entra ID lookup by device id",
            )
            return None
        if not candidates:
            issues.info(
                Phase.IDENTITY,
                f"No Entra ID device carries device id {hardware_device_id}",
                category=GraphErrorCategory.NOT_FOUND,
            )
            return None
        return candidates[0]


__all__ = ["IdentityResolver", "choose_directory_device", "choose_managed_device"]
