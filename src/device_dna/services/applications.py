from __future__ import annotations

from device_dna.data.models import (
    IssueLog,
    MobileApp,
    MobileAppIntentAndStates,
    MobileAppIntentState,
)
from device_dna.data.validation import GraphResponseValidator
from device_dna.graph.errors import GraphAPIError
from device_dna.graph.requests import app_intent_states_request, mobile_apps_request
from device_dna.services.base import (
    CollectorResult,
    Phase,
    PolicyCollector,
    TargetingContext,
    is_relevant,
)
from device_dna.utils import get_logger
from device_dna.utils.app_types import extract_app_type, platform_from_odata_type


logger = get_logger(__name__)

_INSTALL_STATE_LABELS = {
    "installed": "Installed",
    "failed": "Failed",
    "notInstalled": "Not Installed",
    "uninstallFailed": "Uninstall Failed",
    "pendingInstall": "Install Pending",
    "notApplicable": "Not Applicable",
    "unknown": "Unknown",
}


def install_state_label(state: str | None) -> str | None:
    if not state:
        return None
    return _INSTALL_STATE_LABELS.get(state, state)


class ApplicationCollector(PolicyCollector):
    kind = "application"
    phase = Phase.APPLICATIONS

    async def collect(
        self,
        context: TargetingContext,
        *,
        issues: IssueLog,
    ) -> CollectorResult:
        result = CollectorResult()
        evaluated = await self._gather(
            mobile_apps_request(),
            MobileApp,
            context,
            issues=issues,
            label="mobileApps",
        )
        if not evaluated:
            return result

        install_states = await self._install_states(context, issues=issues)
        for resource, targeting in evaluated:
            state = install_states.get(resource.id)
            install_state = install_state_label(state.install_state if state else None)
            if targeting.is_excluded and install_state is None:
                install_state = "Excluded"
            item = self.build_item(
                resource,
                targeting,
                platform=platform_from_odata_type(resource.odata_type),
                policy_type=extract_app_type(resource.odata_type),
                details={
                    "publisher": resource.publisher,
                    "appVersion": (
                        (state.display_version if state else None)
                        or resource.display_version
                    ),
                    "appInstallState": install_state,
                },
            )
            result.catalog.append(item)
            if is_relevant(targeting):
                result.items.append(item)
        return result

    async def _install_states(
        self,
        context: TargetingContext,
        *,
        issues: IssueLog,
    ) -> dict[str, MobileAppIntentState]:
        """App id to the install state Intune reports for the primary user on this device."""

        identity = context.identity
        if not identity.primary_user_id or not identity.managed_device_id:
            logger.debug(
                "Skipping app install states",
                has_user=bool(identity.primary_user_id),
                has_managed_device=bool(identity.managed_device_id),
            )
            return {}
        request = app_intent_states_request(
            identity.primary_user_id,
            identity.managed_device_id,
        )
        try:
            payload = await self._fetch_json(request)
        except GraphAPIError as exc:
            issues.record_error(self.phase, exc, context="App install states unavailable")
            return {}
        states = self._parse_states(payload, issues=issues)
        return {
            state.application_id: state
            for state in states
            if state.application_id is not None
        }

    def _parse_states(
        self,
        payload: dict,
        *,
        issues: IssueLog,
    ) -> list[MobileAppIntentState]:
        validator = GraphResponseValidator(
            "mobileAppIntentAndStates",
            issues=issues,
            phase=self.phase,
        )
        parsed = validator.parse(MobileAppIntentAndStates, payload)
        if parsed is None:
            return []
        return list(parsed.mobile_app_list or [])


__all__ = ["ApplicationCollector", "install_state_label"]
