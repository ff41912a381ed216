from __future__ import annotations

from device_dna.data.models import (
    CompliancePolicy,
    CompliancePolicyState,
    IssueLog,
)
from device_dna.graph.errors import GraphAPIError
from device_dna.graph.requests import (
    compliance_policies_request,
    device_compliance_states_request,
)
from device_dna.services.base import (
    CollectorResult,
    Phase,
    PolicyCollector,
    TargetingContext,
    is_relevant,
)
from device_dna.utils import get_logger
from device_dna.utils.app_types import platform_from_odata_type


logger = get_logger(__name__)

_STATE_LABELS = {
    "compliant": "Compliant",
    "noncompliant": "Non-Compliant",
    "nonCompliant": "Non-Compliant",
    "notApplicable": "Not Applicable",
    "notAssigned": "Not Assigned",
    "conflict": "Conflict",
    "error": "Error",
    "inGracePeriod": "In Grace Period",
    "remediated": "Remediated",
    "unknown": "Unknown",
}


def compliance_state_label(state: str | None) -> str | None:
    if not state:
        return None
    return _STATE_LABELS.get(state, state)


class CompliancePolicyCollector(PolicyCollector):
    kind = "compliancePolicy"
    phase = Phase.COMPLIANCE

    async def collect(
        self,
        context: TargetingContext,
        *,
        issues: IssueLog,
    ) -> CollectorResult:
        result = CollectorResult()
        evaluated = await self._gather(
            compliance_policies_request(),
            CompliancePolicy,
            context,
            issues=issues,
            label="deviceCompliancePolicies",
        )
        if not evaluated:
            return result

        states = await self._device_states(context, issues=issues)
        for resource, targeting in evaluated:
            state = states.get(resource.id) or states.get(resource.display_name)
            item = self.build_item(
                resource,
                targeting,
                platform=platform_from_odata_type(resource.odata_type),
                policy_type="Compliance",
                details={
                    "complianceState": compliance_state_label(
                        state.state if state else None
                    ),
                },
            )
            result.catalog.append(item)
            if is_relevant(targeting):
                result.items.append(item)
        return result

    async def _device_states(
        self,
        context: TargetingContext,
        *,
        issues: IssueLog,
    ) -> dict[str, CompliancePolicyState]:
        """Policy id (and display name) to this device's compliance state."""

        managed_device_id = context.identity.managed_device_id
        if not managed_device_id:
            return {}
        try:
            states = await self._collect_models(
                device_compliance_states_request(managed_device_id),
                CompliancePolicyState,
                issues=issues,
                phase=self.phase,
                resource="deviceCompliancePolicyStates",
            )
        except GraphAPIError as exc:
            issues.record_error(
                self.phase,
                exc,
                context="Per-policy compliance state unavailable",
            )
            return {}
        lookup: dict[str, CompliancePolicyState] = {}
        for state in states:
            lookup[state.id] = state
            if state.display_name:
                lookup.setdefault(state.display_name, state)
        logger.debug("Compliance states loaded", count=len(states))
        return lookup


__all__ = ["CompliancePolicyCollector", "compliance_state_label"]
