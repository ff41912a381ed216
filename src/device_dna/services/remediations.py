from __future__ import annotations

from typing import Any

from device_dna.data.models import HealthScript, HealthScriptRunState, IssueLog
from device_dna.graph.client import GraphClientFactory
from device_dna.graph.errors import GraphAPIError, GraphErrorCategory
from device_dna.graph.requests import (
    health_script_run_states_request,
    health_scripts_request,
)
from device_dna.services.base import (
    CollectorResult,
    Phase,
    PolicyCollector,
    TargetingContext,
    is_relevant,
)
from device_dna.services.reports import ReportExportService
from device_dna.services.targeting import AssignmentEvaluator
from device_dna.utils import get_logger, odata_literal


logger = get_logger(__name__)

RUN_STATES_REPORT = "DeviceRunStatesByProactiveRemediation"
RUN_STATES_COLUMNS = [
    "PolicyId",
    "DeviceId",
    "DetectionStatus",
    "RemediationStatus",
    "ModifiedTime",
]


def _first(row: dict[str, Any], *keys: str) -> str | None:
    for key in keys:
        value = row.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def run_state_from_export(row: dict[str, Any]) -> dict[str, Any]:
    return {
        "detectionState": _first(row, "DetectionStatus", "DetectionScriptStatus"),
        "remediationState": _first(row, "RemediationStatus", "RemediationScriptStatus"),
        "lastStateUpdateDateTime": _first(row, "ModifiedTime", "LastModifiedDateTime"),
    }


class RemediationCollector(PolicyCollector):
    """Proactive remediations (device health scripts) with their run state."""

    kind = "proactiveRemediation"
    phase = Phase.REMEDIATIONS

    def __init__(
        self,
        client_factory: GraphClientFactory,
        *,
        evaluator: AssignmentEvaluator | None = None,
        exporter: ReportExportService | None = None,
    ) -> None:
        super().__init__(client_factory, evaluator=evaluator)
        self._exporter = exporter

    async def collect(
        self,
        context: TargetingContext,
        *,
        issues: IssueLog,
    ) -> CollectorResult:
        result = CollectorResult()
        evaluated = await self._gather(
            health_scripts_request(),
            HealthScript,
            context,
            issues=issues,
            label="deviceHealthScripts",
        )
        if not evaluated:
            return result

        run_states = _RunStateSource(self, context, issues)
        for resource, targeting in evaluated:
            item = self.build_item(
                resource,
                targeting,
                platform="Windows",
                policy_type="Proactive Remediation",
                details={
                    "publisher": resource.publisher,
                    "runAsAccount": resource.run_as_account,
                    "deviceRunState": None,
                },
            )
            result.catalog.append(item)
            if not is_relevant(targeting):
                continue
            if targeting.is_targeted:
                item.details["deviceRunState"] = await run_states.get(resource.id)
            result.items.append(item)
        return result


class _RunStateSource:
    """Per-script run state lookups that fall back to the export report once.

    The first failing per-script query switches every remaining lookup to a
    single ``DeviceRunStatesByProactiveRemediation`` export for the device.
    """

    def __init__(
        self,
        collector: RemediationCollector,
        context: TargetingContext,
        issues: IssueLog,
    ) -> None:
        self._collector = collector
        self._managed_device_id = context.identity.managed_device_id
        self._issues = issues
        self._exported: dict[str, dict[str, Any]] | None = None
        self._use_export = False

    async def get(self, script_id: str) -> dict[str, Any] | None:
        if not self._managed_device_id:
            return None
        if not self._use_export:
            try:
                return await self._per_script(script_id)
            except GraphAPIError as exc:
                if GraphErrorCategory(exc.category) is GraphErrorCategory.NOT_FOUND:
                    return None
                logger.info(
                    "Per-script run state query failed, switching to export report",
                    script_id=script_id,
                    error=str(exc),
                )
                self._use_export = True
        exported = await self._export()
        return exported.get(script_id.lower())

    async def _per_script(self, script_id: str) -> dict[str, Any] | None:
        states = await self._collector._collect_models(
            health_script_run_states_request(script_id, self._managed_device_id or ""),
            HealthScriptRunState,
            issues=self._issues,
            phase=Phase.REMEDIATIONS,
            resource="deviceRunStates",
        )
        if not states:
            return None
        return states[0].to_report()

    async def _export(self) -> dict[str, dict[str, Any]]:
        if self._exported is not None:
            return self._exported
        self._exported = {}
        exporter = self._collector._exporter
        if exporter is None:
            self._issues.warning(
                Phase.REMEDIATIONS,
                "Remediation run states unavailable",
            )
            return self._exported
        try:
            rows = await exporter.export(
                RUN_STATES_REPORT,
                filter_expression=f"(DeviceId eq {odata_literal(self._managed_device_id or '')})",
                select=RUN_STATES_COLUMNS,
            )
        except GraphAPIError as exc:
            self._issues.record_error(
                Phase.REMEDIATIONS,
                exc,
                context="Remediation run state report unavailable",
            )
            return self._exported
        for row in rows:
            policy_id = _first(row, "PolicyId")
            if policy_id:
                self._exported[policy_id.lower()] = run_state_from_export(row)
        return self._exported


__all__ = ["RUN_STATES_REPORT", "RemediationCollector", "run_state_from_export"]
