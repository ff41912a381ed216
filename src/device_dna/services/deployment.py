from __future__ import annotations

from typing import Awaitable, Callable, Sequence

from device_dna.data.models import (
    DeploymentState,
    IssueLog,
    NotDeployedReason,
    ReportRow,
    SettingErrorRow,
    TargetedItem,
    TargetingResult,
    status_label,
)
from device_dna.data.models.reports import STATUS_ERROR
from device_dna.data.models.targeting import EXCLUDED_LABEL_PREFIX
from device_dna.graph.errors import GraphAPIError
from device_dna.services.base import Phase, is_relevant
from device_dna.services.groups import GroupNameCache
from device_dna.utils import get_logger


logger = get_logger(__name__)

SettingErrorsFetcher = Callable[[str], Awaitable[list[SettingErrorRow]]]


def dedupe_report_rows(rows: Sequence[ReportRow]) -> list[ReportRow]:
    """One row per policy id, preferring a row that names a user.

    The report emits a device row and a user row for the same policy.
    First-seen order is kept.
    """

    unique: dict[str, ReportRow] = {}
    for row in rows:
        key = row.policy_id.lower()
        existing = unique.get(key)
        if existing is None or (not existing.has_user and row.has_user):
            unique[key] = row
    return list(unique.values())


def not_deployed_reason(targeting: TargetingResult) -> NotDeployedReason:
    if not targeting.matched_any_group:
        return NotDeployedReason.NOT_MEMBER
    if targeting.applied_filter is not None:
        return NotDeployedReason.FILTERED
    return NotDeployedReason.UNKNOWN


def with_deployed_items(
    items: Sequence[TargetedItem],
    catalog: Sequence[TargetedItem],
    states: Sequence[DeploymentState],
    *,
    kind: str,
) -> list[TargetedItem]:
    """``items`` plus every deployed policy the targeting pass left out.

    The deployment report decides what is applied, so a deployed catalog
    entry is kept even when its targeting came out Not Targeted. Placeholder
    states get a minimal item built from the report row.
    """

    merged = list(items)
    present = {item.id.lower() for item in merged}
    by_id = {item.id.lower(): item for item in catalog}
    for state in states:
        key = state.policy_id.lower()
        if not state.is_deployed or key in present:
            continue
        present.add(key)
        item = by_id.get(key)
        if item is None:
            item = TargetedItem(
                id=state.policy_id,
                display_name=state.display_name,
                kind=kind,
                targeting=TargetingResult(),
                platform=state.platform,
                policy_type=state.policy_type,
                details={"source": "deploymentReport"},
            )
        merged.append(item)
    return merged


class DeploymentStateReconciler:
    """Join candidate targeting with the authoritative deployment report.

    Every policy in the report is deployed, whatever its targeting says.
    Relevant candidates missing from the report are returned as not deployed
    with a best-effort reason.
    """

    def __init__(self, *, group_names: GroupNameCache | None = None) -> None:
        self._group_names = group_names

    async def reconcile(
        self,
        candidates: Sequence[TargetedItem],
        report_rows: Sequence[ReportRow],
        *,
        issues: IssueLog,
        setting_errors: SettingErrorsFetcher | None = None,
    ) -> list[DeploymentState]:
        by_id = {candidate.id.lower(): candidate for candidate in candidates}
        states: list[DeploymentState] = []
        reported: set[str] = set()

        for row in dedupe_report_rows(report_rows):
            key = row.policy_id.lower()
            reported.add(key)
            candidate = by_id.get(key)
            status = status_label(row.status_code)
            state = self._deployed_state(row, candidate, status, issues=issues)
            if status == STATUS_ERROR:
                state.per_setting_errors = await self._setting_errors(
                    row,
                    setting_errors,
                    issues=issues,
                )
            states.append(state)

        for candidate in candidates:
            if candidate.id.lower() in reported or not is_relevant(candidate.targeting):
                continue
            reason = not_deployed_reason(candidate.targeting)
            states.append(
                DeploymentState(
                    policy_id=candidate.id,
                    display_name=candidate.display_name,
                    is_deployed=False,
                    policy_type=candidate.policy_type,
                    platform=candidate.platform,
                    not_deployed_reason=reason,
                    assigned_groups=await self._assigned_groups(candidate, reason),
                )
            )

        logger.info(
            "Deployment states reconciled",
            reported=len(reported),
            states=len(states),
            undeployed=sum(1 for state in states if not state.is_deployed),
        )
        return states

    def _deployed_state(
        self,
        row: ReportRow,
        candidate: TargetedItem | None,
        status: str,
        *,
        issues: IssueLog,
    ) -> DeploymentState:
        if candidate is not None:
            return DeploymentState(
                policy_id=candidate.id,
                display_name=candidate.display_name,
                is_deployed=True,
                status_code=status,
                policy_type=candidate.policy_type or row.policy_type,
                platform=candidate.platform or row.platform,
                reported_user_principal_name=row.user_principal_name,
                last_modified=row.last_modified,
            )
        display_name = row.policy_name or row.policy_id
        logger.info(
            "Deployed policy missing from policy endpoints",
            policy_id=row.policy_id,
            policy_type=row.policy_type,
        )
        issues.info(
            Phase.DEPLOYMENT,
            f"Policy '{display_name}' ({row.policy_type or 'unknown type'}) is "
            "deployed but was not returned by the policy endpoints",
        )
        return DeploymentState(
            policy_id=row.policy_id,
            display_name=display_name,
            is_deployed=True,
            status_code=status,
            policy_type=row.policy_type,
            platform=row.platform,
            reported_user_principal_name=row.user_principal_name,
            last_modified=row.last_modified,
            is_placeholder=True,
        )

    async def _setting_errors(
        self,
        row: ReportRow,
        fetcher: SettingErrorsFetcher | None,
        *,
        issues: IssueLog,
    ) -> list[SettingErrorRow]:
        if fetcher is None:
            return []
        try:
            rows = await fetcher(row.policy_id)
        except GraphAPIError as exc:
            issues.record_error(
                Phase.DEPLOYMENT,
                exc,
                context=f"Setting errors for '{row.policy_name or row.policy_id}'",
            )
            return []
        key = row.policy_id.lower()
        return [error for error in rows if error.policy_id.lower() == key]

    async def _assigned_groups(
        self,
        candidate: TargetedItem,
        reason: NotDeployedReason,
    ) -> list[str]:
        if reason is not NotDeployedReason.NOT_MEMBER:
            return []
        names: list[str] = []
        if self._group_names is not None:
            names = [
                await self._group_names.resolve(group_id)
                for group_id in candidate.assigned_group_ids
            ]
        # Exclusion markers follow the inclusion groups.
        excluded_by = [
            label
            for label in candidate.targeting.matched_group_labels
            if label.startswith(EXCLUDED_LABEL_PREFIX)
        ]
        return names + excluded_by


__all__ = [
    "DeploymentStateReconciler",
    "SettingErrorsFetcher",
    "dedupe_report_rows",
    "not_deployed_reason",
    "with_deployed_items",
]
