from __future__ import annotations

import pytest

from device_dna.data.models import (
    AppliedFilter,
    FilterMode,
    IssueSeverity,
    NotDeployedReason,
    ReportRow,
    SettingErrorRow,
    TargetedItem,
    TargetingResult,
)
from device_dna.data.models.targeting import EXCLUDED, NOT_TARGETED
from device_dna.graph.errors import GraphAPIError, GraphErrorCategory
from device_dna.services.deployment import (
    DeploymentStateReconciler,
    dedupe_report_rows,
    not_deployed_reason,
)
from device_dna.services.groups import GroupNameCache


def _row(policy_id: str, *, status: int | str = 2, upn: str = "", name: str | None = None) -> ReportRow:
    return ReportRow.from_graph(
        {
            "PolicyId": policy_id,
            "PolicyName": name or f"Policy {policy_id}",
            "PolicyBaseTypeName": "DeviceConfiguration",
            "UnifiedPolicyPlatformType": "Windows10",
            "PolicyStatus": status,
            "UPN": upn,
            "UserId": "",
            "PspdpuLastModifiedTimeUtc": "",
        }
    )


def _candidate(
    policy_id: str,
    targeting: TargetingResult,
    *,
    groups: tuple[str, ...] = (),
) -> TargetedItem:
    return TargetedItem(
        id=policy_id,
        display_name=f"Profile {policy_id}",
        kind="configurationProfile",
        targeting=targeting,
        platform="Windows 10 and later",
        policy_type="Settings Catalog",
        assigned_group_ids=groups,
    )


TARGETED = TargetingResult(status="All Devices", matched_group_labels=("All Devices",))
FILTERED = TargetingResult(
    status="Pilot",
    matched_group_labels=("Pilot",),
    applied_filter=AppliedFilter("f1", "Corporate only", FilterMode.INCLUDE),
)


def test_dedupe_prefers_row_with_user() -> None:
    rows = [_row("p1"), _row("p2"), _row("P1", upn="adele@contoso.com")]

    unique = dedupe_report_rows(rows)

    assert [row.policy_id.lower() for row in unique] == ["p1", "p2"]
    assert unique[0].user_principal_name == "adele@contoso.com"


def test_reason_fallback_order() -> None:
    assert not_deployed_reason(TargetingResult()) is NotDeployedReason.NOT_MEMBER
    excluded = TargetingResult(status=EXCLUDED, matched_group_labels=("Excluded: Pilot",))
    assert not_deployed_reason(excluded) is NotDeployedReason.NOT_MEMBER
    assert not_deployed_reason(FILTERED) is NotDeployedReason.FILTERED
    assert not_deployed_reason(TARGETED) is NotDeployedReason.UNKNOWN


@pytest.mark.asyncio
async def test_reported_policy_is_deployed_even_if_not_targeted(issues) -> None:
    candidates = [_candidate("p1", TargetingResult(status=NOT_TARGETED))]

    states = await DeploymentStateReconciler().reconcile(
        candidates,
        [_row("p1", upn="adele@contoso.com")],
        issues=issues,
    )

    assert len(states) == 1
    assert states[0].is_deployed
    assert states[0].status_code == "Succeeded"
    assert states[0].display_name == "Profile p1"
    assert states[0].reported_user_principal_name == "adele@contoso.com"
    assert len(issues) == 0


@pytest.mark.asyncio
async def test_unknown_report_policy_becomes_placeholder(issues) -> None:
    states = await DeploymentStateReconciler().reconcile([], [_row("p9", status=1, name="Legacy")], issues=issues)

    assert states[0].is_placeholder
    assert states[0].display_name == "Legacy"
    assert states[0].policy_type == "DeviceConfiguration"
    assert states[0].platform == "Windows10"
    assert states[0].status_code == "NotApplicable"
    assert [issue.severity for issue in issues] == [IssueSeverity.INFO]


@pytest.mark.asyncio
async def test_error_status_collects_setting_errors(issues) -> None:
    calls: list[str] = []

    async def fetch(policy_id: str) -> list[SettingErrorRow]:
        calls.append(policy_id)
        return [
            SettingErrorRow.from_graph({"PolicyId": "p1", "SettingName": "Firewall", "ErrorCode": -2016281112}),
            SettingErrorRow.from_graph({"PolicyId": "other", "SettingName": "Noise"}),
        ]

    states = await DeploymentStateReconciler().reconcile(
        [_candidate("p1", TARGETED)],
        [_row("p1", status=5)],
        issues=issues,
        setting_errors=fetch,
    )

    assert calls == ["p1"]
    assert states[0].status_code == "Error"
    assert [error.setting_name for error in states[0].per_setting_errors] == ["Firewall"]


@pytest.mark.asyncio
async def test_error_status_without_rows_yields_empty_list(issues) -> None:
    async def fetch(_: str) -> list[SettingErrorRow]:
        return []

    states = await DeploymentStateReconciler().reconcile(
        [_candidate("p1", TARGETED)],
        [_row("p1", status="5")],
        issues=issues,
        setting_errors=fetch,
    )

    assert states[0].status_code == "Error"
    assert states[0].per_setting_errors == []


@pytest.mark.asyncio
async def test_setting_error_failure_is_recorded(issues) -> None:
    async def fetch(_: str) -> list[SettingErrorRow]:
        raise GraphAPIError(message="busy", category=GraphErrorCategory.SERVER, status_code=503)

    states = await DeploymentStateReconciler().reconcile(
        [_candidate("p1", TARGETED)],
        [_row("p1", status=5)],
        issues=issues,
        setting_errors=fetch,
    )

    assert states[0].per_setting_errors == []
    assert [issue.severity for issue in issues] == [IssueSeverity.WARNING]


@pytest.mark.asyncio
async def test_unknown_status_codes_keep_their_number(issues) -> None:
    states = await DeploymentStateReconciler().reconcile([], [_row("p1", status=3)], issues=issues)

    assert states[0].status_code == "Unknown3"


@pytest.mark.asyncio
async def test_undeployed_candidates_get_reasons(graph, issues) -> None:
    graph.set_response("GET", "/groups/g5", {"id": "g5", "displayName": "Shop Floor"})
    excluded = TargetingResult(status=EXCLUDED, matched_group_labels=("Excluded: Pilot",))
    candidates = [
        _candidate("deployed", TARGETED),
        _candidate("filtered", FILTERED),
        _candidate("unknown", TARGETED),
        _candidate("excluded", excluded, groups=("g5",)),
        _candidate("ignored", TargetingResult()),
    ]

    states = await DeploymentStateReconciler(group_names=GroupNameCache(graph)).reconcile(
        candidates,
        [_row("deployed")],
        issues=issues,
    )

    by_id = {state.policy_id: state for state in states}
    assert set(by_id) == {"deployed", "filtered", "unknown", "excluded"}
    assert by_id["filtered"].not_deployed_reason is NotDeployedReason.FILTERED
    assert by_id["unknown"].not_deployed_reason is NotDeployedReason.UNKNOWN
    assert by_id["excluded"].not_deployed_reason is NotDeployedReason.NOT_MEMBER
    assert by_id["excluded"].assigned_groups == ["Shop Floor", "Excluded: Pilot"]
    assert not by_id["filtered"].is_deployed
    assert by_id["filtered"].to_report()["notDeployedReason"] == "Excluded by assignment filter"


@pytest.mark.asyncio
async def test_excluded_candidate_names_the_exclusion_without_group_cache(issues) -> None:
    excluded = TargetingResult(
        status=EXCLUDED,
        matched_group_labels=("Excluded: Kiosks", "Excluded: Pilot"),
    )

    states = await DeploymentStateReconciler().reconcile(
        [_candidate("excluded", excluded, groups=("g5",))],
        [],
        issues=issues,
    )

    assert states[0].not_deployed_reason is NotDeployedReason.NOT_MEMBER
    assert states[0].assigned_groups == ["Excluded: Kiosks", "Excluded: Pilot"]
