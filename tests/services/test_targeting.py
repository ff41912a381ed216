from __future__ import annotations

from device_dna.data.models import (
    Assignment,
    AssignmentFilter,
    AssignmentIntent,
    FilterMode,
    GraphAssignment,
    TargetKind,
    normalise_assignments,
)
from device_dna.data.models.targeting import EXCLUDED, NOT_TARGETED
from device_dna.services.targeting import AssignmentEvaluator

from tests.factories import ALL_DEVICES, ALL_USERS, EXCLUDE_GROUP, GROUP, target


FILTERS = {
    "f1": AssignmentFilter.from_graph({"id": "f1", "displayName": "Corporate only"}),
}
NAMES = {"g1": "Finance Devices", "g2": "Pilot Ring", "g3": "Kiosks"}


def _assignments(*payloads: dict) -> list[Assignment]:
    return normalise_assignments([GraphAssignment.model_validate(p) for p in payloads])


def test_all_devices_targets_everything() -> None:
    result = AssignmentEvaluator().evaluate(_assignments(target(ALL_DEVICES)), [])

    assert result.status == "All Devices"
    assert result.is_targeted
    assert result.matched_group_labels == ("All Devices",)


def test_group_membership_uses_display_names() -> None:
    result = AssignmentEvaluator().evaluate(
        _assignments(target(GROUP, group_id="g1"), target(GROUP, group_id="g2")),
        {"g1", "g2"},
        group_names=NAMES,
    )

    assert result.status == "Finance Devices, Pilot Ring"


def test_non_member_group_is_not_targeted() -> None:
    result = AssignmentEvaluator().evaluate(
        _assignments(target(GROUP, group_id="g3", filter_id="f1", intent="required")),
        {"g1"},
        FILTERS,
        NAMES,
    )

    assert result.status == NOT_TARGETED
    assert result.applied_filter is None
    assert result.intent is None
    assert not result.matched_any_group


def test_exclusion_wins_but_keeps_every_label() -> None:
    result = AssignmentEvaluator().evaluate(
        _assignments(
            target(GROUP, group_id="g1"),
            target(ALL_USERS),
            target(EXCLUDE_GROUP, group_id="g2"),
        ),
        {"g1", "g2"},
        group_names=NAMES,
    )

    assert result.status == EXCLUDED
    assert result.is_excluded
    assert not result.is_targeted
    assert result.matched_group_labels == (
        "Finance Devices",
        "All Licensed Users",
        "Excluded: Pilot Ring",
    )
    assert result.matched_any_group


def test_exclusion_of_other_group_is_ignored() -> None:
    result = AssignmentEvaluator().evaluate(
        _assignments(target(ALL_DEVICES), target(EXCLUDE_GROUP, group_id="g3")),
        {"g1"},
    )

    assert result.status == "All Devices"


def test_filter_and_intent_come_from_matching_assignment() -> None:
    result = AssignmentEvaluator().evaluate(
        _assignments(
            target(GROUP, group_id="g1", filter_id="f1", filter_type="exclude", intent="available"),
        ),
        {"g1"},
        FILTERS,
        NAMES,
    )

    assert result.applied_filter is not None
    assert result.applied_filter.display_name == "Corporate only"
    assert result.applied_filter.mode is FilterMode.EXCLUDE
    assert result.intent is AssignmentIntent.AVAILABLE


def test_unknown_filter_id_leaves_filter_empty() -> None:
    result = AssignmentEvaluator().evaluate(
        _assignments(target(ALL_DEVICES, filter_id="missing")),
        [],
        FILTERS,
    )

    assert result.is_targeted
    assert result.applied_filter is None


def test_evaluation_is_deterministic() -> None:
    assignments = _assignments(
        target(GROUP, group_id="g1"),
        target(ALL_DEVICES),
        target(GROUP, group_id="g1"),
    )
    evaluator = AssignmentEvaluator()

    first = evaluator.evaluate(assignments, {"g1"}, FILTERS, NAMES)
    second = evaluator.evaluate(assignments, {"g1"}, FILTERS, NAMES)

    assert first == second
    assert first.status == "Finance Devices, All Devices"


def test_unknown_group_falls_back_to_id() -> None:
    result = AssignmentEvaluator().evaluate(_assignments(target(GROUP, group_id="g4")), {"g4"})

    assert result.status == "g4"


def test_unsupported_targets_are_dropped() -> None:
    assignments = _assignments(
        {"id": "a", "target": {"@odata.type": "#microsoft.graph.someNewTarget"}},
        {"id": "b", "target": None},
        {"id": "c", "target": {"@odata.type": GROUP}},
        target(ALL_DEVICES, filter_id="f1", filter_type="none"),
    )

    assert len(assignments) == 1
    assert assignments[0].target_kind is TargetKind.ALL_DEVICES
    assert assignments[0].filter_id is None
