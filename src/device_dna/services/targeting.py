from __future__ import annotations

from typing import Iterable, Mapping

from device_dna.data.models import (
    AppliedFilter,
    Assignment,
    AssignmentFilter,
    TargetingResult,
    TargetKind,
)
from device_dna.data.models.targeting import (
    ALL_DEVICES_LABEL,
    ALL_USERS_LABEL,
    EXCLUDED,
    EXCLUDED_LABEL_PREFIX,
    NOT_TARGETED,
)


FilterCatalog = Mapping[str, AssignmentFilter] | Iterable[AssignmentFilter]


def _as_catalog(filter_catalog: FilterCatalog | None) -> Mapping[str, AssignmentFilter]:
    if filter_catalog is None:
        return {}
    if isinstance(filter_catalog, Mapping):
        return filter_catalog
    return {entry.id: entry for entry in filter_catalog}


class AssignmentEvaluator:
    """Decide whether a policy, app or script targets one device.

    Every assignment is visited so exclusions and filters that appear later
    still apply. Assignments to groups the device is not in contribute
    nothing, including their filter and intent. When an exclusion matches the
    status is ``Excluded`` while ``matched_group_labels`` keeps every label,
    inclusions included, in assignment order.
    """

    def evaluate(
        self,
        assignments: Iterable[Assignment],
        device_group_ids: Iterable[str],
        filter_catalog: FilterCatalog | None = None,
        group_names: Mapping[str, str] | None = None,
    ) -> TargetingResult:
        member_of = frozenset(device_group_ids)
        catalog = _as_catalog(filter_catalog)
        names = group_names or {}

        labels: list[str] = []
        included: list[str] = []
        excluded = False
        applied_filter: AppliedFilter | None = None
        intent = None

        for assignment in assignments:
            match assignment.target_kind:
                case TargetKind.ALL_DEVICES:
                    label = ALL_DEVICES_LABEL
                case TargetKind.ALL_USERS:
                    label = ALL_USERS_LABEL
                case TargetKind.GROUP if assignment.group_id in member_of:
                    label = names.get(assignment.group_id, assignment.group_id)
                case TargetKind.EXCLUDE_GROUP if assignment.group_id in member_of:
                    name = names.get(assignment.group_id, assignment.group_id)
                    labels.append(f"{EXCLUDED_LABEL_PREFIX}{name}")
                    excluded = True
                    continue
                case _:
                    continue

            labels.append(label)
            if label not in included:
                included.append(label)

            if assignment.filter_id and assignment.filter_mode:
                entry = catalog.get(assignment.filter_id)
                if entry is not None:
                    applied_filter = AppliedFilter.from_catalog(
                        entry,
                        assignment.filter_mode,
                    )
            if assignment.intent is not None:
                intent = assignment.intent

        if excluded:
            status = EXCLUDED
        elif included:
            status = ", ".join(included)
        else:
            status = NOT_TARGETED

        return TargetingResult(
            status=status,
            matched_group_labels=tuple(labels),
            applied_filter=applied_filter,
            intent=intent,
        )


__all__ = ["AssignmentEvaluator", "FilterCatalog"]
