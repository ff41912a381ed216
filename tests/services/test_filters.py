from __future__ import annotations

import pytest

from device_dna.graph.errors import PermissionError
from device_dna.services.filters import AssignmentFilterService


@pytest.mark.asyncio
async def test_catalog_indexes_filters_by_id(graph, issues) -> None:
    graph.set_collection(
        "/deviceManagement/assignmentFilters",
        [
            {"id": "f1", "displayName": "Corporate only", "platform": "windows10AndLater"},
            {"id": "f2", "displayName": "Surface", "rule": "(device.model -contains \"Surface\")"},
            {"id": "broken"},
        ],
    )

    catalog = await AssignmentFilterService(graph).catalog(issues=issues)

    assert set(catalog) == {"f1", "f2"}
    assert catalog["f2"].rule.startswith("(device.model")
    assert len(issues) == 1
    assert "broken" in list(issues)[0].message


@pytest.mark.asyncio
async def test_catalog_failure_returns_empty(graph, issues) -> None:
    graph.set_collection("/deviceManagement/assignmentFilters", PermissionError())

    assert await AssignmentFilterService(graph).catalog(issues=issues) == {}
    assert len(issues) == 1
