from __future__ import annotations

import httpx
import pytest
import respx

from device_dna.data.models import MembershipSource, MembershipType
from device_dna.graph.client import GraphClientConfig, GraphClientFactory
from device_dna.graph.errors import GraphAPIError, GraphErrorCategory
from device_dna.services.groups import GroupMembershipLookup, GroupNameCache

from tests.factories import group_object, make_access_token


@pytest.mark.asyncio
async def test_transitive_groups_keeps_only_groups(graph, issues) -> None:
    graph.set_collection(
        "/devices/dir-1/transitiveMemberOf",
        [
            group_object("g1", "Finance Devices", membershipRule="(device.deviceOSType -eq \"Windows\")"),
            {"@odata.type": "#microsoft.graph.directoryRole", "id": "role-1", "displayName": "Role"},
            group_object("g2", "Pilot", groupTypes=["Unified"]),
        ],
    )

    groups = await GroupMembershipLookup(graph).transitive_groups("dir-1", issues=issues)

    assert [group.group_id for group in groups] == ["g1", "g2"]
    assert groups[0].membership_type is MembershipType.DYNAMIC
    assert groups[1].membership_type is MembershipType.ASSIGNED
    assert groups[0].to_report()["groupType"] == "Dynamic"
    assert len(issues) == 0


@pytest.mark.asyncio
async def test_large_membership_follows_every_page(issues) -> None:
    url = "https://graph.microsoft.com/v1.0/devices/dir-1/transitiveMemberOf"
    sizes = [999, 999, 12]
    responses = []
    offset = 0
    for page, size in enumerate(sizes):
        body: dict = {"value": [group_object(f"g{offset + index}") for index in range(size)]}
        if page < len(sizes) - 1:
            body["@odata.nextLink"] = f"{url}?$top=999&$skiptoken=page{page + 1}"
        responses.append(httpx.Response(200, json=body))
        offset += size
    factory = GraphClientFactory(
        lambda _scopes: make_access_token("abc"),
        GraphClientConfig(scopes=["https://graph.microsoft.com/.default"], log_requests=False),
    )

    with respx.mock() as router:
        route = router.get(url).mock(side_effect=responses)
        groups = await GroupMembershipLookup(factory).transitive_groups("dir-1", issues=issues)

    await factory.close()
    assert route.call_count == 3
    assert route.calls[0].request.url.params["$top"] == "999"
    assert route.calls[2].request.url.params["$skiptoken"] == "page2"
    assert len(groups) == 2010
    assert len({group.group_id for group in groups}) == 2010
    assert len(issues) == 0


@pytest.mark.asyncio
async def test_user_groups_use_users_path(graph, issues) -> None:
    graph.set_collection("/users/user-1/transitiveMemberOf", [group_object("g7")])

    groups = await GroupMembershipLookup(graph).transitive_groups(
        "user-1",
        issues=issues,
        source=MembershipSource.USER,
    )

    assert [group.source for group in groups] == [MembershipSource.USER]


@pytest.mark.asyncio
async def test_missing_object_id_returns_empty_without_calls(graph, issues) -> None:
    assert await GroupMembershipLookup(graph).transitive_groups(None, issues=issues) == []
    assert graph.recorded_requests == []


@pytest.mark.asyncio
async def test_failure_mid_stream_keeps_partial_result(graph, issues) -> None:
    graph.set_collection(
        "/devices/dir-1/transitiveMemberOf",
        [
            group_object("g1"),
            GraphAPIError(message="throttled", category=GraphErrorCategory.RATE_LIMIT, status_code=429),
        ],
    )

    groups = await GroupMembershipLookup(graph).transitive_groups("dir-1", issues=issues)

    assert [group.group_id for group in groups] == ["g1"]
    assert len(issues) == 1
    assert list(issues)[0].category is GraphErrorCategory.RATE_LIMIT


@pytest.mark.asyncio
async def test_name_cache_fetches_each_group_once(graph) -> None:
    graph.set_response("GET", "/groups/g9", {"id": "g9", "displayName": "Kiosks"})
    cache = GroupNameCache(graph)

    assert await cache.resolve("g9") == "Kiosks"
    assert await cache.resolve("g9") == "Kiosks"
    assert cache.lookups == 1


@pytest.mark.asyncio
async def test_name_cache_falls_back_to_id(graph) -> None:
    graph.set_response(
        "GET",
        "/groups/gone",
        GraphAPIError(message="missing", category=GraphErrorCategory.NOT_FOUND, status_code=404),
    )
    cache = GroupNameCache(graph)

    assert await cache.resolve("gone") == "gone"


@pytest.mark.asyncio
async def test_lookup_seeds_name_cache(graph, issues) -> None:
    graph.set_collection("/devices/dir-1/transitiveMemberOf", [group_object("g1", "Finance")])
    cache = GroupNameCache(graph)

    await GroupMembershipLookup(graph, name_cache=cache).transitive_groups("dir-1", issues=issues)

    assert await cache.resolve("g1") == "Finance"
    assert cache.lookups == 0
