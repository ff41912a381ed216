from __future__ import annotations

import httpx
import pytest
import respx

from device_dna.graph.client import GraphClientConfig, GraphClientFactory, split_versioned_path
from device_dna.graph.errors import GraphAPIError, GraphErrorCategory
from device_dna.graph.requests import group_request

from tests.factories import make_access_token


def _factory(**overrides: object) -> GraphClientFactory:
    config = GraphClientConfig(
        scopes=["https://graph.microsoft.com/.default"],
        base_retry_delay=0.0,
        log_requests=False,
    )
    for key, value in overrides.items():
        setattr(config, key, value)
    return GraphClientFactory(lambda _scopes: make_access_token("abc"), config)


@pytest.mark.asyncio
async def test_iter_collection_follows_next_link() -> None:
    factory = _factory()
    with respx.mock(assert_all_called=True) as router:
        first = router.get("https://graph.microsoft.com/v1.0/devices/dir-1/transitiveMemberOf").mock(
            return_value=httpx.Response(
                200,
                json={
                    "value": [{"id": "g1"}, {"id": "g2"}],
                    "@odata.nextLink": "https://graph.microsoft.com/v1.0/next-page?$skiptoken=x",
                },
            )
        )
        router.get("https://graph.microsoft.com/v1.0/next-page").mock(
            return_value=httpx.Response(200, json={"value": [{"id": "g3"}]})
        )

        items = [
            item
            async for item in factory.iter_collection(
                "GET",
                "/devices/dir-1/transitiveMemberOf",
                params={"$top": 999},
            )
        ]

    assert [item["id"] for item in items] == ["g1", "g2", "g3"]
    assert first.calls[0].request.headers["Authorization"] == "Bearer abc"
    await factory.close()


@pytest.mark.asyncio
async def test_request_json_or_none_does_not_retry_forbidden() -> None:
    factory = _factory()
    with respx.mock() as router:
        route = router.get("https://graph.microsoft.com/v1.0/groups/g1").mock(
            return_value=httpx.Response(
                403,
                json={"error": {"code": "Authorization_RequestDenied", "message": "denied"}},
            )
        )
        request = group_request("g1")
        payload = await factory.request_json_or_none(
            request.method,
            request.url,
            params=request.params,
        )

    assert payload is None
    assert route.call_count == 1
    await factory.close()


@pytest.mark.asyncio
async def test_request_json_retries_server_errors() -> None:
    factory = _factory()
    with respx.mock() as router:
        route = router.get("https://graph.microsoft.com/v1.0/groups/g1").mock(
            side_effect=[
                httpx.Response(503, json={"error": {"message": "busy"}}),
                httpx.Response(200, json={"id": "g1", "displayName": "Finance"}),
            ]
        )
        payload = await factory.request_json("GET", "/groups/g1")

    assert payload["displayName"] == "Finance"
    assert route.call_count == 2
    await factory.close()


@pytest.mark.asyncio
async def test_request_json_maps_not_found() -> None:
    factory = _factory()
    with respx.mock() as router:
        router.get("https://graph.microsoft.com/v1.0/groups/missing").mock(
            return_value=httpx.Response(404, json={"error": {"message": "gone"}})
        )
        with pytest.raises(GraphAPIError) as excinfo:
            await factory.request_json("GET", "/groups/missing")

    assert excinfo.value.category is GraphErrorCategory.NOT_FOUND
    assert excinfo.value.is_permanent
    assert excinfo.value.request_method == "GET"
    await factory.close()


@pytest.mark.asyncio
async def test_retries_exhausted_raise_server_error() -> None:
    factory = _factory(max_retries=1)
    with respx.mock() as router:
        route = router.get("https://graph.microsoft.com/v1.0/groups/g1").mock(
            return_value=httpx.Response(502, text="bad gateway")
        )
        payload = await factory.request_json_or_none("GET", "/groups/g1")

    assert payload is None
    assert route.call_count == 2
    await factory.close()


def test_report_paths_resolve_to_beta() -> None:
    factory = _factory()

    assert factory.resolve_api_version("/deviceManagement/reports/exportJobs") == "beta"
    assert factory.resolve_api_version("/deviceManagement/managedDevices") == "v1.0"
    assert factory.resolve_api_version("/devices", explicit="beta") == "beta"


@pytest.mark.asyncio
async def test_errors_carry_graph_code_and_request_id() -> None:
    factory = _factory()
    with respx.mock() as router:
        router.get("https://graph.microsoft.com/beta/deviceManagement/assignmentFilters").mock(
            return_value=httpx.Response(
                403,
                json={
                    "error": {
                        "code": "Forbidden",
                        "message": "Application is not authorized",
                        "innerError": {"request-id": "req-42"},
                    }
                },
            )
        )
        with pytest.raises(GraphAPIError) as excinfo:
            await factory.request_json("GET", "/deviceManagement/assignmentFilters")

    error = excinfo.value
    assert error.category is GraphErrorCategory.PERMISSION
    assert error.code == "Forbidden"
    assert error.request_id == "req-42"
    assert error.required_permissions
    assert factory.stats.failures == 1
    await factory.close()


def test_versioned_paths_keep_their_version() -> None:
    assert split_versioned_path("/beta/devices/") == ("beta", "/devices")
    assert split_versioned_path("https://graph.microsoft.com/v1.0/groups/g1") == ("v1.0", "/groups/g1")
    assert split_versioned_path("devices") == (None, "/devices")
