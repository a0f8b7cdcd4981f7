from __future__ import annotations

import json

import httpx
import pytest

from checkagent.schemas.records import TCPDataRecord
from checkagent.services.backend_client import (
    BackendClient,
    BackendError,
    ServiceNotFoundError,
    quote_filter_value,
)


def _service(service_id: str, **extra) -> dict:
    data = {
        "id": service_id,
        "name": f"svc-{service_id}",
        "service_type": "http",
        "status": "active",
        "region_name": "us-east",
        "agent_id": "agent1",
        "collectionId": "abc",  # backend metadata ignored by the schema
    }
    data.update(extra)
    return data


def _client(handler) -> BackendClient:
    return BackendClient("http://pb.local:8090/", timeout=5, transport=httpx.MockTransport(handler))


def test_quote_filter_value() -> None:
    assert quote_filter_value("us-east") == "'us-east'"
    assert quote_filter_value("o'brien") == "'o\\'brien'"


@pytest.mark.asyncio
async def test_test_connection() -> None:
    client = _client(lambda request: httpx.Response(200, json={"code": 200}))
    await client.test_connection()

    down = _client(lambda request: httpx.Response(503))
    with pytest.raises(BackendError):
        await down.test_connection()


@pytest.mark.asyncio
async def test_transport_error_becomes_backend_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(BackendError):
        await _client(handler).test_connection()


@pytest.mark.asyncio
async def test_get_service_and_not_found() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/collections/services/records/svc1":
            return httpx.Response(200, json=_service("svc1", port=None, heartbeat_interval=None))
        return httpx.Response(404, json={"message": "not found"})

    client = _client(handler)
    service = await client.get_service("svc1")
    assert service.id == "svc1"
    assert service.port == 0
    assert service.check_interval == 60

    with pytest.raises(ServiceNotFoundError):
        await client.get_service("missing")


@pytest.mark.asyncio
async def test_get_assigned_services_reads_every_page() -> None:
    requests: list[httpx.Request] = []
    pages = {
        "1": {"page": 1, "perPage": 2, "totalItems": 3, "totalPages": 2,
              "items": [_service("a"), _service("b")]},
        "2": {"page": 2, "perPage": 2, "totalItems": 3, "totalPages": 2,
              "items": [_service("c")]},
    }

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=pages[request.url.params["page"]])

    services = await _client(handler).get_assigned_services("us-east", "agent1")

    assert [s.id for s in services] == ["a", "b", "c"]
    assert len(requests) == 2
    assert requests[0].url.params["filter"] == (
        "region_name~'us-east' && agent_id~'agent1' && status!='paused'"
    )


@pytest.mark.asyncio
async def test_list_services_error_status() -> None:
    with pytest.raises(BackendError):
        await _client(lambda request: httpx.Response(500)).list_services()


@pytest.mark.asyncio
async def test_update_service_status_patches_record() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={"id": "svc1"})

    await _client(handler).update_service_status("svc1", "down", 120, "Connection refused")

    request = captured[0]
    assert request.method == "PATCH"
    assert request.url.path == "/api/collections/services/records/svc1"
    body = json.loads(request.content)
    assert body["status"] == "down"
    assert body["response_time"] == 120
    assert body["error_message"] == "Connection refused"
    assert "last_checked" in body


@pytest.mark.asyncio
async def test_update_regional_connection_sets_status() -> None:
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={})

    client = _client(handler)
    await client.update_regional_connection("rec1", "online")
    await client.update_regional_connection("rec1", "offline")

    assert bodies == [
        {"connection": "online", "status": "active"},
        {"connection": "offline", "status": "inactive"},
    ]


@pytest.mark.asyncio
async def test_find_regional_service() -> None:
    items = [
        {"id": "r1", "region_name": "us-east", "agent_id": "agent1", "connection": "online"},
        {"id": "r2", "region_name": "eu-west", "agent_id": "agent2"},
    ]
    client = _client(lambda request: httpx.Response(200, json={"items": items}))

    found = await client.find_regional_service("agent2")
    assert found is not None and found.id == "r2"
    assert await client.find_regional_service("agent9") is None


@pytest.mark.asyncio
async def test_regional_access_denied() -> None:
    with pytest.raises(BackendError, match="Access denied"):
        await _client(lambda request: httpx.Response(403)).list_regional_services()


@pytest.mark.asyncio
async def test_save_detail_record_posts_to_collection() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={"id": "new"})

    record = TCPDataRecord(
        service_id="svc1",
        timestamp="2024-01-01T00:00:00+00:00",
        response_time=12,
        status="up",
        connection="connected",
        latency="12.00ms",
        port="443",
    )
    await _client(handler).save_tcp_data(record)

    assert captured[0].url.path == "/api/collections/tcp_data/records"
    body = json.loads(captured[0].content)
    assert body["connection"] == "connected"
    assert body["port"] == "443"
    assert "error_message" not in body


@pytest.mark.asyncio
async def test_create_record_failure() -> None:
    with pytest.raises(BackendError):
        await _client(lambda request: httpx.Response(400)).create_record("ping_data", {})


@pytest.mark.asyncio
async def test_malformed_service_record_is_backend_error() -> None:
    client = _client(lambda request: httpx.Response(200, json={"name": "no id"}))

    with pytest.raises(BackendError, match="Malformed service record"):
        await client.get_service("svc1")


@pytest.mark.asyncio
async def test_non_object_payload_is_backend_error() -> None:
    client = _client(lambda request: httpx.Response(200, json=[1, 2]))

    with pytest.raises(BackendError, match="Unexpected"):
        await client.list_regional_services()
    with pytest.raises(BackendError, match="Unexpected services payload"):
        await client.list_services()
