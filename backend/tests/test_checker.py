from __future__ import annotations

import asyncio

import pytest

from checkagent.services.checker import ServiceChecker
from checkagent.services.metrics_saver import MetricsSaver
from checkagent.services.operations import OperationInputError, OperationType
from conftest import FakeBackend, FakeOperationFactory, make_result, make_service


def _checker(backend: FakeBackend, factory: FakeOperationFactory) -> ServiceChecker:
    return ServiceChecker(
        backend,
        MetricsSaver(backend, "us-east", "agent1"),
        "us-east",
        "agent1",
        timeout=10,
        operation_factory=factory,
    )


@pytest.mark.asyncio
async def test_successful_check_writes_status_and_metrics(
    backend: FakeBackend, operation_factory: FakeOperationFactory
) -> None:
    backend.services["svc1"] = make_service("svc1", service_type="https", url="https://example.com")
    operation_factory.set(OperationType.HTTP, make_result(OperationType.HTTP, http_status_code=200,
                                                          response_time_ms=42.7))

    result = await _checker(backend, operation_factory).perform_check("svc1")

    assert result is not None and result.success
    assert operation_factory.created == [(OperationType.HTTP, 10)]
    assert operation_factory.operations[OperationType.HTTP].calls == [("https://example.com", "GET")]
    assert backend.status_updates == [("svc1", "up", 42, "")]
    assert [kind for kind, _ in backend.saved] == ["metrics", "uptime"]
    assert backend.get_calls == ["svc1", "svc1"]


@pytest.mark.asyncio
async def test_failed_probe_reports_down_with_error(
    backend: FakeBackend, operation_factory: FakeOperationFactory
) -> None:
    backend.services["svc1"] = make_service("svc1", service_type="tcp", host="db.internal", port=0)
    operation_factory.set(OperationType.TCP, make_result(OperationType.TCP, success=False,
                                                        error="dial tcp db.internal:80: connection refused",
                                                        response_time_ms=3.0))

    await _checker(backend, operation_factory).perform_check("svc1")

    assert operation_factory.operations[OperationType.TCP].calls == [("db.internal", 80)]
    assert backend.status_updates == [("svc1", "down", 3, "dial tcp db.internal:80: connection refused")]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("service_type", "fields", "op_type", "expected_args"),
    [
        ("ping", {"host": "", "url": "10.0.0.1"}, OperationType.PING, ("10.0.0.1", 1)),
        ("icmp", {"host": "gw.local"}, OperationType.PING, ("gw.local", 1)),
        ("dns", {"host": "", "domain": "example.org"}, OperationType.DNS, ("example.org", "A")),
        ("tcp", {"host": "db", "port": 5432}, OperationType.TCP, ("db", 5432)),
        ("http", {"host": "example.net", "url": ""}, OperationType.HTTP, ("example.net", "GET")),
    ],
)
async def test_dispatch_targets_per_service_type(
    backend: FakeBackend,
    operation_factory: FakeOperationFactory,
    service_type: str,
    fields: dict,
    op_type: OperationType,
    expected_args: tuple,
) -> None:
    backend.services["svc1"] = make_service("svc1", service_type=service_type, **fields)

    await _checker(backend, operation_factory).perform_check("svc1")

    assert operation_factory.operations[op_type].calls == [expected_args]


@pytest.mark.asyncio
async def test_paused_service_is_skipped_silently(
    backend: FakeBackend, operation_factory: FakeOperationFactory
) -> None:
    backend.services["svc1"] = make_service("svc1", status="paused")

    result = await _checker(backend, operation_factory).perform_check("svc1")

    assert result is None
    assert operation_factory.created == []
    assert backend.status_updates == []
    assert backend.saved == []


@pytest.mark.asyncio
async def test_unassigned_service_is_skipped(
    backend: FakeBackend, operation_factory: FakeOperationFactory
) -> None:
    backend.services["svc1"] = make_service("svc1", region_name="eu-west")

    assert await _checker(backend, operation_factory).perform_check("svc1") is None
    assert operation_factory.created == []
    assert backend.status_updates == []


@pytest.mark.asyncio
async def test_unsupported_type_is_skipped(
    backend: FakeBackend, operation_factory: FakeOperationFactory
) -> None:
    backend.services["svc1"] = make_service("svc1", service_type="smtp")

    assert await _checker(backend, operation_factory).perform_check("svc1") is None
    assert operation_factory.created == []
    assert backend.status_updates == []


@pytest.mark.asyncio
async def test_fetch_failure_skips_tick(backend: FakeBackend, operation_factory: FakeOperationFactory) -> None:
    backend.fail_get = True

    assert await _checker(backend, operation_factory).perform_check("svc1") is None
    assert operation_factory.created == []


@pytest.mark.asyncio
async def test_pause_during_probe_abandons_writes(
    backend: FakeBackend, operation_factory: FakeOperationFactory
) -> None:
    backend.services["svc1"] = make_service("svc1")

    def pause_after_first_fetch(service_id: str) -> None:
        backend.services[service_id] = make_service(service_id, status="paused")
        backend.on_get = None

    backend.on_get = pause_after_first_fetch

    result = await _checker(backend, operation_factory).perform_check("svc1")

    assert result is not None
    assert backend.get_calls == ["svc1", "svc1"]
    assert backend.status_updates == []
    assert backend.saved == []


@pytest.mark.asyncio
async def test_reassignment_during_probe_abandons_writes(
    backend: FakeBackend, operation_factory: FakeOperationFactory
) -> None:
    backend.services["svc1"] = make_service("svc1")

    def reassign(service_id: str) -> None:
        backend.services[service_id] = make_service(service_id, agent_id="agent2")
        backend.on_get = None

    backend.on_get = reassign

    await _checker(backend, operation_factory).perform_check("svc1")

    assert backend.status_updates == []
    assert backend.saved == []


@pytest.mark.asyncio
async def test_stopped_monitor_does_not_write(
    backend: FakeBackend, operation_factory: FakeOperationFactory
) -> None:
    backend.services["svc1"] = make_service("svc1")
    stop_event = asyncio.Event()
    stop_event.set()

    await _checker(backend, operation_factory).perform_check("svc1", stop_event)

    assert backend.status_updates == []
    assert backend.saved == []


@pytest.mark.asyncio
async def test_input_error_reports_down_without_metrics(
    backend: FakeBackend, operation_factory: FakeOperationFactory
) -> None:
    backend.services["svc1"] = make_service("svc1", service_type="http", url="", host="")
    operation_factory.set(OperationType.HTTP, error=OperationInputError("url cannot be empty"))

    result = await _checker(backend, operation_factory).perform_check("svc1")

    assert result is None
    assert backend.status_updates == [("svc1", "down", 0, "url cannot be empty")]
    assert backend.saved == []


@pytest.mark.asyncio
async def test_status_write_failure_still_saves_metrics(
    backend: FakeBackend, operation_factory: FakeOperationFactory
) -> None:
    backend.services["svc1"] = make_service("svc1")
    backend.fail_status_update = True

    result = await _checker(backend, operation_factory).perform_check("svc1")

    assert result is not None
    assert [kind for kind, _ in backend.saved] == ["metrics", "uptime"]
