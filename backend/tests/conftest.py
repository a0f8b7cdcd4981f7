from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import pytest

from checkagent.schemas.service import RegionalIdentity, Service
from checkagent.services.backend_client import BackendError, ServiceNotFoundError
from checkagent.services.operations import OperationType, ProbeResult


class FakeBackend:
    """In-memory stand-in for BackendClient that records every write."""

    def __init__(self) -> None:
        self.services: dict[str, Service] = {}
        self.assigned: list[Service] = []
        self.fail_assigned = False
        self.fail_get = False
        self.fail_status_update = False
        self.fail_saves = False
        self.reachable = True
        self.fail_regional = False
        self.regional: list[RegionalIdentity] = []

        self.assigned_calls = 0
        self.get_calls: list[str] = []
        self.status_updates: list[tuple[str, str, int, str]] = []
        self.saved: list[tuple[str, object]] = []
        self.connection_updates: list[tuple[str, str]] = []
        self.created_regional: list[dict] = []

        # Called with the service id after every get_service (lets tests mutate mid-check)
        self.on_get = None

    # Services

    async def get_assigned_services(self, region_name: str, agent_id: str) -> list[Service]:
        self.assigned_calls += 1
        if self.fail_assigned:
            raise BackendError("assigned services unavailable")
        return list(self.assigned)

    async def get_service(self, service_id: str) -> Service:
        self.get_calls.append(service_id)
        if self.fail_get:
            raise BackendError("backend unavailable")
        service = self.services.get(service_id)
        if service is None:
            raise ServiceNotFoundError(f"Service {service_id} not found")
        if self.on_get is not None:
            self.on_get(service_id)
        return service

    async def update_service_status(self, service_id: str, status: str, response_time_ms: int,
                                    error_message: str = "") -> None:
        if self.fail_status_update:
            raise BackendError("status update failed")
        self.status_updates.append((service_id, status, response_time_ms, error_message))

    # Result sink

    async def _save(self, kind: str, record: object) -> None:
        if self.fail_saves:
            raise BackendError(f"{kind} save failed")
        self.saved.append((kind, record))

    async def save_metrics(self, record) -> None:
        await self._save("metrics", record)

    async def save_ping_data(self, record) -> None:
        await self._save("ping", record)

    async def save_uptime_data(self, record) -> None:
        await self._save("uptime", record)

    async def save_dns_data(self, record) -> None:
        await self._save("dns", record)

    async def save_tcp_data(self, record) -> None:
        await self._save("tcp", record)

    # Regional identity

    async def test_connection(self) -> None:
        if not self.reachable:
            raise BackendError("connection refused")

    async def update_regional_connection(self, record_id: str, connection: str) -> None:
        if self.fail_regional:
            raise BackendError("regional update failed")
        self.connection_updates.append((record_id, connection))

    async def find_regional_service(self, agent_id: str) -> Optional[RegionalIdentity]:
        if self.fail_regional:
            raise BackendError("Access denied to regional_service collection")
        for identity in self.regional:
            if identity.agent_id == agent_id:
                return identity
        return None

    async def create_regional_service(self, data: dict) -> RegionalIdentity:
        if self.fail_regional:
            raise BackendError("create failed")
        self.created_regional.append(data)
        identity = RegionalIdentity(id=f"rec{len(self.created_regional)}", **data)
        self.regional.append(identity)
        return identity


def make_service(
    service_id: str = "svc1",
    service_type: str = "http",
    region_name: str = "us-east",
    agent_id: str = "agent1",
    status: str = "active",
    **kwargs,
) -> Service:
    data = {
        "id": service_id,
        "name": kwargs.pop("name", f"service-{service_id}"),
        "service_type": service_type,
        "region_name": region_name,
        "agent_id": agent_id,
        "status": status,
        "host": kwargs.pop("host", "example.com"),
    }
    data.update(kwargs)
    return Service(**data)


def make_result(op_type: OperationType, success: bool = True, **kwargs) -> ProbeResult:
    now = datetime.now(timezone.utc)
    kwargs.setdefault("host", "example.com")
    kwargs.setdefault("response_time_ms", 12.5)
    return ProbeResult(type=op_type, success=success, start_time=now, end_time=now, **kwargs)


class FakeOperation:
    """Executor stand-in that records calls and returns a canned result."""

    def __init__(self, op_type: OperationType, result: Optional[ProbeResult] = None,
                 error: Optional[Exception] = None) -> None:
        self.op_type = op_type
        self.result = result
        self.error = error
        self.calls: list[tuple] = []

    async def execute(self, *args) -> ProbeResult:
        self.calls.append(args)
        if self.error is not None:
            raise self.error
        if self.result is not None:
            return self.result
        return make_result(self.op_type, host=str(args[0]))


class FakeOperationFactory:
    def __init__(self) -> None:
        self.operations: dict[OperationType, FakeOperation] = {}
        self.created: list[tuple[OperationType, float]] = []

    def set(self, op_type: OperationType, result: Optional[ProbeResult] = None,
            error: Optional[Exception] = None) -> FakeOperation:
        operation = FakeOperation(op_type, result, error)
        self.operations[op_type] = operation
        return operation

    def __call__(self, op_type: OperationType, timeout: float) -> FakeOperation:
        self.created.append((op_type, timeout))
        if op_type not in self.operations:
            self.set(op_type)
        return self.operations[op_type]


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def operation_factory() -> FakeOperationFactory:
    return FakeOperationFactory()
