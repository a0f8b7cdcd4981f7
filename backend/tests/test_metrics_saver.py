from __future__ import annotations

import pytest

from checkagent.schemas.records import DNSDataRecord, MetricsRecord, PingDataRecord, TCPDataRecord, UptimeDataRecord
from checkagent.services.metrics_saver import MetricsSaver, format_bytes
from checkagent.services.operations import OperationType
from conftest import FakeBackend, make_result, make_service


def test_format_bytes() -> None:
    assert format_bytes(512) == "512 B"
    assert format_bytes(2048) == "2.0 KB"
    assert format_bytes(3 * 1024 * 1024) == "3.0 MB"


@pytest.mark.asyncio
async def test_ping_result_writes_metrics_and_ping_data(backend: FakeBackend) -> None:
    saver = MetricsSaver(backend, "us-east", "agent1")
    result = make_result(
        OperationType.PING,
        packets_sent=4,
        packets_recv=3,
        packet_loss=25.0,
        min_rtt_ms=10.0,
        avg_rtt_ms=12.5,
        max_rtt_ms=15.0,
        rtts_ms=[10.0, 12.0, 15.0],
        response_time_ms=12.5,
    )
    service = make_service("svc1", service_type="icmp", host="10.0.0.1")

    assert await saver.save_for_service(service, result) is True

    kinds = [kind for kind, _ in backend.saved]
    assert kinds == ["metrics", "ping"]
    metrics = backend.saved[0][1]
    assert isinstance(metrics, MetricsRecord)
    assert metrics.service_name == service.name
    assert metrics.service_type == "icmp"
    assert metrics.response_time == 12
    assert metrics.status == "up"

    ping = backend.saved[1][1]
    assert isinstance(ping, PingDataRecord)
    assert ping.service_id == "svc1"
    assert ping.packets_sent == "4"
    assert ping.packets_recv == "3"
    assert ping.packet_loss == "25.0%"
    assert ping.avg_rtt == "12.50ms"
    assert ping.latency == "12.50ms"
    assert ping.rtts == "10.00ms,12.00ms,15.00ms"
    assert ping.region_name == "us-east"
    assert ping.agent_id == "agent1"
    assert ping.details.startswith("Ping OK - 3/4 packets received (25.0% loss)")


@pytest.mark.asyncio
async def test_http_failure_detail(backend: FakeBackend) -> None:
    saver = MetricsSaver(backend, "us-east", "agent1")
    result = make_result(
        OperationType.HTTP,
        success=False,
        http_status_code=500,
        error="Server Error (HTTP 500): Internal Server Error - The server encountered an internal error",
    )

    await saver.save_for_service(make_service("svc2", service_type="https"), result)

    uptime = backend.saved[1][1]
    assert isinstance(uptime, UptimeDataRecord)
    assert uptime.status == "down"
    assert uptime.status_codes == "500"
    assert uptime.packets == "N/A"
    assert uptime.region == "us-east"
    assert uptime.region_id == "agent1"
    assert uptime.details.startswith("HTTP 500 Error - ")


@pytest.mark.asyncio
async def test_dns_and_tcp_detail_records(backend: FakeBackend) -> None:
    saver = MetricsSaver(backend, "eu-west", "agent2")
    dns_result = make_result(OperationType.DNS, dns_type="MX",
                             dns_records=["mx1.example.com. (priority: 10)", "mx2.example.com. (priority: 20)",
                                          "mx3.example.com. (priority: 30)"])
    tcp_result = make_result(OperationType.TCP, port=5432, tcp_connected=True)

    await saver.save_detail(dns_result, "svc3")
    await saver.save_detail(tcp_result, "svc4")

    dns_record = backend.saved[0][1]
    assert isinstance(dns_record, DNSDataRecord)
    assert dns_record.query_type == "MX"
    assert dns_record.msg_size == "3"
    assert dns_record.question == "example.com"
    assert dns_record.answer.count(",") == 2
    assert "(+1 more)" in dns_record.details

    tcp_record = backend.saved[1][1]
    assert isinstance(tcp_record, TCPDataRecord)
    assert tcp_record.connection == "connected"
    assert tcp_record.port == "5432"
    assert tcp_record.details.startswith("TCP Connection OK - Port 5432 accessible")


@pytest.mark.asyncio
async def test_on_demand_result_without_service_writes_metrics_only(backend: FakeBackend) -> None:
    saver = MetricsSaver(backend, "us-east", "agent1")

    await saver.save_for_result(make_result(OperationType.TCP, port=80, tcp_connected=False, success=False))

    assert [kind for kind, _ in backend.saved] == ["metrics"]
    assert backend.saved[0][1].service_type == "tcp"


@pytest.mark.asyncio
async def test_save_failures_are_swallowed(backend: FakeBackend) -> None:
    backend.fail_saves = True
    saver = MetricsSaver(backend, "us-east", "agent1")

    saved = await saver.save_for_service(make_service(), make_result(OperationType.HTTP, http_status_code=200))

    assert saved is False
    assert backend.saved == []
