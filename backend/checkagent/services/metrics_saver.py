"""Metrics saver - turns probe results into backend records.

One check produces a general `services_metrics` record plus one detail
record in the collection matching the probe type. Saving is best effort:
failures are logged and never propagate to the caller.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from ..schemas.records import (
    DNSDataRecord,
    MetricsRecord,
    PingDataRecord,
    TCPDataRecord,
    UptimeDataRecord,
)
from ..schemas.service import Service
from .backend_client import BackendClient, BackendError
from .operations.errors import short_error_message
from .operations.result import OperationType, ProbeResult

logger = logging.getLogger(__name__)


def format_ms(value: float) -> str:
    return f"{value:.2f}ms"


def format_bytes(size: int) -> str:
    """Readable byte count (B, KB, MB)."""
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


def summarize_result(result: ProbeResult) -> str:
    """Details text for the general metrics record."""
    if result.details:
        return result.details
    if result.type == OperationType.PING:
        if result.success:
            return f"Ping successful - {result.packets_sent} packets sent, {result.packets_recv} received"
        return f"Ping failed - {result.error}"
    if result.type == OperationType.HTTP:
        if result.success:
            return f"HTTP {result.http_status_code} - Response time: {format_ms(result.response_time_ms)}"
        return f"HTTP failed - {result.error}"
    if result.type == OperationType.DNS:
        if result.success:
            return f"DNS {result.dns_type} query successful - {len(result.dns_records)} records found"
        return f"DNS query failed - {result.error}"
    return "Operation completed"


def ping_details(result: ProbeResult) -> str:
    if result.success:
        details = f"Ping OK - {result.packets_recv}/{result.packets_sent} packets received"
        if result.packet_loss > 0:
            details += f" ({result.packet_loss:.1f}% loss)"
        details += f" | Avg: {format_ms(result.avg_rtt_ms)}"
        if result.min_rtt_ms != result.max_rtt_ms:
            details += f", Min: {format_ms(result.min_rtt_ms)}, Max: {format_ms(result.max_rtt_ms)}"
        return details
    if result.packet_loss >= 100:
        return f"Ping Failed - 100% packet loss ({short_error_message(result.error)})"
    return f"Ping Partial - {result.packet_loss:.1f}% packet loss ({short_error_message(result.error)})"


def http_details(result: ProbeResult) -> str:
    if result.success:
        details = f"HTTP {result.http_status_code} OK - Response time: {format_ms(result.response_time_ms)}"
        if result.content_length:
            details += f" | Content: {format_bytes(result.content_length)}"
        server = result.http_headers.get("Server")
        if server:
            details += f" | Server: {server}"
        return details
    if result.http_status_code:
        details = f"HTTP {result.http_status_code} Error - {short_error_message(result.error)}"
    else:
        details = f"Connection Error - {short_error_message(result.error)}"
    if result.response_time_ms > 0:
        details += f" | Response time: {format_ms(result.response_time_ms)}"
    return details


def dns_details(result: ProbeResult) -> str:
    query_type = (result.dns_type or "A").upper()
    if result.success:
        count = len(result.dns_records)
        details = f"DNS {query_type} Query OK - {count} records found"
        details += f" | Response time: {format_ms(result.response_time_ms)}"
        if count > 2:
            details += f" | Records: {', '.join(result.dns_records[:2])}... (+{count - 2} more)"
        elif count:
            details += f" | Records: {', '.join(result.dns_records)}"
        return details
    details = f"DNS {query_type} Query Failed - {short_error_message(result.error)}"
    if result.response_time_ms > 0:
        details += f" | Response time: {format_ms(result.response_time_ms)}"
    return details


def tcp_details(result: ProbeResult) -> str:
    if result.success and result.tcp_connected:
        return (f"TCP Connection OK - Port {result.port} accessible"
                f" | Connection time: {format_ms(result.response_time_ms)}")
    details = f"TCP Connection Failed - Port {result.port} unreachable"
    if result.error:
        details += f" ({short_error_message(result.error)})"
    if result.response_time_ms > 0:
        details += f" | Timeout: {format_ms(result.response_time_ms)}"
    return details


class MetricsSaver:
    """Writes general and protocol detail records for probe results."""

    def __init__(self, backend: BackendClient, region_name: str = "", agent_id: str = ""):
        self.backend = backend
        self.region_name = region_name
        self.agent_id = agent_id

    def _now(self) -> str:
        return datetime.now(timezone.utc).isoformat()

    def _common(self, result: ProbeResult, service_id: str, details: str) -> dict:
        return {
            "service_id": service_id,
            "timestamp": self._now(),
            "response_time": int(result.response_time_ms),
            "status": result.status,
            "error_message": result.error,
            "details": details,
            "region_name": self.region_name,
            "agent_id": self.agent_id,
        }

    async def save_for_service(self, service: Service, result: ProbeResult) -> bool:
        """Save records for a monitored service check. Returns True when all writes succeeded."""
        now = self._now()
        metrics = MetricsRecord(
            service_name=service.name,
            host=service.host,
            response_time=int(result.response_time_ms),
            last_checked=now,
            port=service.port or None,
            domain=service.domain or None,
            url=service.url or None,
            service_type=service.service_type,
            status=result.status,
            error_message=result.error,
            details=summarize_result(result),
            checked_at=now,
        )
        if not await self._save("metrics", self.backend.save_metrics(metrics)):
            return False
        return await self.save_detail(result, service.id)

    async def save_for_result(self, result: ProbeResult, service_id: Optional[str] = None) -> bool:
        """Save records for an on-demand operation, with detail data only when tied to a service."""
        now = self._now()
        metrics = MetricsRecord(
            service_name=result.host,
            host=result.host,
            response_time=int(result.response_time_ms),
            last_checked=now,
            port=result.port,
            service_type=result.type.value,
            status=result.status,
            error_message=result.error,
            details=summarize_result(result),
            checked_at=now,
        )
        saved = await self._save("metrics", self.backend.save_metrics(metrics))
        if service_id:
            saved = await self.save_detail(result, service_id) and saved
        return saved

    async def save_detail(self, result: ProbeResult, service_id: str) -> bool:
        """Write the protocol-specific record for a result."""
        if result.type == OperationType.PING:
            latency = format_ms(result.avg_rtt_ms)
            record = PingDataRecord(
                **self._common(result, service_id, ping_details(result)),
                packets_sent=str(result.packets_sent),
                packets_recv=str(result.packets_recv),
                packet_loss=f"{result.packet_loss:.1f}%",
                latency=latency,
                min_rtt=format_ms(result.min_rtt_ms),
                avg_rtt=latency,
                max_rtt=format_ms(result.max_rtt_ms),
                rtts=",".join(format_ms(rtt) for rtt in result.rtts_ms),
            )
            return await self._save("ping data", self.backend.save_ping_data(record))

        if result.type == OperationType.HTTP:
            record = UptimeDataRecord(
                **self._common(result, service_id, http_details(result)),
                latency=format_ms(result.response_time_ms),
                status_codes=str(result.http_status_code or 0),
                region=self.region_name,
                region_id=self.agent_id,
            )
            return await self._save("uptime data", self.backend.save_uptime_data(record))

        if result.type == OperationType.DNS:
            answer = ",".join(result.dns_records)
            record = DNSDataRecord(
                **self._common(result, service_id, dns_details(result)),
                query_type=result.dns_type or "A",
                resolve_ip=answer,
                msg_size=str(len(result.dns_records)),
                question=result.host,
                answer=answer,
            )
            return await self._save("DNS data", self.backend.save_dns_data(record))

        if result.type == OperationType.TCP:
            record = TCPDataRecord(
                **self._common(result, service_id, tcp_details(result)),
                connection="connected" if result.tcp_connected else "disconnected",
                latency=format_ms(result.response_time_ms),
                port=str(result.port or 0),
            )
            return await self._save("TCP data", self.backend.save_tcp_data(record))

        logger.debug(f"No detail record for operation type {result.type.value}")
        return True

    async def _save(self, what: str, write) -> bool:
        try:
            await write
        except BackendError as e:
            logger.warning(f"Failed to save {what}: {e}")
            return False
        return True
