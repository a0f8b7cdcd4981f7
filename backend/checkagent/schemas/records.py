"""Result sink record schemas.

Each record type keeps a single, stable encoding because the backend
collections are schema based: response times are integer milliseconds,
human-oriented latency values are strings with a unit suffix.
"""
from typing import Optional

from pydantic import BaseModel


class MetricsRecord(BaseModel):
    """General metrics record (`services_metrics`)."""
    service_name: str
    host: str = ""
    uptime: float = 0
    response_time: int  # ms
    last_checked: str  # RFC 3339
    port: Optional[int] = None
    domain: Optional[str] = None
    url: Optional[str] = None
    service_type: str
    status: str  # up, down
    error_message: Optional[str] = None
    details: Optional[str] = None
    checked_at: str  # RFC 3339


class _DetailRecord(BaseModel):
    """Fields shared by every protocol-specific detail record."""
    service_id: str
    timestamp: str  # RFC 3339
    response_time: int  # ms
    status: str  # up, down
    error_message: Optional[str] = None
    details: Optional[str] = None
    region_name: Optional[str] = None
    agent_id: Optional[str] = None


class PingDataRecord(_DetailRecord):
    """Ping detail record (`ping_data`)."""
    packets_sent: str
    packets_recv: str
    packet_loss: str  # "12.5%"
    latency: str  # "12.34ms"
    min_rtt: str
    avg_rtt: str
    max_rtt: str
    rtts: str  # comma-joined "12.34ms" values


class UptimeDataRecord(_DetailRecord):
    """HTTP detail record (`uptime_data`)."""
    packets: str = "N/A"
    latency: str
    status_codes: str
    keyword: str = ""
    region: Optional[str] = None
    region_id: Optional[str] = None


class DNSDataRecord(_DetailRecord):
    """DNS detail record (`dns_data`)."""
    query_type: str
    resolve_ip: str
    msg_size: str
    question: str
    answer: str
    authority: str = ""


class TCPDataRecord(_DetailRecord):
    """TCP detail record (`tcp_data`)."""
    connection: str  # connected, disconnected
    latency: str
    port: str
