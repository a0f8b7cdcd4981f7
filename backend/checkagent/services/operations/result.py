"""Probe result model shared by every operation executor."""
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional


class OperationType(str, Enum):
    """Supported probe kinds."""
    PING = "ping"
    DNS = "dns"
    TCP = "tcp"
    HTTP = "http"
    UNSUPPORTED = "unsupported"

    @classmethod
    def from_kind(cls, kind: Optional[str]) -> "OperationType":
        """Map a textual service/operation kind onto an operation type.

        Aliases used by service records (icmp, https) are folded into their
        base kind; anything else maps to UNSUPPORTED.
        """
        value = (kind or "").strip().lower()
        if value in ("ping", "icmp"):
            return cls.PING
        if value in ("http", "https"):
            return cls.HTTP
        if value == "dns":
            return cls.DNS
        if value == "tcp":
            return cls.TCP
        return cls.UNSUPPORTED


class OperationInputError(ValueError):
    """Raised by executors for invalid input (never for network failures)."""


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of one executor run."""
    type: OperationType
    host: str
    success: bool
    start_time: datetime
    end_time: datetime
    port: Optional[int] = None
    response_time_ms: float = 0.0
    details: str = ""
    error: str = ""

    # Ping
    packets_sent: int = 0
    packets_recv: int = 0
    packet_loss: float = 0.0
    min_rtt_ms: float = 0.0
    avg_rtt_ms: float = 0.0
    max_rtt_ms: float = 0.0
    rtts_ms: List[float] = field(default_factory=list)

    # DNS
    dns_type: Optional[str] = None
    dns_records: List[str] = field(default_factory=list)

    # TCP
    tcp_connected: Optional[bool] = None

    # HTTP
    http_status_code: Optional[int] = None
    http_method: Optional[str] = None
    http_headers: Dict[str, str] = field(default_factory=dict)
    content_length: Optional[int] = None
    response_body: Optional[str] = None

    @property
    def status(self) -> str:
        return "up" if self.success else "down"

    def to_dict(self) -> dict:
        """Flat JSON-ready representation (durations in ms, ISO timestamps)."""
        data = asdict(self)
        data["type"] = self.type.value
        data["start_time"] = self.start_time.isoformat()
        data["end_time"] = self.end_time.isoformat()
        # Drop protocol payload that does not belong to this result type
        if self.type != OperationType.PING:
            for key in ("packets_sent", "packets_recv", "packet_loss", "min_rtt_ms",
                        "avg_rtt_ms", "max_rtt_ms", "rtts_ms"):
                data.pop(key)
        if self.type != OperationType.DNS:
            data.pop("dns_type")
            data.pop("dns_records")
        if self.type != OperationType.TCP:
            data.pop("tcp_connected")
        if self.type != OperationType.HTTP:
            for key in ("http_status_code", "http_method", "http_headers",
                        "content_length", "response_body"):
                data.pop(key)
        return data


def elapsed_ms(start: float, end: float) -> float:
    """Milliseconds between two monotonic clock readings."""
    return round((end - start) * 1000, 3)
