"""Pydantic schemas for backend records and API requests."""
from .service import Service, ServicesPage, RegionalIdentity
from .records import (
    MetricsRecord,
    PingDataRecord,
    UptimeDataRecord,
    DNSDataRecord,
    TCPDataRecord,
)
from .operation import OperationRequest

__all__ = [
    "Service",
    "ServicesPage",
    "RegionalIdentity",
    "MetricsRecord",
    "PingDataRecord",
    "UptimeDataRecord",
    "DNSDataRecord",
    "TCPDataRecord",
    "OperationRequest",
]
