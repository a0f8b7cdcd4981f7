"""Protocol probes: ping, DNS, TCP and HTTP."""
from .result import OperationType, OperationInputError, ProbeResult
from .ping import PingOperation, SystemPingStrategy, RawICMPStrategy
from .dns import DNSOperation
from .tcp import TCPOperation
from .http import HTTPOperation

__all__ = [
    "OperationType",
    "OperationInputError",
    "ProbeResult",
    "PingOperation",
    "SystemPingStrategy",
    "RawICMPStrategy",
    "DNSOperation",
    "TCPOperation",
    "HTTPOperation",
    "build_operation",
]


def build_operation(op_type: OperationType, timeout: float):
    """Create the executor for an operation type."""
    if op_type == OperationType.PING:
        return PingOperation(timeout)
    if op_type == OperationType.DNS:
        return DNSOperation(timeout)
    if op_type == OperationType.TCP:
        return TCPOperation(timeout)
    if op_type == OperationType.HTTP:
        return HTTPOperation(timeout)
    raise OperationInputError(f"Unsupported operation type: {op_type.value}")
