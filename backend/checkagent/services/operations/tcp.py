"""TCP operation - timed connect to host:port."""
import asyncio
import time
from datetime import datetime, timezone

from .errors import FailureKind, classify_error, describe_exception
from .result import OperationInputError, OperationType, ProbeResult, elapsed_ms


class TCPOperation:
    """Succeeds iff a TCP connection completes within the timeout."""

    type = OperationType.TCP

    def __init__(self, timeout: float = 10):
        self.timeout = timeout

    async def execute(self, host: str, port: int) -> ProbeResult:
        if not host or not host.strip():
            raise OperationInputError("host cannot be empty")
        if not 0 < port <= 65535:
            raise OperationInputError(f"invalid port: {port}")
        host = host.strip()

        start_time = datetime.now(timezone.utc)
        started = time.monotonic()
        error = ""
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            error = f"dial tcp {host}:{port}: i/o timeout after {self.timeout}s"
        except ConnectionRefusedError:
            error = f"dial tcp {host}:{port}: connection refused"
        except (OSError, UnicodeError) as e:
            error = f"dial tcp {host}:{port}: {describe_exception(e)}"
        else:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass

        response_time = elapsed_ms(started, time.monotonic())
        connected = not error
        if connected:
            details = f"Successfully connected to {host}:{port}"
        else:
            details = f"{self._headline(error)} - Failed to connect to {host}:{port} - {error}"

        return ProbeResult(
            type=OperationType.TCP,
            host=host,
            port=port,
            success=connected,
            start_time=start_time,
            end_time=datetime.now(timezone.utc),
            response_time_ms=response_time,
            details=details,
            error=error,
            tcp_connected=connected,
        )

    @staticmethod
    def _headline(error: str) -> str:
        headlines = {
            FailureKind.TIMEOUT: "CONNECTION TIMEOUT",
            FailureKind.CONNECTION_REFUSED: "CONNECTION REFUSED",
            FailureKind.NAME_RESOLUTION: "DNS RESOLUTION FAILED",
            FailureKind.HOST_UNREACHABLE: "HOST UNREACHABLE",
            FailureKind.NO_ROUTE: "NO ROUTE",
            FailureKind.PERMISSION_DENIED: "PERMISSION DENIED",
        }
        return headlines.get(classify_error(error), "TCP FAILED")
