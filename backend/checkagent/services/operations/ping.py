"""Ping operation - OS ping command first, raw ICMP socket as fallback."""
import asyncio
import logging
import math
import platform
import socket
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

import ping3

from .errors import FailureKind, classify_error, short_error_message
from .ping_parser import PingStats, parse_ping_output
from .result import OperationInputError, OperationType, ProbeResult

logger = logging.getLogger(__name__)

# Seconds added on top of the ping timeout before the command is killed
COMMAND_TIMEOUT_BUFFER = 5
# Spacing between echo requests sent over the raw ICMP socket
SEND_INTERVAL_SECONDS = 1.0

# ping3 raises its errors instead of returning None/False
ping3.EXCEPTIONS = True


def whole_seconds(timeout: float) -> int:
    """Round a timeout up to the whole seconds the ping command accepts."""
    return max(1, math.ceil(timeout))


@dataclass
class PingAttempt:
    """What one strategy observed."""
    strategy: str
    stats: PingStats
    resolved_ip: Optional[str] = None
    error: str = ""


class SystemPingStrategy:
    """Runs the host OS `ping` command and parses its output."""

    name = "system ping"

    def __init__(self, system: Optional[str] = None):
        self.system = (system or platform.system()).lower()

    def build_command(self, host: str, count: int, timeout_seconds: int) -> List[str]:
        """Build the ping argv for this OS (count/timeout flags differ)."""
        if self.system == "windows":
            # -n count, -w timeout in milliseconds
            return ["ping", "-n", str(count), "-w", str(timeout_seconds * 1000), host]
        if self.system == "darwin":
            # -c count, -W timeout in milliseconds
            return ["ping", "-c", str(count), "-W", str(timeout_seconds * 1000), host]
        # Linux and everything else: -c count, -W timeout in seconds
        return ["ping", "-c", str(count), "-W", str(timeout_seconds), host]

    async def run(self, host: str, count: int, timeout: float) -> PingAttempt:
        timeout_seconds = whole_seconds(timeout)

        command = self.build_command(host, count, timeout_seconds)
        # Wait for all pings (1s apart) plus the per-reply timeout and a buffer
        command_timeout = timeout_seconds + count + COMMAND_TIMEOUT_BUFFER

        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            return PingAttempt(self.name, PingStats(packets_sent=count).finalize(),
                               error="ping command not found")
        except OSError as e:
            return PingAttempt(self.name, PingStats(packets_sent=count).finalize(),
                               error=f"failed to run ping command: {e}")

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=command_timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            return PingAttempt(self.name, PingStats(packets_sent=count).finalize(),
                               error=f"Ping request timed out after {command_timeout}s")

        output = stdout.decode(errors="replace")
        stats = parse_ping_output(output, count)

        error = ""
        if stats.packets_recv == 0:
            error = stderr.decode(errors="replace").strip()
            if not error:
                if output.strip():
                    error = f"Request timeout - no reply within {timeout_seconds}s"
                else:
                    error = f"ping exited with status {proc.returncode}"
        return PingAttempt(self.name, stats, error=error)


def ping_icmp(host: str, count: int, timeout: float) -> Tuple[List[float], str]:
    """Send `count` echo requests with ping3, one second apart.

    Blocking; returns the reply RTTs in ms and the last error seen.
    """
    rtts: List[float] = []
    error = ""
    for seq in range(count):
        try:
            delay = ping3.ping(host, timeout=timeout, seq=seq, unit="ms")
        except ping3.errors.HostUnknown as e:
            return rtts, f"failed to resolve host {host}: {e}"
        except PermissionError as e:
            return rtts, f"failed to create ICMP socket (requires root/CAP_NET_RAW privileges): {e}"
        except ping3.errors.Timeout:
            error = f"Request timeout - no ICMP echo reply within {timeout}s"
        except ping3.errors.PingError as e:
            error = str(e)
        except OSError as e:
            error = f"ICMP request failed: {e}"
        else:
            rtts.append(round(delay, 3))

        if seq < count - 1:
            time.sleep(SEND_INTERVAL_SECONDS)
    return rtts, error


class RawICMPStrategy:
    """Sends ICMP echo requests directly through ping3's raw socket."""

    name = "raw ICMP"

    async def run(self, host: str, count: int, timeout: float) -> PingAttempt:
        loop = asyncio.get_running_loop()
        rtts, error = await loop.run_in_executor(None, ping_icmp, host, count, timeout)

        stats = PingStats(packets_sent=count, rtts_ms=rtts).finalize()
        if not rtts and not error:
            error = "No ICMP echo replies received"
        return PingAttempt(self.name, stats, error=error)


class PingOperation:
    """ICMP reachability probe.

    Strategies are tried in order; the first one that receives at least one
    reply wins. When every strategy comes back empty the result is a failure
    whose error names what each strategy saw.
    """

    type = OperationType.PING

    def __init__(self, timeout: float = 10, strategies: Optional[Sequence] = None):
        self.timeout = timeout
        if strategies is None:
            strategies = [SystemPingStrategy(), RawICMPStrategy()]
        self.strategies = list(strategies)

    async def execute(self, host: str, count: int = 1) -> ProbeResult:
        if not host or not host.strip():
            raise OperationInputError("host cannot be empty")
        host = host.strip()
        if host.startswith("-"):
            raise OperationInputError(f"invalid host: {host}")
        if count < 1:
            count = 1

        start_time = datetime.now(timezone.utc)
        resolved_ip = await self._resolve(host)

        attempts: List[PingAttempt] = []
        for strategy in self.strategies:
            attempt = await strategy.run(host, count, self.timeout)
            attempts.append(attempt)
            if attempt.stats.packets_recv > 0:
                return self._success_result(host, attempt, resolved_ip, start_time)
            logger.debug(f"{attempt.strategy} got no replies from {host}: {attempt.error}")

        return self._failure_result(host, count, attempts, resolved_ip, start_time)

    async def _resolve(self, host: str) -> Optional[str]:
        """Best-effort resolution of host for diagnostics, bounded by the timeout."""
        loop = asyncio.get_running_loop()
        try:
            infos = await asyncio.wait_for(
                loop.getaddrinfo(host, None, type=socket.SOCK_STREAM), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            logger.debug(f"Resolving {host} took longer than {self.timeout}s")
            return None
        except (OSError, UnicodeError):
            return None
        if not infos:
            return None
        return infos[0][4][0]

    def _success_result(self, host: str, attempt: PingAttempt,
                        resolved_ip: Optional[str], start_time: datetime) -> ProbeResult:
        stats = attempt.stats
        return ProbeResult(
            type=OperationType.PING,
            host=host,
            success=True,
            start_time=start_time,
            end_time=datetime.now(timezone.utc),
            response_time_ms=stats.avg_rtt_ms,
            details=self._success_details(stats, host, attempt.resolved_ip or resolved_ip),
            packets_sent=stats.packets_sent,
            packets_recv=stats.packets_recv,
            packet_loss=stats.packet_loss,
            min_rtt_ms=stats.min_rtt_ms,
            avg_rtt_ms=stats.avg_rtt_ms,
            max_rtt_ms=stats.max_rtt_ms,
            rtts_ms=list(stats.rtts_ms),
        )

    def _failure_result(self, host: str, count: int, attempts: List[PingAttempt],
                        resolved_ip: Optional[str], start_time: datetime) -> ProbeResult:
        error = "; ".join(f"{a.strategy}: {a.error or 'no replies'}" for a in attempts)
        primary = attempts[0].error if attempts else error
        return ProbeResult(
            type=OperationType.PING,
            host=host,
            success=False,
            start_time=start_time,
            end_time=datetime.now(timezone.utc),
            error=error or "No ping strategy available",
            details=self._failure_details(primary, attempts, host, resolved_ip),
            packets_sent=count,
            packets_recv=0,
            packet_loss=100.0,
        )

    @staticmethod
    def _target_label(host: str, resolved_ip: Optional[str]) -> str:
        if resolved_ip and resolved_ip != host:
            return f"{host} ({resolved_ip})"
        return host

    def _success_details(self, stats: PingStats, host: str, resolved_ip: Optional[str]) -> str:
        parts = [
            f"PING SUCCESS - {stats.packets_recv}/{stats.packets_sent} packets received",
            f"Host: {self._target_label(host, resolved_ip)}",
        ]
        if stats.avg_rtt_ms > 0:
            parts.append(f"Avg RTT: {stats.avg_rtt_ms:.2f}ms")
        if stats.min_rtt_ms > 0 and stats.max_rtt_ms > 0:
            parts.append(f"Range: {stats.min_rtt_ms:.2f}-{stats.max_rtt_ms:.2f}ms")
        if stats.packet_loss > 0:
            parts.append(f"Packet Loss: {stats.packet_loss:.1f}%")
        else:
            parts.append("No packet loss")
        return " | ".join(parts)

    def _failure_details(self, primary_error: str, attempts: List[PingAttempt],
                         host: str, resolved_ip: Optional[str]) -> str:
        headlines = {
            FailureKind.TIMEOUT: "PING TIMEOUT - Host did not respond within timeout period",
            FailureKind.HOST_UNREACHABLE: "HOST UNREACHABLE - Network path to host is blocked",
            FailureKind.NO_ROUTE: "NO ROUTE - No network route to destination",
            FailureKind.NAME_RESOLUTION: "DNS RESOLUTION FAILED - Unable to resolve hostname",
            FailureKind.PERMISSION_DENIED: "PERMISSION DENIED - Insufficient privileges for ICMP",
        }
        headline = headlines.get(classify_error(primary_error), "PING FAILED - Connection error")
        parts = [headline, f"Target: {self._target_label(host, resolved_ip)}"]
        for attempt in attempts:
            parts.append(f"{attempt.strategy}: {short_error_message(attempt.error or 'no replies')}")
        return " | ".join(parts)
