"""Parsing of OS ping command output into structured statistics.

Pure text -> stats conversion, independent of process execution, so it can
be exercised with captured output from each OS family.

Supported formats:
- Linux (iputils):  "64 bytes from 1.1.1.1: icmp_seq=1 ttl=57 time=14.2 ms"
                    "rtt min/avg/max/mdev = 14.2/14.2/14.2/0.000 ms"
- macOS / BSD:      "round-trip min/avg/max/stddev = 14.2/14.2/14.2/0.000 ms"
- Windows:          "Reply from 1.1.1.1: bytes=32 time=14ms TTL=56"
                    "Minimum = 14ms, Maximum = 14ms, Average = 14ms"
"""
import re
from dataclasses import dataclass, field
from typing import List, Optional

LOSS_PATTERN = re.compile(r"(\d+(?:\.\d+)?)%\s*(?:packet\s*)?loss", re.IGNORECASE)
UNIX_SUMMARY_PATTERN = re.compile(
    r"(?:rtt|round-trip) min/avg/max/(?:mdev|stddev) = "
    r"([\d.]+)/([\d.]+)/([\d.]+)/([\d.]+) ms"
)
WINDOWS_SUMMARY_PATTERN = re.compile(
    r"Minimum = (\d+)ms, Maximum = (\d+)ms, Average = (\d+)ms", re.IGNORECASE
)
REPLY_TIME_PATTERN = re.compile(r"time[<=]([\d.]+) ?ms", re.IGNORECASE)


@dataclass
class PingStats:
    """Statistics for one ping attempt (any strategy)."""
    packets_sent: int = 0
    packets_recv: int = 0
    packet_loss: float = 100.0
    min_rtt_ms: float = 0.0
    avg_rtt_ms: float = 0.0
    max_rtt_ms: float = 0.0
    rtts_ms: List[float] = field(default_factory=list)
    reported_loss: Optional[float] = None  # as printed by the command

    def finalize(self) -> "PingStats":
        """Derive loss and aggregates from counted replies.

        Packet loss always comes from counted replies when the number of
        sent packets is known; the command's own percentage is only used
        when it is not.
        """
        self.packets_recv = len(self.rtts_ms)
        if self.rtts_ms and not self.avg_rtt_ms:
            self.min_rtt_ms = min(self.rtts_ms)
            self.max_rtt_ms = max(self.rtts_ms)
            self.avg_rtt_ms = round(sum(self.rtts_ms) / len(self.rtts_ms), 3)
        if self.packets_sent > 0:
            lost = max(self.packets_sent - self.packets_recv, 0)
            self.packet_loss = lost / self.packets_sent * 100
        elif self.reported_loss is not None:
            self.packet_loss = self.reported_loss
        return self


def parse_ping_output(output: str, expected_count: int) -> PingStats:
    """Parse ping command output into PingStats.

    Summary min/avg/max are taken from the summary line when present and
    computed from individual replies otherwise.
    """
    stats = PingStats(packets_sent=max(expected_count, 0))

    loss_match = LOSS_PATTERN.search(output)
    if loss_match:
        stats.reported_loss = float(loss_match.group(1))

    stats.rtts_ms = [float(m.group(1)) for m in REPLY_TIME_PATTERN.finditer(output)]

    summary = UNIX_SUMMARY_PATTERN.search(output)
    if summary:
        stats.min_rtt_ms = float(summary.group(1))
        stats.avg_rtt_ms = float(summary.group(2))
        stats.max_rtt_ms = float(summary.group(3))
    else:
        windows = WINDOWS_SUMMARY_PATTERN.search(output)
        if windows:
            stats.min_rtt_ms = float(windows.group(1))
            stats.max_rtt_ms = float(windows.group(2))
            stats.avg_rtt_ms = float(windows.group(3))

    if not stats.rtts_ms:
        # A summary line without any reply line is not a usable answer
        stats.min_rtt_ms = stats.avg_rtt_ms = stats.max_rtt_ms = 0.0

    return stats.finalize()
