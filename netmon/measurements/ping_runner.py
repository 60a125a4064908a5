"""Latency probes backed by the system ping binary."""

from __future__ import annotations

import logging
import platform
import re
import shutil
import threading
from typing import Optional

from ..errors import ProbeError, ProberUnavailableError
from .base import run_cancellable
from .models import PingStats, Target

LOGGER = logging.getLogger(__name__)

IS_WINDOWS = platform.system().lower().startswith("win")
PING_FLAG = "-n" if IS_WINDOWS else "-c"

_UNIX_RTT = re.compile(r"(?:rtt|round-trip) min/avg/max/(?:mdev|stddev) = ([\d.]+)/([\d.]+)/([\d.]+)/([\d.]+)")
_UNIX_COUNTS = re.compile(r"(\d+) packets transmitted, (\d+) (?:packets )?received")
_UNIX_LOSS = re.compile(r"([\d.]+)% packet loss")
_WINDOWS_COUNTS = re.compile(r"Sent = (\d+), Received = (\d+)")
_WINDOWS_LOSS = re.compile(r"\((\d+)% loss\)")


class PingProber:
    def __init__(self, count: int = 10, binary: str = "ping"):
        self.count = count
        self.binary = binary

    def ensure_ready(self) -> None:
        if not shutil.which(self.binary):
            raise ProberUnavailableError(f"{self.binary} binary is required for latency checks")

    def probe(self, target: Target, timeout: float, cancel: threading.Event) -> PingStats:
        cmd = [self.binary, PING_FLAG, str(self.count), target.identifier]
        completed = run_cancellable(cmd, timeout, cancel)
        stats = parse_ping_output(completed.stdout or "")
        if stats.avg_rtt_ms is None:
            detail = (completed.stderr or "").strip()
            if stats.packet_loss_percent is not None:
                detail = detail or f"{stats.packet_loss_percent:g}% packet loss"
            raise ProbeError(f"no reply from {target.identifier}" + (f": {detail}" if detail else ""))

        LOGGER.info("ping for %s: %.1fms", target.label, stats.avg_rtt_ms)
        return stats


def parse_ping_output(output: str) -> PingStats:
    avg = _extract_between(output, "Average = ", "ms")
    if avg is not None:
        # Windows flavor
        sent, received, loss = _windows_counts(output)
        return PingStats(
            min_rtt_ms=_extract_between(output, "Minimum = ", "ms"),
            avg_rtt_ms=avg,
            max_rtt_ms=_extract_between(output, "Maximum = ", "ms"),
            stddev_rtt_ms=None,
            packets_sent=sent,
            packets_received=received,
            packet_loss_percent=loss,
        )

    counts = _UNIX_COUNTS.search(output)
    loss = _UNIX_LOSS.search(output)
    sent = int(counts.group(1)) if counts else None
    received = int(counts.group(2)) if counts else None
    loss_percent = float(loss.group(1)) if loss else None

    rtt = _UNIX_RTT.search(output)
    if rtt:
        min_ms, avg_ms, max_ms, mdev = (float(value) for value in rtt.groups())
        return PingStats(
            min_rtt_ms=min_ms,
            avg_rtt_ms=avg_ms,
            max_rtt_ms=max_ms,
            stddev_rtt_ms=mdev,
            packets_sent=sent,
            packets_received=received,
            packet_loss_percent=loss_percent,
        )

    return PingStats(
        min_rtt_ms=None,
        avg_rtt_ms=None,
        max_rtt_ms=None,
        stddev_rtt_ms=None,
        packets_sent=sent,
        packets_received=received,
        packet_loss_percent=loss_percent,
    )


def _windows_counts(output: str):
    counts = _WINDOWS_COUNTS.search(output)
    loss = _WINDOWS_LOSS.search(output)
    sent = int(counts.group(1)) if counts else None
    received = int(counts.group(2)) if counts else None
    return sent, received, float(loss.group(1)) if loss else None


def _extract_between(text: str, prefix: str, suffix: str) -> Optional[float]:
    if prefix not in text:
        return None
    try:
        segment = text.split(prefix)[1]
        value_text = segment.split(suffix)[0]
        numeric = "".join(ch for ch in value_text if (ch.isdigit() or ch == "."))
        return float(numeric) if numeric else None
    except (IndexError, ValueError):
        return None
