"""Shared dataclasses for measurements."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

from ..errors import ValidationError

REASON_TIMEOUT = "timeout"
REASON_CANCELLED = "cancelled"


class MeasurementKind(str, Enum):
    LATENCY = "latency"
    THROUGHPUT = "throughput"

    @classmethod
    def parse(cls, value: Union[str, "MeasurementKind"]) -> "MeasurementKind":
        """Accept enum values as well as the ``ping``/``speed`` aliases used over HTTP."""

        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        kind = _KIND_ALIASES.get(normalized)
        if kind is None:
            raise ValidationError(f"Unknown measurement kind: {value!r}")
        return kind


_KIND_ALIASES = {
    "latency": MeasurementKind.LATENCY,
    "ping": MeasurementKind.LATENCY,
    "throughput": MeasurementKind.THROUGHPUT,
    "speed": MeasurementKind.THROUGHPUT,
    "speedtest": MeasurementKind.THROUGHPUT,
}


@dataclass(frozen=True)
class Target:
    kind: MeasurementKind
    identifier: str
    label: str = ""

    def __post_init__(self) -> None:
        if not self.label:
            object.__setattr__(self, "label", self.identifier)


@dataclass(frozen=True)
class PingStats:
    min_rtt_ms: Optional[float]
    avg_rtt_ms: Optional[float]
    max_rtt_ms: Optional[float]
    stddev_rtt_ms: Optional[float]
    packets_sent: Optional[int] = None
    packets_received: Optional[int] = None
    packet_loss_percent: Optional[float] = None


@dataclass(frozen=True)
class SpeedStats:
    latency_ms: Optional[float]
    download_mbps: Optional[float]
    upload_mbps: Optional[float]
    server_name: Optional[str] = None
    bytes_used: Optional[int] = None


ProbeData = Union[PingStats, SpeedStats]


@dataclass(frozen=True)
class MeasurementResult:
    target: Target
    timestamp: datetime
    data: Optional[ProbeData] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def kind(self) -> MeasurementKind:
        return self.target.kind

    @property
    def label(self) -> str:
        """Configured label, or ``"<id> - <server name>"`` when only the id is known."""

        server_name = getattr(self.data, "server_name", None)
        if self.target.label == self.target.identifier and server_name:
            return f"{self.target.identifier} - {server_name}"
        return self.target.label

    def to_dict(self) -> Dict[str, Any]:
        if self.target.kind is MeasurementKind.LATENCY:
            stats = self.data if isinstance(self.data, PingStats) else None
            return {
                "address": self.target.identifier,
                "label": self.label,
                "min_rtt": stats.min_rtt_ms if stats else None,
                "avg_rtt": stats.avg_rtt_ms if stats else None,
                "max_rtt": stats.max_rtt_ms if stats else None,
                "stddev_rtt": stats.stddev_rtt_ms if stats else None,
                "packet_loss": stats.packet_loss_percent if stats else None,
                "error": self.error,
            }

        speed = self.data if isinstance(self.data, SpeedStats) else None
        return {
            "server_id": self.target.identifier,
            "server": self.label,
            "latency": speed.latency_ms if speed else None,
            "dl": speed.download_mbps if speed else None,
            "ul": speed.upload_mbps if speed else None,
            "error": self.error,
        }


@dataclass(frozen=True)
class Round:
    kind: MeasurementKind
    results: Tuple[MeasurementResult, ...] = field(default_factory=tuple)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def succeeded(self) -> int:
        return sum(1 for result in self.results if result.success)

    @property
    def failed(self) -> int:
        return len(self.results) - self.succeeded

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "results": [result.to_dict() for result in self.results],
        }
