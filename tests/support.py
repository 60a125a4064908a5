"""Fakes shared by the test modules: scriptable probers and recording reporters."""

from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import yaml

from netmon.errors import ProbeCancelledError
from netmon.measurements.models import MeasurementResult, PingStats, SpeedStats, Target


def ping_stats(avg: float, spread: float = 1.0) -> PingStats:
    return PingStats(
        min_rtt_ms=avg - spread,
        avg_rtt_ms=avg,
        max_rtt_ms=avg + spread,
        stddev_rtt_ms=spread / 2,
        packets_sent=10,
        packets_received=10,
        packet_loss_percent=0.0,
    )


def speed_stats(latency: float = 8.0, dl: float = 250.0, ul: float = 40.0, name: str = "ACME") -> SpeedStats:
    return SpeedStats(latency_ms=latency, download_mbps=dl, upload_mbps=ul, server_name=name, bytes_used=1024)


def slow(seconds: float, value: Any) -> Callable:
    """Behavior that takes ``seconds`` unless cancelled first."""

    def behave(target, timeout, cancel):
        if cancel.wait(seconds):
            raise ProbeCancelledError(f"{target.identifier} cancelled")
        return value

    return behave


def hang(limit: float = 10.0) -> Callable:
    """Behavior that only returns once cancelled (or after ``limit`` as a safety net)."""

    def behave(target, timeout, cancel):
        cancel.wait(limit)
        raise ProbeCancelledError(f"{target.identifier} cancelled")

    return behave


class StubProber:
    """Prober whose outcome per identifier is scripted.

    A behavior is either a value to return, an exception to raise, or a
    callable ``(target, timeout, cancel)``.
    """

    def __init__(self, behaviors: Optional[Dict[str, Any]] = None, default: Any = None, ready_error=None):
        self.behaviors = dict(behaviors or {})
        self.default = default if default is not None else ping_stats(10.0)
        self.ready_error = ready_error
        self.calls: List[Tuple[str, float]] = []
        self.spans: List[Tuple[str, float, float]] = []
        self.active = 0
        self.max_active = 0
        self.started = threading.Event()
        self._lock = threading.Lock()

    def ensure_ready(self) -> None:
        if self.ready_error is not None:
            raise self.ready_error

    def probe(self, target: Target, timeout: float, cancel: threading.Event):
        began = time.monotonic()
        with self._lock:
            self.calls.append((target.identifier, timeout))
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        self.started.set()
        try:
            behavior = self.behaviors.get(target.identifier, self.default)
            if isinstance(behavior, BaseException):
                raise behavior
            if callable(behavior):
                return behavior(target, timeout, cancel)
            return behavior
        finally:
            with self._lock:
                self.active -= 1
                self.spans.append((target.identifier, began, time.monotonic()))

    @property
    def called_ids(self) -> List[str]:
        return [identifier for identifier, _ in self.calls]


class RecordingReporter:
    def __init__(self, fail_for: Optional[set] = None):
        self.results: List[MeasurementResult] = []
        self.times: List[float] = []
        self.fail_for = fail_for or set()
        self._lock = threading.Lock()
        self.received = threading.Event()

    def report(self, result: MeasurementResult) -> None:
        with self._lock:
            self.results.append(result)
            self.times.append(time.monotonic())
        self.received.set()
        if result.target.identifier in self.fail_for:
            raise RuntimeError("sink unavailable")

    def for_id(self, identifier: str) -> List[MeasurementResult]:
        with self._lock:
            return [result for result in self.results if result.target.identifier == identifier]


def wait_for(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.02) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


def write_config(directory: Path, **sections: Dict[str, Any]) -> Path:
    data: Dict[str, Any] = {
        "paths": {"data_dir": "data", "logs_dir": "logs", "bin_dir": "bin"},
        "ping": {"addresses": ["10.0.0.1", "10.0.0.2"], "interval_seconds": 30, "timeout_seconds": 5, "count": 3},
        "speedtest": {"server_ids": ["5188"], "interval_seconds": 600, "timeout_seconds": 60},
        "ookla": {"auto_download": False},
        "web": {"port": 9999},
    }
    for name, values in sections.items():
        if values is None:
            data.pop(name, None)
        else:
            data.setdefault(name, {}).update(values)
    path = directory / "config.yaml"
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path
