"""Background scheduler orchestration."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Mapping, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .errors import ConfigError
from .measurements.executor import RoundExecutor
from .measurements.models import MeasurementKind, Round
from .measurements.targets import TargetSet

LOGGER = logging.getLogger(__name__)


def _job_id(kind: MeasurementKind) -> str:
    return f"{kind.value}-round"


@dataclass
class ScheduleState:
    kind: MeasurementKind
    interval: float
    guard: threading.Lock = field(default_factory=threading.Lock, repr=False)
    running: bool = False
    rounds_completed: int = 0
    ticks_skipped: int = 0
    last_started: Optional[datetime] = None
    last_finished: Optional[datetime] = None
    last_failed: Optional[int] = None

    def snapshot(self) -> dict:
        return {
            "interval_seconds": self.interval,
            "running": self.running,
            "rounds_completed": self.rounds_completed,
            "ticks_skipped": self.ticks_skipped,
            "last_started": self.last_started.isoformat() if self.last_started else None,
            "last_finished": self.last_finished.isoformat() if self.last_finished else None,
            "last_failed": self.last_failed,
        }


class PeriodicScheduler:
    """Runs one repeating round per measurement kind.

    Each kind has its own interval and its own guard: a tick that arrives
    while the previous round of that kind is still running is dropped, and
    the next tick is re-armed ``interval`` seconds after a round completes.
    """

    def __init__(
        self,
        executor: RoundExecutor,
        targets: TargetSet,
        intervals: Mapping[MeasurementKind, float],
    ) -> None:
        if not intervals:
            raise ConfigError("At least one measurement kind must be scheduled")
        for kind, interval in intervals.items():
            if interval is None or interval <= 0:
                raise ConfigError(f"{kind.value} interval must be positive, got {interval!r}")
            if not targets.for_kind(kind):
                raise ConfigError(f"No {kind.value} targets configured")

        self.executor = executor
        self.targets = targets
        self._states: Dict[MeasurementKind, ScheduleState] = {
            kind: ScheduleState(kind=kind, interval=float(interval)) for kind, interval in intervals.items()
        }
        # Overlapping ticks reach run_once, where the guard drops and counts them.
        self.scheduler = BackgroundScheduler(
            timezone="UTC",
            job_defaults={"coalesce": True, "max_instances": 2, "misfire_grace_time": None},
        )
        self._cancel = threading.Event()
        self._stopping = threading.Event()
        self.started = False

    @property
    def kinds(self):
        return tuple(self._states)

    def start(self) -> None:
        if self.started:
            LOGGER.warning("Scheduler already started, ignoring duplicate start request")
            return
        if self._stopping.is_set():
            raise RuntimeError("Scheduler has been stopped and cannot be restarted")

        now = datetime.now(timezone.utc)
        for kind, state in self._states.items():
            self.scheduler.add_job(
                self.run_once,
                trigger=IntervalTrigger(seconds=state.interval),
                args=[kind],
                id=_job_id(kind),
                name=f"{kind.value} measurements",
                next_run_time=now,
            )
        # Immediate rounds only re-arm once started is set.
        self.started = True
        try:
            self.scheduler.start()
        except Exception:
            self.started = False
            raise
        LOGGER.info(
            "Scheduler started: %s",
            ", ".join(f"{kind.value} every {state.interval:g}s" for kind, state in self._states.items()),
        )

    def stop(self) -> None:
        """Stop ticking, cancel in-flight rounds and wait for them to return."""

        self._stopping.set()
        self._cancel.set()
        if not self.started:
            return
        LOGGER.info("Stopping scheduler, waiting for in-flight rounds")
        self.scheduler.shutdown(wait=True)
        self.started = False
        LOGGER.info("Scheduler stopped")

    def is_running(self, kind: MeasurementKind) -> bool:
        return self._states[kind].running

    def status(self) -> dict:
        return {
            "started": self.started,
            "kinds": {kind.value: state.snapshot() for kind, state in self._states.items()},
        }

    def run_once(self, kind: MeasurementKind) -> Optional[Round]:
        """Run one guarded round of ``kind``; ``None`` when one is already in flight."""

        state = self._states[kind]
        if self._stopping.is_set():
            return None
        if not state.guard.acquire(blocking=False):
            state.ticks_skipped += 1
            LOGGER.warning("Skipping %s tick, previous round still running", kind.value)
            return None

        round_ = None
        try:
            state.running = True
            state.last_started = datetime.now(timezone.utc)
            round_ = self.executor.run_round(kind, self.targets.for_kind(kind), self._cancel)
            state.rounds_completed += 1
            state.last_failed = round_.failed
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.exception("Scheduled %s round failed: %s", kind.value, exc)
        finally:
            state.last_finished = datetime.now(timezone.utc)
            state.running = False
            state.guard.release()
            self._rearm(kind, state)
        return round_

    def _rearm(self, kind: MeasurementKind, state: ScheduleState) -> None:
        if not self.started or self._stopping.is_set():
            return
        next_run = datetime.now(timezone.utc) + timedelta(seconds=state.interval)
        try:
            self.scheduler.modify_job(_job_id(kind), next_run_time=next_run)
        except JobLookupError:
            LOGGER.debug("No %s job to re-arm", kind.value)
            return
        LOGGER.debug("Next %s round at %s", kind.value, next_run.isoformat())
