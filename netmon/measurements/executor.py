"""Fan one measurement round out across its targets and join the results."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional, Sequence

from ..errors import ProbeCancelledError, ProbeTimeoutError
from ..reporters import Reporter
from .base import Prober
from .models import (
    REASON_CANCELLED,
    REASON_TIMEOUT,
    MeasurementKind,
    MeasurementResult,
    Round,
    Target,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUTS = {
    MeasurementKind.LATENCY: 20.0,
    MeasurementKind.THROUGHPUT: 300.0,
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


class RoundExecutor:
    """Runs one round per call: one thread per target, full join, incremental reporting.

    The executor keeps no state between calls, so scheduled rounds and
    on-demand invocations can share one instance concurrently.
    """

    def __init__(
        self,
        probers: Mapping[MeasurementKind, Prober],
        reporter: Optional[Reporter] = None,
        timeouts: Optional[Mapping[MeasurementKind, float]] = None,
    ):
        self.probers: Dict[MeasurementKind, Prober] = dict(probers)
        self.reporter = reporter
        self.timeouts: Dict[MeasurementKind, float] = {**DEFAULT_TIMEOUTS, **(timeouts or {})}

    def prober_for(self, kind: MeasurementKind) -> Prober:
        try:
            return self.probers[kind]
        except KeyError:
            raise LookupError(f"No prober registered for {kind.value} measurements") from None

    def run_round(
        self,
        kind: MeasurementKind,
        targets: Sequence[Target],
        cancel: threading.Event,
        report: bool = True,
    ) -> Round:
        prober = self.prober_for(kind)
        timeout = self.timeouts[kind]
        started_at = _now()
        if not targets:
            return Round(kind=kind, results=(), started_at=started_at, finished_at=started_at)

        LOGGER.info("Starting %s round for %d target(s)", kind.value, len(targets))
        results: List[Optional[MeasurementResult]] = [None] * len(targets)
        with ThreadPoolExecutor(max_workers=len(targets), thread_name_prefix=f"{kind.value}-probe") as pool:
            futures = {
                pool.submit(self._measure, prober, target, timeout, cancel, report): index
                for index, target in enumerate(targets)
            }
            for future in as_completed(futures):
                results[futures[future]] = future.result()

        round_ = Round(kind=kind, results=tuple(results), started_at=started_at, finished_at=_now())
        LOGGER.info(
            "Finished %s round in %.2fs: %d succeeded, %d failed",
            kind.value,
            round_.duration_seconds,
            round_.succeeded,
            round_.failed,
        )
        return round_

    def _measure(
        self,
        prober: Prober,
        target: Target,
        timeout: float,
        cancel: threading.Event,
        report: bool,
    ) -> MeasurementResult:
        result = self._probe(prober, target, timeout, cancel)
        if report and self.reporter is not None:
            try:
                self.reporter.report(result)
            except Exception:  # pylint: disable=broad-except
                LOGGER.warning("Failed to report result for %s", target.identifier, exc_info=True)
        return result

    @staticmethod
    def _probe(prober: Prober, target: Target, timeout: float, cancel: threading.Event) -> MeasurementResult:
        if cancel.is_set():
            return MeasurementResult(target=target, timestamp=_now(), error=REASON_CANCELLED)

        try:
            data = prober.probe(target, timeout, cancel)
        except ProbeCancelledError:
            reason = REASON_CANCELLED
        except ProbeTimeoutError:
            reason = REASON_TIMEOUT
        except Exception as exc:  # pylint: disable=broad-except
            if cancel.is_set():
                reason = REASON_CANCELLED
            else:
                reason = str(exc) or type(exc).__name__
                LOGGER.warning("%s probe for %s failed: %s", target.kind.value, target.identifier, reason)
        else:
            return MeasurementResult(target=target, timestamp=_now(), data=data)

        LOGGER.info("%s probe for %s ended: %s", target.kind.value, target.identifier, reason)
        return MeasurementResult(target=target, timestamp=_now(), error=reason)
