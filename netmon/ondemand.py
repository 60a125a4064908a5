"""Synchronous measurement rounds for request handlers."""

from __future__ import annotations

import logging
import threading
from typing import Iterable, Optional, Union

from .errors import ValidationError
from .measurements.executor import RoundExecutor
from .measurements.models import MeasurementKind, Round
from .measurements.targets import TargetSet

LOGGER = logging.getLogger(__name__)


class OnDemandInvoker:
    """Runs a round immediately for caller-chosen targets.

    Invocations do not take the scheduler's per-kind guard: they may overlap
    a scheduled round of the same kind and each other. Every invocation gets
    its own cancel signal, set when its deadline passes.
    """

    def __init__(
        self,
        executor: RoundExecutor,
        targets: TargetSet,
        default_deadline: Optional[float] = None,
        report: bool = True,
    ):
        self.executor = executor
        self.targets = targets
        self.default_deadline = default_deadline
        self.report = report

    def invoke(
        self,
        kind: Union[str, MeasurementKind],
        target_ids: Iterable[str],
        deadline: Optional[float] = None,
    ) -> Round:
        kind = MeasurementKind.parse(kind)
        identifiers = [str(raw).strip() for raw in target_ids or () if str(raw).strip()]
        if not identifiers:
            raise ValidationError(f"At least one {kind.value} target is required")
        targets = self.targets.resolve(kind, identifiers)
        return self._run(kind, targets, deadline)

    def invoke_configured(self, kind: Union[str, MeasurementKind], deadline: Optional[float] = None) -> Round:
        kind = MeasurementKind.parse(kind)
        targets = self.targets.for_kind(kind)
        if not targets:
            raise ValidationError(f"No {kind.value} targets configured")
        return self._run(kind, targets, deadline)

    def _run(self, kind: MeasurementKind, targets, deadline: Optional[float]) -> Round:
        deadline = deadline if deadline is not None else self.default_deadline
        if deadline is not None and deadline <= 0:
            raise ValidationError(f"Deadline must be positive, got {deadline!r}")

        try:
            prober = self.executor.prober_for(kind)
        except LookupError as exc:
            raise ValidationError(str(exc)) from exc
        prober.ensure_ready()

        LOGGER.info(
            "On-demand %s request for %s", kind.value, ", ".join(target.identifier for target in targets)
        )
        cancel = threading.Event()
        timer = None
        if deadline is not None:
            timer = threading.Timer(deadline, cancel.set)
            timer.daemon = True
            timer.start()
        try:
            return self.executor.run_round(kind, targets, cancel, report=self.report)
        finally:
            if timer is not None:
                timer.cancel()
