"""Result sinks the round executor reports into."""

from __future__ import annotations

import logging
from typing import Iterable, List, Protocol

from ..measurements.models import MeasurementResult

LOGGER = logging.getLogger(__name__)


class Reporter(Protocol):
    def report(self, result: MeasurementResult) -> None:
        """Record one result. Must be safe to call from several threads at once."""


class CompositeReporter:
    """Forwards each result to every sink; one failing sink does not stop the others."""

    def __init__(self, reporters: Iterable[Reporter]):
        self.reporters: List[Reporter] = list(reporters)

    def report(self, result: MeasurementResult) -> None:
        for reporter in self.reporters:
            try:
                reporter.report(result)
            except Exception:  # pylint: disable=broad-except
                LOGGER.warning(
                    "%s failed to record %s result for %s",
                    type(reporter).__name__,
                    result.kind.value,
                    result.target.identifier,
                    exc_info=True,
                )


__all__ = ["CompositeReporter", "Reporter"]
