"""Persist measurement results to the local SQLite store."""

from __future__ import annotations

import logging
import threading
from typing import List, Optional

from sqlalchemy import desc
from sqlalchemy.orm import sessionmaker

from ..db import Measurement, get_session
from ..measurements.models import MeasurementKind, MeasurementResult, PingStats, SpeedStats

LOGGER = logging.getLogger(__name__)


class DatabaseReporter:
    def __init__(self, session_factory: sessionmaker):
        self.Session = session_factory
        # SQLite allows a single writer; keep concurrent rounds from tripping over each other.
        self._write_lock = threading.Lock()

    def report(self, result: MeasurementResult) -> None:
        record = Measurement(
            timestamp=result.timestamp,
            kind=result.kind.value,
            target=result.target.identifier,
            label=result.label,
            success=result.success,
            error=result.error,
        )
        if isinstance(result.data, PingStats):
            record.min_rtt_ms = result.data.min_rtt_ms
            record.avg_rtt_ms = result.data.avg_rtt_ms
            record.max_rtt_ms = result.data.max_rtt_ms
            record.stddev_rtt_ms = result.data.stddev_rtt_ms
            record.packet_loss_percent = result.data.packet_loss_percent
        elif isinstance(result.data, SpeedStats):
            record.latency_ms = result.data.latency_ms
            record.download_mbps = result.data.download_mbps
            record.upload_mbps = result.data.upload_mbps
            record.bytes_used = result.data.bytes_used

        with self._write_lock, get_session(self.Session) as session:
            session.add(record)
        LOGGER.debug("Stored %s result for %s", result.kind.value, result.target.identifier)

    def get_measurements(
        self,
        limit: Optional[int] = None,
        kind: Optional[MeasurementKind] = None,
    ) -> List[Measurement]:
        with get_session(self.Session) as session:
            query = session.query(Measurement).order_by(desc(Measurement.timestamp), desc(Measurement.id))
            if kind:
                query = query.filter(Measurement.kind == kind.value)
            if limit:
                query = query.limit(limit)
            rows = query.all()
            return list(reversed(rows))

    @staticmethod
    def to_dict(measurement: Measurement) -> dict:
        return {
            "id": measurement.id,
            "timestamp": measurement.timestamp.isoformat(),
            "kind": measurement.kind,
            "target": measurement.target,
            "label": measurement.label,
            "success": measurement.success,
            "error": measurement.error,
            "min_rtt": measurement.min_rtt_ms,
            "avg_rtt": measurement.avg_rtt_ms,
            "max_rtt": measurement.max_rtt_ms,
            "stddev_rtt": measurement.stddev_rtt_ms,
            "packet_loss": measurement.packet_loss_percent,
            "latency": measurement.latency_ms,
            "dl": measurement.download_mbps,
            "ul": measurement.upload_mbps,
            "bytes_used": measurement.bytes_used,
        }
