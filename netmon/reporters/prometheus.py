"""Prometheus gauges fed from measurement results."""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge

from ..measurements.models import (
    REASON_CANCELLED,
    REASON_TIMEOUT,
    MeasurementKind,
    MeasurementResult,
    PingStats,
    SpeedStats,
)

NAMESPACE = "netmon"
REASON_ERROR = "error"


def failure_reason(error) -> str:
    # Full messages stay in the round and the history; the label set is fixed.
    if error in (REASON_TIMEOUT, REASON_CANCELLED):
        return error
    return REASON_ERROR


def _ms_to_seconds(value):
    return value / 1000.0 if value is not None else None


class PrometheusReporter:
    """Registers its metrics once, on the registry it is constructed with."""

    def __init__(self, registry: CollectorRegistry):
        self.registry = registry

        self.ping_rtt = {
            stat: Gauge(
                f"{stat}_rtt_seconds",
                f"{stat.capitalize()} ping round-trip time in seconds",
                ["address"],
                namespace=NAMESPACE,
                subsystem="ping",
                registry=registry,
            )
            for stat in ("min", "avg", "max", "stddev")
        }
        self.ping_loss = Gauge(
            "packet_loss_ratio",
            "Fraction of ping packets lost",
            ["address"],
            namespace=NAMESPACE,
            subsystem="ping",
            registry=registry,
        )
        self.speed_latency = Gauge(
            "latency_seconds",
            "Speedtest server latency in seconds",
            ["server"],
            namespace=NAMESPACE,
            subsystem="speedtest",
            registry=registry,
        )
        self.speed = Gauge(
            "speed_mbps",
            "Download and upload speed in Mbps",
            ["server", "direction"],
            namespace=NAMESPACE,
            subsystem="speedtest",
            registry=registry,
        )
        self.failures = Counter(
            "probe_failures_total",
            "Failed probes by target and reason (timeout, cancelled or error)",
            ["kind", "target", "reason"],
            namespace=NAMESPACE,
            registry=registry,
        )

    def report(self, result: MeasurementResult) -> None:
        if not result.success:
            self.failures.labels(result.kind.value, result.target.identifier, failure_reason(result.error)).inc()
            return

        if result.kind is MeasurementKind.LATENCY and isinstance(result.data, PingStats):
            self._report_ping(result.target.identifier, result.data)
        elif result.kind is MeasurementKind.THROUGHPUT and isinstance(result.data, SpeedStats):
            self._report_speed(result.label, result.data)

    def _report_ping(self, address: str, stats: PingStats) -> None:
        values = {
            "min": stats.min_rtt_ms,
            "avg": stats.avg_rtt_ms,
            "max": stats.max_rtt_ms,
            "stddev": stats.stddev_rtt_ms,
        }
        for stat, value in values.items():
            if value is not None:
                self.ping_rtt[stat].labels(address).set(_ms_to_seconds(value))
        if stats.packet_loss_percent is not None:
            self.ping_loss.labels(address).set(stats.packet_loss_percent / 100.0)

    def _report_speed(self, server: str, stats: SpeedStats) -> None:
        if stats.latency_ms is not None:
            self.speed_latency.labels(server).set(_ms_to_seconds(stats.latency_ms))
        if stats.download_mbps is not None:
            self.speed.labels(server, "dl").set(stats.download_mbps)
        if stats.upload_mbps is not None:
            self.speed.labels(server, "ul").set(stats.upload_mbps)
