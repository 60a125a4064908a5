"""Application bootstrap helpers."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from prometheus_client import CollectorRegistry
from werkzeug.serving import make_server

from .config import AppConfig, load_config
from .db import init_db
from .lifecycle import LifecycleCoordinator
from .logging_setup import configure_logging
from .measurements.executor import RoundExecutor
from .measurements.models import MeasurementKind
from .measurements.ping_runner import PingProber
from .measurements.speedtest_runner import SpeedtestProber
from .measurements.targets import TargetSet
from .ondemand import OnDemandInvoker
from .reporters import CompositeReporter
from .reporters.database import DatabaseReporter
from .reporters.prometheus import PrometheusReporter
from .scheduler import PeriodicScheduler
from .web.app import create_web_app

__version__ = "0.1.0"


class ApplicationContext:
    """Holds shared singletons for the service."""

    def __init__(self, config: AppConfig, log_level: Optional[str] = None):
        self.config = config
        configure_logging(config, level=log_level)

        intervals = {}
        if config.ping.addresses:
            intervals[MeasurementKind.LATENCY] = config.ping.interval_seconds
        if config.speedtest.server_ids:
            intervals[MeasurementKind.THROUGHPUT] = config.speedtest.interval_seconds

        self.targets = TargetSet(
            addresses=config.ping.addresses,
            server_ids=config.speedtest.server_ids,
            labels=config.labels,
            required=intervals.keys(),
        )

        self.registry = CollectorRegistry()
        self.Session = init_db(config.paths.data_dir)
        self.store = DatabaseReporter(self.Session)
        self.reporter = CompositeReporter([PrometheusReporter(self.registry), self.store])

        self.executor = RoundExecutor(
            probers={
                MeasurementKind.LATENCY: PingProber(count=config.ping.count),
                MeasurementKind.THROUGHPUT: SpeedtestProber(config),
            },
            reporter=self.reporter,
            timeouts={
                MeasurementKind.LATENCY: config.ping.timeout_seconds,
                MeasurementKind.THROUGHPUT: config.speedtest.timeout_seconds,
            },
        )
        self.scheduler = PeriodicScheduler(self.executor, self.targets, intervals)
        self.invoker = OnDemandInvoker(
            self.executor,
            self.targets,
            default_deadline=config.web.request_timeout_seconds,
            report=config.web.report_on_demand,
        )
        self.web_app = create_web_app(
            config=config,
            invoker=self.invoker,
            scheduler=self.scheduler,
            registry=self.registry,
            store=self.store,
        )

    def build_lifecycle(self, host: Optional[str] = None, port: Optional[int] = None) -> LifecycleCoordinator:
        server = make_server(
            host or self.config.web.host,
            port or self.config.web.port,
            self.web_app,
            threaded=True,
        )
        return LifecycleCoordinator(
            self.scheduler,
            grace_period=self.config.lifecycle.grace_period_seconds,
            server=server,
        )


def bootstrap(config_path: Optional[str] = None, log_level: Optional[str] = None) -> ApplicationContext:
    """Load configuration and wire dependencies."""

    config_file = Path(config_path).resolve() if config_path else None
    config = load_config(str(config_file)) if config_file else load_config()
    return ApplicationContext(config, log_level=log_level)
