"""Configuration loading helpers for the network monitor."""

from __future__ import annotations

import os
import platform
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .errors import ConfigError

ENV_HTTP_PORT = "NETMON_HTTP_PORT"
ENV_PING_ADDRESSES = "NETMON_PING_ADDRESSES"
ENV_SPEED_SERVER_IDS = "NETMON_SPEED_SERVER_IDS"


@dataclass
class PathsConfig:
    data_dir: Path
    logs_dir: Path
    bin_dir: Path


@dataclass
class PingConfig:
    addresses: List[str] = field(default_factory=lambda: ["1.1.1.1", "8.8.8.8"])
    labels: Dict[str, str] = field(default_factory=dict)
    interval_seconds: float = 60.0
    timeout_seconds: float = 20.0
    count: int = 10


@dataclass
class SpeedtestConfig:
    server_ids: List[str] = field(default_factory=list)
    labels: Dict[str, str] = field(default_factory=dict)
    interval_seconds: float = 3600.0
    timeout_seconds: float = 300.0
    fallback_module: str = "speedtest"
    extra_args: List[str] = field(default_factory=list)


@dataclass
class OoklaConfig:
    auto_download: bool = True
    binary_name: str = "speedtest"
    urls: Dict[str, str] = field(default_factory=dict)


@dataclass
class WebConfig:
    host: str = "0.0.0.0"
    port: int = 8092
    request_timeout_seconds: float = 59.0
    report_on_demand: bool = True
    reverse_proxy_headers: bool = False


@dataclass
class LifecycleConfig:
    grace_period_seconds: float = 10.0


@dataclass
class LoggingConfig:
    level: str = "INFO"


@dataclass
class AppConfig:
    root_dir: Path
    paths: PathsConfig
    ping: PingConfig
    speedtest: SpeedtestConfig
    ookla: OoklaConfig
    web: WebConfig
    lifecycle: LifecycleConfig
    logging: LoggingConfig

    @property
    def ookla_platform_key(self) -> str:
        system = platform.system().lower()
        machine = platform.machine().lower()
        # Normalize machine architecture names
        if machine in ("amd64", "x86_64"):
            machine = "x86_64"
        elif machine in ("arm64", "aarch64"):
            machine = "aarch64"
        return f"{system}_{machine}"

    @property
    def labels(self) -> Dict[str, str]:
        return {**self.ping.labels, **self.speedtest.labels}


def _as_path(base: Path, maybe_path: Optional[str]) -> Path:
    if not maybe_path:
        raise ConfigError("Path configuration entries cannot be empty")
    path = (base / maybe_path).resolve()
    path.mkdir(parents=True, exist_ok=True)
    return path


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _apply_env_overrides(data: Dict[str, Any]) -> None:
    port = os.environ.get(ENV_HTTP_PORT)
    if port:
        try:
            data.setdefault("web", {})["port"] = int(port)
        except ValueError as exc:
            raise ConfigError(f"{ENV_HTTP_PORT} must be an integer, got {port!r}") from exc

    addresses = os.environ.get(ENV_PING_ADDRESSES)
    if addresses:
        data.setdefault("ping", {})["addresses"] = _split_csv(addresses)

    server_ids = os.environ.get(ENV_SPEED_SERVER_IDS)
    if server_ids:
        data.setdefault("speedtest", {})["server_ids"] = _split_csv(server_ids)


def _section(data: Dict[str, Any], cls, name: str):
    try:
        return cls(**(data.get(name) or {}))
    except TypeError as exc:
        raise ConfigError(f"Invalid '{name}' section: {exc}") from exc


def _validate(config: AppConfig) -> None:
    for name, value in (
        ("ping.interval_seconds", config.ping.interval_seconds),
        ("ping.timeout_seconds", config.ping.timeout_seconds),
        ("speedtest.interval_seconds", config.speedtest.interval_seconds),
        ("speedtest.timeout_seconds", config.speedtest.timeout_seconds),
        ("web.request_timeout_seconds", config.web.request_timeout_seconds),
    ):
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            raise ConfigError(f"{name} must be a positive number, got {value!r}")
    count = config.ping.count
    if isinstance(count, bool) or not isinstance(count, int) or count < 1:
        raise ConfigError(f"ping.count must be an integer of at least 1, got {count!r}")
    grace = config.lifecycle.grace_period_seconds
    if isinstance(grace, bool) or not isinstance(grace, (int, float)) or grace < 0:
        raise ConfigError(f"lifecycle.grace_period_seconds must be a non-negative number, got {grace!r}")

    config.ping.addresses = [str(address) for address in config.ping.addresses]
    config.speedtest.server_ids = [str(server_id) for server_id in config.speedtest.server_ids]


def load_config(path: Optional[str] = None) -> AppConfig:
    """Load application configuration from YAML file."""

    root_dir = Path(path).resolve().parent if path else Path.cwd()
    source_path = Path(path) if path else root_dir / "config.yaml"
    if not source_path.exists():
        raise FileNotFoundError(f"Missing configuration file at {source_path}")

    with source_path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}

    _apply_env_overrides(data)

    paths_data = data.get("paths", {})
    paths = PathsConfig(
        data_dir=_as_path(root_dir, paths_data.get("data_dir", "data")),
        logs_dir=_as_path(root_dir, paths_data.get("logs_dir", "logs")),
        bin_dir=_as_path(root_dir, paths_data.get("bin_dir", "bin")),
    )

    config = AppConfig(
        root_dir=root_dir,
        paths=paths,
        ping=_section(data, PingConfig, "ping"),
        speedtest=_section(data, SpeedtestConfig, "speedtest"),
        ookla=_section(data, OoklaConfig, "ookla"),
        web=_section(data, WebConfig, "web"),
        lifecycle=_section(data, LifecycleConfig, "lifecycle"),
        logging=_section(data, LoggingConfig, "logging"),
    )
    _validate(config)

    return config
