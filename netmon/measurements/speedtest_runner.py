"""Speedtest probes (Ookla CLI + speedtest-cli fallback)."""

from __future__ import annotations

import importlib.util
import json
import logging
import platform
import shutil
import sys
import tarfile
import tempfile
import threading
import time
import zipfile
from pathlib import Path
from typing import Dict, List, Optional

import requests

from ..config import AppConfig
from ..errors import ProbeCancelledError, ProbeError, ProberUnavailableError, ProbeTimeoutError
from .base import POLL_INTERVAL, run_cancellable
from .models import SpeedStats, Target

LOGGER = logging.getLogger(__name__)

BACKEND_OOKLA = "ookla"
BACKEND_FALLBACK = "speedtest-cli"

DOWNLOAD_TIMEOUT = 120.0
DOWNLOAD_CHUNK_SIZE = 64 * 1024


def _check_interrupted(what: str, cancel: Optional[threading.Event], deadline: Optional[float]) -> None:
    if cancel is not None and cancel.is_set():
        raise ProbeCancelledError(f"{what} cancelled")
    if deadline is not None and time.monotonic() >= deadline:
        raise ProbeTimeoutError(f"{what} ran past its deadline")


def _remaining(deadline: Optional[float], ceiling: float) -> float:
    if deadline is None:
        return ceiling
    return max(min(deadline - time.monotonic(), ceiling), POLL_INTERVAL)


def _platform_binary_name(config: AppConfig) -> Path:
    suffix = ".exe" if platform.system().lower().startswith("win") else ""
    binary_name = config.ookla.binary_name
    if suffix and not binary_name.endswith(suffix):
        binary_name = f"{binary_name}{suffix}"
    return config.paths.bin_dir / binary_name


def ensure_ookla_binary(
    config: AppConfig,
    cancel: Optional[threading.Event] = None,
    deadline: Optional[float] = None,
) -> Path:
    """Locate the Ookla CLI, downloading it when allowed.

    The download stops with ProbeCancelledError / ProbeTimeoutError once
    ``cancel`` is set or the monotonic ``deadline`` passes.
    """

    binary_path = _platform_binary_name(config)
    if binary_path.exists():
        return binary_path

    on_path = shutil.which(config.ookla.binary_name)
    if on_path:
        return Path(on_path)

    if not config.ookla.auto_download:
        raise FileNotFoundError(
            f"Missing Ookla CLI binary at {binary_path}. Enable auto_download or install manually."
        )

    platform_key = config.ookla_platform_key
    url = config.ookla.urls.get(platform_key)
    if not url:
        raise ValueError(
            f"No Ookla download URL configured for platform {platform_key}. "
            f"Supported platforms: {list(config.ookla.urls.keys())}"
        )

    temp_path = _download_ookla_artifact(url, cancel, deadline)
    try:
        _install_ookla_artifact(temp_path, url, binary_path)
    finally:
        if temp_path.exists():
            temp_path.unlink()

    binary_path.chmod(0o755)
    return binary_path


def _download_ookla_artifact(
    url: str,
    cancel: Optional[threading.Event] = None,
    deadline: Optional[float] = None,
) -> Path:
    LOGGER.info("Downloading Ookla CLI from %s", url)
    temp_file = tempfile.NamedTemporaryFile(delete=False)
    temp_path = Path(temp_file.name)
    timeout = _remaining(deadline, DOWNLOAD_TIMEOUT)
    try:
        with temp_file, requests.get(url, timeout=timeout, stream=True) as response:
            response.raise_for_status()
            for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                _check_interrupted("Ookla CLI download", cancel, deadline)
                temp_file.write(chunk)
    except Exception:
        temp_path.unlink(missing_ok=True)
        raise
    return temp_path


def _install_ookla_artifact(temp_path: Path, url: str, destination: Path) -> None:
    target_dir = destination.parent
    if url.endswith(".zip"):
        with zipfile.ZipFile(temp_path, "r") as archive:
            member = next((m for m in archive.namelist() if m.endswith("speedtest.exe")), None)
            if not member:
                raise RuntimeError("zip archive did not contain speedtest.exe binary")
            archive.extract(member, path=target_dir)
            extracted = target_dir / member
    elif url.endswith(".tgz"):
        with tarfile.open(temp_path, "r:gz") as archive:
            member = next((m for m in archive.getmembers() if m.name.endswith("speedtest")), None)
            if not member:
                raise RuntimeError("tarball did not contain speedtest binary")
            archive.extract(member, path=target_dir)
            extracted = target_dir / member.name
    else:
        raise RuntimeError(f"Unknown Ookla download artifact: {url}")

    if extracted != destination:
        shutil.move(str(extracted), destination)


class SpeedtestProber:
    """Runs one throughput test per server id.

    The backend is chosen once: the Ookla CLI when it is installed or can be
    downloaded, otherwise the ``speedtest-cli`` Python module.
    """

    def __init__(self, config: AppConfig):
        self.config = config
        self._lock = threading.Lock()
        self._backend: Optional[str] = None
        self._binary: Optional[Path] = None

    def ensure_ready(self) -> None:
        self._resolve_backend()

    def _resolve_backend(
        self,
        cancel: Optional[threading.Event] = None,
        deadline: Optional[float] = None,
    ) -> str:
        # Waiters keep honouring cancel and deadline while another unit downloads.
        while not self._lock.acquire(timeout=POLL_INTERVAL):
            _check_interrupted("speedtest backend resolution", cancel, deadline)
        try:
            return self._resolve_backend_locked(cancel, deadline)
        finally:
            self._lock.release()

    def _resolve_backend_locked(self, cancel: Optional[threading.Event], deadline: Optional[float]) -> str:
        if self._backend is not None:
            return self._backend
        try:
            self._binary = ensure_ookla_binary(self.config, cancel=cancel, deadline=deadline)
            self._backend = BACKEND_OOKLA
        except (FileNotFoundError, ValueError, RuntimeError, OSError, requests.RequestException) as exc:
            module = self.config.speedtest.fallback_module
            if importlib.util.find_spec(module) is None:
                raise ProberUnavailableError(
                    f"Ookla CLI unavailable ({exc}) and fallback module '{module}' is not installed"
                ) from exc
            LOGGER.warning("Ookla CLI unavailable (%s). Falling back to %s", exc, module)
            self._backend = BACKEND_FALLBACK
        LOGGER.info("Speedtest backend: %s", self._backend)
        return self._backend

    def probe(self, target: Target, timeout: float, cancel: threading.Event) -> SpeedStats:
        deadline = time.monotonic() + timeout
        backend = self._resolve_backend(cancel, deadline)
        if backend == BACKEND_OOKLA:
            command = self._ookla_command(target.identifier)
        else:
            command = self._fallback_command(target.identifier)

        _check_interrupted(f"speedtest for server {target.identifier}", cancel, deadline)
        completed = run_cancellable(command, deadline - time.monotonic(), cancel)
        if completed.returncode != 0:
            detail = (completed.stderr or completed.stdout or "").strip()
            raise ProbeError(f"{backend} exited with status {completed.returncode}: {detail}")

        try:
            data = json.loads(completed.stdout)
        except json.JSONDecodeError as exc:
            raise ProbeError(f"{backend} returned invalid JSON: {exc}") from exc

        if backend == BACKEND_OOKLA:
            stats = convert_ookla_payload(data)
        else:
            stats = convert_speedtest_cli_payload(data)

        LOGGER.info(
            "speedtest for server %s (%s): latency %sms, dl %.2f Mbps, ul %.2f Mbps",
            target.identifier,
            stats.server_name or target.label,
            stats.latency_ms,
            stats.download_mbps or 0,
            stats.upload_mbps or 0,
        )
        return stats

    def _ookla_command(self, server_id: str) -> List[str]:
        command = [
            str(self._binary),
            "--format=json",
            "--progress=no",
            "--accept-license",
            "--accept-gdpr",
            "--server-id",
            server_id,
        ]
        return command + list(self.config.speedtest.extra_args)

    def _fallback_command(self, server_id: str) -> List[str]:
        module = self.config.speedtest.fallback_module
        return [sys.executable, "-m", module, "--json", "--server", server_id]


def convert_ookla_payload(data: Dict) -> SpeedStats:
    download = data.get("download", {})
    upload = data.get("upload", {})
    ping = data.get("ping", {})
    server = data.get("server", {})

    return SpeedStats(
        latency_ms=ping.get("latency"),
        download_mbps=_bandwidth_to_mbps(download.get("bandwidth")),
        upload_mbps=_bandwidth_to_mbps(upload.get("bandwidth")),
        server_name=server.get("name"),
        bytes_used=(download.get("bytes") or 0) + (upload.get("bytes") or 0),
    )


def convert_speedtest_cli_payload(data: Dict) -> SpeedStats:
    server = data.get("server", {})
    return SpeedStats(
        latency_ms=data.get("ping"),
        download_mbps=(data.get("download") or 0) / 1_000_000,
        upload_mbps=(data.get("upload") or 0) / 1_000_000,
        server_name=server.get("sponsor") or server.get("name"),
        bytes_used=(data.get("bytes_sent") or 0) + (data.get("bytes_received") or 0),
    )


def _bandwidth_to_mbps(value: Optional[float]) -> Optional[float]:
    # Ookla reports bytes per second
    if value is None:
        return None
    return (value * 8) / 1_000_000
