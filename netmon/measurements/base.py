"""Prober interface and the cancellable subprocess helper used by the runners."""

from __future__ import annotations

import logging
import subprocess
import threading
import time
from typing import List, Protocol

from ..errors import ProbeCancelledError, ProbeTimeoutError
from .models import ProbeData, Target

LOGGER = logging.getLogger(__name__)

POLL_INTERVAL = 0.1


class Prober(Protocol):
    def ensure_ready(self) -> None:
        """Raise ProberUnavailableError when no probe could possibly run."""

    def probe(self, target: Target, timeout: float, cancel: threading.Event) -> ProbeData:
        """Measure one target. Must return promptly once ``cancel`` is set."""


def run_cancellable(
    command: List[str],
    timeout: float,
    cancel: threading.Event,
    poll_interval: float = POLL_INTERVAL,
) -> subprocess.CompletedProcess:
    """Run ``command`` to completion unless the timeout passes or ``cancel`` is set.

    The child process is killed on either condition and the matching
    ProbeTimeoutError / ProbeCancelledError is raised.
    """

    LOGGER.debug("Running command: %s", " ".join(command))
    process = subprocess.Popen(command, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
    deadline = time.monotonic() + timeout
    try:
        while True:
            try:
                stdout, stderr = process.communicate(timeout=poll_interval)
                return subprocess.CompletedProcess(command, process.returncode, stdout, stderr)
            except subprocess.TimeoutExpired:
                pass
            if cancel.is_set():
                raise ProbeCancelledError(f"{command[0]} cancelled")
            if time.monotonic() >= deadline:
                raise ProbeTimeoutError(f"{command[0]} exceeded {timeout:g}s")
    finally:
        if process.poll() is None:
            process.kill()
            process.communicate()
