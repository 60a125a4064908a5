"""Process lifecycle: start background work, wait for termination, drain."""

from __future__ import annotations

import logging
import signal
import threading
from typing import Optional, Protocol

LOGGER = logging.getLogger(__name__)


class Stoppable(Protocol):
    def start(self) -> None: ...

    def stop(self) -> None: ...


class Server(Protocol):
    def serve_forever(self) -> None: ...

    def shutdown(self) -> None: ...


class LifecycleCoordinator:
    def __init__(self, scheduler: Stoppable, grace_period: float = 10.0, server: Optional[Server] = None):
        self.scheduler = scheduler
        self.grace_period = grace_period
        self.server = server
        self._terminate = threading.Event()
        self._server_thread: Optional[threading.Thread] = None

    def install_signal_handlers(self) -> None:
        for signum in (signal.SIGINT, signal.SIGTERM):
            signal.signal(signum, self._handle_signal)

    def _handle_signal(self, signum, _frame) -> None:
        LOGGER.info("Received %s, shutting down", signal.Signals(signum).name)
        self.request_termination()

    def request_termination(self) -> None:
        self._terminate.set()

    @property
    def terminating(self) -> bool:
        return self._terminate.is_set()

    def run(self) -> bool:
        """Block until termination is requested; return whether the drain finished in time."""

        self.scheduler.start()
        if self.server is not None:
            self._server_thread = threading.Thread(target=self.server.serve_forever, name="http-server", daemon=True)
            self._server_thread.start()

        self._terminate.wait()
        return self.shutdown()

    def shutdown(self) -> bool:
        if self.server is not None:
            LOGGER.info("Stopping HTTP server")
            self.server.shutdown()
            if self._server_thread is not None:
                self._server_thread.join(timeout=self.grace_period)

        stopper = threading.Thread(target=self._stop_scheduler, name="scheduler-stop", daemon=True)
        stopper.start()
        stopper.join(timeout=self.grace_period)
        if stopper.is_alive():
            LOGGER.warning("Scheduler did not stop within %.1fs, exiting anyway", self.grace_period)
            return False
        LOGGER.info("Shutdown completed")
        return True

    def _stop_scheduler(self) -> None:
        try:
            self.scheduler.stop()
        except Exception:  # pylint: disable=broad-except
            LOGGER.exception("Scheduler failed to stop cleanly")
