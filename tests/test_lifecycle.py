from __future__ import annotations

import threading
import time

from netmon.lifecycle import LifecycleCoordinator


class FakeScheduler:
    def __init__(self, stop_delay: float = 0.0):
        self.stop_delay = stop_delay
        self.started = False
        self.stopped = threading.Event()

    def start(self):
        self.started = True

    def stop(self):
        time.sleep(self.stop_delay)
        self.stopped.set()


class FakeServer:
    def __init__(self):
        self._shutdown = threading.Event()
        self.serving = threading.Event()

    def serve_forever(self):
        self.serving.set()
        self._shutdown.wait(10)

    def shutdown(self):
        self._shutdown.set()


def test_run_starts_scheduler_and_drains_on_termination():
    scheduler = FakeScheduler()
    server = FakeServer()
    coordinator = LifecycleCoordinator(scheduler, grace_period=2, server=server)
    threading.Timer(0.2, coordinator.request_termination).start()

    drained = coordinator.run()

    assert drained is True
    assert scheduler.started
    assert scheduler.stopped.is_set()
    assert server.serving.is_set()
    assert coordinator.terminating


def test_slow_drain_gives_up_after_grace_period():
    scheduler = FakeScheduler(stop_delay=5)
    coordinator = LifecycleCoordinator(scheduler, grace_period=0.3)
    coordinator.request_termination()

    began = time.monotonic()
    drained = coordinator.run()

    assert drained is False
    assert time.monotonic() - began < 2
    assert not scheduler.stopped.is_set()


def test_scheduler_stop_error_does_not_escape():
    class BrokenScheduler(FakeScheduler):
        def stop(self):
            raise RuntimeError("boom")

    coordinator = LifecycleCoordinator(BrokenScheduler(), grace_period=1)

    assert coordinator.shutdown() is True


def test_signal_requests_termination():
    import signal

    coordinator = LifecycleCoordinator(FakeScheduler())
    coordinator._handle_signal(signal.SIGTERM, None)

    assert coordinator.terminating
