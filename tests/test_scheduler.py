from __future__ import annotations

import threading
import time

import pytest

from netmon.errors import ConfigError
from netmon.measurements.executor import RoundExecutor
from netmon.measurements.models import REASON_CANCELLED, MeasurementKind
from netmon.measurements.targets import TargetSet
from netmon.scheduler import PeriodicScheduler
from tests.support import StubProber, hang, ping_stats, slow, speed_stats, wait_for

LATENCY = MeasurementKind.LATENCY
THROUGHPUT = MeasurementKind.THROUGHPUT


def build(ping_prober, speed_prober=None, reporter=None, intervals=None, addresses=("10.0.0.1",)):
    probers = {LATENCY: ping_prober}
    if speed_prober is not None:
        probers[THROUGHPUT] = speed_prober
    executor = RoundExecutor(probers, reporter=reporter)
    targets = TargetSet(addresses=addresses, server_ids=["5188"] if speed_prober else ())
    return PeriodicScheduler(executor, targets, intervals or {LATENCY: 60})


@pytest.fixture
def stop_after():
    schedulers = []
    yield schedulers.append
    for scheduler in schedulers:
        scheduler.stop()


def test_rejects_non_positive_interval(ping_prober):
    with pytest.raises(ConfigError):
        build(ping_prober, intervals={LATENCY: 0})


def test_rejects_kind_without_targets(ping_prober):
    with pytest.raises(ConfigError):
        build(ping_prober, intervals={LATENCY: 10, THROUGHPUT: 10})


def test_runs_each_kind_immediately_on_start(reporter, stop_after):
    speed_prober = StubProber(default=speed_stats())
    scheduler = build(
        StubProber(), speed_prober, reporter=reporter, intervals={LATENCY: 60, THROUGHPUT: 3600}
    )
    stop_after(scheduler)

    scheduler.start()

    assert wait_for(lambda: {r.kind for r in reporter.results} == {LATENCY, THROUGHPUT}, timeout=3)
    status = scheduler.status()
    assert status["started"] is True
    assert wait_for(lambda: scheduler.status()["kinds"]["latency"]["rounds_completed"] == 1)


def test_rounds_of_one_kind_never_overlap(stop_after):
    interval = 0.2
    prober = StubProber(default=slow(0.5, ping_stats(4.0)))
    scheduler = build(prober, intervals={LATENCY: interval})
    stop_after(scheduler)

    scheduler.start()
    assert wait_for(lambda: len(prober.spans) >= 3, timeout=6)
    scheduler.stop()

    assert prober.max_active == 1
    spans = sorted(prober.spans, key=lambda span: span[1])
    for previous, following in zip(spans, spans[1:]):
        gap = following[1] - previous[2]
        # next round is armed from the previous completion, not the original tick
        assert gap >= interval * 0.75
        assert gap < interval + 0.5


def test_tick_while_running_is_skipped_not_queued():
    gate = threading.Event()

    def wait_for_gate(target, timeout, cancel):
        gate.wait(5)
        return ping_stats(1.0)

    prober = StubProber(default=wait_for_gate)
    scheduler = build(prober)

    first = threading.Thread(target=scheduler.run_once, args=(LATENCY,))
    first.start()
    assert prober.started.wait(2)
    assert scheduler.is_running(LATENCY)

    assert scheduler.run_once(LATENCY) is None
    gate.set()
    first.join(2)

    assert len(prober.calls) == 1
    state = scheduler.status()["kinds"]["latency"]
    assert state["ticks_skipped"] == 1
    assert state["rounds_completed"] == 1
    assert not scheduler.is_running(LATENCY)


def test_kinds_are_independent(reporter, stop_after):
    speed_prober = StubProber(default=hang())
    scheduler = build(
        StubProber(), speed_prober, reporter=reporter, intervals={LATENCY: 0.2, THROUGHPUT: 60}
    )
    stop_after(scheduler)

    scheduler.start()

    # latency keeps ticking while the throughput round is stuck
    assert wait_for(lambda: len([r for r in reporter.results if r.kind is LATENCY]) >= 3, timeout=5)
    assert scheduler.is_running(THROUGHPUT)


def test_stop_cancels_in_flight_round_and_waits(reporter):
    prober = StubProber(default=hang(limit=30))
    scheduler = build(prober, reporter=reporter)
    scheduler.start()
    assert prober.started.wait(3)

    began = time.monotonic()
    scheduler.stop()

    assert time.monotonic() - began < 3
    assert not scheduler.started
    assert [result.error for result in reporter.results] == [REASON_CANCELLED]
    assert prober.active == 0


def test_no_ticks_after_stop():
    prober = StubProber()
    scheduler = build(prober, intervals={LATENCY: 0.1})
    scheduler.start()
    assert wait_for(lambda: len(prober.calls) >= 1)

    scheduler.stop()
    calls = len(prober.calls)
    time.sleep(0.4)

    assert len(prober.calls) == calls
    assert scheduler.run_once(LATENCY) is None


def test_duplicate_start_is_ignored(stop_after):
    prober = StubProber()
    scheduler = build(prober)
    stop_after(scheduler)

    scheduler.start()
    scheduler.start()

    assert wait_for(lambda: len(prober.calls) >= 1)
    time.sleep(0.2)
    assert len(prober.calls) == 1


def test_scheduled_ticks_during_a_round_are_counted(stop_after):
    prober = StubProber(default=slow(0.8, ping_stats(4.0)))
    scheduler = build(prober, intervals={LATENCY: 0.1})
    stop_after(scheduler)

    scheduler.start()

    assert wait_for(lambda: scheduler.status()["kinds"]["latency"]["ticks_skipped"] >= 1, timeout=3)
    assert prober.max_active == 1
