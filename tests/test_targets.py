from __future__ import annotations

import pytest

from netmon.errors import ConfigError, ValidationError
from netmon.measurements.models import MeasurementKind, MeasurementResult, SpeedStats, Target
from netmon.measurements.targets import TargetSet

LATENCY = MeasurementKind.LATENCY
THROUGHPUT = MeasurementKind.THROUGHPUT


def test_preserves_configured_order_and_labels():
    targets = TargetSet(addresses=["8.8.8.8", "1.1.1.1"], server_ids=[5188], labels={"1.1.1.1": "cloudflare"})

    assert [t.identifier for t in targets.for_kind(LATENCY)] == ["8.8.8.8", "1.1.1.1"]
    assert [t.label for t in targets.for_kind(LATENCY)] == ["8.8.8.8", "cloudflare"]
    assert targets.for_kind(THROUGHPUT) == (Target(kind=THROUGHPUT, identifier="5188"),)
    assert len(targets) == 3


def test_required_kind_without_targets_fails_fast():
    with pytest.raises(ConfigError):
        TargetSet(addresses=["1.1.1.1"], required=[LATENCY, THROUGHPUT])


def test_invalid_server_id_is_a_config_error():
    with pytest.raises(ConfigError):
        TargetSet(server_ids=["not-a-number"])


def test_kinds_lists_only_populated_kinds():
    assert TargetSet(addresses=["1.1.1.1"]).kinds() == (LATENCY,)


def test_resolve_reuses_known_targets():
    targets = TargetSet(addresses=["1.1.1.1"], labels={"1.1.1.1": "cloudflare"})

    resolved = targets.resolve(LATENCY, ["1.1.1.1", "9.9.9.9"])

    assert resolved[0].label == "cloudflare"
    assert resolved[1] == Target(kind=LATENCY, identifier="9.9.9.9", label="9.9.9.9")


def test_resolve_validates_ids():
    with pytest.raises(ValidationError):
        TargetSet().resolve(THROUGHPUT, ["12a"])


def test_target_set_is_read_only():
    targets = TargetSet(addresses=["1.1.1.1"])

    assert isinstance(targets.for_kind(LATENCY), tuple)
    with pytest.raises(AttributeError):
        targets.for_kind(LATENCY)[0].identifier = "2.2.2.2"


@pytest.mark.parametrize(
    "raw, expected",
    [("ping", LATENCY), ("LATENCY", LATENCY), ("speed", THROUGHPUT), (THROUGHPUT, THROUGHPUT)],
)
def test_kind_aliases(raw, expected):
    assert MeasurementKind.parse(raw) is expected


def test_speed_label_falls_back_to_server_name():
    from datetime import datetime, timezone

    result = MeasurementResult(
        target=Target(kind=THROUGHPUT, identifier="5188"),
        timestamp=datetime.now(timezone.utc),
        data=SpeedStats(latency_ms=5.0, download_mbps=100.0, upload_mbps=20.0, server_name="ACME"),
    )

    assert result.label == "5188 - ACME"
    assert result.to_dict()["server"] == "5188 - ACME"


@pytest.mark.parametrize("address", ["-s65000", "--flood", "1.1.1.1;reboot", "host name", "a..b"])
def test_resolve_rejects_addresses_that_are_not_hosts(address):
    with pytest.raises(ValidationError):
        TargetSet().resolve(LATENCY, [address])


@pytest.mark.parametrize("address", ["2606:4700:4700::1111", "one.one.one.one", "gateway.lan."])
def test_resolve_accepts_hostnames_and_ipv6(address):
    assert TargetSet().resolve(LATENCY, [address])[0].identifier == address


def test_option_like_address_in_config_is_a_config_error():
    with pytest.raises(ConfigError):
        TargetSet(addresses=["-c1000"])
