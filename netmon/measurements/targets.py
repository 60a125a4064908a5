"""Immutable per-kind target lists loaded once from configuration."""

from __future__ import annotations

import ipaddress
import re
from typing import Dict, Iterable, Mapping, Optional, Sequence, Tuple

from ..errors import ConfigError, ValidationError
from .models import MeasurementKind, Target

_HOSTNAME = re.compile(r"^[A-Za-z0-9]([A-Za-z0-9-]{0,61}[A-Za-z0-9])?(\.[A-Za-z0-9]([A-Za-z0-9-]{0,61}[A-Za-z0-9])?)*\.?$")


def _is_host(identifier: str) -> bool:
    try:
        ipaddress.ip_address(identifier)
        return True
    except ValueError:
        return bool(_HOSTNAME.match(identifier))


def _check_identifier(kind: MeasurementKind, identifier: str) -> Optional[str]:
    if not identifier:
        return "target identifiers cannot be empty"
    if kind is MeasurementKind.THROUGHPUT and not identifier.isdigit():
        return f"speedtest server ids must be numeric, got {identifier!r}"
    if kind is MeasurementKind.LATENCY and not _is_host(identifier):
        return f"ping targets must be an IP address or hostname, got {identifier!r}"
    return None


class TargetSet:
    """Ordered, read-only targets for each measurement kind."""

    def __init__(
        self,
        addresses: Sequence[str] = (),
        server_ids: Sequence[str] = (),
        labels: Optional[Mapping[str, str]] = None,
        required: Iterable[MeasurementKind] = (),
    ) -> None:
        labels = dict(labels or {})
        self._targets: Dict[MeasurementKind, Tuple[Target, ...]] = {
            MeasurementKind.LATENCY: self._build(MeasurementKind.LATENCY, addresses, labels),
            MeasurementKind.THROUGHPUT: self._build(MeasurementKind.THROUGHPUT, server_ids, labels),
        }
        for kind in required:
            if not self._targets[kind]:
                raise ConfigError(f"No {kind.value} targets configured")

    @staticmethod
    def _build(kind: MeasurementKind, identifiers: Sequence[str], labels: Mapping[str, str]) -> Tuple[Target, ...]:
        targets = []
        for raw in identifiers:
            identifier = str(raw).strip()
            problem = _check_identifier(kind, identifier)
            if problem:
                raise ConfigError(problem)
            targets.append(Target(kind=kind, identifier=identifier, label=labels.get(identifier, "")))
        return tuple(targets)

    def for_kind(self, kind: MeasurementKind) -> Tuple[Target, ...]:
        return self._targets[kind]

    def kinds(self) -> Tuple[MeasurementKind, ...]:
        return tuple(kind for kind, targets in self._targets.items() if targets)

    def resolve(self, kind: MeasurementKind, identifiers: Iterable[str]) -> Tuple[Target, ...]:
        """Build targets for caller-supplied ids, re-using configured labels."""

        known = {target.identifier: target for target in self._targets[kind]}
        resolved = []
        for raw in identifiers:
            identifier = str(raw).strip()
            problem = _check_identifier(kind, identifier)
            if problem:
                raise ValidationError(problem)
            resolved.append(known.get(identifier) or Target(kind=kind, identifier=identifier))
        return tuple(resolved)

    def __len__(self) -> int:
        return sum(len(targets) for targets in self._targets.values())
