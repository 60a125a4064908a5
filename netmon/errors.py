"""Exception types shared across the monitor."""

from __future__ import annotations


class NetmonError(Exception):
    """Base class for errors raised by the monitor."""


class ConfigError(NetmonError, ValueError):
    """Configuration is missing or invalid; the service must not start."""


class ValidationError(NetmonError, ValueError):
    """An on-demand request was rejected before any probe started."""


class ProberUnavailableError(NetmonError):
    """A prober cannot run at all (missing binary, no fallback)."""


class ProbeError(NetmonError):
    """A single probe failed."""


class ProbeTimeoutError(ProbeError):
    pass


class ProbeCancelledError(ProbeError):
    pass
