"""Configuration loading for LoadGrid."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

from loadgrid._internal.errors import ConfigError

ProtocolName = Literal["unified", "legacy"]
LogFormat = Literal["text", "json"]

_PROTOCOLS: tuple[ProtocolName, ...] = ("unified", "legacy")
_LOG_FORMATS: tuple[LogFormat, ...] = ("text", "json")


@dataclass(frozen=True)
class ClientConfig:
    """Global LoadGrid client configuration.

    Attributes:
        coordinator_url: WebSocket URL of the coordinator management endpoint.
        protocol: Which coordinator protocol shape to speak: ``"unified"``
            (notify-merge) or ``"legacy"`` (init plus deltas).
        reconnect_delay: Seconds to wait before the first reconnect attempt.
        reconnect_max_delay: Upper bound on the reconnect delay in seconds.
        reconnect_multiplier: Factor applied to the delay after each failed
            attempt.
        heartbeat: WebSocket ping interval in seconds, 0 disables pings.
        cpu_alert_percent: CPU utilization above which ``cpu_percent`` is
            flagged.
        ramp_multiplier: Devices added per generator per ramp step.
        log_format: ``"text"`` for rich console logs, ``"json"`` for one JSON
            object per line.
    """

    coordinator_url: str = "ws://localhost:8000/ws"
    protocol: ProtocolName = "unified"
    reconnect_delay: float = 1.0
    reconnect_max_delay: float = 30.0
    reconnect_multiplier: float = 1.5
    heartbeat: float = 0.0
    cpu_alert_percent: float = 80.0
    ramp_multiplier: int = 10
    log_format: LogFormat = "text"


def _read_float(name: str, default: str, *, allow_zero: bool = False) -> float:
    raw = os.environ.get(name, default)
    try:
        value = float(raw)
    except ValueError:
        msg = f"{name} must be a number, got: {raw!r}"
        raise ConfigError(msg) from None

    if value < 0 or (value == 0 and not allow_zero):
        qualifier = "non-negative" if allow_zero else "positive"
        msg = f"{name} must be {qualifier}, got: {value}"
        raise ConfigError(msg)
    return value


def load_config() -> ClientConfig:
    """Load configuration from environment variables with defaults.

    Environment variables:
        LOADGRID_COORDINATOR_URL: Coordinator WebSocket URL.
        LOADGRID_PROTOCOL: ``unified`` (default) or ``legacy``.
        LOADGRID_RECONNECT_DELAY: Initial reconnect delay (default: 1.0).
        LOADGRID_RECONNECT_MAX_DELAY: Maximum reconnect delay (default: 30.0).
        LOADGRID_RECONNECT_MULTIPLIER: Backoff growth factor, at least 1
            (default: 1.5).
        LOADGRID_HEARTBEAT: Ping interval in seconds, 0 disables (default: 0).
        LOADGRID_CPU_ALERT_PERCENT: CPU alert threshold (default: 80.0).
        LOADGRID_RAMP_MULTIPLIER: Devices per generator per ramp step
            (default: 10).
        LOADGRID_LOG_FORMAT: ``text`` (default) or ``json``.

    Returns:
        Populated ClientConfig instance.

    Raises:
        ConfigError: If an environment variable has an invalid value.
    """
    protocol = os.environ.get("LOADGRID_PROTOCOL", "unified").strip().lower()
    if protocol not in _PROTOCOLS:
        msg = f"LOADGRID_PROTOCOL must be one of {', '.join(_PROTOCOLS)}, got: {protocol!r}"
        raise ConfigError(msg)

    url = os.environ.get("LOADGRID_COORDINATOR_URL", "ws://localhost:8000/ws")
    if not url.startswith(("ws://", "wss://")):
        msg = f"LOADGRID_COORDINATOR_URL must be a ws:// or wss:// URL, got: {url!r}"
        raise ConfigError(msg)

    reconnect_delay = _read_float("LOADGRID_RECONNECT_DELAY", "1.0")
    reconnect_max_delay = _read_float("LOADGRID_RECONNECT_MAX_DELAY", "30.0")
    if reconnect_max_delay < reconnect_delay:
        msg = (
            "LOADGRID_RECONNECT_MAX_DELAY must be >= LOADGRID_RECONNECT_DELAY, "
            f"got: {reconnect_max_delay} < {reconnect_delay}"
        )
        raise ConfigError(msg)

    reconnect_multiplier = _read_float("LOADGRID_RECONNECT_MULTIPLIER", "1.5")
    if reconnect_multiplier < 1:
        msg = f"LOADGRID_RECONNECT_MULTIPLIER must be >= 1, got: {reconnect_multiplier}"
        raise ConfigError(msg)

    multiplier_str = os.environ.get("LOADGRID_RAMP_MULTIPLIER", "10")
    try:
        ramp_multiplier = int(multiplier_str)
    except ValueError:
        msg = f"LOADGRID_RAMP_MULTIPLIER must be an integer, got: {multiplier_str!r}"
        raise ConfigError(msg) from None

    if ramp_multiplier < 1:
        msg = f"LOADGRID_RAMP_MULTIPLIER must be >= 1, got: {ramp_multiplier}"
        raise ConfigError(msg)

    log_format = os.environ.get("LOADGRID_LOG_FORMAT", "text").strip().lower()
    if log_format not in _LOG_FORMATS:
        msg = f"LOADGRID_LOG_FORMAT must be one of {', '.join(_LOG_FORMATS)}, got: {log_format!r}"
        raise ConfigError(msg)

    return ClientConfig(
        coordinator_url=url,
        protocol=protocol,  # type: ignore[arg-type]
        reconnect_delay=reconnect_delay,
        reconnect_max_delay=reconnect_max_delay,
        reconnect_multiplier=reconnect_multiplier,
        heartbeat=_read_float("LOADGRID_HEARTBEAT", "0", allow_zero=True),
        cpu_alert_percent=_read_float("LOADGRID_CPU_ALERT_PERCENT", "80.0"),
        ramp_multiplier=ramp_multiplier,
        log_format=log_format,  # type: ignore[arg-type]
    )
