"""Logging setup for the LoadGrid client.

Human-readable records go through :class:`rich.logging.RichHandler` on the
same stderr console the CLI prints to, so log lines render above live
dashboards instead of tearing through them. JSON records are one object
per line for log shippers.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.logging import RichHandler

if TYPE_CHECKING:
    from loadgrid._internal.config import LogFormat

_ROOT = "loadgrid"

# Attributes every LogRecord has; anything else came in through ``extra=``
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


class _JsonFormatter(logging.Formatter):
    """One JSON object per record.

    Keys are ``timestamp``, ``level``, ``logger`` and ``message``, plus
    ``exception`` when one is attached and any fields passed with
    ``extra=`` (``url``, ``delay``).
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS and not key.startswith("_"):
                entry[key] = value
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _make_handler(log_format: LogFormat, console: Console | None) -> logging.Handler:
    if log_format == "json":
        handler: logging.Handler = logging.StreamHandler()
        handler.setFormatter(_JsonFormatter())
        return handler
    return RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )


def setup_logging(
    level: int = logging.INFO,
    *,
    log_format: LogFormat = "text",
    console: Console | None = None,
) -> logging.Logger:
    """Install the single ``loadgrid`` handler and return that logger.

    A second call replaces the handler, so the format can change between
    calls (tests, or a CLI flag applied after config is read).

    Args:
        level: Threshold for the ``loadgrid`` namespace.
        log_format: ``"text"`` for rich console output, ``"json"`` for one
            JSON object per line on stderr.
        console: Console for text output. Defaults to a new stderr console.

    Returns:
        The ``loadgrid`` logger.
    """
    logger = logging.getLogger(_ROOT)
    for old in list(logger.handlers):
        logger.removeHandler(old)

    handler = _make_handler(log_format, console)
    handler.setLevel(level)
    logger.addHandler(handler)
    logger.setLevel(level)
    # The CLI owns stderr; root handlers would print every record twice
    logger.propagate = False
    return logger


def get_logger(name: str) -> logging.Logger:
    """Return ``loadgrid.<name>``, e.g. ``get_logger("transport.channel")``."""
    return logging.getLogger(f"{_ROOT}.{name}")
