"""Process-wide logging setup for Portalbot.

``configure_logging()`` is called once by :mod:`portalbot.__main__`; library
modules only ever do::

    import logging
    logger = logging.getLogger(__name__)

Two output formats are supported, selected by ``LOG_FORMAT`` (or the
``--log-format`` flag):

``text``
    ``2026-03-01 08:00:00 INFO     [3fa2c1d0] portalbot.orchestrator.login_cycle: Logged in as alice.``

``json``
    One object per line::

        {"ts": "2026-03-01T08:00:00.123Z", "level": "INFO",
         "logger": "portalbot.orchestrator.login_cycle", "cycle_id": "3fa2c1d0",
         "event": "LOGIN_SUCCESS", "message": "Logged in as alice."}

The bracketed / ``cycle_id`` value identifies the login cycle that emitted
the record, ``-`` outside any cycle.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from collections.abc import Callable
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any, Final

__all__ = ["configure_logging", "JsonFormatter", "CYCLE_ID_CTX", "CycleContextFilter"]

logger = logging.getLogger(__name__)

#: Identifier of the login cycle running in the current task.  Set by
#: :meth:`~portalbot.orchestrator.login_cycle.LoginCycle.run_cycle` to
#: ``uuid4().hex[:8]`` and reset when the cycle ends.  Scheduler ticks run in
#: separate tasks, so each sees its own value.
CYCLE_ID_CTX: ContextVar[str] = ContextVar("cycle_id", default="-")

_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_FORMATS: Final[tuple[str, ...]] = ("text", "json")

_TEXT_FORMAT: Final[str] = "%(asctime)s %(levelname)-8s [%(cycle_id)s] %(name)s: %(message)s"
_TEXT_DATEFMT: Final[str] = "%Y-%m-%d %H:%M:%S"

#: Third-party loggers that are only interesting when debugging.
_CHATTY_LOGGERS: Final[tuple[str, ...]] = ("httpx", "httpcore", "asyncio", "aiosqlite")


def _resolve(
    value: str | None,
    env_var: str,
    default: str,
    allowed: tuple[str, ...],
    normalise: Callable[[str], str],
) -> str:
    resolved = normalise(value or os.environ.get(env_var) or default)
    if resolved not in allowed:
        raise ValueError(f"Unknown {env_var} {resolved!r}. Must be one of: {', '.join(allowed)}")
    return resolved


class CycleContextFilter(logging.Filter):
    """Stamp every record with ``cycle_id`` from :data:`CYCLE_ID_CTX`."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        record.cycle_id = CYCLE_ID_CTX.get()
        return True


def configure_logging(
    level: str | None = None,
    fmt: str | None = None,
    *,
    force: bool = False,
) -> None:
    """Install the Portalbot handler on the root logger.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL.  Defaults to
            ``$LOG_LEVEL``, then ``INFO``.
        fmt: ``text`` or ``json``.  Defaults to ``$LOG_FORMAT``, then ``text``.
        force: Replace existing root handlers.  Without it an already
            configured root logger only has its level adjusted.

    Raises:
        ValueError: For an unrecognised level or format.
    """
    resolved_level = _resolve(level, "LOG_LEVEL", "INFO", _LEVELS, str.upper)
    resolved_fmt = _resolve(fmt, "LOG_FORMAT", "text", _FORMATS, str.lower)

    root = logging.getLogger()
    root.setLevel(resolved_level)
    if root.handlers and not force:
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(resolved_level)
    handler.addFilter(CycleContextFilter())
    handler.setFormatter(
        JsonFormatter()
        if resolved_fmt == "json"
        else logging.Formatter(fmt=_TEXT_FORMAT, datefmt=_TEXT_DATEFMT)
    )
    root.handlers = [handler]

    quiet = logging.NOTSET if resolved_level == "DEBUG" else logging.WARNING
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(quiet)


class JsonFormatter(logging.Formatter):
    """Render a record as a single-line JSON object.

    ``cycle_id`` and ``event`` are promoted to top-level keys.  Any other
    ``extra=`` attributes are collected under ``"extra"`` (omitted when
    empty).  Values that are not JSON-serialisable are rendered with
    :func:`str`.
    """

    #: Attributes every LogRecord carries, plus those formatters add.
    _STANDARD_ATTRS: Final[frozenset[str]] = frozenset(
        vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
    ) | {"message", "asctime", "taskName"}

    _PROMOTED: Final[tuple[str, ...]] = ("cycle_id", "event")

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        created = datetime.fromtimestamp(record.created, tz=UTC)
        payload: dict[str, Any] = {
            "ts": created.strftime("%Y-%m-%dT%H:%M:%S.") + f"{int(record.msecs):03d}Z",
            "level": record.levelname,
            "logger": record.name,
        }
        for key in self._PROMOTED:
            if key in record.__dict__:
                payload[key] = record.__dict__[key]
        payload["message"] = record.getMessage()

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in self._STANDARD_ATTRS and key not in self._PROMOTED
        }
        if extra:
            payload["extra"] = extra
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack_info"] = self.formatStack(record.stack_info)

        return json.dumps(payload, default=str)
