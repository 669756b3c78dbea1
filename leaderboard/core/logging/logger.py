"""
Leaderboard Logging Subsystem

Purpose
-------
Structured, non-blocking logging for the leaderboard service:

- JSON records in production, readable (optionally colored) lines in dev
- Per-call context (actor, role, operation, correlation id) carried in a
  ContextVar and stamped on every record emitted inside a ``LogContext``
- QueueHandler + QueueListener so handler I/O never runs on the event loop
- Bounded queue; overflow drops records and counts them
- Optional daily rotating JSON file

Public API
----------
- setup_logging() / shutdown_logging()
- get_logger()
- LogContext, set_log_context(), get_log_context()
- get_logging_health()

Notes
-----
- Settings are read from ``Config`` when ``setup_logging()`` runs, not at
  import, so tests and scripts can adjust the environment first.
- ``ContextFilter`` sits on the queue handler: it runs in the emitting task,
  where the ContextVar still holds the caller's context.
- Fields passed through ``extra=`` are kept under ``"extra"`` in JSON output
  and take precedence over ambient context of the same name.
"""

from __future__ import annotations

import json
import logging
import queue
import sys
import uuid
from contextvars import ContextVar, Token
from dataclasses import dataclass
from datetime import datetime, timezone
from logging import Logger
from logging.handlers import QueueHandler, QueueListener, TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List, Optional

from leaderboard.core.config.config import Config

_UNSET = "N/A"

_log_context: ContextVar[Dict[str, Any]] = ContextVar("leaderboard_log_context", default={})

# Attribute names every LogRecord carries; anything else came from extra= or context
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "taskName"}

CONTEXT_FIELDS = ("actor_id", "role", "correlation_id", "request_id", "component", "operation")


# ============================================================================
# Settings
# ============================================================================


@dataclass(frozen=True, slots=True)
class LoggingSettings:
    """Snapshot of the logging configuration taken at setup time."""

    level: int
    json: bool
    colors: bool
    to_file: bool
    logs_dir: Path
    queue_max_size: int = 10_000
    file_basename: str = "leaderboard.json.log"
    file_backups: int = 1
    console_format: str = "%(asctime)s | %(levelname)-8s | %(name)-32s | %(message)s%(context_suffix)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"

    @classmethod
    def from_config(cls) -> "LoggingSettings":
        level = logging.getLevelName(str(Config.LOG_LEVEL or "INFO").upper())
        if not isinstance(level, int):
            level = logging.INFO

        use_json = Config.is_production() if Config.LOG_JSON is None else bool(Config.LOG_JSON)

        return cls(
            level=level,
            json=use_json,
            colors=not use_json and sys.stdout.isatty(),
            to_file=bool(Config.LOG_TO_FILE),
            logs_dir=Path(Config.LOGS_DIR).resolve(),
        )


@dataclass(slots=True)
class _PipelineCounters:
    enqueued: int = 0
    dropped: int = 0
    handler_errors: int = 0


@dataclass(frozen=True, slots=True)
class LoggingHealth:
    initialized: bool
    queue_size: int
    queue_max_size: int
    records_enqueued: int
    records_dropped: int
    listener_errors: int


class _Pipeline:
    """Module-level state of the installed handler stack."""

    settings: Optional[LoggingSettings] = None
    log_queue: Optional["queue.Queue[logging.LogRecord]"] = None
    listener: Optional[QueueListener] = None
    handler: Optional[QueueHandler] = None
    counters = _PipelineCounters()


# ============================================================================
# Filters & Formatters
# ============================================================================


class ContextFilter(logging.Filter):
    """Copy the current LogContext onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        context = _log_context.get({})

        correlation_id = context.get("correlation_id") or context.get("request_id") or _UNSET
        defaults = {
            "actor_id": context.get("actor_id", _UNSET),
            "role": context.get("role", _UNSET),
            "correlation_id": correlation_id,
            "request_id": context.get("request_id", correlation_id),
            "component": context.get("component") or record.name.split(".", 1)[0],
            "operation": context.get("operation", _UNSET),
        }

        # Explicit extra= values win over the ambient context
        for key, value in {**context, **defaults}.items():
            if key not in record.__dict__:
                setattr(record, key, value)
        return True


class ConsoleFormatter(logging.Formatter):
    """Human-readable line with a short ``[actor op]`` suffix when known."""

    _COLORS = {
        "DEBUG": "\033[90m",
        "INFO": "\033[94m",
        "WARNING": "\033[93m",
        "ERROR": "\033[91m",
        "CRITICAL": "\033[91m\033[1m",
    }
    _RESET = "\033[0m"

    def __init__(self, fmt: str, datefmt: str, colors: bool = False) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._colors = colors

    @staticmethod
    def _suffix(record: logging.LogRecord) -> str:
        parts = []
        for name in ("actor_id", "operation"):
            value = getattr(record, name, _UNSET)
            if value not in (None, _UNSET):
                parts.append(f"{name}={value}")
        return f" [{' '.join(parts)}]" if parts else ""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        record.context_suffix = self._suffix(record)
        levelname = record.levelname
        color = self._COLORS.get(levelname) if self._colors else None
        if color:
            record.levelname = f"{color}{levelname}{self._RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


class JSONFormatter(logging.Formatter):
    """One JSON object per record: core fields, ``context`` and ``extra``."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }

        context = {
            name: getattr(record, name)
            for name in CONTEXT_FIELDS
            if getattr(record, name, None) not in (None, _UNSET)
        }
        if context:
            payload["context"] = context

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS
            and key not in CONTEXT_FIELDS
            and key != "context_suffix"
            and not key.startswith("_")
        }
        if extra:
            payload["extra"] = extra

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


# ============================================================================
# Queue Plumbing
# ============================================================================


class _CountingQueueHandler(QueueHandler):
    def enqueue(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        _Pipeline.counters.enqueued += 1
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            _Pipeline.counters.dropped += 1
            sys.stderr.write("leaderboard: log queue full, record dropped\n")


class _CountingQueueListener(QueueListener):
    def handleError(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        _Pipeline.counters.handler_errors += 1
        sys.stderr.write("leaderboard: log handler failed to emit a record\n")


def _build_handlers(settings: LoggingSettings) -> List[logging.Handler]:
    console = logging.StreamHandler(sys.stdout)
    if settings.json:
        console.setFormatter(JSONFormatter())
    else:
        console.setFormatter(
            ConsoleFormatter(settings.console_format, settings.date_format, colors=settings.colors)
        )
    handlers: List[logging.Handler] = [console]

    if settings.to_file:
        settings.logs_dir.mkdir(parents=True, exist_ok=True)
        rotating = TimedRotatingFileHandler(
            filename=str(settings.logs_dir / settings.file_basename),
            when="midnight",
            backupCount=settings.file_backups,
            encoding="utf-8",
            utc=True,
        )
        rotating.setFormatter(JSONFormatter())
        handlers.append(rotating)

    for handler in handlers:
        handler.setLevel(settings.level)
    return handlers


# ============================================================================
# Setup / Teardown
# ============================================================================


def setup_logging() -> None:
    """Install the queue-based handler stack on the root logger (idempotent)."""
    if _Pipeline.listener is not None:
        return

    settings = LoggingSettings.from_config()
    root = logging.getLogger()
    root.setLevel(settings.level)
    root.handlers.clear()

    log_queue: "queue.Queue[logging.LogRecord]" = queue.Queue(settings.queue_max_size)
    listener = _CountingQueueListener(log_queue, *_build_handlers(settings), respect_handler_level=True)

    handler = _CountingQueueHandler(log_queue)
    handler.setLevel(settings.level)
    handler.addFilter(ContextFilter())

    _Pipeline.settings = settings
    _Pipeline.log_queue = log_queue
    _Pipeline.listener = listener
    _Pipeline.handler = handler
    _Pipeline.counters = _PipelineCounters()

    listener.start()
    root.addHandler(handler)

    # Driver chatter stays out of the service log unless explicitly asked for
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if Config.DATABASE_ECHO else logging.WARNING
    )

    logging.getLogger(__name__).info(
        "Logging initialized",
        extra={
            "environment": Config.ENVIRONMENT,
            "log_level": logging.getLevelName(settings.level),
            "json": settings.json,
            "to_file": settings.to_file,
        },
    )


def shutdown_logging() -> None:
    """Flush pending records and detach the handler stack."""
    listener = _Pipeline.listener
    if listener is None:
        return

    log = logging.getLogger(__name__)
    log.info("Shutting down logging subsystem")

    root = logging.getLogger()
    if _Pipeline.handler is not None:
        root.removeHandler(_Pipeline.handler)

    # stop() drains the queue before returning
    listener.stop()
    for handler in listener.handlers:
        try:
            handler.flush()
            handler.close()
        except (OSError, ValueError) as exc:
            sys.stderr.write(f"leaderboard: error closing log handler: {exc}\n")

    _Pipeline.listener = None
    _Pipeline.handler = None
    _Pipeline.log_queue = None


def get_logging_health() -> LoggingHealth:
    log_queue = _Pipeline.log_queue
    counters = _Pipeline.counters
    return LoggingHealth(
        initialized=_Pipeline.listener is not None,
        queue_size=log_queue.qsize() if log_queue is not None else 0,
        queue_max_size=log_queue.maxsize if log_queue is not None else 0,
        records_enqueued=counters.enqueued,
        records_dropped=counters.dropped,
        listener_errors=counters.handler_errors,
    )


# ============================================================================
# Context API
# ============================================================================


def get_logger(name: str) -> Logger:
    return logging.getLogger(name)


def _normalize(fields: Dict[str, Any]) -> Dict[str, Any]:
    normalized = {key: value for key, value in fields.items() if value is not None}
    if "actor_id" in normalized:
        normalized["actor_id"] = str(normalized["actor_id"])
    if "request_id" in normalized and "correlation_id" not in normalized:
        normalized["correlation_id"] = normalized["request_id"]
    return normalized


class LogContext:
    """
    Scope contextual log fields to a block of (async) code.

    A correlation id is generated when neither ``correlation_id`` nor
    ``request_id`` is given.

    Example
    -------
    >>> async with LogContext(actor_id="u-1", role="admin", operation="create_player"):
    ...     logger.info("Creating player")
    """

    def __init__(
        self,
        actor_id: Optional[Any] = None,
        role: Optional[str] = None,
        component: Optional[str] = None,
        operation: Optional[str] = None,
        correlation_id: Optional[str] = None,
        request_id: Optional[str] = None,
        **extra: Any,
    ) -> None:
        self.context = _normalize(
            {
                "actor_id": actor_id,
                "role": role,
                "component": component,
                "operation": operation,
                "correlation_id": correlation_id,
                "request_id": request_id,
                **extra,
            }
        )
        self.context.setdefault("correlation_id", uuid.uuid4().hex[:8])
        self.context.setdefault("request_id", self.context["correlation_id"])
        self._token: Optional[Token[Dict[str, Any]]] = None

    def __enter__(self) -> "LogContext":
        self._token = _log_context.set(dict(self.context))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _log_context.reset(self._token)
            self._token = None

    async def __aenter__(self) -> "LogContext":
        return self.__enter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)


def set_log_context(**fields: Any) -> None:
    """Merge ``fields`` into the current context (``None`` values are ignored)."""
    _log_context.set({**_log_context.get({}), **_normalize(fields)})


def get_log_context() -> Dict[str, Any]:
    return dict(_log_context.get({}))

