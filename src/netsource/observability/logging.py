"""
netsource — structured logging

File: src/netsource/observability/logging.py
Last updated: 2026-10-18

Purpose
- Emit one JSON object per log line for every store lifecycle event.
- Keep the pipeline thread free of file I/O: records go through a bounded queue and a
  ``QueueListener`` writes them to the sinks.

Functional requirements
- Correlation fields (store path, pipeline id, migration version and file) are bound with
  ``correlation_scope`` and emitted as top-level keys; any other ``extra=`` values are
  nested under ``fields``.
- A full queue drops the record and counts it instead of blocking the caller.
- ``shutdown_logging`` drains the queue before the sinks are closed.
"""

from __future__ import annotations

import atexit
import contextvars
import copy
import json
import logging
import logging.handlers
import queue
import sys
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from pathlib import Path
from types import MappingProxyType
from typing import Final

DEFAULT_LOGGER_NAME: Final[str] = "netsource"
DEFAULT_LOG_FILENAME: Final[str] = "netsource.jsonl"

CORRELATION_KEYS: Final[frozenset[str]] = frozenset(
    {"db_path", "pipeline_id", "migration_version", "migration_file"}
)

# Attributes every LogRecord carries; anything else on a record came from ``extra=``.
_RECORD_ATTRIBUTES: Final[frozenset[str]] = frozenset(
    logging.makeLogRecord({}).__dict__
) | {"message", "asctime", "taskName", "correlation"}

_EMPTY: Final[Mapping[str, str]] = MappingProxyType({})
_correlation: contextvars.ContextVar[Mapping[str, str]] = contextvars.ContextVar(
    "netsource_log_correlation", default=_EMPTY
)

_active_lock = threading.Lock()
_active: StructuredLoggingHandle | None = None
_atexit_registered = False


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Settings for one structured logging installation.

    ``base_log_dir=None`` disables the file sink; records then go to stderr.
    """

    base_log_dir: Path | str | None = Path("logs")
    logger_name: str = DEFAULT_LOGGER_NAME
    level: int | str = "INFO"
    queue_size: int = 4096
    log_filename: str = DEFAULT_LOG_FILENAME
    log_to_stdout: bool = False


# ---------------------------------------------------------------------------
# Correlation context
# ---------------------------------------------------------------------------


def get_correlation_context() -> dict[str, str]:
    return dict(_correlation.get())


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Bind correlation fields for records logged inside the block.

    Passing ``None`` for a key unbinds it for the duration of the scope.
    """

    merged = dict(_correlation.get())
    for key, value in fields.items():
        if key not in CORRELATION_KEYS:
            raise ValueError(
                f"unknown correlation key {key!r}; expected one of {sorted(CORRELATION_KEYS)}"
            )
        if value is None:
            merged.pop(key, None)
            continue
        cleaned = str(value).strip()
        if not cleaned:
            raise ValueError(f"correlation field {key!r} must not be empty")
        merged[key] = cleaned

    token = _correlation.set(MappingProxyType(merged))
    try:
        yield
    finally:
        _correlation.reset(token)


# ---------------------------------------------------------------------------
# Handler and formatter
# ---------------------------------------------------------------------------


class _DroppingQueueHandler(logging.handlers.QueueHandler):
    """Queue handler that snapshots correlation and never blocks on a full queue."""

    def __init__(self, log_queue: queue.Queue[logging.LogRecord]) -> None:
        super().__init__(log_queue)
        self._drop_lock = threading.Lock()
        self.dropped = 0

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        # Runs on the logging thread; the listener thread cannot see this contextvar.
        prepared = copy.copy(record)
        prepared.message = record.getMessage()
        prepared.msg = prepared.message
        prepared.args = None
        if record.exc_info:
            prepared.exc_text = logging.Formatter().formatException(record.exc_info)
        prepared.exc_info = None
        prepared.correlation = dict(_correlation.get())
        return prepared

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            with self._drop_lock:
                self.dropped += 1


class _JsonLinesFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=UTC)
        event: dict[str, object] = {
            "timestamp": timestamp.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation = getattr(record, "correlation", None)
        if isinstance(correlation, Mapping):
            event.update(correlation)

        extras: dict[str, object] = {}
        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRIBUTES or key.startswith("_"):
                continue
            if key in CORRELATION_KEYS and isinstance(value, str) and value.strip():
                event[key] = value.strip()
            else:
                extras[key] = value
        if extras:
            event["fields"] = extras

        if record.exc_text:
            event["exception"] = record.exc_text
        if record.stack_info:
            event["stack"] = record.stack_info

        return json.dumps(
            event, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=_to_json
        )


def _to_json(value: object) -> object:
    if isinstance(value, datetime):
        aware = value if value.tzinfo is not None else value.replace(tzinfo=UTC)
        return aware.astimezone(UTC).isoformat().replace("+00:00", "Z")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=repr)
    return repr(value)


# ---------------------------------------------------------------------------
# Installation
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class StructuredLoggingHandle:
    """An installed logger with its queue listener and sinks."""

    logger: logging.Logger
    log_path: Path | None
    _queue_handler: _DroppingQueueHandler
    _listener: logging.handlers.QueueListener
    _sinks: tuple[logging.Handler, ...]
    _lock: threading.Lock = field(default_factory=threading.Lock)
    _closed: bool = False

    @property
    def dropped_records(self) -> int:
        return self._queue_handler.dropped

    @property
    def is_shutdown(self) -> bool:
        return self._closed

    def shutdown(self) -> None:
        """Drain queued records into the sinks, then detach and close everything."""

        with self._lock:
            if self._closed:
                return
            self._closed = True
            # QueueListener.stop() processes every record enqueued before the sentinel.
            self._listener.stop()
            self.logger.removeHandler(self._queue_handler)
            self._queue_handler.close()
            for sink in self._sinks:
                sink.flush()
                sink.close()


def setup_structured_logging(config: LoggingConfig) -> StructuredLoggingHandle:
    """Install queue-backed JSON logging on ``config.logger_name``.

    Any previously installed handle is shut down first, so at most one is active.
    """

    global _active

    logger_name, level, queue_size, filename = _validated(config)
    _shutdown_active()

    sinks: list[logging.Handler] = []
    log_path: Path | None = None
    if config.base_log_dir is not None:
        log_dir = Path(config.base_log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        log_path = log_dir / filename
        sinks.append(logging.FileHandler(log_path, encoding="utf-8"))
    if config.log_to_stdout or not sinks:
        sinks.append(logging.StreamHandler(sys.stderr))

    formatter = _JsonLinesFormatter()
    for sink in sinks:
        sink.setLevel(level)
        sink.setFormatter(formatter)

    logger = logging.getLogger(logger_name)
    for stale in list(logger.handlers):
        logger.removeHandler(stale)
        stale.close()
    logger.setLevel(level)
    logger.propagate = False

    log_queue: queue.Queue[logging.LogRecord] = queue.Queue(maxsize=queue_size)
    queue_handler = _DroppingQueueHandler(log_queue)
    queue_handler.setLevel(level)
    listener = logging.handlers.QueueListener(log_queue, *sinks, respect_handler_level=True)
    listener.start()
    logger.addHandler(queue_handler)

    handle = StructuredLoggingHandle(
        logger=logger,
        log_path=log_path,
        _queue_handler=queue_handler,
        _listener=listener,
        _sinks=tuple(sinks),
    )
    with _active_lock:
        _active = handle
    _ensure_atexit_shutdown()
    return handle


def setup_logging(
    observability_config: Mapping[str, object] | None = None,
    *,
    log_dir: Path | str | None = None,
    logger_name: str = DEFAULT_LOGGER_NAME,
) -> logging.Logger:
    """Install logging from an ``[observability]`` config section and return the logger."""

    section = observability_config or {}
    level = section.get("log_level", "INFO")
    configured_dir = section.get("log_dir", "logs")
    base_log_dir = log_dir if log_dir is not None else configured_dir
    handle = setup_structured_logging(
        LoggingConfig(
            base_log_dir=base_log_dir if isinstance(base_log_dir, (str, Path)) else "logs",
            logger_name=logger_name,
            level=level if isinstance(level, (int, str)) else "INFO",
            log_to_stdout=bool(section.get("log_to_stdout", False)),
        )
    )
    return handle.logger


def get_active_logging_handle() -> StructuredLoggingHandle | None:
    with _active_lock:
        return _active


def shutdown_logging(handle: StructuredLoggingHandle | None = None) -> None:
    """Shut down ``handle``, or the active handle when none is given."""

    global _active

    target = handle if handle is not None else get_active_logging_handle()
    if target is None:
        return
    target.shutdown()
    with _active_lock:
        if _active is target:
            _active = None


def _shutdown_active() -> None:
    global _active

    with _active_lock:
        previous, _active = _active, None
    if previous is not None:
        previous.shutdown()


def _ensure_atexit_shutdown() -> None:
    global _atexit_registered

    if not _atexit_registered:
        atexit.register(shutdown_logging)
        _atexit_registered = True


def _validated(config: LoggingConfig) -> tuple[str, int, int, str]:
    logger_name = str(config.logger_name).strip()
    if not logger_name:
        raise ValueError("logger_name must not be empty")

    if isinstance(config.level, bool):
        raise ValueError(f"unsupported logging level {config.level!r}")
    if isinstance(config.level, int):
        level = config.level
    else:
        named = logging.getLevelNamesMapping().get(str(config.level).strip().upper())
        if named is None:
            raise ValueError(f"unsupported logging level {config.level!r}")
        level = named

    if isinstance(config.queue_size, bool) or not isinstance(config.queue_size, int):
        raise ValueError("queue_size must be an integer")
    if config.queue_size <= 0:
        raise ValueError("queue_size must be > 0")

    filename = str(config.log_filename).strip()
    if not filename:
        raise ValueError("log_filename must not be empty")
    if Path(filename).name != filename:
        raise ValueError("log_filename must not include path separators")

    return logger_name, level, config.queue_size, filename


__all__ = [
    "CORRELATION_KEYS",
    "DEFAULT_LOGGER_NAME",
    "LoggingConfig",
    "StructuredLoggingHandle",
    "correlation_scope",
    "get_active_logging_handle",
    "get_correlation_context",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]
