"""
netsource — store connection lifecycle.

File: src/netsource/persistence/connection.py
Last updated: 2026-10-18

Purpose
- Own the single SQLite handle for a store and configure its pragmas.
- Provide transaction boundaries (with savepoint nesting) over that handle.
- Close open handles on SIGINT/SIGTERM and interpreter exit.

Functional requirements
- Lazy, idempotent open; the containing directory is created when absent.
- WAL journal, foreign keys on, synchronous=NORMAL, bounded busy timeout.

Non-functional requirements
- Writes from several threads are serialized through one re-entrant lock.
"""

from __future__ import annotations

import atexit
import logging
import signal
import sqlite3
import threading
import weakref
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from types import FrameType
from typing import Final

from netsource.config.schema import StoreConfig
from netsource.persistence.errors import StorageOpenError

logger = logging.getLogger(__name__)

SQLValue = str | int | float | bytes | None
SQLParams = Sequence[SQLValue]
RowValue = str | int | float | bytes | None

_TERMINATION_SIGNALS: Final[tuple[signal.Signals, ...]] = (signal.SIGINT, signal.SIGTERM)

_SQLITE_BUSY_CODES: Final[frozenset[int]] = frozenset(
    code
    for code in (
        getattr(sqlite3, "SQLITE_BUSY", None),
        getattr(sqlite3, "SQLITE_LOCKED", None),
    )
    if isinstance(code, int)
)

_SQLITE_CORRUPTION_CODES: Final[frozenset[int]] = frozenset(
    code
    for code in (
        getattr(sqlite3, "SQLITE_CORRUPT", None),
        getattr(sqlite3, "SQLITE_NOTADB", None),
    )
    if isinstance(code, int)
)

_OPEN_MANAGERS: weakref.WeakSet[ConnectionManager] = weakref.WeakSet()
_HOOKS_LOCK = threading.Lock()
_ATEXIT_REGISTERED = False
_PREVIOUS_HANDLERS: dict[int, object] = {}


class ConnectionManager:
    """Lazily opened, process-lifetime handle to one SQLite store."""

    def __init__(self, config: StoreConfig, *, install_signal_handlers: bool = True) -> None:
        self._config = config
        self._path = Path(config.path).expanduser()
        self._install_signal_handlers = install_signal_handlers
        self._lock = threading.RLock()
        self._conn: sqlite3.Connection | None = None
        self._savepoint_counter = 0

    @property
    def path(self) -> Path:
        return self._path

    @property
    def config(self) -> StoreConfig:
        return self._config

    def get_connection(self) -> sqlite3.Connection:
        """Return the open handle, opening and configuring it on first use."""

        with self._lock:
            if self._conn is None:
                self._conn = self._open()
                _track_open_manager(self, install_signal_handlers=self._install_signal_handlers)
                logger.debug("opened store %s", self._path)
            return self._conn

    def is_open(self) -> bool:
        with self._lock:
            return self._conn is not None

    def close(self) -> None:
        """Release the handle; the next ``get_connection`` opens a fresh one."""

        with self._lock:
            conn = self._conn
            self._conn = None
            _OPEN_MANAGERS.discard(self)
            if conn is None:
                return
            try:
                conn.close()
            except sqlite3.Error:
                logger.exception("error closing store %s", self._path)
            else:
                logger.debug("closed store %s", self._path)

    @contextmanager
    def transaction(self, *, immediate: bool = True) -> Iterator[sqlite3.Connection]:
        """Run statements atomically; nested use becomes a savepoint."""

        with self._lock:
            conn = self.get_connection()
            if conn.in_transaction:
                savepoint = self._next_savepoint_name()
                conn.execute(f"SAVEPOINT {savepoint}")
                try:
                    yield conn
                except BaseException:
                    if self._conn is conn:
                        conn.execute(f"ROLLBACK TO SAVEPOINT {savepoint}")
                        conn.execute(f"RELEASE SAVEPOINT {savepoint}")
                    raise
                else:
                    conn.execute(f"RELEASE SAVEPOINT {savepoint}")
                return

            conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
            try:
                yield conn
            except BaseException:
                # A handle closed mid-block (signal shutdown) has already rolled back.
                if self._conn is conn and conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise
            else:
                conn.execute("COMMIT")

    @contextmanager
    def foreign_keys_suspended(self) -> Iterator[sqlite3.Connection]:
        """Disable foreign-key enforcement for the duration of the block.

        The pragma is a no-op inside a transaction, so this must wrap the
        transaction rather than run within one.
        """

        with self._lock:
            conn = self.get_connection()
            if conn.in_transaction:
                raise RuntimeError("foreign_keys_suspended() cannot be used inside a transaction")
            conn.execute("PRAGMA foreign_keys=OFF")
            try:
                yield conn
            finally:
                if self._conn is conn:
                    conn.execute("PRAGMA foreign_keys=ON")

    def query_all(self, sql: str, params: SQLParams = ()) -> list[dict[str, RowValue]]:
        """Run a query and return rows as dictionaries."""

        with self._lock:
            cursor = self.get_connection().execute(sql, tuple(params))
            return [_row_to_dict(row) for row in cursor.fetchall()]

    def query_one(self, sql: str, params: SQLParams = ()) -> dict[str, RowValue] | None:
        """Run a query and return the first row as a dictionary."""

        with self._lock:
            row = self.get_connection().execute(sql, tuple(params)).fetchone()
            return None if row is None else _row_to_dict(row)

    def __enter__(self) -> ConnectionManager:
        self.get_connection()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        del exc_type, exc, tb
        self.close()

    def _open(self) -> sqlite3.Connection:
        timeout_seconds = self._config.busy_timeout_ms / 1000.0
        try:
            if self._config.readonly:
                uri = f"{self._path.resolve().as_uri()}?mode=ro"
                conn = sqlite3.connect(
                    uri,
                    uri=True,
                    timeout=timeout_seconds,
                    isolation_level=None,
                    check_same_thread=False,
                )
            else:
                self._ensure_parent_dir()
                conn = sqlite3.connect(
                    self._path,
                    timeout=timeout_seconds,
                    isolation_level=None,
                    check_same_thread=False,
                )
        except sqlite3.Error as exc:
            raise StorageOpenError(self._path, _describe_open_failure(exc)) from exc

        conn.row_factory = sqlite3.Row
        try:
            self._configure_connection(conn)
        except (sqlite3.Error, StorageOpenError) as exc:
            conn.close()
            if isinstance(exc, StorageOpenError):
                raise
            raise StorageOpenError(self._path, _describe_open_failure(exc)) from exc
        return conn

    def _ensure_parent_dir(self) -> None:
        parent = self._path.parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageOpenError(
                self._path, f"cannot create directory {parent}: {exc}"
            ) from exc

    def _configure_connection(self, conn: sqlite3.Connection) -> None:
        conn.execute("PRAGMA foreign_keys=ON")
        conn.execute(f"PRAGMA busy_timeout={self._config.busy_timeout_ms}")
        if self._config.readonly:
            # Probe the file; a non-database file only fails on first read.
            conn.execute("SELECT count(*) FROM sqlite_master").fetchone()
            return
        journal_row = conn.execute("PRAGMA journal_mode=WAL").fetchone()
        if journal_row is None:
            raise StorageOpenError(self._path, "failed to configure journal_mode")
        journal_mode = str(journal_row[0]).lower()
        if journal_mode != "wal":
            raise StorageOpenError(self._path, f"journal_mode must be WAL, got {journal_mode!r}")
        conn.execute("PRAGMA synchronous=NORMAL")

    def _next_savepoint_name(self) -> str:
        self._savepoint_counter += 1
        return f"sp_{self._savepoint_counter}"


def close_all_connections() -> None:
    """Close every open manager in this process."""

    for manager in list(_OPEN_MANAGERS):
        manager.close()


def _track_open_manager(manager: ConnectionManager, *, install_signal_handlers: bool) -> None:
    global _ATEXIT_REGISTERED
    with _HOOKS_LOCK:
        _OPEN_MANAGERS.add(manager)
        if not _ATEXIT_REGISTERED:
            atexit.register(close_all_connections)
            _ATEXIT_REGISTERED = True
        if install_signal_handlers:
            _install_signal_handlers()


def _install_signal_handlers() -> None:
    # signal.signal() is only legal from the main thread of the main interpreter.
    if threading.current_thread() is not threading.main_thread():
        return
    for signum in _TERMINATION_SIGNALS:
        if int(signum) in _PREVIOUS_HANDLERS:
            continue
        _PREVIOUS_HANDLERS[int(signum)] = signal.getsignal(signum)
        signal.signal(signum, _handle_termination_signal)


def _handle_termination_signal(signum: int, frame: FrameType | None) -> None:
    logger.info("received signal %s; closing open stores", signum)
    close_all_connections()
    previous = _PREVIOUS_HANDLERS.get(signum)
    if previous is signal.SIG_IGN:
        return
    if callable(previous):
        previous(signum, frame)
        return
    if signum == signal.SIGINT:
        raise KeyboardInterrupt
    raise SystemExit(128 + signum)


def _describe_open_failure(exc: sqlite3.Error) -> str:
    code = getattr(exc, "sqlite_errorcode", None)
    if isinstance(code, int) and code in _SQLITE_CORRUPTION_CODES:
        return f"{exc} (file is corrupt or not an SQLite database)"
    if isinstance(code, int) and code in _SQLITE_BUSY_CODES:
        return f"{exc} (store is locked by another process)"
    return str(exc)


def _row_to_dict(row: sqlite3.Row) -> dict[str, RowValue]:
    raw = dict(row)
    return {str(key): raw[key] for key in raw}


__all__ = [
    "ConnectionManager",
    "RowValue",
    "SQLParams",
    "SQLValue",
    "close_all_connections",
]
