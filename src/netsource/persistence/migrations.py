"""
netsource — file-based migration runner.

File: src/netsource/persistence/migrations.py
Last updated: 2026-10-18

Purpose
- Discover ``<version>_<description>.sql`` artifacts in a migrations directory.
- Apply the ones missing from the ``migrations`` ledger, in numeric version order.

What should be included in this file
- Filename parsing and diagnostics for files that cannot be versioned.
- SQL script splitting that respects trigger bodies, string literals and comments.
- Ledger reads (``get_applied_migrations``).

Functional requirements
- A migration's statements and its ledger row commit together or not at all.
- Migration N+1 never starts before N commits; the first failure stops the run.
- A missing migrations directory is created and yields zero artifacts.
"""

from __future__ import annotations

import logging
import re
import sqlite3
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Final

from netsource.constants import LEDGER_TABLE, MIGRATION_EXTENSIONS
from netsource.observability.logging import correlation_scope
from netsource.persistence.connection import ConnectionManager
from netsource.persistence.errors import MigrationApplyError, SchemaError

logger = logging.getLogger(__name__)

_VERSION_PATTERN: Final[re.Pattern[str]] = re.compile(r"^(?P<version>\d+)_")
_LINE_COMMENT_PATTERN: Final[re.Pattern[str]] = re.compile(r"--[^\n]*")
_BLOCK_COMMENT_PATTERN: Final[re.Pattern[str]] = re.compile(r"/\*.*?\*/", re.DOTALL)


@dataclass(frozen=True, slots=True)
class MigrationRecord:
    version: int
    name: str
    applied_at: str


@dataclass(frozen=True, slots=True)
class MigrationArtifact:
    version: int
    filename: str
    path: Path
    sql_text: str


@dataclass(frozen=True, slots=True)
class SkippedArtifact:
    filename: str
    reason: str


@dataclass(frozen=True, slots=True)
class MigrationDiscovery:
    artifacts: tuple[MigrationArtifact, ...]
    skipped: tuple[SkippedArtifact, ...]


@dataclass(frozen=True, slots=True)
class MigrationRunResult:
    applied: tuple[MigrationRecord, ...]
    skipped: tuple[SkippedArtifact, ...]


def parse_migration_version(filename: str) -> int | None:
    """Return the leading integer of ``<version>_<description>.<ext>``, or ``None``."""

    match = _VERSION_PATTERN.match(filename)
    if match is None:
        return None
    return int(match.group("version"))


def split_sql_statements(sql_text: str) -> list[str]:
    """Split a SQL script into individual statements.

    Uses ``sqlite3.complete_statement`` to find real terminators, so semicolons
    inside trigger bodies, string literals and comments do not split. Chunks that
    contain only comments or whitespace are dropped. A trailing statement
    without a terminating semicolon is kept.
    """

    statements: list[str] = []
    pieces = sql_text.split(";")
    buffer = ""
    last_index = len(pieces) - 1
    for index, piece in enumerate(pieces):
        buffer += piece
        if index < last_index:
            buffer += ";"
            if not sqlite3.complete_statement(buffer):
                continue
        statement = buffer.strip()
        buffer = ""
        if statement and not _is_comment_only(statement):
            statements.append(statement)
    return statements


class MigrationRunner:
    """Applies pending migration artifacts against the ledger."""

    def __init__(
        self,
        manager: ConnectionManager,
        migrations_dir: str | Path,
        *,
        extensions: tuple[str, ...] = MIGRATION_EXTENSIONS,
    ) -> None:
        self._manager = manager
        self._migrations_dir = Path(migrations_dir)
        self._extensions = tuple(ext.lower() for ext in extensions)

    @property
    def migrations_dir(self) -> Path:
        return self._migrations_dir

    def discover(self, *, create_missing: bool = True) -> MigrationDiscovery:
        """List versioned artifacts in ascending numeric order.

        A missing directory is created unless ``create_missing`` is false, in
        which case it simply lists as empty. Raises ``MigrationApplyError`` when
        two files share a version or an artifact cannot be read.
        """

        directory = self._migrations_dir
        if not directory.is_dir():
            if not create_missing:
                return MigrationDiscovery(artifacts=(), skipped=())
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                logger.warning("cannot create migrations directory %s: %s", directory, exc)
            else:
                logger.info("created missing migrations directory %s", directory)
            return MigrationDiscovery(artifacts=(), skipped=())

        skipped: list[SkippedArtifact] = []
        by_version: dict[int, Path] = {}
        for path in sorted(directory.iterdir(), key=lambda item: item.name):
            if path.name.startswith(".") or not path.is_file():
                continue
            if path.suffix.lower() not in self._extensions:
                continue
            version = parse_migration_version(path.name)
            if version is None:
                reason = "filename does not start with '<integer>_'"
                skipped.append(SkippedArtifact(filename=path.name, reason=reason))
                logger.warning("skipping migration artifact %s: %s", path.name, reason)
                continue
            existing = by_version.get(version)
            if existing is not None:
                duplicate = ValueError(
                    f"duplicate migration version {version}: already used by {existing.name}"
                )
                raise MigrationApplyError(version, path.name, duplicate)
            by_version[version] = path

        artifacts: list[MigrationArtifact] = []
        for version in sorted(by_version):
            path = by_version[version]
            try:
                sql_text = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                raise MigrationApplyError(version, path.name, exc) from exc
            artifacts.append(
                MigrationArtifact(version=version, filename=path.name, path=path, sql_text=sql_text)
            )
        return MigrationDiscovery(artifacts=tuple(artifacts), skipped=tuple(skipped))

    def applied_versions(self) -> set[int]:
        return {record.version for record in self.get_applied_migrations()}

    def is_applied(self, version: int) -> bool:
        try:
            row = self._manager.query_one(
                f"SELECT 1 AS present FROM {LEDGER_TABLE} WHERE version = ?", (version,)
            )
        except sqlite3.Error as exc:
            raise self._ledger_error(exc) from exc
        return row is not None

    def apply_migration(self, artifact: MigrationArtifact) -> MigrationRecord:
        """Apply one artifact and record it in the ledger in the same transaction."""

        statements = split_sql_statements(artifact.sql_text)
        applied_at = _utc_now_iso()
        with correlation_scope(
            migration_version=str(artifact.version), migration_file=artifact.filename
        ):
            try:
                with self._manager.transaction() as conn:
                    for statement in statements:
                        conn.execute(statement)
                    conn.execute(
                        f"INSERT INTO {LEDGER_TABLE} (version, name, applied_at) VALUES (?, ?, ?)",
                        (artifact.version, artifact.filename, applied_at),
                    )
            except sqlite3.Error as exc:
                logger.error("migration %s failed: %s", artifact.filename, exc)
                raise MigrationApplyError(artifact.version, artifact.filename, exc) from exc
            logger.info(
                "applied migration %s", artifact.filename, extra={"statements": len(statements)}
            )
        return MigrationRecord(
            version=artifact.version, name=artifact.filename, applied_at=applied_at
        )

    def run_pending(self) -> MigrationRunResult:
        """Apply every artifact missing from the ledger, stopping at the first failure."""

        discovery = self.discover()
        applied_versions = self.applied_versions()
        applied: list[MigrationRecord] = []
        for artifact in discovery.artifacts:
            if artifact.version in applied_versions:
                continue
            applied.append(self.apply_migration(artifact))
        if not applied:
            logger.debug("no pending migrations in %s", self._migrations_dir)
        return MigrationRunResult(applied=tuple(applied), skipped=discovery.skipped)

    def get_applied_migrations(self) -> list[MigrationRecord]:
        """Return ledger rows ordered by version; empty when the ledger does not exist yet."""

        try:
            ledger = self._manager.query_one(
                "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?",
                (LEDGER_TABLE,),
            )
            if ledger is None:
                return []
            rows = self._manager.query_all(
                f"SELECT version, name, applied_at FROM {LEDGER_TABLE} ORDER BY version ASC"
            )
        except sqlite3.Error as exc:
            raise self._ledger_error(exc) from exc

        records: list[MigrationRecord] = []
        for row in rows:
            version = row.get("version")
            name = row.get("name")
            applied_at = row.get("applied_at")
            if not isinstance(version, int):
                raise SchemaError(f"{LEDGER_TABLE}.version must be an integer")
            if not isinstance(name, str):
                raise SchemaError(f"{LEDGER_TABLE}.name must be text")
            records.append(
                MigrationRecord(
                    version=version,
                    name=name,
                    applied_at="" if applied_at is None else str(applied_at),
                )
            )
        return records

    def _ledger_error(self, exc: sqlite3.Error) -> SchemaError:
        return SchemaError(f"read migration ledger failed for {self._manager.path}: {exc}")


def _is_comment_only(chunk: str) -> bool:
    without_blocks = _BLOCK_COMMENT_PATTERN.sub("", chunk)
    without_lines = _LINE_COMMENT_PATTERN.sub("", without_blocks)
    return not without_lines.strip(" \t\r\n;")


def _utc_now_iso() -> str:
    return datetime.now(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")


__all__ = [
    "MigrationArtifact",
    "MigrationDiscovery",
    "MigrationRecord",
    "MigrationRunResult",
    "MigrationRunner",
    "SkippedArtifact",
    "parse_migration_version",
    "split_sql_statements",
]
