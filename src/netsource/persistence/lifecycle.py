"""
netsource — schema lifecycle context object.

File: src/netsource/persistence/lifecycle.py
Last updated: 2026-10-18

Purpose
- Compose connection, baseline schema, migrations and seeding into one
  pipeline run behind the single-flight guard.
- Expose the only surface the rest of the application depends on.

What should be included in this file
- ``SchemaLifecycle`` with construction from config/env.
- Reset (drop everything, replay the pipeline) and health reporting.

Functional requirements
- Pipeline order: ledger -> baseline schema -> pending migrations -> seed.
- Every failure surfaces as a ``SchemaLifecycleError`` subclass.
- ``health()`` never raises.
"""

from __future__ import annotations

import logging
import sqlite3
import time
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from netsource.config.loader import load_store_config
from netsource.config.schema import StoreConfig
from netsource.constants import DOMAIN_TABLES_DROP_ORDER, LEDGER_TABLE
from netsource.observability.logging import correlation_scope
from netsource.persistence.connection import ConnectionManager
from netsource.persistence.errors import ResetError, SchemaError, SchemaLifecycleError
from netsource.persistence.init_guard import InitGuard, InitializationState
from netsource.persistence.migrations import MigrationRecord, MigrationRunner, SkippedArtifact
from netsource.persistence.schema import SchemaInitializer
from netsource.persistence.seed import SeedCoordinator, SeedDocument

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PipelineReport:
    """Outcome of one initialization pipeline run."""

    db_path: str
    applied: tuple[MigrationRecord, ...] = ()
    skipped: tuple[SkippedArtifact, ...] = ()
    seeded: dict[str, int] = field(default_factory=dict)
    duration_seconds: float = 0.0
    readonly: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "db_path": self.db_path,
            "applied": [
                {"version": record.version, "name": record.name, "applied_at": record.applied_at}
                for record in self.applied
            ],
            "skipped": [
                {"filename": item.filename, "reason": item.reason} for item in self.skipped
            ],
            "seeded": dict(sorted(self.seeded.items())),
            "duration_seconds": round(self.duration_seconds, 6),
            "readonly": self.readonly,
        }


class SchemaLifecycle:
    """Explicit owner of one store's connection and initialization state."""

    def __init__(
        self,
        config: StoreConfig,
        *,
        install_signal_handlers: bool = True,
        seed_document: SeedDocument | None = None,
    ) -> None:
        self._config = config
        self._manager = ConnectionManager(config, install_signal_handlers=install_signal_handlers)
        self._schema = SchemaInitializer(self._manager)
        self._migrations = MigrationRunner(self._manager, config.migrations_dir)
        self._seed = SeedCoordinator(self._manager, seed_document)
        self._guard: InitGuard[PipelineReport] = InitGuard(self._run_pipeline)

    @classmethod
    def from_config(
        cls,
        config_path: str | Path | None = None,
        *,
        cli_overrides: Mapping[str, object] | None = None,
        environ: Mapping[str, str] | None = None,
        install_signal_handlers: bool = True,
    ) -> SchemaLifecycle:
        store_config = load_store_config(
            config_path, cli_overrides=cli_overrides, environ=environ
        )
        return cls(store_config, install_signal_handlers=install_signal_handlers)

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        *,
        install_signal_handlers: bool = True,
    ) -> SchemaLifecycle:
        """Build from ``NETSOURCE_*`` variables over defaults.

        A ``netsource.toml`` in the working directory is still honoured when present.
        """

        return cls.from_config(environ=environ, install_signal_handlers=install_signal_handlers)

    @property
    def config(self) -> StoreConfig:
        return self._config

    @property
    def store_path(self) -> Path:
        return self._manager.path

    @property
    def state(self) -> InitializationState:
        return self._guard.state

    @property
    def last_report(self) -> PipelineReport | None:
        return self._guard.result

    @property
    def schema(self) -> SchemaInitializer:
        return self._schema

    @property
    def migrations(self) -> MigrationRunner:
        return self._migrations

    @property
    def seed(self) -> SeedCoordinator:
        return self._seed

    def ensure_initialized(self) -> PipelineReport:
        return self._guard.ensure_initialized()

    async def ensure_initialized_async(self) -> PipelineReport:
        return await self._guard.ensure_initialized_async()

    def get_connection(self) -> sqlite3.Connection:
        return self._manager.get_connection()

    def close_connection(self) -> None:
        self._manager.close()

    def is_open(self) -> bool:
        return self._manager.is_open()

    def get_applied_migrations(self) -> list[MigrationRecord]:
        return self._migrations.get_applied_migrations()

    def reset_state(self) -> None:
        self._guard.reset_state()

    def reset_all(self) -> PipelineReport:
        """Drop every schema object, then replay the full pipeline.

        Destructive. Raises ``ResetError`` when an initialization run is in flight
        or the drop phase fails; errors from the replayed pipeline keep their own
        types.
        """

        if self._config.readonly:
            raise ResetError(f"cannot reset read-only store {self.store_path}")
        try:
            self._guard.reset_state()
        except RuntimeError as exc:
            raise ResetError("cannot reset while initialization is in flight") from exc
        dropped = self._drop_schema_objects()
        logger.warning(
            "dropped all schema objects",
            extra={"db_path": str(self.store_path), "dropped": dropped},
        )
        self._guard.reset_state()
        return self._guard.ensure_initialized()

    def health(self) -> dict[str, Any]:
        """Report connectivity and table inventory; never raises."""

        path = str(self.store_path)
        try:
            rows = self._manager.query_all(
                "SELECT name FROM sqlite_master "
                "WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
            )
        except (SchemaLifecycleError, sqlite3.Error) as exc:
            return {
                "status": "unhealthy",
                "state": self.state.value,
                "database": {"status": "disconnected", "path": path, "error": str(exc)},
            }
        return {
            "status": "healthy",
            "state": self.state.value,
            "database": {
                "status": "connected",
                "path": path,
                "tables": [str(row["name"]) for row in rows],
            },
        }

    def __enter__(self) -> SchemaLifecycle:
        self.ensure_initialized()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        del exc_type, exc, tb
        self.close_connection()

    def _run_pipeline(self) -> PipelineReport:
        started = time.perf_counter()
        with correlation_scope(db_path=str(self.store_path), pipeline_id=uuid.uuid4().hex):
            logger.info("initialization pipeline started")
            if self._config.readonly:
                self._verify_readonly_store()
                report = PipelineReport(
                    db_path=str(self.store_path),
                    duration_seconds=time.perf_counter() - started,
                    readonly=True,
                )
            else:
                self._schema.ensure_ledger()
                self._schema.apply_base_schema()
                run = self._migrations.run_pending()
                seeded = self._seed.seed_reference_data() if self._config.seed else {}
                report = PipelineReport(
                    db_path=str(self.store_path),
                    applied=run.applied,
                    skipped=run.skipped,
                    seeded=seeded,
                    duration_seconds=time.perf_counter() - started,
                )
            logger.info(
                "initialization pipeline finished",
                extra={
                    "applied": [record.version for record in report.applied],
                    "skipped": [item.filename for item in report.skipped],
                    "seeded": report.seeded,
                    "duration_seconds": report.duration_seconds,
                },
            )
        return report

    def _verify_readonly_store(self) -> None:
        try:
            ledger = self._manager.query_one(
                "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?",
                (LEDGER_TABLE,),
            )
        except sqlite3.Error as exc:
            raise SchemaError(f"inspect read-only store {self.store_path} failed: {exc}") from exc
        if ledger is None:
            raise SchemaError(
                f"read-only store {self.store_path} has no {LEDGER_TABLE!r} ledger; "
                "initialize it with a writable configuration first"
            )

    def _drop_schema_objects(self) -> list[str]:
        try:
            with self._manager.foreign_keys_suspended(), self._manager.transaction() as conn:
                rows = conn.execute(
                    "SELECT type, name FROM sqlite_master "
                    "WHERE type IN ('table', 'view') AND name NOT LIKE 'sqlite_%'"
                ).fetchall()
                views = sorted(str(row[1]) for row in rows if row[0] == "view")
                tables = {str(row[1]) for row in rows if row[0] == "table"}
                ordered_tables = [name for name in DOMAIN_TABLES_DROP_ORDER if name in tables]
                ordered_tables += sorted(
                    tables - set(DOMAIN_TABLES_DROP_ORDER) - {LEDGER_TABLE}
                )
                if LEDGER_TABLE in tables:
                    ordered_tables.append(LEDGER_TABLE)

                for view in views:
                    conn.execute(f"DROP VIEW IF EXISTS {_quote_identifier(view)}")
                for table in ordered_tables:
                    conn.execute(f"DROP TABLE IF EXISTS {_quote_identifier(table)}")
        except sqlite3.Error as exc:
            raise ResetError(f"drop schema objects failed for {self.store_path}: {exc}") from exc
        return [*views, *ordered_tables]


def _quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


__all__ = ["PipelineReport", "SchemaLifecycle"]
