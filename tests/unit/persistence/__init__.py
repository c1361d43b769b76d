"""Shared deterministic fixtures and builders for persistence tests."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any

from netsource.config.schema import BUNDLED_MIGRATIONS_DIR, StoreConfig
from netsource.persistence.connection import ConnectionManager
from netsource.persistence.lifecycle import SchemaLifecycle
from netsource.persistence.seed import GroupSeed, SeedDocument, ServiceSeed


def make_store_config(
    tmp_path: Path,
    *,
    filename: str = "store.db",
    migrations_dir: Path | None = None,
    **overrides: Any,
) -> StoreConfig:
    return StoreConfig(
        path=tmp_path / "data" / filename,
        mode="test",
        migrations_dir=BUNDLED_MIGRATIONS_DIR if migrations_dir is None else migrations_dir,
        **overrides,
    )


def make_manager(tmp_path: Path, **overrides: Any) -> ConnectionManager:
    config = make_store_config(tmp_path, **overrides)
    return ConnectionManager(config, install_signal_handlers=False)


def make_lifecycle(
    tmp_path: Path,
    *,
    seed_document: SeedDocument | None = None,
    **overrides: Any,
) -> SchemaLifecycle:
    return SchemaLifecycle(
        make_store_config(tmp_path, **overrides),
        install_signal_handlers=False,
        seed_document=seed_document,
    )


def write_migration(directory: Path, filename: str, sql: str) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / filename
    path.write_text(sql, encoding="utf-8")
    return path


def table_names(conn: sqlite3.Connection) -> set[str]:
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite_%'"
    ).fetchall()
    return {str(row[0]) for row in rows}


def schema_objects(conn: sqlite3.Connection) -> set[tuple[str, str]]:
    rows = conn.execute(
        "SELECT type, name FROM sqlite_master WHERE name NOT LIKE 'sqlite_%'"
    ).fetchall()
    return {(str(row[0]), str(row[1])) for row in rows}


def count_rows(conn: sqlite3.Connection, table: str) -> int:
    row = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()
    return int(row[0])


def small_seed_document() -> SeedDocument:
    return SeedDocument(
        groups=(
            GroupSeed(name="Edge", description="Ingress and load balancing"),
            GroupSeed(name="Core"),
        ),
        network_services=(
            ServiceSeed(
                group="Edge",
                name="Public Proxy",
                domain="proxy.example.test",
                type="web",
                internal_ports=(8080,),
                external_ports=(443, 80),
                vlan="10",
                tags=("proxy",),
            ),
            ServiceSeed(
                group="Missing",
                name="Orphan",
                domain="orphan.example.test",
            ),
        ),
    )


def create_plain_store(path: Path, *statements: str) -> None:
    """Create a rollback-journal SQLite file outside ``ConnectionManager``."""

    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path)
    try:
        for statement in statements:
            conn.execute(statement)
        conn.commit()
    finally:
        conn.close()
