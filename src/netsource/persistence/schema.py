"""
netsource — baseline schema and migration ledger.

File: src/netsource/persistence/schema.py
Last updated: 2026-10-18

Purpose
- Create the ``migrations`` ledger table.
- Apply the baseline inventory schema (groups, network services, indexes, triggers).

Functional requirements
- Both operations are idempotent at the SQL level (``IF NOT EXISTS``).
- The baseline is applied in a single transaction; a failure leaves no partial DDL.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Final

from netsource.constants import LEDGER_TABLE
from netsource.persistence.connection import ConnectionManager
from netsource.persistence.errors import SchemaError

logger = logging.getLogger(__name__)

LEDGER_TABLE_SQL: Final[str] = f"""
CREATE TABLE IF NOT EXISTS {LEDGER_TABLE} (
    version INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    applied_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
)
"""

BASE_SCHEMA_STATEMENTS: Final[tuple[str, ...]] = (
    """
    CREATE TABLE IF NOT EXISTS groups (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL UNIQUE,
        description TEXT,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS network_services (
        id TEXT PRIMARY KEY,
        group_id TEXT NOT NULL,
        name TEXT NOT NULL,
        type TEXT NOT NULL DEFAULT 'web',
        domain TEXT NOT NULL,
        internal_ports TEXT NOT NULL DEFAULT '[]',
        external_ports TEXT NOT NULL DEFAULT '[]',
        vlan TEXT,
        cidr TEXT,
        ip_address TEXT,
        tags TEXT NOT NULL DEFAULT '[]',
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (group_id) REFERENCES groups(id) ON DELETE CASCADE
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_network_services_group_id ON network_services(group_id)",
    "CREATE INDEX IF NOT EXISTS idx_network_services_vlan ON network_services(vlan)",
    "CREATE INDEX IF NOT EXISTS idx_network_services_ip_address ON network_services(ip_address)",
    "CREATE INDEX IF NOT EXISTS idx_groups_name ON groups(name)",
    """
    CREATE TRIGGER IF NOT EXISTS update_groups_updated_at
    AFTER UPDATE ON groups
    FOR EACH ROW
    BEGIN
        UPDATE groups SET updated_at = CURRENT_TIMESTAMP WHERE id = NEW.id;
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS update_network_services_updated_at
    AFTER UPDATE ON network_services
    FOR EACH ROW
    BEGIN
        UPDATE network_services SET updated_at = CURRENT_TIMESTAMP WHERE id = NEW.id;
    END
    """,
)


class SchemaInitializer:
    """Applies the ledger table and baseline schema through a connection manager.

    ``apply_base_schema`` has no guard of its own; callers run it once per
    admitted pipeline run. ``base_schema_runs`` counts executions.
    """

    def __init__(self, manager: ConnectionManager) -> None:
        self._manager = manager
        self.base_schema_runs = 0

    def ensure_ledger(self) -> None:
        try:
            with self._manager.transaction() as conn:
                conn.execute(LEDGER_TABLE_SQL)
        except sqlite3.Error as exc:
            raise SchemaError(
                f"create ledger table {LEDGER_TABLE!r} failed for {self._manager.path}: {exc}"
            ) from exc

    def apply_base_schema(self) -> None:
        self.base_schema_runs += 1
        try:
            with self._manager.transaction() as conn:
                for statement in BASE_SCHEMA_STATEMENTS:
                    conn.execute(statement)
        except sqlite3.Error as exc:
            raise SchemaError(
                f"apply baseline schema failed for {self._manager.path}: {exc}"
            ) from exc
        logger.info(
            "baseline schema applied",
            extra={"db_path": str(self._manager.path), "statements": len(BASE_SCHEMA_STATEMENTS)},
        )


__all__ = ["BASE_SCHEMA_STATEMENTS", "LEDGER_TABLE_SQL", "SchemaInitializer"]
