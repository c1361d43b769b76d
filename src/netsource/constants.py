"""Stable constants shared across the storage core."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Schema version for the persisted config contract.
CONFIG_SCHEMA_VERSION: Final[int] = 1

# Deployment modes and the store file each one defaults to.
STORE_MODES: Final[tuple[str, ...]] = ("development", "production", "test")
DEFAULT_STORE_MODE: Final[str] = "development"
DATA_DIR: Final[PurePosixPath] = PurePosixPath("data")
DEFAULT_STORE_FILENAMES: Final[dict[str, str]] = {
    "development": "network-source-truth.dev.db",
    "production": "network-source-truth.db",
    "test": "network-source-truth.test.db",
}

DEFAULT_BUSY_TIMEOUT_MS: Final[int] = 5_000

# Ledger of applied migrations.
LEDGER_TABLE: Final[str] = "migrations"
MIGRATION_EXTENSIONS: Final[tuple[str, ...]] = (".sql",)

# Domain tables in dependency order: children before the parents they reference.
DOMAIN_TABLES_DROP_ORDER: Final[tuple[str, ...]] = ("network_services", "groups")

SERVICE_TYPES: Final[tuple[str, ...]] = (
    "web",
    "database",
    "api",
    "storage",
    "security",
    "monitoring",
)

__all__ = [
    "CONFIG_SCHEMA_VERSION",
    "DATA_DIR",
    "DEFAULT_BUSY_TIMEOUT_MS",
    "DEFAULT_STORE_FILENAMES",
    "DEFAULT_STORE_MODE",
    "DOMAIN_TABLES_DROP_ORDER",
    "LEDGER_TABLE",
    "MIGRATION_EXTENSIONS",
    "SERVICE_TYPES",
    "STORE_MODES",
]
