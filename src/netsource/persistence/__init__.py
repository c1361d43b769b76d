"""
netsource — persistence layer.

File: src/netsource/persistence/__init__.py
Last updated: 2026-10-18

Purpose
- SQLite store lifecycle: connection, baseline schema, migrations, seeding,
  single-flight initialization and reset.

Collaborators should depend on ``SchemaLifecycle`` and the error taxonomy only.
"""

from netsource.persistence.connection import ConnectionManager, close_all_connections
from netsource.persistence.errors import (
    MigrationApplyError,
    ResetError,
    SchemaError,
    SchemaLifecycleError,
    SeedError,
    StorageOpenError,
)
from netsource.persistence.init_guard import InitGuard, InitializationState
from netsource.persistence.lifecycle import PipelineReport, SchemaLifecycle
from netsource.persistence.migrations import (
    MigrationArtifact,
    MigrationRecord,
    MigrationRunner,
    MigrationRunResult,
    SkippedArtifact,
)
from netsource.persistence.schema import SchemaInitializer
from netsource.persistence.seed import SeedCoordinator, SeedDocument, load_seed_document

__all__ = [
    "ConnectionManager",
    "InitGuard",
    "InitializationState",
    "MigrationApplyError",
    "MigrationArtifact",
    "MigrationRecord",
    "MigrationRunResult",
    "MigrationRunner",
    "PipelineReport",
    "ResetError",
    "SchemaError",
    "SchemaInitializer",
    "SchemaLifecycle",
    "SchemaLifecycleError",
    "SeedCoordinator",
    "SeedDocument",
    "SeedError",
    "SkippedArtifact",
    "StorageOpenError",
    "close_all_connections",
    "load_seed_document",
]
