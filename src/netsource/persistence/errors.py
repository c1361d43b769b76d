"""Error taxonomy for the schema lifecycle pipeline.

Every error names the operation that failed and chains the underlying cause.
Only ``SchemaLifecycleError`` subclasses cross the ``SchemaLifecycle`` boundary.
"""

from __future__ import annotations

from pathlib import Path


class SchemaLifecycleError(RuntimeError):
    """Base class for storage lifecycle failures."""


class StorageOpenError(SchemaLifecycleError):
    """Raised when the store directory or file cannot be opened and configured."""

    def __init__(self, path: str | Path, message: str) -> None:
        self.path = Path(path)
        super().__init__(f"failed to open store {self.path}: {message}")


class SchemaError(SchemaLifecycleError):
    """Raised when the ledger table or baseline schema cannot be applied."""


class MigrationApplyError(SchemaLifecycleError):
    """Raised when a migration artifact cannot be applied.

    The migration's transaction has been rolled back; no ledger row exists for
    ``version`` and later migrations were not attempted.
    """

    def __init__(self, version: int, filename: str, cause: BaseException) -> None:
        self.version = version
        self.filename = filename
        self.cause = cause
        super().__init__(f"failed to apply migration {filename} (version {version}): {cause}")


class SeedError(SchemaLifecycleError):
    """Raised when reference data cannot be loaded or inserted."""


class ResetError(SchemaLifecycleError):
    """Raised when schema objects cannot be dropped during a reset."""


__all__ = [
    "MigrationApplyError",
    "ResetError",
    "SchemaError",
    "SchemaLifecycleError",
    "SeedError",
    "StorageOpenError",
]
