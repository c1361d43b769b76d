"""
netsource config package public API.

File: src/netsource/config/__init__.py
Last updated: 2026-10-18

Purpose
- Export config loading/validation entrypoints and public error types.

Functional requirements
- Support loading from ``netsource.toml`` + ``NETSOURCE_`` env overrides.
- Fail fast with clear structured validation/load errors.
"""

from netsource.config.loader import (
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    ConfigLoadError,
    dump_effective_config,
    load_config,
    load_store_config,
    normalize_paths,
)
from netsource.config.schema import (
    BUNDLED_MIGRATIONS_DIR,
    DEFAULT_CONFIG,
    PATH_FIELDS,
    ConfigSchemaVersion,
    ConfigValidationError,
    ConfigValidationIssue,
    ConfigValidationResult,
    NetsourceConfig,
    StoreConfig,
    StoreMode,
    assert_valid_config,
    default_config,
    default_store_path,
    merge_config,
    migration_guidance,
    validate_config,
)

__all__ = [
    "BUNDLED_MIGRATIONS_DIR",
    "ConfigLoadError",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "NetsourceConfig",
    "PATH_FIELDS",
    "StoreConfig",
    "StoreMode",
    "assert_valid_config",
    "default_config",
    "default_store_path",
    "dump_effective_config",
    "load_config",
    "load_store_config",
    "merge_config",
    "migration_guidance",
    "normalize_paths",
    "validate_config",
]
