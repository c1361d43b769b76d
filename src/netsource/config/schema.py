"""
netsource — configuration schema and validation.

File: src/netsource/config/schema.py
Last updated: 2026-10-18

Purpose
- Define authoritative configuration defaults and strict validation rules.
- Resolve the validated mapping into a typed ``StoreConfig``.

Functional requirements
- Validate config payloads and return structured errors (field path + message).
- Select a mode-dependent default store path when no explicit path is set.

Non-functional requirements
- Keep rules deterministic and easy to audit.
"""

from __future__ import annotations

import copy
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final, Literal, NotRequired, TypedDict

from netsource.constants import (
    CONFIG_SCHEMA_VERSION,
    DATA_DIR,
    DEFAULT_BUSY_TIMEOUT_MS,
    DEFAULT_STORE_FILENAMES,
    DEFAULT_STORE_MODE,
    STORE_MODES,
)

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION
StoreMode = Literal["development", "production", "test"]

BUNDLED_MIGRATIONS_DIR: Final[Path] = (
    Path(__file__).resolve().parents[1] / "persistence" / "sql"
)

# Config paths that should be normalized relative to config file location.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("store", "path"),
    ("store", "migrations_dir"),
    ("observability", "log_dir"),
)


class MetaConfig(TypedDict):
    schema_version: int


class StoreSection(TypedDict):
    mode: StoreMode
    busy_timeout_ms: int
    readonly: bool
    seed: bool
    path: NotRequired[str]
    migrations_dir: NotRequired[str]


class ObservabilityConfig(TypedDict):
    log_level: str
    log_dir: str
    log_to_stdout: bool


class NetsourceConfig(TypedDict):
    meta: MetaConfig
    store: StoreSection
    observability: ObservabilityConfig


DEFAULT_CONFIG: Final[NetsourceConfig] = {
    "meta": {"schema_version": ConfigSchemaVersion},
    "store": {
        "mode": "development",
        "busy_timeout_ms": DEFAULT_BUSY_TIMEOUT_MS,
        "readonly": False,
        "seed": True,
    },
    "observability": {
        "log_level": "INFO",
        "log_dir": "logs",
        "log_to_stdout": False,
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Outcome of ``validate_config``; ``config`` is set only when there are no issues."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        lines = [f"- {issue.path}: {issue.message}" for issue in self.issues]
        super().__init__("invalid config:\n" + ("\n".join(lines) or "unknown validation failure"))


@dataclass(frozen=True, slots=True)
class StoreConfig:
    """Resolved settings for opening and initializing the store."""

    path: Path
    mode: StoreMode = "development"
    busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS
    readonly: bool = False
    migrations_dir: Path = BUNDLED_MIGRATIONS_DIR
    seed: bool = True

    def __post_init__(self) -> None:
        if self.mode not in STORE_MODES:
            raise ValueError(f"mode must be one of {', '.join(STORE_MODES)}; got {self.mode!r}")
        if self.busy_timeout_ms < 0:
            raise ValueError("busy_timeout_ms must be >= 0")

    @classmethod
    def from_mapping(
        cls,
        config: Mapping[str, object],
        *,
        base_dir: Path | None = None,
    ) -> StoreConfig:
        """Build from a validated config mapping (see ``load_config``).

        Missing keys fall back to defaults; a missing ``path`` selects the mode's default
        store file under ``base_dir`` (the working directory when not given).
        """

        raw_section = config.get("store")
        section: Mapping[str, object] = raw_section if isinstance(raw_section, Mapping) else {}
        root = Path.cwd() if base_dir is None else base_dir
        mode = str(section.get("mode", DEFAULT_STORE_MODE))

        def resolve(key: str, fallback: Path) -> Path:
            raw = section.get(key)
            candidate = Path(raw) if isinstance(raw, str) else fallback
            return candidate if candidate.is_absolute() else root / candidate

        timeout = section.get("busy_timeout_ms")
        return cls(
            path=resolve("path", default_store_path(mode, root)),
            mode=mode,  # type: ignore[arg-type]
            busy_timeout_ms=timeout if isinstance(timeout, int) else DEFAULT_BUSY_TIMEOUT_MS,
            readonly=bool(section.get("readonly", False)),
            migrations_dir=resolve("migrations_dir", BUNDLED_MIGRATIONS_DIR),
            seed=bool(section.get("seed", True)),
        )


def default_config() -> NetsourceConfig:
    """Return a fresh deep copy of the built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def default_store_path(mode: str, base_dir: Path) -> Path:
    """Return the store file a deployment mode uses when no path is configured."""

    try:
        filename = DEFAULT_STORE_FILENAMES[mode]
    except KeyError:
        raise ValueError(f"unknown store mode {mode!r}") from None
    return base_dir / DATA_DIR / filename


def migration_guidance(found_version: int) -> str:
    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade netsource.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade the netsource runtime"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deep-merge ``overlay`` onto a copy of ``base``; neither input is modified."""

    merged: dict[str, Any] = {key: copy.deepcopy(value) for key, value in base.items()}
    for key, value in overlay.items():
        if isinstance(value, Mapping):
            current = merged.get(key)
            merged[key] = merge_config(current if isinstance(current, Mapping) else {}, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class _Invalid(Exception):
    """A single field failed its check; the message becomes the issue text."""


def _text(value: object) -> str:
    if not isinstance(value, str):
        raise _Invalid(f"expected string, got {type(value).__name__}")
    cleaned = value.strip()
    if not cleaned:
        raise _Invalid("must not be empty")
    return cleaned


def _path_text(value: object) -> str:
    cleaned = _text(value)
    if "\x00" in cleaned:
        raise _Invalid("must not contain NUL bytes")
    return cleaned


def _flag(value: object) -> bool:
    if not isinstance(value, bool):
        raise _Invalid(f"expected boolean, got {type(value).__name__}")
    return value


def _integer(minimum: int) -> Callable[[object], int]:
    def check(value: object) -> int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise _Invalid(f"expected integer, got {type(value).__name__}")
        if value < minimum:
            raise _Invalid(f"must be >= {minimum}")
        return value

    return check


def _choice(*allowed: str) -> Callable[[object], str]:
    def check(value: object) -> str:
        cleaned = _text(value)
        if cleaned not in allowed:
            raise _Invalid(
                f"invalid value {cleaned!r}; expected one of: {', '.join(sorted(allowed))}"
            )
        return cleaned

    return check


def _schema_version(value: object) -> int:
    version = _integer(1)(value)
    if version != ConfigSchemaVersion:
        raise _Invalid(migration_guidance(version))
    return version


@dataclass(frozen=True, slots=True)
class _Field:
    check: Callable[[object], object]
    required: bool = True


_SCHEMA: Final[dict[str, dict[str, _Field]]] = {
    "meta": {"schema_version": _Field(_schema_version)},
    "store": {
        "mode": _Field(_choice(*STORE_MODES)),
        "busy_timeout_ms": _Field(_integer(0)),
        "readonly": _Field(_flag),
        "seed": _Field(_flag),
        "path": _Field(_path_text, required=False),
        "migrations_dir": _Field(_path_text, required=False),
    },
    "observability": {
        "log_level": _Field(_choice("DEBUG", "INFO", "WARNING", "ERROR")),
        "log_dir": _Field(_path_text),
        "log_to_stdout": _Field(_flag),
    },
}


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Check ``config`` against the schema and collect every issue with its dotted path.

    Issues are ordered: unknown then missing keys at each level (alphabetically), and
    sections in schema order.
    """

    issues: list[ConfigValidationIssue] = []

    def report(path: str, message: str) -> None:
        issues.append(ConfigValidationIssue(path=path, message=message))

    if not isinstance(config, Mapping):
        report("<root>", f"expected object, got {type(config).__name__}")
        return ConfigValidationResult(config=None, issues=tuple(issues))

    for key in sorted(str(name) for name in config if name not in _SCHEMA):
        report(key, "unknown field")
    for section in sorted(name for name in _SCHEMA if name not in config):
        report(section, "missing required field")

    validated: dict[str, Any] = {}
    for section, fields in _SCHEMA.items():
        if section not in config:
            continue
        payload = config[section]
        if not isinstance(payload, Mapping):
            report(section, f"expected object, got {type(payload).__name__}")
            continue
        for key in sorted(str(name) for name in payload if name not in fields):
            report(f"{section}.{key}", "unknown field")
        for key in sorted(name for name, rule in fields.items() if rule.required):
            if key not in payload:
                report(f"{section}.{key}", "missing required field")

        values: dict[str, Any] = {}
        for key, rule in fields.items():
            if key not in payload:
                continue
            try:
                values[key] = rule.check(payload[key])
            except _Invalid as exc:
                report(f"{section}.{key}", str(exc))
        validated[section] = values

    if issues:
        return ConfigValidationResult(config=None, issues=tuple(issues))
    return ConfigValidationResult(config=validated, issues=())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


__all__ = [
    "BUNDLED_MIGRATIONS_DIR",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "NetsourceConfig",
    "PATH_FIELDS",
    "StoreConfig",
    "StoreMode",
    "assert_valid_config",
    "default_config",
    "default_store_path",
    "merge_config",
    "migration_guidance",
    "validate_config",
]
