"""
netsource — runtime config loader

File: src/netsource/config/loader.py
Last updated: 2026-10-18

Purpose
- Build the effective configuration from four layers, lowest first: built-in defaults,
  ``netsource.toml``, ``NETSOURCE_*`` environment variables, and CLI flags.

Functional requirements
- An explicitly named config file must exist; the implicit ``./netsource.toml`` is optional.
- Environment values are coerced to the type of the key they bind; a bad value names the
  variable in the error.
- Relative paths resolve against the directory of the config file (or the working
  directory when no file is named).
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any, Final

from netsource.config.schema import (
    PATH_FIELDS,
    StoreConfig,
    assert_valid_config,
    default_config,
    merge_config,
)

DEFAULT_CONFIG_FILE: Final[str] = "netsource.toml"
ENV_PREFIX: Final[str] = "NETSOURCE_"


class ConfigLoadError(ValueError):
    """Raised when a config source cannot be read or an override cannot be coerced."""


def _as_str(raw: str) -> object:
    return raw


def _as_int(raw: str) -> object:
    try:
        return int(raw)
    except ValueError:
        raise ValueError("must be an integer") from None


def _as_bool(raw: str) -> object:
    lowered = raw.lower()
    if lowered in {"1", "true", "t", "yes", "y", "on"}:
        return True
    if lowered in {"0", "false", "f", "no", "n", "off"}:
        return False
    raise ValueError("must be a boolean (true/false/1/0/yes/no/on/off)")


# Keys that may be set from the environment, with the coercion each one needs.
# ``meta.schema_version`` has no binding.
ENV_KEYS: Final[tuple[tuple[str, Callable[[str], object]], ...]] = (
    ("store.path", _as_str),
    ("store.mode", _as_str),
    ("store.busy_timeout_ms", _as_int),
    ("store.readonly", _as_bool),
    ("store.migrations_dir", _as_str),
    ("store.seed", _as_bool),
    ("observability.log_level", _as_str),
    ("observability.log_dir", _as_str),
    ("observability.log_to_stdout", _as_bool),
)


def env_var_name(dotted_key: str) -> str:
    """``store.busy_timeout_ms`` -> ``NETSOURCE_STORE_BUSY_TIMEOUT_MS``."""

    return ENV_PREFIX + dotted_key.replace(".", "_").upper()


def load_config(
    config_path: str | Path | None = None,
    *,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Return the validated effective config as a plain nested dict."""

    file_path = _config_file(config_path)
    file_layer = _read_toml(file_path, required=config_path is not None)
    # File issues are reported before any override is applied.
    assert_valid_config(merge_config(default_config(), file_layer))

    effective = merge_config({}, default_config())
    for layer in (
        file_layer,
        _env_layer(os.environ if environ is None else environ),
        _cli_layer(cli_overrides or {}),
    ):
        effective = merge_config(effective, layer)

    return assert_valid_config(normalize_paths(effective, base_dir=file_path.parent))


def load_store_config(
    config_path: str | Path | None = None,
    *,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> StoreConfig:
    loaded = load_config(config_path, cli_overrides=cli_overrides, environ=environ)
    return StoreConfig.from_mapping(loaded, base_dir=_config_file(config_path).parent)


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Return a copy of ``config`` with every path field made absolute and normalized."""

    result = merge_config({}, config)
    for section, key in PATH_FIELDS:
        table = result.get(section)
        if not isinstance(table, dict) or not isinstance(table.get(key), str):
            continue
        candidate = Path(os.path.expandvars(table[key])).expanduser()
        if not candidate.is_absolute():
            candidate = base_dir / candidate
        table[key] = Path(os.path.normpath(candidate)).as_posix()
    return result


def dump_effective_config(config: Mapping[str, object]) -> str:
    return json.dumps(config, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _config_file(config_path: str | Path | None) -> Path:
    if config_path is None:
        return (Path.cwd() / DEFAULT_CONFIG_FILE).resolve()
    return Path(config_path).expanduser().resolve()


def _read_toml(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.is_file():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc


def _env_layer(environ: Mapping[str, str]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for dotted_key, coerce in ENV_KEYS:
        name = env_var_name(dotted_key)
        raw = environ.get(name)
        if raw is None:
            continue
        try:
            value = coerce(raw.strip())
        except ValueError as exc:
            raise ConfigLoadError(f"{name} ({dotted_key}) {exc}") from exc
        _assign(layer, dotted_key, value)
    return layer


def _cli_layer(overrides: Mapping[str, object]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for dotted_key, value in overrides.items():
        if value is None:
            continue
        if not dotted_key or any(not part for part in dotted_key.split(".")):
            raise ConfigLoadError(f"invalid CLI override key {dotted_key!r}")
        _assign(layer, dotted_key, value)
    return layer


def _assign(target: dict[str, Any], dotted_key: str, value: object) -> None:
    *parents, leaf = dotted_key.split(".")
    node = target
    for part in parents:
        node = node.setdefault(part, {})
    node[leaf] = value


__all__ = [
    "DEFAULT_CONFIG_FILE",
    "ENV_KEYS",
    "ENV_PREFIX",
    "ConfigLoadError",
    "dump_effective_config",
    "env_var_name",
    "load_config",
    "load_store_config",
    "normalize_paths",
]
