"""
netsource — unit tests for config loader

File: tests/unit/config/test_loader.py
Last updated: 2026-10-18

Purpose
- Validate deterministic config loading from defaults, TOML, env overrides, and CLI overrides.

What this test file should cover
- Precedence: CLI > env > file > defaults.
- Deterministic env var path mapping and type coercion.
- Path normalization relative to the config file.
- Effective config dumping and ``StoreConfig`` resolution.

Non-functional requirements
- Deterministic output across repeated loads.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from netsource.config.loader import (
    ENV_KEYS,
    ConfigLoadError,
    dump_effective_config,
    env_var_name,
    load_config,
    load_store_config,
)
from netsource.config.schema import BUNDLED_MIGRATIONS_DIR, ConfigValidationError


def _write_config(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def test_loader_precedence_default_file_env_cli(tmp_path: Path) -> None:
    config_path = tmp_path / "netsource.toml"
    default_path = tmp_path / "default.toml"
    _write_config(default_path, "")
    _write_config(
        config_path,
        """
[store]
busy_timeout_ms = 1000
""".strip(),
    )

    default_loaded = load_config(default_path, environ={})
    file_loaded = load_config(config_path, environ={})
    env_loaded = load_config(config_path, environ={"NETSOURCE_STORE_BUSY_TIMEOUT_MS": "2000"})
    cli_loaded = load_config(
        config_path,
        environ={"NETSOURCE_STORE_BUSY_TIMEOUT_MS": "2000"},
        cli_overrides={"store.busy_timeout_ms": 3000},
    )

    assert default_loaded["store"]["busy_timeout_ms"] == 5000
    assert file_loaded["store"]["busy_timeout_ms"] == 1000
    assert env_loaded["store"]["busy_timeout_ms"] == 2000
    assert cli_loaded["store"]["busy_timeout_ms"] == 3000


def test_missing_explicit_config_file_fails(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError, match="config file not found"):
        load_config(tmp_path / "absent.toml", environ={})


def test_invalid_toml_fails_with_path(tmp_path: Path) -> None:
    config_path = tmp_path / "netsource.toml"
    _write_config(config_path, "[store\nmode = ")

    with pytest.raises(ConfigLoadError, match="invalid TOML"):
        load_config(config_path, environ={})


def test_implicit_config_file_is_optional(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.chdir(tmp_path)

    loaded = load_config(environ={})

    assert loaded["store"]["mode"] == "development"
    assert loaded["observability"]["log_dir"] == (tmp_path.resolve() / "logs").as_posix()


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("1", True), ("YES", True), ("on", True), ("0", False), ("off", False), ("n", False)],
)
def test_env_boolean_coercion(tmp_path: Path, raw: str, expected: bool) -> None:
    config_path = tmp_path / "netsource.toml"
    _write_config(config_path, "")

    loaded = load_config(config_path, environ={"NETSOURCE_STORE_READONLY": raw})

    assert loaded["store"]["readonly"] is expected


def test_env_invalid_values_name_the_variable(tmp_path: Path) -> None:
    config_path = tmp_path / "netsource.toml"
    _write_config(config_path, "")

    with pytest.raises(ConfigLoadError, match="NETSOURCE_STORE_READONLY"):
        load_config(config_path, environ={"NETSOURCE_STORE_READONLY": "maybe"})
    with pytest.raises(ConfigLoadError, match="NETSOURCE_STORE_BUSY_TIMEOUT_MS"):
        load_config(config_path, environ={"NETSOURCE_STORE_BUSY_TIMEOUT_MS": "soon"})


def test_env_mode_is_validated(tmp_path: Path) -> None:
    config_path = tmp_path / "netsource.toml"
    _write_config(config_path, "")

    with pytest.raises(ConfigValidationError, match="store.mode"):
        load_config(config_path, environ={"NETSOURCE_STORE_MODE": "staging"})


def test_unrelated_env_vars_are_ignored(tmp_path: Path) -> None:
    config_path = tmp_path / "netsource.toml"
    _write_config(config_path, "")

    loaded = load_config(
        config_path,
        environ={
            "NETSOURCE_UNKNOWN_KEY": "x",
            "PATH": "/bin",
            "NETSOURCE_META_SCHEMA_VERSION": "9",
        },
    )

    assert loaded["meta"]["schema_version"] == 1


def test_paths_are_normalized_relative_to_config_file(tmp_path: Path) -> None:
    config_path = tmp_path / "conf" / "netsource.toml"
    _write_config(
        config_path,
        """
[store]
path = "../state/./inventory.db"
migrations_dir = "sql"

[observability]
log_dir = "/var/log/netsource"
""".strip(),
    )

    loaded = load_config(config_path, environ={})
    base = tmp_path.resolve()

    assert loaded["store"]["path"] == (base / "state" / "inventory.db").as_posix()
    assert loaded["store"]["migrations_dir"] == (base / "conf" / "sql").as_posix()
    assert loaded["observability"]["log_dir"] == "/var/log/netsource"


def test_env_store_path_binding_exists_without_default(tmp_path: Path) -> None:
    config_path = tmp_path / "netsource.toml"
    _write_config(config_path, "")

    loaded = load_config(config_path, environ={"NETSOURCE_STORE_PATH": "relative/store.db"})

    assert loaded["store"]["path"] == (tmp_path.resolve() / "relative" / "store.db").as_posix()


def test_cli_none_overrides_are_ignored(tmp_path: Path) -> None:
    config_path = tmp_path / "netsource.toml"
    _write_config(config_path, '[store]\nmode = "test"\n')

    loaded = load_config(
        config_path, environ={}, cli_overrides={"store.mode": None, "store.seed": False}
    )

    assert loaded["store"]["mode"] == "test"
    assert loaded["store"]["seed"] is False


def test_dump_effective_config_is_deterministic(tmp_path: Path) -> None:
    config_path = tmp_path / "netsource.toml"
    _write_config(config_path, '[store]\nmode = "production"\n')

    first = dump_effective_config(load_config(config_path, environ={}))
    second = dump_effective_config(load_config(config_path, environ={}))

    assert first == second
    decoded = json.loads(first)
    assert decoded["store"]["mode"] == "production"
    assert list(decoded) == sorted(decoded)


def test_load_store_config_defaults_follow_mode(tmp_path: Path) -> None:
    config_path = tmp_path / "netsource.toml"
    _write_config(config_path, '[store]\nmode = "test"\n')

    store = load_store_config(config_path, environ={})

    assert store.mode == "test"
    assert store.path == tmp_path.resolve() / "data" / "network-source-truth.test.db"
    assert store.migrations_dir == BUNDLED_MIGRATIONS_DIR
    assert store.busy_timeout_ms == 5000
    assert store.seed is True
    assert store.readonly is False


@pytest.mark.parametrize(
    ("mode", "filename"),
    [
        ("development", "network-source-truth.dev.db"),
        ("production", "network-source-truth.db"),
        ("test", "network-source-truth.test.db"),
    ],
)
def test_default_store_filename_per_mode(tmp_path: Path, mode: str, filename: str) -> None:
    config_path = tmp_path / "netsource.toml"
    _write_config(config_path, "")

    store = load_store_config(config_path, environ={"NETSOURCE_STORE_MODE": mode})

    assert store.path.name == filename


def test_env_var_names_follow_dotted_keys() -> None:
    assert env_var_name("store.busy_timeout_ms") == "NETSOURCE_STORE_BUSY_TIMEOUT_MS"
    assert {env_var_name(key) for key, _ in ENV_KEYS} >= {
        "NETSOURCE_STORE_PATH",
        "NETSOURCE_STORE_MODE",
        "NETSOURCE_STORE_SEED",
        "NETSOURCE_OBSERVABILITY_LOG_LEVEL",
    }


def test_file_issues_are_reported_even_when_env_would_fix_them(tmp_path: Path) -> None:
    config_path = tmp_path / "netsource.toml"
    _write_config(config_path, '[store]\nmode = "staging"\n')

    with pytest.raises(ConfigValidationError, match="store.mode"):
        load_config(config_path, environ={"NETSOURCE_STORE_MODE": "test"})


def test_invalid_cli_override_key_is_rejected(tmp_path: Path) -> None:
    config_path = tmp_path / "netsource.toml"
    _write_config(config_path, "")

    with pytest.raises(ConfigLoadError, match="invalid CLI override key"):
        load_config(config_path, environ={}, cli_overrides={"store..mode": "test"})
