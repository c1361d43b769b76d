"""Command-line interface router for netsource."""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from netsource.config import (
    ConfigLoadError,
    ConfigValidationError,
    StoreConfig,
    dump_effective_config,
    load_config,
)
from netsource.constants import STORE_MODES
from netsource.observability import setup_logging, shutdown_logging
from netsource.persistence import (
    MigrationApplyError,
    MigrationRecord,
    SchemaLifecycle,
    SchemaLifecycleError,
)
from netsource.ui.render import CLIRenderer, create_renderer, render_pipeline_report


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router."""

    parser = argparse.ArgumentParser(
        prog="netsource",
        description=(
            "netsource — schema lifecycle manager for the network source-of-truth store.\n\n"
            "Common workflows:\n"
            "  netsource init              Create/upgrade the store and seed reference data\n"
            "  netsource status --json     Show applied/pending migrations and health\n"
            "  netsource reset --yes       Drop everything and rebuild from scratch\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to netsource TOML config (default: ./netsource.toml if present).",
    )
    common.add_argument("--db", default=None, help="Store file path (overrides store.path).")
    common.add_argument(
        "--mode",
        choices=STORE_MODES,
        default=None,
        help="Deployment mode; selects the default store file when no path is set.",
    )
    common.add_argument(
        "--migrations-dir",
        default=None,
        help="Directory of <version>_<name>.sql migration files.",
    )
    common.add_argument("--json", action="store_true", help="Emit deterministic JSON output")
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Also stream structured logs to stderr.",
    )
    common.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser(
        "init",
        parents=[common],
        help="Run the initialization pipeline",
        description=(
            "Create the ledger and baseline schema, apply pending migrations, and seed\n"
            "reference data into empty tables.\n\n"
            "Examples:\n"
            "  netsource init\n"
            "  netsource init --mode test --json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    init_parser.add_argument(
        "--no-seed", action="store_true", help="Skip reference data seeding"
    )
    init_parser.set_defaults(handler=_cmd_init)

    status_parser = subparsers.add_parser(
        "status",
        parents=[common],
        help="Show applied and pending migrations plus store health",
    )
    status_parser.set_defaults(handler=_cmd_status)

    reset_parser = subparsers.add_parser(
        "reset",
        parents=[common],
        help="Drop all schema objects and rerun initialization (destructive)",
    )
    reset_parser.add_argument(
        "--yes", action="store_true", help="Confirm that all stored data may be destroyed"
    )
    reset_parser.set_defaults(handler=_cmd_reset)

    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Print the effective configuration as JSON",
    )
    config_parser.set_defaults(handler=_cmd_config)

    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


def main(argv: Sequence[str] | None = None) -> int:
    return run_cli(argv)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_init(args: argparse.Namespace) -> int:
    with _lifecycle_session(args) as lifecycle:
        try:
            report = lifecycle.ensure_initialized()
        except SchemaLifecycleError as exc:
            return _fail(args, "init", exc)

        if _flag(args, "json"):
            _emit_json({"command": "init", "status": "ok", "report": report.to_dict()})
            return 0

        renderer = _get_renderer(args)
        renderer.heading(f"Initialized store {report.db_path}")
        render_pipeline_report(renderer, report)
        renderer.next_steps(["netsource status"])
        return 0


def _cmd_status(args: argparse.Namespace) -> int:
    with _lifecycle_session(args) as lifecycle:
        store_exists = lifecycle.store_path.exists()
        discovery_error: str | None = None
        try:
            discovery = lifecycle.migrations.discover(create_missing=False)
            on_disk = [(item.version, item.filename) for item in discovery.artifacts]
            skipped = [{"filename": s.filename, "reason": s.reason} for s in discovery.skipped]
        except MigrationApplyError as exc:
            discovery_error = str(exc)
            on_disk, skipped = [], []

        applied: list[MigrationRecord] = []
        if store_exists:
            health = lifecycle.health()
            if health["status"] == "healthy":
                try:
                    applied = lifecycle.get_applied_migrations()
                except SchemaLifecycleError as exc:
                    return _fail(args, "status", exc)
        else:
            health = {
                "status": "unhealthy",
                "state": lifecycle.state.value,
                "database": {
                    "status": "disconnected",
                    "path": str(lifecycle.store_path),
                    "error": "store file does not exist; run `netsource init`",
                },
            }

        applied_versions = {record.version for record in applied}
        pending = [filename for version, filename in on_disk if version not in applied_versions]
        payload: dict[str, Any] = {
            "command": "status",
            "store": str(lifecycle.store_path),
            "health": health,
            "applied": [
                {"version": r.version, "name": r.name, "applied_at": r.applied_at}
                for r in applied
            ],
            "pending": pending,
            "skipped": skipped,
        }
        if discovery_error is not None:
            payload["discovery_error"] = discovery_error
        exit_code = 0 if health["status"] == "healthy" and discovery_error is None else 1

        if _flag(args, "json"):
            _emit_json(payload)
            return exit_code

        renderer = _get_renderer(args)
        renderer.kv("Store", lifecycle.store_path)
        if health["status"] == "healthy":
            renderer.ok(f"database connected ({len(health['database']['tables'])} tables)")
        else:
            renderer.fail(f"database: {health['database']['error']}")
        renderer.table(
            ["VERSION", "NAME", "APPLIED AT"],
            [[str(r.version), r.name, r.applied_at] for r in applied],
            title="Applied migrations:",
            empty="(none)",
        )
        renderer.section("Pending migrations:")
        renderer.items(pending or ["(none)"])
        for item in skipped:
            renderer.warning(f"skipped {item['filename']}: {item['reason']}")
        if discovery_error is not None:
            renderer.fail(discovery_error)
        if pending:
            renderer.next_steps(["netsource init"])
        return exit_code


def _cmd_reset(args: argparse.Namespace) -> int:
    if not _flag(args, "yes"):
        raise CLIError("refusing to drop all data without --yes", exit_code=2)

    with _lifecycle_session(args) as lifecycle:
        try:
            report = lifecycle.reset_all()
        except SchemaLifecycleError as exc:
            return _fail(args, "reset", exc)

        if _flag(args, "json"):
            _emit_json({"command": "reset", "status": "ok", "report": report.to_dict()})
            return 0

        renderer = _get_renderer(args)
        renderer.heading(f"Reset store {report.db_path}")
        render_pipeline_report(renderer, report)
        return 0


def _cmd_config(args: argparse.Namespace) -> int:
    config, _ = _load_effective_config(args)
    print(dump_effective_config(config))
    return 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@contextmanager
def _lifecycle_session(args: argparse.Namespace) -> Iterator[SchemaLifecycle]:
    config, base_dir = _load_effective_config(args)
    observability = config.get("observability")
    setup_logging(observability if isinstance(observability, Mapping) else None)
    lifecycle = SchemaLifecycle(StoreConfig.from_mapping(config, base_dir=base_dir))
    try:
        yield lifecycle
    finally:
        lifecycle.close_connection()
        shutdown_logging()


def _load_effective_config(args: argparse.Namespace) -> tuple[dict[str, Any], Path]:
    config_path = _optional_str(getattr(args, "config_path", None))
    overrides: dict[str, object] = {
        "store.path": _absolute(_optional_str(getattr(args, "db", None))),
        "store.mode": _optional_str(getattr(args, "mode", None)),
        "store.migrations_dir": _absolute(_optional_str(getattr(args, "migrations_dir", None))),
        "store.seed": False if _flag(args, "no_seed") else None,
        "observability.log_to_stdout": True if _flag(args, "verbose") else None,
    }
    try:
        config = load_config(config_path, cli_overrides=overrides)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc

    if config_path is None:
        return config, Path.cwd()
    return config, Path(config_path).expanduser().resolve().parent


def _fail(args: argparse.Namespace, command: str, exc: SchemaLifecycleError) -> int:
    """Report a lifecycle failure and return exit code 1.

    Runs inside ``_lifecycle_session``, so it returns rather than raising the
    frozen ``CLIError`` through the context manager.
    """

    if _flag(args, "json"):
        _emit_json(
            {
                "command": command,
                "status": "error",
                "error": {"type": type(exc).__name__, "message": str(exc)},
            }
        )
        return 1
    print(f"error: {exc}", file=sys.stderr)
    return 1


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    return create_renderer(no_color=_flag(args, "no_color"), verbose=_flag(args, "verbose"))


def _absolute(value: str | None) -> str | None:
    if value is None:
        return None
    return Path(value).expanduser().resolve().as_posix()


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise CLIError("invalid optional string argument", exit_code=2)
    cleaned = value.strip()
    return cleaned or None


def _flag(args: argparse.Namespace, name: str) -> bool:
    value = getattr(args, name, False)
    return bool(value)


__all__ = ["CLIError", "build_parser", "main", "run_cli"]
