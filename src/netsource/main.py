"""Executable CLI entrypoint for ``netsource``."""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING

from netsource.config import ConfigLoadError, ConfigValidationError
from netsource.persistence.errors import SchemaLifecycleError

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence


class ExitCode(IntEnum):
    """Process exit codes of the ``netsource`` command."""

    SUCCESS = 0
    LIFECYCLE_ERROR = 1
    CONFIG_ERROR = 2
    INTERNAL_ERROR = 3


_INTERRUPTED = 128 + 2

_ROUTES: tuple[tuple[tuple[type[BaseException], ...], ExitCode], ...] = (
    ((ConfigLoadError, ConfigValidationError), ExitCode.CONFIG_ERROR),
    ((SchemaLifecycleError,), ExitCode.LIFECYCLE_ERROR),
)


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Entrypoint used by ``python -m netsource`` and the ``netsource`` script."""

    try:
        from netsource.ui.cli import run_cli

        return _as_exit_code(run_cli(argv))
    except SystemExit as exc:
        return _as_exit_code(exc.code)
    except KeyboardInterrupt:
        print("interrupted", file=sys.stderr)
        return _INTERRUPTED
    except Exception as exc:  # noqa: BLE001 - CLI boundary normalization.
        code = _classify(exc)
        if code is ExitCode.INTERNAL_ERROR:
            traceback.print_exception(exc, file=sys.stderr)
        else:
            print(str(exc).strip() or type(exc).__name__, file=sys.stderr)
        return int(code)


def _as_exit_code(raw: object) -> int:
    """Map a handler result or ``SystemExit.code`` onto an integer exit status."""

    if raw is None:
        return int(ExitCode.SUCCESS)
    if isinstance(raw, int) and not isinstance(raw, bool):
        return raw
    if isinstance(raw, str) and raw.strip():
        print(raw.strip(), file=sys.stderr)
    return int(ExitCode.INTERNAL_ERROR)


def _classify(exc: BaseException) -> ExitCode:
    for link in _causes(exc):
        for types, code in _ROUTES:
            if isinstance(link, types):
                return code
    return ExitCode.INTERNAL_ERROR


def _causes(exc: BaseException) -> Iterator[BaseException]:
    """Yield ``exc`` and the exceptions it was raised from, following implicit context."""

    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        if current.__cause__ is not None:
            current = current.__cause__
        elif not current.__suppress_context__:
            current = current.__context__
        else:
            current = None


__all__ = ["ExitCode", "cli_entrypoint"]
