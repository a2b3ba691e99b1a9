"""Process entrypoint: runs the CLI and turns failures into exit codes."""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING

from randomorg_core.config.schema import ConfigError
from randomorg_core.errors import RandomOrgError

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence


class ExitCode(IntEnum):
    """Exit statuses of the ``randomorg`` command."""

    SUCCESS = 0
    CONFIG_ERROR = 2
    SERVICE_ERROR = 3
    INTERNAL_ERROR = 4


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Run ``randomorg`` with ``argv`` and return the process exit status."""

    from randomorg_core.cli import run_cli

    try:
        status: object = run_cli(argv)
    except SystemExit as exc:
        status = exc.code
    except Exception as exc:  # noqa: BLE001 - every failure becomes an exit status here.
        code = classify_failure(exc)
        if code is ExitCode.INTERNAL_ERROR:
            traceback.print_exception(exc, file=sys.stderr)
        else:
            print(str(exc).strip() or type(exc).__name__, file=sys.stderr)
        return int(code)

    if status is None:
        return int(ExitCode.SUCCESS)
    if isinstance(status, int) and status in set(ExitCode):
        return status
    if isinstance(status, str) and status.strip():
        print(status.strip(), file=sys.stderr)
    return int(ExitCode.INTERNAL_ERROR)


def classify_failure(exc: BaseException) -> ExitCode:
    """Map the first recognised exception in ``exc``'s chain to an exit code."""

    for link in _chain(exc):
        if isinstance(link, (ConfigError, ValueError)):
            return ExitCode.CONFIG_ERROR
        if isinstance(link, RandomOrgError):
            return ExitCode.SERVICE_ERROR
    return ExitCode.INTERNAL_ERROR


def _chain(exc: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    link: BaseException | None = exc
    while link is not None and id(link) not in seen:
        seen.add(id(link))
        yield link
        if link.__cause__ is not None:
            link = link.__cause__
        elif not link.__suppress_context__:
            link = link.__context__
        else:
            link = None


def main() -> None:
    """Console-script entrypoint."""

    raise SystemExit(cli_entrypoint())


__all__ = ["ExitCode", "classify_failure", "cli_entrypoint", "main"]
