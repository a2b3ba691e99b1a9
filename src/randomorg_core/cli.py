"""Command line interface for quick allowance checks and one-shot generation."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Awaitable, Callable, Mapping, Sequence
from pathlib import Path
from typing import Any

from randomorg_core.client import RandomOrgClient
from randomorg_core.config import load_config, resolve_api_key
from randomorg_core.dispatcher import DispatcherRegistry
from randomorg_core.observability.logging import setup_logging, shutdown_logging
from randomorg_core.transport import Transport

CommandFn = Callable[[RandomOrgClient, argparse.Namespace], Awaitable[object]]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="randomorg",
        description="Query a RANDOM.ORG API key and generate true random values.",
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to randomorg TOML config (default: ./randomorg.toml if present).",
    )
    common.add_argument("--json", action="store_true", help="Emit JSON output")

    subparsers = parser.add_subparsers(dest="command", required=True)

    usage_parser = subparsers.add_parser(
        "usage",
        parents=[common],
        help="Show the remaining daily bit and request allowance",
    )
    usage_parser.set_defaults(handler=_cmd_usage)

    integers_parser = subparsers.add_parser(
        "integers",
        parents=[common],
        help="Generate random integers in [MIN, MAX]",
        description="Examples:\n  randomorg integers 6 1 49\n  randomorg integers 10 0 1 --json\n",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    integers_parser.add_argument("n", type=int, help="How many integers")
    integers_parser.add_argument("min", type=int, help="Lower bound (inclusive)")
    integers_parser.add_argument("max", type=int, help="Upper bound (inclusive)")
    integers_parser.add_argument(
        "--unique",
        action="store_true",
        help="Draw without replacement (no duplicate values)",
    )
    integers_parser.set_defaults(handler=_cmd_integers)

    uuids_parser = subparsers.add_parser(
        "uuids",
        parents=[common],
        help="Generate version 4 UUIDs",
    )
    uuids_parser.add_argument("n", type=int, help="How many UUIDs")
    uuids_parser.set_defaults(handler=_cmd_uuids)

    return parser


def run_cli(
    argv: Sequence[str] | None = None,
    *,
    transport: Transport | None = None,
    environ: Mapping[str, str] | None = None,
) -> int:
    """Parse argv, run the selected command and return the process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler: CommandFn | None = getattr(namespace, "handler", None)
    if handler is None:
        parser.print_help(sys.stderr)
        return 2

    config_path = Path(namespace.config_path) if namespace.config_path else None
    config = load_config(config_path, environ=environ)
    api_key = resolve_api_key(config, environ)

    setup_logging(config["logging"])
    try:
        result = asyncio.run(_run_command(handler, namespace, config, api_key, transport))
    finally:
        shutdown_logging()

    _emit(result, as_json=bool(namespace.json))
    return 0


async def _run_command(
    handler: CommandFn,
    namespace: argparse.Namespace,
    config: Mapping[str, Any],
    api_key: str,
    transport: Transport | None,
) -> object:
    # A private registry keeps the dispatcher bound to this event loop only.
    client = RandomOrgClient.from_config(
        api_key,
        config,
        transport=transport,
        registry=DispatcherRegistry(),
    )
    async with client:
        return await handler(client, namespace)


async def _cmd_usage(client: RandomOrgClient, args: argparse.Namespace) -> object:
    allowance = await client.dispatcher.get_allowance()
    return allowance.to_dict()


async def _cmd_integers(client: RandomOrgClient, args: argparse.Namespace) -> object:
    return await client.generate_integers(args.n, args.min, args.max, replacement=not args.unique)


async def _cmd_uuids(client: RandomOrgClient, args: argparse.Namespace) -> object:
    return await client.generate_uuids(args.n)


def _emit(result: object, *, as_json: bool) -> None:
    if as_json:
        print(json.dumps(result, sort_keys=True, separators=(",", ":"), ensure_ascii=False))
        return
    if isinstance(result, Mapping):
        for key in sorted(result):
            print(f"{key}: {result[key]}")
        return
    if isinstance(result, list):
        for item in result:
            print(item)
        return
    print(result)


__all__ = ["build_parser", "run_cli"]
