#!/usr/bin/env python3
"""
File Share CLI Entrypoint

Commands:
    fileshare put KEY FILE      Store FILE (or - for stdin) under KEY
    fileshare get KEY [-o OUT]  Write content to OUT (default: stdout)
    fileshare hash KEY          Print SHA-256 of content
    fileshare exists KEY        Exit 0 if present, 1 if not
    fileshare update KEY FILE   Overwrite existing content
    fileshare rm KEY            Delete content

Usage:
    python -m fileshare --dir ./data put report.pdf ./report.pdf
    python -m fileshare --ids put - ./scan.png       # generated id

Exit codes: 0 success, 1 operation failure, 2 usage or configuration error.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import shutil
import signal
import sys
from pathlib import Path
from typing import Optional, Sequence

from fileshare.core.cancellation import CancellationToken
from fileshare.core.config import FileShareConfig
from fileshare.core.results import OperationResult
from fileshare.core.types import ContentId, ContentPayload
from fileshare.observability.logging import LogLevel, setup_logging
from fileshare.storage.content_store import ContentStore

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fileshare",
        description="Filesystem-backed key-addressed blob store",
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )
    parser.add_argument(
        "--dir",
        type=Path,
        default=None,
        help="Storage directory (default: FILESHARE_STORAGE_DIR or ./data/files)",
    )
    parser.add_argument(
        "--ids",
        action="store_true",
        help="Address content by generated id with inferred extension",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (default: FILESHARE_LOG_LEVEL or INFO)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    put_parser = subparsers.add_parser("put", help="Store content")
    put_parser.add_argument("key", help="Key; with --ids, - generates a new id")
    put_parser.add_argument("file", help="Source file, or - for stdin")

    get_parser = subparsers.add_parser("get", help="Retrieve content")
    get_parser.add_argument("key")
    get_parser.add_argument("-o", "--output", type=Path, default=None, help="Output file")

    hash_parser = subparsers.add_parser("hash", help="Print SHA-256 of content")
    hash_parser.add_argument("key")

    exists_parser = subparsers.add_parser("exists", help="Check presence")
    exists_parser.add_argument("key")

    update_parser = subparsers.add_parser("update", help="Overwrite existing content")
    update_parser.add_argument("key")
    update_parser.add_argument("file", help="Source file, or - for stdin")

    rm_parser = subparsers.add_parser("rm", help="Delete content")
    rm_parser.add_argument("key")

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main CLI entrypoint."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return EXIT_USAGE

    config_result = FileShareConfig.from_env()
    if config_result.is_err():
        print(config_result.error, file=sys.stderr)
        return EXIT_USAGE
    config = config_result.unwrap()
    if args.dir is not None:
        config = config.with_root(args.dir)

    validation = config.validate()
    if validation.is_err():
        print(f"Configuration error: {validation.error}", file=sys.stderr)
        return EXIT_USAGE

    level_name = args.log_level or config.observability.log_level
    try:
        level = LogLevel.from_name(level_name)
    except KeyError:
        print(f"Unknown log level: {level_name}", file=sys.stderr)
        return EXIT_USAGE
    setup_logging(level, json_output=config.observability.log_json)

    if args.ids:
        store = ContentStore.for_ids(config.storage)
    else:
        store = ContentStore.for_names(config.storage)

    if args.ids and args.command == "put" and args.key == "-":
        key = ContentId.generate()
    else:
        parsed = store.parse_key(args.key)
        if parsed.is_err():
            print(parsed.error, file=sys.stderr)
            return EXIT_USAGE
        key = parsed.unwrap()

    return asyncio.run(_run(store, key, args))


async def _run(store: ContentStore, key, args: argparse.Namespace) -> int:
    """Execute one command with Ctrl-C wired to cancellation."""
    token = CancellationToken()
    previous = signal.signal(signal.SIGINT, lambda *_: token.cancel("interrupted"))
    try:
        if args.command in ("put", "update"):
            return await _write(store, key, args, token)
        if args.command == "get":
            return await _get(store, key, args.output, token)
        if args.command == "hash":
            result = await store.get_hash(key, cancel=token)
            if result.success:
                print(result.value)
            return _report(result, quiet=True)
        if args.command == "exists":
            return _report(await store.exists(key, cancel=token))
        if args.command == "rm":
            return _report(await store.delete(key, cancel=token))
        raise ValueError(f"Unknown command: {args.command}")
    finally:
        signal.signal(signal.SIGINT, previous)


async def _write(store: ContentStore, key, args: argparse.Namespace, token: CancellationToken) -> int:
    operation = store.store if args.command == "put" else store.update

    if args.file == "-":
        result = await operation(key, ContentPayload(stream=sys.stdin.buffer), cancel=token)
    else:
        source = Path(args.file)
        try:
            length = source.stat().st_size
            handle = open(source, "rb")
        except OSError as e:
            print(f"Cannot open {source}: {e}", file=sys.stderr)
            return EXIT_USAGE
        with ContentPayload(stream=handle, length=length) as payload:
            result = await operation(key, payload, cancel=token)

    if result.success:
        print(json.dumps(result.value.to_dict()))
    return _report(result, quiet=True)


async def _get(
    store: ContentStore,
    key,
    output: Optional[Path],
    token: CancellationToken,
) -> int:
    result = await store.get(key, cancel=token)
    if not result.success:
        return _report(result)

    with result.value as payload:
        if output is None:
            shutil.copyfileobj(payload.stream, sys.stdout.buffer)
            sys.stdout.buffer.flush()
        else:
            with open(output, "wb") as target:
                shutil.copyfileobj(payload.stream, target)
    return EXIT_OK


def _report(result: OperationResult, quiet: bool = False) -> int:
    """Print messages or errors and map the result to an exit code."""
    if result.success:
        if not quiet:
            for message in result.messages:
                print(message)
        return EXIT_OK
    for message in result.error_messages:
        print(message, file=sys.stderr)
    return EXIT_FAILED


def _get_version() -> str:
    from fileshare import __version__
    return __version__


if __name__ == "__main__":
    sys.exit(main())
