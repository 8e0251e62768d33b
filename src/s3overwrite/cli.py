"""CLI entry point for s3overwrite.

Each subcommand is a small transform around one of the overwrite entry
points; the object keeps every attribute the command does not change.
"""

import argparse
import asyncio
import json
import logging
import sys
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from s3overwrite.client import create_client
from s3overwrite.config import S3OverwriteConfig, load_config
from s3overwrite.errors import OverwriteError
from s3overwrite.logging_config import configure_logging
from s3overwrite.models import ObjectSnapshot, OverwriteDecision
from s3overwrite.overwrite import (
    OverwriteOutcome,
    overwrite_preserving_acl,
    overwrite_with_simple_acl,
)

logger = logging.getLogger("s3overwrite")

_DEFAULT_MAX_JSON_SIZE = 10 * 1024 * 1024


def _metadata_pair(value: str) -> tuple[str, str]:
    name, sep, val = value.partition("=")
    if not sep or not name:
        raise argparse.ArgumentTypeError(f"expected NAME=VALUE, got {value!r}")
    return name, val


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].

    Returns:
        Parsed argument namespace.
    """
    parser = argparse.ArgumentParser(
        prog="s3overwrite",
        description="Replace S3 object content while keeping its ACL, tags and headers",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration file (optional)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config, default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        type=str,
        default=None,
        choices=["text", "json"],
        help="Log format: 'text' (human-readable) or 'json' (structured)",
    )
    parser.add_argument(
        "--call-timeout",
        type=float,
        default=None,
        help="Seconds allowed per store call (overrides config)",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    put = sub.add_parser("put", help="Replace content with a local file")
    put.add_argument("bucket")
    put.add_argument("key")
    put.add_argument("file", type=Path)

    meta = sub.add_parser("set-metadata", help="Add or change user metadata, keep content")
    meta.add_argument("bucket")
    meta.add_argument("key")
    meta.add_argument("pairs", nargs="*", type=_metadata_pair, metavar="NAME=VALUE")
    meta.add_argument(
        "--remove", action="append", default=[], metavar="NAME", help="Metadata key to drop"
    )

    acl = sub.add_parser("set-acl", help="Switch to a canned ACL, keep content and tags")
    acl.add_argument("bucket")
    acl.add_argument("key")
    acl.add_argument("canned_acl")

    fmt = sub.add_parser("format-json", help="Re-indent a JSON object")
    fmt.add_argument("bucket")
    fmt.add_argument("key")
    fmt.add_argument(
        "--max-size",
        type=int,
        default=_DEFAULT_MAX_JSON_SIZE,
        help="Skip objects larger than this many bytes (default: 10 MiB)",
    )
    return parser.parse_args(argv)


# -- Transforms ---------------------------------------------------------------


def replace_with(file: Path):
    """Transform that uploads ``file`` as the new content."""

    def transform(snapshot: ObjectSnapshot, local_path: Path) -> OverwriteDecision:
        return OverwriteDecision(path=file)

    return transform


def update_metadata(pairs: list[tuple[str, str]], remove: list[str]):
    """Transform that keeps the content and edits the metadata in place."""

    def transform(snapshot: ObjectSnapshot, local_path: Path) -> OverwriteDecision:
        for name in remove:
            snapshot.metadata.pop(name, None)
        snapshot.metadata.update(pairs)
        return OverwriteDecision(path=local_path)

    return transform


def keep_content(snapshot: ObjectSnapshot, local_path: Path) -> OverwriteDecision:
    return OverwriteDecision(path=local_path)


def format_json(max_size: int, temp_dir: str | None = None):
    """Transform that pretty-prints JSON content, skipping large objects."""

    def transform(snapshot: ObjectSnapshot, local_path: Path) -> OverwriteDecision | None:
        size = snapshot.content_length or 0
        if size > max_size:
            logger.info(
                "Skipping %s/%s: %d bytes exceeds %d", snapshot.bucket, snapshot.key, size, max_size
            )
            return None

        data = json.loads(local_path.read_bytes())
        formatted = json.dumps(data, indent=2, ensure_ascii=False).encode("utf-8")

        with tempfile.NamedTemporaryFile(
            prefix="formatted-", suffix=".json", dir=temp_dir, delete=False
        ) as fh:
            fh.write(formatted)

        metadata = dict(snapshot.metadata)
        metadata["formatted"] = "true"
        metadata["formatted-at"] = datetime.now(timezone.utc).isoformat()
        return OverwriteDecision(path=Path(fh.name), remove_after_write=True, metadata=metadata)

    return transform


async def run_command(args: argparse.Namespace, config: S3OverwriteConfig) -> OverwriteOutcome:
    """Open a client and run the selected subcommand."""
    options = {
        "temp_dir": config.overwrite.temp_dir,
        "call_timeout": config.overwrite.call_timeout,
    }
    async with create_client(config.store) as client:
        if args.command == "put":
            return await overwrite_preserving_acl(
                client, args.bucket, args.key, replace_with(args.file), **options
            )
        if args.command == "set-metadata":
            return await overwrite_preserving_acl(
                client, args.bucket, args.key, update_metadata(args.pairs, args.remove), **options
            )
        if args.command == "set-acl":
            return await overwrite_with_simple_acl(
                client, args.bucket, args.key, args.canned_acl, keep_content, **options
            )
        return await overwrite_preserving_acl(
            client,
            args.bucket,
            args.key,
            format_json(args.max_size, config.overwrite.temp_dir),
            **options,
        )


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the s3overwrite CLI.

    Exits with status 1 on configuration errors and on any overwrite
    failure; a skipped overwrite is a success.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].
    """
    args = parse_args(argv)

    # Use a basic stderr logger for config-loading errors
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)

    if args.config is not None:
        try:
            config = load_config(args.config)
        except FileNotFoundError:
            logger.error("Config file not found: %s", args.config)
            sys.exit(1)
        except Exception as exc:
            logger.error("Failed to load config: %s", exc)
            sys.exit(1)
    else:
        config = S3OverwriteConfig()

    # Apply CLI overrides
    if args.log_level is not None:
        config.logging.level = args.log_level
    if args.log_format is not None:
        config.logging.format = args.log_format
    if args.call_timeout is not None:
        config.overwrite.call_timeout = args.call_timeout

    configure_logging(level=config.logging.level, fmt=config.logging.format)

    if config.observability.metrics:
        from s3overwrite import metrics

        metrics.init_metrics()

    try:
        outcome = asyncio.run(run_command(args, config))
    except OverwriteError as exc:
        if exc.content_updated:
            logger.error("Content replaced but permissions not fully restored: %s", exc)
        else:
            logger.error("Overwrite failed: %s", exc)
        sys.exit(1)
    except ValueError as exc:
        logger.error("%s", exc)
        sys.exit(1)

    logger.info("%s/%s: %s", args.bucket, args.key, outcome.value)


if __name__ == "__main__":
    main()
