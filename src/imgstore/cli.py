"""imgstore CLI.

Usage:
    python -m imgstore serve [--host HOST] [--port PORT] [--log-level LEVEL]
    python -m imgstore index check
    python -m imgstore orphans

Configuration is read from the IMGSTORE_* environment variables.

Exit codes:
    0: Success / index readable
    1: Internal error
    2: Index check failed (corrupt snapshot)
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any

from imgstore.config import load_store_config
from imgstore.storage.blob_store import build_blob_store
from imgstore.storage.errors import CorruptIndexError

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _output_json(data: Any) -> None:
    """Output JSON to stdout with deterministic ordering."""
    print(json.dumps(data, sort_keys=True, indent=2))


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the API with uvicorn."""
    import uvicorn

    from imgstore.api.main import create_app

    logging.basicConfig(level=args.log_level.upper(), format=LOG_FORMAT)
    app = create_app(config=load_store_config())
    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level)
    return 0


def cmd_index_check(args: argparse.Namespace) -> int:
    """Load the metadata snapshot and summarize it.

    Exit codes:
        0: snapshot readable
        2: snapshot corrupt
    """
    store = build_blob_store(load_store_config())

    try:
        records = store.index.load_all()
    except CorruptIndexError as e:
        _output_json({"pass": False, "error": e.message})
        return 2

    deleted = sum(1 for record in records if record.deleted)
    _output_json(
        {
            "pass": True,
            "records": len(records),
            "active": len(records) - deleted,
            "deleted": deleted,
        }
    )
    return 0


def cmd_orphans(args: argparse.Namespace) -> int:
    """List stored files that no index record references."""
    store = build_blob_store(load_store_config())
    _output_json({"orphans": store.find_orphans()})
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="imgstore",
        description="imgstore - minimal image object store",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument(
        "--host",
        default=DEFAULT_HOST,
        help=f"Host to bind to (default: {DEFAULT_HOST})",
    )
    serve_parser.add_argument(
        "--port",
        type=int,
        default=DEFAULT_PORT,
        help=f"Port to listen on (default: {DEFAULT_PORT})",
    )
    serve_parser.add_argument(
        "--log-level",
        default="info",
        choices=["debug", "info", "warning", "error"],
        help="Log level (default: info)",
    )

    index_parser = subparsers.add_parser("index", help="Metadata index operations")
    index_subparsers = index_parser.add_subparsers(dest="index_command", help="Index subcommands")
    index_subparsers.add_parser("check", help="Check that the metadata snapshot is readable")

    subparsers.add_parser("orphans", help="List stored files missing from the index")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Exit codes:
        0: Success
        1: Internal error (unexpected)
        2: Index check failed
    """
    try:
        parser = create_parser()
        args = parser.parse_args(argv)

        if args.command is None:
            parser.print_help()
            return 0

        if args.command == "serve":
            return cmd_serve(args)

        if args.command == "index":
            if getattr(args, "index_command", None) == "check":
                return cmd_index_check(args)
            parser.parse_args(["index", "--help"])
            return 0

        if args.command == "orphans":
            return cmd_orphans(args)

        return 0

    except Exception as e:
        _output_json({"pass": False, "error": f"{type(e).__name__}: {e}"})
        return 1


if __name__ == "__main__":
    sys.exit(main())
