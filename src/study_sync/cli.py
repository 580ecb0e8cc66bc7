"""Command line entry point for the study progress tracker."""

import argparse
import asyncio
import getpass
import json
import logging
import os
import sys
from pathlib import Path

import requests
from dotenv import load_dotenv

from . import __version__
from .config import load_config
from .config_loader import load_hierarchical_config
from .config_schema import build_config, to_fallbacks
from .errors import SyncDisabledError, SyncError
from .logger import setup_logging
from .storage import JsonFileStore
from .sync import (
    create_orchestrator,
    format_snapshot_summary,
    format_status,
    status_to_json,
)
from .tracker import ProgressTracker

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    print(msg, file=sys.stderr, flush=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="study-sync",
        description="Study progress tracker with multi-device sync through a private gist",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Bind a GitHub token (gist scope) and merge existing local progress
  study-sync setup --token ghp_xxx

  # Mark items complete and sync
  study-sync complete unit-1 unit-2

  # Overwrite the remote copy with the local one
  study-sync push

  # Overwrite the local copy with the remote one
  study-sync pull

The token can also be supplied via the STUDY_SYNC_TOKEN environment variable.
        """,
    )
    parser.add_argument(
        "--state-file",
        help="Local state file (overrides STUDY_SYNC_STATE_FILE and config files)",
    )
    parser.add_argument(
        "--api-url",
        help="Document store API URL (overrides STUDY_SYNC_API_URL and config files)",
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )
    parser.add_argument("--log-file", help="Also append logs to this file")
    parser.add_argument(
        "--version",
        action="version",
        version=f"study-sync version {__version__}",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    setup = sub.add_parser("setup", help="Validate a token and bind a document")
    setup.add_argument("--token", help="GitHub token with gist scope")

    status = sub.add_parser("status", help="Show sync status")
    status.add_argument(
        "--json", action="store_true", help="Print status as JSON"
    )

    sub.add_parser("sync", help="Merge local and remote progress")
    sub.add_parser("push", help="Overwrite remote progress with local")
    sub.add_parser("pull", help="Overwrite local progress with remote")
    sub.add_parser("disable", help="Forget the token and document id")

    complete = sub.add_parser("complete", help="Mark items complete")
    complete.add_argument("item_ids", nargs="+", metavar="ID")

    export = sub.add_parser("export", help="Write local progress as JSON")
    export.add_argument(
        "path", nargs="?", help="Output file (default: stdout)"
    )

    imp = sub.add_parser("import", help="Replace local progress from JSON")
    imp.add_argument("path", help="File produced by export")

    return parser


async def dispatch(args: argparse.Namespace, tracker: ProgressTracker) -> int:
    """Run one subcommand.  Returns the process exit status."""
    orchestrator = tracker.orchestrator

    match args.command:
        case "setup":
            token = (
                args.token
                or os.getenv("STUDY_SYNC_TOKEN")
                or getpass.getpass("GitHub token: ")
            )
            result = await orchestrator.setup(token)
            print(result.message)
            print(f"Document: {result.document_id}")
            snapshot = await tracker.load_progress()
            print(format_snapshot_summary(snapshot))

        case "status":
            status = orchestrator.get_status()
            if args.json:
                print(json.dumps(status_to_json(status), indent=2))
            else:
                print(format_status(status))

        case "sync":
            if not orchestrator.enabled:
                raise SyncDisabledError(
                    "Sync is not enabled. Run 'study-sync setup' first."
                )
            local = tracker.load_local()
            merged = await orchestrator.sync(local)
            if merged is local:
                until = orchestrator.get_status().rate_limited_until
                if until:
                    _stderr_print(f"Skipped: rate limited until {until}")
                    return 1
            tracker.save_local(merged)
            print(format_snapshot_summary(merged))

        case "push":
            uploaded = await orchestrator.force_upload_local(
                tracker.load_local()
            )
            print(f"Uploaded: {format_snapshot_summary(uploaded)}")

        case "pull":
            remote = await orchestrator.force_download_remote()
            tracker.save_local(remote)
            print(f"Downloaded: {format_snapshot_summary(remote)}")

        case "disable":
            orchestrator.disable()
            print("Sync disabled. Local progress was kept.")

        case "complete":
            snapshot = await tracker.complete(args.item_ids)
            print(format_snapshot_summary(snapshot))

        case "export":
            text = tracker.export_progress()
            if args.path:
                Path(args.path).write_text(text + "\n", encoding="utf-8")
                print(f"Exported to {args.path}")
            else:
                print(text)

        case "import":
            text = Path(args.path).read_text(encoding="utf-8")
            snapshot = await tracker.import_progress(text)
            print(f"Imported: {format_snapshot_summary(snapshot)}")

    return 0


def run(argv: list[str] | None = None) -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    args = build_parser().parse_args(argv)

    # .env first so ${VAR} interpolation in YAML can use its values
    load_dotenv()
    try:
        unified = build_config(load_hierarchical_config())
        config = load_config(
            api_url=args.api_url,
            state_file=args.state_file,
            debug=args.debug,
            yaml_fallbacks=to_fallbacks(unified),
        )
    except ValueError as e:
        _stderr_print(f"ERROR: Configuration error: {e}")
        sys.exit(2)

    setup_logging(
        debug=config.debug,
        log_file=args.log_file or unified.logging.file,
        debug_format=unified.logging.format,
        level=unified.logging.level,
    )

    try:
        store = JsonFileStore(Path(config.state_file))
    except (ValueError, OSError) as e:
        _stderr_print(f"ERROR: Cannot read state file {config.state_file}: {e}")
        sys.exit(2)
    tracker = ProgressTracker(store, create_orchestrator(config, store))

    try:
        code = asyncio.run(dispatch(args, tracker))
    except requests.RequestException as e:
        _stderr_print(f"ERROR: Network failure: {e}")
        sys.exit(1)
    except (SyncError, ValueError, OSError) as e:
        logger.debug("Command failed", exc_info=True)
        _stderr_print(f"ERROR: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        _stderr_print("\nInterrupted.")
        sys.exit(130)

    sys.exit(code)


if __name__ == "__main__":
    run()
