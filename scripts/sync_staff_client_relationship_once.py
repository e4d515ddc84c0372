#!/usr/bin/env python3
"""One-shot backfill of Client.staffs from Staff.clientIds."""

from __future__ import annotations

import argparse
import signal
import sys
import threading
from pathlib import Path
from types import FrameType
from typing import Any

EXIT_OK = 0
EXIT_FATAL = 1


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Sync staff ids into each assigned client's staffs list.",
    )
    parser.add_argument(
        "--app-root",
        type=Path,
        default=Path("."),
        help="Directory containing the runtime directory (file-store mode).",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Only report missing back-references.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Plan sync actions without writing changes.",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Staff records processed concurrently (default: STAFF_SYNC_WORKERS).",
    )
    return parser.parse_args(argv)


def _import_app(project_root: Path) -> dict[str, Any]:
    """Import project modules lazily from project source."""
    if str(project_root) not in sys.path:
        sys.path.insert(0, str(project_root))
    from app.core.config import AppConfig
    from app.core.logging import setup_logging
    from app.staffing.errors import StoreError, StoreUnavailableError
    from app.staffing.reconciler import StaffClientReconciler
    from app.staffing.repository import StaffingRepository

    return {
        "AppConfig": AppConfig,
        "setup_logging": setup_logging,
        "StoreError": StoreError,
        "StoreUnavailableError": StoreUnavailableError,
        "StaffClientReconciler": StaffClientReconciler,
        "StaffingRepository": StaffingRepository,
    }


def _print_summary(summary: Any) -> None:
    """Print human-readable sync summary."""
    print("=" * 50)
    print("STAFF-CLIENT SYNC SUMMARY")
    print("=" * 50)
    print(f"Mode: {summary.mode}")
    print(f"Total staff: {summary.staff_total}")
    label = "Clients to update" if summary.mode == "dry-run" else "Clients updated"
    print(f"{label}: {summary.clients_updated}")
    print(f"Already synced: {summary.already_synced}")
    print(f"Staff skipped: {summary.staff_skipped}")
    print(f"Errors: {len(summary.errors)}")
    for error in summary.errors:
        print(f"  - staff {error.staff_id} -> client {error.client_id}: {error.reason}")
    if summary.cancelled:
        print("Interrupted before all staff were processed; rerun to finish.")
    print("=" * 50)


def main(argv: list[str] | None = None) -> int:
    """Run sync workflow."""
    from dotenv import load_dotenv

    args = _parse_args(argv)
    project_root = Path(__file__).resolve().parents[1]
    mods = _import_app(project_root)
    load_dotenv()

    config = mods["AppConfig"].from_env()
    mods["setup_logging"](config.logging.level)
    workers = args.workers if args.workers is not None else config.reconciler.workers

    stop_event = threading.Event()

    def _request_stop(signum: int, _frame: FrameType | None) -> None:
        print(f"Received signal {signum}; finishing current staff and stopping.")
        stop_event.set()

    previous = {
        sig: signal.signal(sig, _request_stop) for sig in (signal.SIGINT, signal.SIGTERM)
    }
    repo = None
    try:
        repo = mods["StaffingRepository"](config.store, args.app_root.resolve())
        reconciler = mods["StaffClientReconciler"](
            repo,
            workers=workers,
            dry_run=args.check or args.dry_run,
            stop_event=stop_event,
        )
        summary = reconciler.run()
    except mods["StoreUnavailableError"] as exc:
        print(f"Sync failed: store unavailable: {exc}", file=sys.stderr)
        return EXIT_FATAL
    except mods["StoreError"] as exc:
        # Timeouts, auth and cursor failures outside per-pair updates.
        print(f"Sync failed: {exc}", file=sys.stderr)
        return EXIT_FATAL
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
        if repo is not None:
            repo.close()

    # An interrupted run is resumable and not a failure; the summary says so.
    _print_summary(summary)
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
