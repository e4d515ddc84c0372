#!/usr/bin/env python3
"""Compare indexed and legacy staff lookups for one client over HTTP."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

import requests

EXIT_EQUAL = 0
EXIT_ERROR = 1
EXIT_DIFFERENT = 2


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Check that /staff-for-client and the legacy scan agree.",
    )
    parser.add_argument("client_id", help="Client identifier to check.")
    parser.add_argument(
        "--base-url",
        default="http://localhost:8000",
        help="Base URL of the staffing API.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=10.0,
        help="Per-request timeout in seconds.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Fetch both lookups and report differences."""
    args = _parse_args(argv)
    project_root = Path(__file__).resolve().parents[1]
    if str(project_root) not in sys.path:
        sys.path.insert(0, str(project_root))
    from app.staffing.api_client import StaffApiClient
    from app.staffing.errors import ResponseContractError

    client = StaffApiClient(args.base_url, timeout_sec=args.timeout)
    try:
        indexed = client.staff_for_client(args.client_id)
        legacy = client.legacy_staff_by_client(args.client_id)
    except (requests.RequestException, ResponseContractError) as exc:
        print(f"Lookup failed: {exc}", file=sys.stderr)
        return EXIT_ERROR
    finally:
        client.close()

    indexed_ids = {str(row["id"]) for row in indexed}
    legacy_ids = {str(row["id"]) for row in legacy}
    print(f"Client: {args.client_id}")
    print(f"staff-for-client: {len(indexed_ids)}")
    print(f"legacy scan: {len(legacy_ids)}")
    if indexed_ids == legacy_ids:
        print("Lookups agree.")
        return EXIT_EQUAL
    for staff_id in sorted(indexed_ids - legacy_ids):
        print(f"  only in staff-for-client: {staff_id}")
    for staff_id in sorted(legacy_ids - indexed_ids):
        print(f"  only in legacy scan: {staff_id}")
    return EXIT_DIFFERENT


if __name__ == "__main__":
    raise SystemExit(main())
