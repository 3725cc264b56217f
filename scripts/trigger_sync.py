#!/usr/bin/env python3
"""Operator CLI for a running subject sync instance.

Usage:
    python scripts/trigger_sync.py --url https://sync.example.com --secret $WEBHOOK_SECRET sweep 1234
    python scripts/trigger_sync.py --url ... --secret ... activity 5678
    python scripts/trigger_sync.py --url ... --secret ... poll
    python scripts/trigger_sync.py --url ... --secret ... backfill
    python scripts/trigger_sync.py --url ... --secret ... derived-tasks [--reset]
    python scripts/trigger_sync.py --url ... --secret ... diagnose-deal 1234
    python scripts/trigger_sync.py --url ... --secret ... diagnose-activity 5678

Prints the JSON response. Exit code 0 on HTTP 2xx, 1 otherwise.
"""

import argparse
import json
import os
import sys
from typing import Tuple

import httpx

TIMEOUT = 120.0


def build_request(args: argparse.Namespace) -> Tuple[str, str]:
    """Map a subcommand to (HTTP method, path)."""
    if args.command == "sweep":
        return "POST", f"/api/v1/sync/deals/{args.deal_id}"
    if args.command == "activity":
        return "POST", f"/api/v1/sync/activities/{args.activity_id}"
    if args.command == "poll":
        return "POST", "/api/v1/sync/poll"
    if args.command == "backfill":
        return "POST", "/api/v1/sync/backfill"
    if args.command == "derived-tasks":
        if args.reset:
            return "DELETE", "/api/v1/sync/derived-tasks/processed"
        return "POST", "/api/v1/sync/derived-tasks"
    if args.command == "diagnose-deal":
        return "GET", f"/api/v1/diagnostics/deals/{args.deal_id}"
    if args.command == "diagnose-activity":
        return "GET", f"/api/v1/diagnostics/activities/{args.activity_id}"
    raise ValueError(f"Unknown command: {args.command}")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Trigger subject sync operations")
    parser.add_argument("--url", required=True, help="Base URL of the sync service")
    parser.add_argument(
        "--secret",
        default=os.environ.get("WEBHOOK_SECRET", ""),
        help="Shared secret (default: $WEBHOOK_SECRET)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sweep = sub.add_parser("sweep", help="Sweep all open activities of a deal")
    sweep.add_argument("deal_id", type=int)

    activity = sub.add_parser("activity", help="Reconcile one activity")
    activity.add_argument("activity_id", type=int)

    sub.add_parser("poll", help="Run one drift-poll cycle")
    sub.add_parser("backfill", help="Sweep every deal in the background")

    derived = sub.add_parser("derived-tasks", help="Create derived tasks")
    derived.add_argument("--reset", action="store_true", help="Reset the processed-deal set instead")

    diag_deal = sub.add_parser("diagnose-deal", help="Show resolved crew for a deal")
    diag_deal.add_argument("deal_id", type=int)

    diag_activity = sub.add_parser("diagnose-activity", help="Show canonical subject for an activity")
    diag_activity.add_argument("activity_id", type=int)

    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    method, path = build_request(args)
    url = args.url.rstrip("/") + path

    try:
        response = httpx.request(
            method,
            url,
            headers={"X-Webhook-Secret": args.secret},
            timeout=TIMEOUT,
        )
    except httpx.TimeoutException:
        print("Request timed out", file=sys.stderr)
        return 1
    except httpx.HTTPError as exc:
        print(f"HTTP error: {exc}", file=sys.stderr)
        return 1

    try:
        print(json.dumps(response.json(), indent=2))
    except ValueError:
        print(response.text)

    return 0 if response.is_success else 1


if __name__ == "__main__":
    sys.exit(main())
