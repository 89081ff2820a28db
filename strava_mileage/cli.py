from __future__ import annotations

import argparse
import sys
import webbrowser
from pathlib import Path

from . import config
from .auth import acquire_token
from .errors import ConfigError, StravaMileageError
from .fetch import StravaRateLimiter, fetch_activities, year_window
from .snapshot import SnapshotStore
from .summary import format_summary, summarize


def parse_year(value: str) -> int:
    try:
        year = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("Year must be a number like 2024") from exc
    if not 1970 <= year <= 9998:
        raise argparse.ArgumentTypeError(f"Year out of range: {year}")
    return year


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="strava-mileage",
        description="Fetch Strava activities and report de-duplicated mileage",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    fetch_parser = subparsers.add_parser("fetch", help="Authorize and download one calendar year")
    fetch_parser.add_argument("client_id", nargs="?", help="Strava API client id (or STRAVA_CLIENT_ID)")
    fetch_parser.add_argument(
        "client_secret", nargs="?", help="Strava API client secret (or STRAVA_CLIENT_SECRET)"
    )
    fetch_parser.add_argument("year", type=parse_year, help="Calendar year to fetch, local time")
    fetch_parser.add_argument("--snapshot", help="Snapshot file to write (default: activities.json)")
    fetch_parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Seconds to wait for the browser redirect; 0 waits forever (default: 300)",
    )
    fetch_parser.add_argument(
        "--no-browser",
        action="store_true",
        help="Only print the authorization URL instead of opening a browser.",
    )
    fetch_parser.add_argument(
        "--per-page",
        type=int,
        default=config.MAX_PER_PAGE,
        help="Records per page, capped at 200",
    )

    summarize_parser = subparsers.add_parser("summarize", help="Report mileage from the snapshot")
    summarize_parser.add_argument("--snapshot", help="Snapshot file to read (default: activities.json)")
    summarize_parser.add_argument("--unit", choices=("mi", "km"), default=None)

    return parser


def _snapshot_store(raw_path: str | None) -> SnapshotStore:
    return SnapshotStore(Path(raw_path).expanduser() if raw_path else config.snapshot_path())


def run_fetch(args: argparse.Namespace) -> None:
    # Given two positionals, argparse assigns them to client_id and year.
    if args.client_id and not args.client_secret:
        raise ConfigError("Pass both CLIENT_ID and CLIENT_SECRET, or neither to use the environment")
    client_id, client_secret = config.require_client_credentials(args.client_id, args.client_secret)

    if args.timeout is None:
        timeout = config.auth_timeout()
    else:
        timeout = args.timeout if args.timeout > 0 else None

    store = _snapshot_store(args.snapshot)
    after, before = year_window(args.year)

    token = acquire_token(
        client_id,
        client_secret,
        timeout=timeout,
        scopes=config.scopes(),
        open_browser=None if args.no_browser else webbrowser.open,
    )
    activities = fetch_activities(
        token,
        after,
        before,
        per_page=args.per_page,
        rate_limiter=StravaRateLimiter(),
    )
    print(f"Fetched {len(activities)} activities")

    written = store.write(activities)
    print(f"Wrote {written} activities to {store.path}")


def run_summarize(args: argparse.Namespace) -> None:
    store = _snapshot_store(args.snapshot)
    activities = store.read()
    summary = summarize(activities, unit=args.unit or config.display_unit())
    print(format_summary(summary))


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        if args.command == "fetch":
            run_fetch(args)
        else:
            run_summarize(args)
    except StravaMileageError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
