from __future__ import annotations

import sys
import time
from collections import deque
from collections.abc import Callable, Iterator
from datetime import date, datetime, time as dt_time, tzinfo
from typing import Any

import requests

from .config import MAX_PER_PAGE, STRAVA_API_BASE
from .errors import FetchError

ACTIVITIES_ENDPOINT = "/athlete/activities"


class StravaRateLimiter:
    """Client-side pacing to stay under Strava's read quotas.

    Keeps its own count of requests in the 15-minute and daily windows and
    defers to the usage Strava reports in response headers when present.
    Pacing only: a rejected request is never retried.
    """

    def __init__(
        self,
        short_window_limit: int = 100,
        short_window_seconds: int = 15 * 60,
        daily_limit: int = 1000,
        safety_margin: int = 2,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.short_window_limit = max(1, short_window_limit - safety_margin)
        self.short_window_seconds = short_window_seconds
        self.daily_limit = max(1, daily_limit - safety_margin)
        self.safety_margin = safety_margin
        self.clock = clock
        self.sleep = sleep
        self.short_window_requests: deque[float] = deque()
        self.daily_requests: deque[float] = deque()
        self.reported_short_usage: int | None = None
        self.reported_daily_usage: int | None = None

    def _prune(self, now: float) -> None:
        while self.short_window_requests and now - self.short_window_requests[0] >= self.short_window_seconds:
            self.short_window_requests.popleft()
        while self.daily_requests and now - self.daily_requests[0] >= 24 * 60 * 60:
            self.daily_requests.popleft()

    def _short_usage(self) -> int:
        return max(len(self.short_window_requests), self.reported_short_usage or 0)

    def _daily_usage(self) -> int:
        return max(len(self.daily_requests), self.reported_daily_usage or 0)

    def wait_for_slot(self) -> None:
        while True:
            now = self.clock()
            self._prune(now)

            if self._daily_usage() >= self.daily_limit:
                raise FetchError(
                    "Daily Strava API limit reached; re-run after the daily window resets."
                )

            if self._short_usage() < self.short_window_limit:
                return

            if self.short_window_requests:
                sleep_for = self.short_window_requests[0] + self.short_window_seconds - now + 1
            else:
                # Usage came from headers only; Strava resets on the quarter hour.
                sleep_for = self.short_window_seconds - (now % self.short_window_seconds) + 1
            print(
                f"Approaching Strava 15-minute limit; sleeping {int(sleep_for)}s to stay under quota.",
                file=sys.stderr,
            )
            self.sleep(sleep_for)
            self.reported_short_usage = None

    def note_request(self) -> None:
        now = self.clock()
        self.short_window_requests.append(now)
        self.daily_requests.append(now)

    def note_response(self, response: requests.Response) -> None:
        """Adopt Strava's own usage counters, e.g. ``X-RateLimit-Usage: 12,340``."""
        headers = response.headers
        usage = headers.get("X-ReadRateLimit-Usage") or headers.get("X-RateLimit-Usage")
        limit = headers.get("X-ReadRateLimit-Limit") or headers.get("X-RateLimit-Limit")
        parsed_usage = _parse_pair(usage)
        if parsed_usage:
            self.reported_short_usage, self.reported_daily_usage = parsed_usage
        parsed_limit = _parse_pair(limit)
        if parsed_limit:
            short_limit, daily_limit = parsed_limit
            self.short_window_limit = max(1, short_limit - self.safety_margin)
            self.daily_limit = max(1, daily_limit - self.safety_margin)


def _parse_pair(value: str | None) -> tuple[int, int] | None:
    if not value:
        return None
    parts = [part.strip() for part in value.split(",")]
    if len(parts) < 2:
        return None
    try:
        return int(parts[0]), int(parts[1])
    except ValueError:
        return None


def year_window(year: int, tz: tzinfo | None = None) -> tuple[int, int]:
    """Epoch seconds for ``[Jan 1 00:00, next Jan 1 00:00)`` in ``tz``.

    ``tz=None`` uses the machine's local zone.
    """
    def start_of(day: date) -> int:
        local = datetime.combine(day, dt_time.min, tzinfo=tz)
        if tz is None:
            local = local.astimezone()
        return int(local.timestamp())

    return start_of(date(year, 1, 1)), start_of(date(year + 1, 1, 1))


def request_json(
    endpoint: str,
    token: str,
    params: dict[str, Any] | None = None,
    rate_limiter: StravaRateLimiter | None = None,
    session: requests.Session | None = None,
) -> Any:
    url = f"{STRAVA_API_BASE}{endpoint}"
    http = session or requests

    if rate_limiter:
        rate_limiter.wait_for_slot()

    try:
        response = http.get(
            url,
            headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
            params=params,
            timeout=30,
        )
    except requests.RequestException as exc:
        raise FetchError(f"Request to {url} failed: {exc}") from exc

    if rate_limiter:
        rate_limiter.note_request()
        rate_limiter.note_response(response)

    if response.status_code >= 400:
        raise FetchError(f"Request failed ({response.status_code}) for {url}: {response.text}")

    try:
        return response.json()
    except ValueError as exc:
        raise FetchError(f"Malformed JSON from {url}: {exc}") from exc


def iter_activities(
    token: str,
    after: int,
    before: int,
    per_page: int = MAX_PER_PAGE,
    rate_limiter: StravaRateLimiter | None = None,
    session: requests.Session | None = None,
) -> Iterator[dict[str, Any]]:
    """Yield raw activity records page by page until Strava returns an empty page.

    Records are passed through undecoded. Every call starts again from
    page 1.
    """
    per_page = max(1, min(per_page, MAX_PER_PAGE))
    page = 1
    while True:
        print(f"Fetching page {page}")
        batch = request_json(
            ACTIVITIES_ENDPOINT,
            token,
            {"after": after, "before": before, "page": page, "per_page": per_page},
            rate_limiter=rate_limiter,
            session=session,
        )
        if not isinstance(batch, list):
            raise FetchError(f"Unexpected activities response on page {page}: expected a JSON array")
        if not batch:
            return

        for record in batch:
            if not isinstance(record, dict):
                raise FetchError(f"Unexpected activity entry on page {page}: {record!r}")
            yield record
        page += 1


def fetch_activities(
    token: str,
    after: int,
    before: int,
    per_page: int = MAX_PER_PAGE,
    rate_limiter: StravaRateLimiter | None = None,
    session: requests.Session | None = None,
) -> list[dict[str, Any]]:
    """Drain ``iter_activities``; raises before returning anything if a page fails."""
    return list(
        iter_activities(
            token,
            after,
            before,
            per_page=per_page,
            rate_limiter=rate_limiter,
            session=session,
        )
    )
