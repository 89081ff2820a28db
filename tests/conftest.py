import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

# Allow importing the package from a source checkout without installing it
sys.path.insert(0, str(Path(__file__).parent.parent))

from strava_mileage.models import Activity  # noqa: E402

T0 = datetime(2024, 5, 4, 7, 0, tzinfo=UTC)


def make_activity(
    name: str = "Morning Run",
    distance: float = 5000.0,
    start_offset: int = 0,
    elapsed_time: int = 1800,
    category: str = "Run",
    trainer: bool = False,
) -> Activity:
    return Activity(
        name=name,
        distance=distance,
        elapsed_time=elapsed_time,
        category=category,
        start_time=T0 + timedelta(seconds=start_offset),
        trainer=trainer,
    )


class FakeResponse:
    def __init__(self, payload=None, status_code=200, text=None, headers=None, json_error=None):
        self._payload = payload
        self.status_code = status_code
        self.text = text if text is not None else repr(payload)
        self.headers = headers or {}
        self._json_error = json_error

    def json(self):
        if self._json_error is not None:
            raise self._json_error
        return self._payload


class FakeSession:
    """Replays canned responses and records every call."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def _next(self, method, url, kwargs):
        self.calls.append((method, url, kwargs))
        if not self.responses:
            raise AssertionError(f"unexpected {method} {url} {kwargs.get('params')}")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def get(self, url, **kwargs):
        return self._next("GET", url, kwargs)

    def post(self, url, **kwargs):
        return self._next("POST", url, kwargs)


@pytest.fixture
def activity():
    return make_activity
