from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from .errors import SnapshotDecodeError

RUN = "Run"
RIDE = "Ride"
VIRTUAL_RIDE = "VirtualRide"


def parse_start_date(value: str) -> datetime:
    """Parse Strava's ``start_date`` (``2024-03-01T07:15:00Z``) as a UTC instant."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def format_start_date(value: datetime) -> str:
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


def _field(record: dict[str, Any], key: str, expected: type | tuple[type, ...]) -> Any:
    if key not in record:
        raise SnapshotDecodeError(f"missing field '{key}'")
    value = record[key]
    # bool is an int subclass; only accept it where a bool is asked for.
    if isinstance(value, bool) and expected is not bool:
        raise SnapshotDecodeError(f"field '{key}' has unexpected type bool")
    if not isinstance(value, expected):
        raise SnapshotDecodeError(f"field '{key}' has unexpected type {type(value).__name__}")
    return value


@dataclass(frozen=True)
class Activity:
    """One recorded workout session.

    ``category`` is Strava's ``type`` string, kept as an open-ended tag.
    ``start_time`` is always timezone-aware UTC.
    """

    name: str
    distance: float
    elapsed_time: int
    category: str
    start_time: datetime
    trainer: bool

    def __post_init__(self) -> None:
        if not math.isfinite(self.distance) or self.distance < 0:
            raise SnapshotDecodeError(f"activity '{self.name}' has invalid distance {self.distance}")
        if self.elapsed_time < 0:
            raise SnapshotDecodeError(
                f"activity '{self.name}' has negative elapsed_time {self.elapsed_time}"
            )
        if self.start_time.tzinfo is None:
            raise SnapshotDecodeError(f"activity '{self.name}' has a naive start_time")

    @property
    def end_time(self) -> datetime:
        return self.start_time + timedelta(seconds=self.elapsed_time)

    @classmethod
    def from_record(cls, record: Any) -> Activity:
        """Decode one raw activity as returned by ``/athlete/activities``."""
        if not isinstance(record, dict):
            raise SnapshotDecodeError(f"expected an object, got {type(record).__name__}")

        start_date = _field(record, "start_date", str)
        try:
            start_time = parse_start_date(start_date)
        except ValueError as exc:
            raise SnapshotDecodeError(f"field 'start_date' is not an ISO-8601 instant: {start_date!r}") from exc

        return cls(
            name=_field(record, "name", str),
            distance=float(_field(record, "distance", (int, float))),
            elapsed_time=_field(record, "elapsed_time", int),
            category=_field(record, "type", str),
            start_time=start_time,
            trainer=_field(record, "trainer", bool),
        )

    def to_record(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "distance": self.distance,
            "elapsed_time": self.elapsed_time,
            "type": self.category,
            "start_date": format_start_date(self.start_time),
            "trainer": self.trainer,
        }
