from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from .dedupe import dedupe_by_category
from .errors import ConfigError
from .models import RIDE, RUN, VIRTUAL_RIDE, Activity

UNIT_FACTORS = {
    "mi": 0.000621371,
    "km": 0.001,
}


def check_unit(unit: str) -> str:
    if unit not in UNIT_FACTORS:
        known = ", ".join(sorted(UNIT_FACTORS))
        raise ConfigError(f"Unknown distance unit {unit!r}; expected one of {known}")
    return unit


def convert_distance(meters: float, unit: str) -> float:
    return meters * UNIT_FACTORS[check_unit(unit)]


@dataclass(frozen=True)
class Bucket:
    label: str
    activities: tuple[Activity, ...]

    @property
    def count(self) -> int:
        return len(self.activities)

    @property
    def total_meters(self) -> float:
        return sum(activity.distance for activity in self.activities)

    def total(self, unit: str) -> float:
        return convert_distance(self.total_meters, unit)


@dataclass(frozen=True)
class Summary:
    unit: str
    loaded: int
    runs: Bucket
    deduped_runs: Bucket
    all_rides: Bucket
    virtual_rides: Bucket
    trainer_rides: Bucket
    outdoor_rides: Bucket


def _bucket(label: str, activities: Sequence[Activity]) -> Bucket:
    return Bucket(label=label, activities=tuple(activities))


def summarize(activities: Sequence[Activity], unit: str = "mi") -> Summary:
    """Split activities into mileage buckets.

    Only runs are de-duplicated. Rides are split three ways (virtual,
    trainer, outdoor) and those three always add up to ``all_rides``.
    """
    check_unit(unit)

    runs = [a for a in activities if a.category == RUN]
    rides = [a for a in activities if a.category == RIDE]
    virtual_rides = [a for a in activities if a.category == VIRTUAL_RIDE]

    return Summary(
        unit=unit,
        loaded=len(activities),
        runs=_bucket("Run mileage", runs),
        deduped_runs=_bucket("Deduped run mileage", dedupe_by_category(runs)),
        all_rides=_bucket("Total ride mileage", virtual_rides + rides),
        virtual_rides=_bucket("Virtual ride mileage", virtual_rides),
        trainer_rides=_bucket("Trainer ride mileage", [a for a in rides if a.trainer]),
        outdoor_rides=_bucket("Outdoor ride mileage", [a for a in rides if not a.trainer]),
    )


def _line(bucket: Bucket, unit: str, indent: str = "") -> str:
    return f"{indent}{bucket.label} ({bucket.count}): {bucket.total(unit):.2f} {unit}"


def format_summary(summary: Summary) -> str:
    unit = summary.unit
    lines = [
        f"Loaded {summary.loaded} activities",
        "",
        _line(summary.runs, unit),
        _line(summary.deduped_runs, unit, " - "),
        "",
        _line(summary.all_rides, unit),
        _line(summary.virtual_rides, unit, " - "),
        _line(summary.trainer_rides, unit, " - "),
        _line(summary.outdoor_rides, unit, " - "),
    ]
    return "\n".join(lines)
