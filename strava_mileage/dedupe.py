"""Collapse overlapping recordings of the same workout.

A watch and a phone app logging the same run produce two activities whose
time intervals nest: the shorter companion session sits inside the longer
device session. Two activities are treated as duplicates only when one
interval contains the other. A partial overlap where neither contains the
other is kept as two separate workouts.

Clustering is greedy. Candidates are ordered by distance (longest first),
then start time, then name. The head of that order becomes the cluster
representative, every remaining candidate it overlaps joins its cluster,
and the member with the greatest distance survives. Membership is decided
against the representative only; there is no transitive closure.
"""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from .models import Activity


def overlaps(a: Activity, b: Activity) -> bool:
    """True when either activity's closed interval contains the other's."""
    a_start, a_end = a.start_time, a.end_time
    b_start, b_end = b.start_time, b.end_time
    return (a_start <= b_start and a_end >= b_end) or (b_start <= a_start and b_end >= a_end)


def dedupe_order_key(activity: Activity) -> tuple[float, datetime, str]:
    return (-activity.distance, activity.start_time, activity.name)


@dataclass(frozen=True)
class Cluster:
    survivor: Activity
    members: tuple[Activity, ...]


def find_clusters(activities: Iterable[Activity]) -> list[Cluster]:
    """Group activities into clusters in resolution order.

    Callers are expected to pass activities of a single category; see
    ``dedupe_by_category`` for mixed input.
    """
    remaining = sorted(activities, key=dedupe_order_key)
    clusters: list[Cluster] = []

    while remaining:
        representative = remaining[0]
        members: list[Activity] = []
        rest: list[Activity] = []
        for candidate in remaining:
            if candidate is representative or overlaps(representative, candidate):
                members.append(candidate)
            else:
                rest.append(candidate)

        # The head is not assumed to win; recompute over this cluster.
        survivor = min(members, key=dedupe_order_key)
        clusters.append(Cluster(survivor=survivor, members=tuple(members)))
        remaining = rest

    return clusters


def dedupe(activities: Iterable[Activity]) -> list[Activity]:
    return [cluster.survivor for cluster in find_clusters(activities)]


def dedupe_by_category(activities: Iterable[Activity]) -> list[Activity]:
    by_category: dict[str, list[Activity]] = {}
    for activity in activities:
        by_category.setdefault(activity.category, []).append(activity)

    result: list[Activity] = []
    for group in by_category.values():
        result.extend(dedupe(group))
    return result
