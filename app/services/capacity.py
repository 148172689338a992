"""
Demand Capacity Engine
Capacity Aggregator.

Measures *demanded* load, not a conflict-free schedule: every queued /
in-execution / validation demand contributes its naive interval
(started_at or created_at, lasting max(1, effort/8) days) independently, so
overlapping work stacks for the same person. The FIFO cursor from
``projection`` is deliberately not consulted.

Two capacity modes coexist and are not expected to agree numerically:

    allocate_range / allocate_teams
        dynamic range: capacity = max(8, working_days × 8) per person
    weekly_heatmap
        fixed buckets: capacity = 40 h/week × people, 7-day buckets

occupation_outlook is the compact per-team view (Sunday-aligned weeks,
load keyed on the demand's coordination rather than the assignee's).
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import NamedTuple

from app.models.domain import Demand, DemandStatus
from app.services.overlap import overlap_hours
from app.services.projection import effort_duration

logger = logging.getLogger(__name__)

LOAD_STATUSES = frozenset({
    DemandStatus.QUEUED,
    DemandStatus.IN_EXECUTION,
    DemandStatus.VALIDATION,
})
OUTLOOK_STATUSES = frozenset({DemandStatus.IN_EXECUTION, DemandStatus.QUEUED})

STATUS_NORMAL = "Normal"
STATUS_HIGH = "High"
STATUS_OVERLOADED = "Overloaded"

BAND_EMPTY = "empty"
BAND_LOW = "low"
BAND_OPTIMAL = "optimal"
BAND_HIGH = "high"
BAND_OVERLOADED = "overloaded"


# ── Result types ─────────────────────────────────────────────────────────────


class PersonAllocation(NamedTuple):
    person_id: str
    name: str
    coordination_id: str | None
    capacity: float
    allocated: int
    available: float
    utilization: int
    status: str

    def to_dict(self) -> dict:
        return self._asdict()


class TeamAllocation(NamedTuple):
    coordination_id: str
    name: str
    people: int
    capacity: float
    allocated: int
    available: float
    utilization: int
    status: str

    def to_dict(self) -> dict:
        return self._asdict()


class HeatmapCell(NamedTuple):
    load: float
    capacity: float
    percentage: int
    band: str

    def to_dict(self) -> dict:
        return self._asdict()


class HeatmapWeek(NamedTuple):
    start: date
    end: date

    def to_dict(self) -> dict:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


class Heatmap(NamedTuple):
    weeks: list
    teams: list       # [{"coordination", "cells", "people": [{"person", "cells"}]}]
    total: list

    def to_dict(self) -> dict:
        return {
            "weeks": [w.to_dict() for w in self.weeks],
            "teams": [
                {
                    "coordination": team["coordination"].to_dict(),
                    "cells": [c.to_dict() for c in team["cells"]],
                    "people": [
                        {
                            "person": row["person"].to_dict(),
                            "cells": [c.to_dict() for c in row["cells"]],
                        }
                        for row in team["people"]
                    ],
                }
                for team in self.teams
            ],
            "total": [c.to_dict() for c in self.total],
        }


# ── Primitives ───────────────────────────────────────────────────────────────


def working_days(start: date, end: date) -> int:
    """Monday–Friday days in [start, end], both inclusive."""
    if end < start:
        return 0
    count = 0
    current = start
    while current <= end:
        if current.weekday() < 5:
            count += 1
        current += timedelta(days=1)
    return count


def range_capacity_hours(start: date, end: date, hours_per_day: float = 8.0) -> float:
    """Working-day capacity with an 8-hour floor for degenerate windows."""
    return max(hours_per_day, working_days(start, end) * hours_per_day)


def window_bounds(start: date, end: date) -> tuple[datetime, datetime]:
    """[start 00:00, end 23:59:59.999] in UTC."""
    return (
        datetime.combine(start, time.min, tzinfo=timezone.utc),
        datetime.combine(end, time(23, 59, 59, 999000), tzinfo=timezone.utc),
    )


def demand_load_interval(demand: Demand, hours_per_day: float = 8.0) -> tuple[datetime, datetime]:
    start = demand.started_at or demand.created_at
    return start, start + effort_duration(demand.effort, hours_per_day)


def _load_hours(demands, window_lo: datetime, window_hi: datetime, hours_per_day: float) -> float:
    total = 0.0
    for demand in demands:
        d_start, d_end = demand_load_interval(demand, hours_per_day)
        total += overlap_hours(d_start, d_end, window_lo, window_hi, hours_per_day)
    return total


def person_load_hours(
    demands,
    person_id: str,
    window_lo: datetime,
    window_hi: datetime,
    hours_per_day: float = 8.0,
) -> float:
    """Sum of overlap hours of the person's queued/active demands with the window."""
    own = [d for d in demands if d.person_id == person_id and d.status in LOAD_STATUSES]
    return _load_hours(own, window_lo, window_hi, hours_per_day)


def utilization_pct(load: float, capacity: float) -> int:
    if capacity <= 0:
        return 0
    return round(min(100.0, load / capacity * 100))


def load_status(load: float, capacity: float, high_threshold: float = 0.8) -> str:
    if load > capacity:
        return STATUS_OVERLOADED
    if load > high_threshold * capacity:
        return STATUS_HIGH
    return STATUS_NORMAL


def classify_load_ratio(ratio: float) -> str:
    """Heatmap band for load / capacity."""
    if ratio <= 0:
        return BAND_EMPTY
    if ratio < 0.5:
        return BAND_LOW
    if ratio <= 0.9:
        return BAND_OPTIMAL
    if ratio <= 1.1:
        return BAND_HIGH
    return BAND_OVERLOADED


# ═════════════════════════════════════════════════════════════════════════════
# Dynamic range mode
# ═════════════════════════════════════════════════════════════════════════════


def allocate_range(
    demands,
    people,
    start: date,
    end: date,
    *,
    hours_per_day: float = 8.0,
    high_threshold: float = 0.8,
) -> list[PersonAllocation]:
    """Per-person utilization for an arbitrary date window, busiest first."""
    demands = list(demands)
    lo, hi = window_bounds(start, end)
    capacity = range_capacity_hours(start, end, hours_per_day)

    rows = []
    for person in people:
        load = person_load_hours(demands, person.id, lo, hi, hours_per_day)
        allocated = round(load)
        rows.append(PersonAllocation(
            person_id=person.id,
            name=person.name,
            coordination_id=person.coordination_id,
            capacity=capacity,
            allocated=allocated,
            available=max(0.0, capacity - allocated),
            utilization=utilization_pct(load, capacity),
            status=load_status(load, capacity, high_threshold),
        ))
    # stable: ties keep the people order
    rows.sort(key=lambda r: r.utilization, reverse=True)
    return rows


def allocate_teams(
    demands,
    people,
    coordinations,
    start: date,
    end: date,
    *,
    hours_per_day: float = 8.0,
    high_threshold: float = 0.8,
) -> list[TeamAllocation]:
    """Team utilization from summed member load and summed member capacity."""
    demands = list(demands)
    people = list(people)
    lo, hi = window_bounds(start, end)
    per_person = range_capacity_hours(start, end, hours_per_day)

    rows = []
    for coord in coordinations:
        members = [p for p in people if p.coordination_id == coord.id]
        capacity = per_person * len(members)
        load = sum(person_load_hours(demands, p.id, lo, hi, hours_per_day) for p in members)
        allocated = round(load)
        rows.append(TeamAllocation(
            coordination_id=coord.id,
            name=coord.name,
            people=len(members),
            capacity=capacity,
            allocated=allocated,
            available=max(0.0, capacity - allocated),
            utilization=utilization_pct(load, capacity),
            status=load_status(load, capacity, high_threshold) if members else STATUS_NORMAL,
        ))
    rows.sort(key=lambda r: r.utilization, reverse=True)
    return rows


# ═════════════════════════════════════════════════════════════════════════════
# Fixed weekly bucket mode
# ═════════════════════════════════════════════════════════════════════════════


def weekly_buckets(start: date, end: date) -> list[HeatmapWeek]:
    """7-day buckets beginning at ``start`` while the bucket start is ≤ end."""
    weeks = []
    current = start
    while current <= end:
        weeks.append(HeatmapWeek(current, current + timedelta(days=6)))
        current += timedelta(days=7)
    return weeks


def _cell(load: float, capacity: float) -> HeatmapCell:
    ratio = load / capacity if capacity > 0 else 0.0
    return HeatmapCell(
        load=round(load, 1),
        capacity=capacity,
        percentage=round(ratio * 100),
        band=classify_load_ratio(ratio),
    )


def weekly_heatmap(
    demands,
    people,
    coordinations,
    start: date,
    end: date,
    *,
    weekly_hours: float = 40.0,
    hours_per_day: float = 8.0,
) -> Heatmap:
    """Week-by-week load per person, rolled up per team plus a grand total.

    Teams with no members are left out. The grand total sums the team rows
    against the capacity of every person who belongs to a listed team.
    """
    demands = list(demands)
    people = list(people)
    weeks = weekly_buckets(start, end)
    bounds = [window_bounds(w.start, w.end) for w in weeks]

    teams = []
    total_load = [0.0] * len(weeks)
    total_people = 0
    for coord in coordinations:
        members = [p for p in people if p.coordination_id == coord.id]
        if not members:
            continue
        total_people += len(members)
        team_load = [0.0] * len(weeks)
        person_rows = []
        for person in members:
            loads = [person_load_hours(demands, person.id, lo, hi, hours_per_day) for lo, hi in bounds]
            for idx, load in enumerate(loads):
                team_load[idx] += load
            person_rows.append({
                "person": person,
                "cells": [_cell(load, weekly_hours) for load in loads],
            })
        for idx, load in enumerate(team_load):
            total_load[idx] += load
        team_capacity = weekly_hours * len(members)
        teams.append({
            "coordination": coord,
            "cells": [_cell(load, team_capacity) for load in team_load],
            "people": person_rows,
        })

    total_capacity = weekly_hours * total_people
    total = [_cell(load, total_capacity) for load in total_load]
    return Heatmap(weeks, teams, total)


# ═════════════════════════════════════════════════════════════════════════════
# Occupation outlook
# ═════════════════════════════════════════════════════════════════════════════


def _outlook_level(percent: int) -> str:
    if percent > 100:
        return BAND_OVERLOADED
    if percent > 80:
        return BAND_HIGH
    if percent > 0:
        return "normal"
    return BAND_EMPTY


def occupation_outlook(
    demands,
    people,
    coordinations,
    now: datetime,
    *,
    weeks: int = 4,
    weekly_hours: float = 40.0,
    hours_per_day: float = 8.0,
) -> list[dict]:
    """Per-team occupation for the next ``weeks`` Sunday-aligned weeks.

    Load comes from demands owned by the team (coordination_id), in execution
    or queued, regardless of who they are assigned to.
    """
    demands = list(demands)
    people = list(people)
    today = now.date()
    # Python weekday(): Monday=0 ... Sunday=6
    sunday = today - timedelta(days=(today.weekday() + 1) % 7)

    result = []
    for coord in coordinations:
        members = [p for p in people if p.coordination_id == coord.id]
        capacity = weekly_hours * len(members)
        owned = [
            d for d in demands
            if d.coordination_id == coord.id and d.status in OUTLOOK_STATUSES
        ]
        series = []
        for offset in range(weeks):
            week_start = sunday + timedelta(days=7 * offset)
            lo, hi = window_bounds(week_start, week_start + timedelta(days=6))
            load = _load_hours(owned, lo, hi, hours_per_day)
            percent = round(load / capacity * 100) if capacity > 0 else 0
            series.append({
                "week_start": week_start.isoformat(),
                "load": round(load, 1),
                "capacity": capacity,
                "percentage": percent,
                "level": _outlook_level(percent),
            })
        result.append({
            "coordination": coord.to_dict(),
            "people": len(members),
            "weeks": series,
        })
    return result
