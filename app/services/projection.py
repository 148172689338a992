"""
Demand Capacity Engine
FIFO Projection Simulator.

Turns one assignee's backlog into a non-overlapping plan:

    completed      → actual interval   [started_at|created_at, finished_at]  (≥ 1 day)
    in_execution,
    validation     → actual interval   [started_at|created_at, + max(1, effort/8) days]
                                       (end pulled forward to now if already past)
    everything else→ projected, one after another from a cursor that starts at
                     now and is pushed past every active interval's end

Single resource, single queue: no holidays, no partial weeks, no multitasking.
Projections are advisory. Archived demands are ignored.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import NamedTuple

from app.models.domain import ACTIVE_STATUSES, Demand, DemandStatus, Person

KIND_ACTUAL = "actual"
KIND_PROJECTED = "projected"

_ONE_DAY = timedelta(days=1)


class ProjectedInterval(NamedTuple):
    demand_id: str
    start: datetime
    end: datetime
    kind: str
    status: str

    @property
    def is_projected(self) -> bool:
        return self.kind == KIND_PROJECTED

    def to_dict(self) -> dict:
        return {
            "demand_id": self.demand_id,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "kind": self.kind,
            "status": self.status,
        }


class TimelineRow(NamedTuple):
    person: Person
    intervals: list

    def to_dict(self) -> dict:
        return {
            "person": self.person.to_dict(),
            "intervals": [i.to_dict() for i in self.intervals],
        }


def effort_duration(effort: float | None, hours_per_day: float = 8.0) -> timedelta:
    """max(1, effort / hours_per_day) days."""
    return timedelta(days=max(1.0, (effort or 0) / hours_per_day))


def _actual_interval(demand: Demand, now: datetime, hours_per_day: float) -> ProjectedInterval:
    start = demand.started_at or demand.created_at
    if demand.status == DemandStatus.COMPLETED:
        end = max(demand.finished_at or start, start + _ONE_DAY)
    else:
        end = max(start + effort_duration(demand.effort, hours_per_day), now)
    return ProjectedInterval(demand.id, start, end, KIND_ACTUAL, demand.status)


def project_assignee(
    demands,
    person_id: str,
    now: datetime,
    hours_per_day: float = 8.0,
) -> list[ProjectedInterval]:
    """Schedule one assignee's demands; output is in created_at order."""
    own = [
        d for d in demands
        if d.person_id == person_id and d.status != DemandStatus.ARCHIVED
    ]
    # sorted() is stable, so created_at ties keep input order
    own = sorted(own, key=lambda d: d.created_at)

    intervals: dict[str, ProjectedInterval] = {}
    cursor = now

    for demand in own:
        if demand.status == DemandStatus.COMPLETED or demand.status in ACTIVE_STATUSES:
            interval = _actual_interval(demand, now, hours_per_day)
            intervals[demand.id] = interval
            if demand.status in ACTIVE_STATUSES and interval.end > cursor:
                cursor = interval.end

    for demand in own:
        if demand.id in intervals:
            continue
        end = cursor + effort_duration(demand.effort, hours_per_day)
        intervals[demand.id] = ProjectedInterval(demand.id, cursor, end, KIND_PROJECTED, demand.status)
        cursor = end

    return [intervals[d.id] for d in own]


def _day_bounds(start: date, end: date) -> tuple[datetime, datetime]:
    """[start 00:00, end 23:59:59.999] in UTC."""
    lo = datetime.combine(start, time.min, tzinfo=timezone.utc)
    hi = datetime.combine(end, time(23, 59, 59, 999000), tzinfo=timezone.utc)
    return lo, hi


def build_timeline(
    demands,
    people,
    window_start: date,
    window_end: date,
    now: datetime,
    *,
    coordination_id: str | None = None,
    person_id: str | None = None,
    hours_per_day: float = 8.0,
) -> list[TimelineRow]:
    """Per-person FIFO projection clipped to a date window.

    ``coordination_id`` keeps people who work on at least one demand of that
    coordination; ``person_id`` keeps a single person. Rows without any
    interval touching the window are dropped.
    """
    demands = list(demands)
    lo, hi = _day_bounds(window_start, window_end)

    selected = list(people)
    if coordination_id:
        involved = {d.person_id for d in demands if d.coordination_id == coordination_id}
        selected = [p for p in selected if p.id in involved]
    if person_id:
        selected = [p for p in selected if p.id == person_id]

    rows = []
    for person in selected:
        intervals = [
            i for i in project_assignee(demands, person.id, now, hours_per_day)
            if i.end >= lo and i.start <= hi
        ]
        if intervals:
            rows.append(TimelineRow(person, intervals))
    return rows
