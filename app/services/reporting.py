"""
Demand Capacity Engine
Flow reporting — lead time, cycle time, throughput, lateness, bottlenecks.

Definitions:
    lead time   created_at → finished_at
    cycle time  started_at (else created_at) → finished_at
    WIP         demands in execution or validation
    late        completed with a recorded delay justification

All functions are read-only over a demand snapshot; averages are in days.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from datetime import date, datetime, timedelta

from app.models.domain import ACTIVE_STATUSES, Demand, DemandStatus, DemandType

logger = logging.getLogger(__name__)

_SECONDS_PER_DAY = 86400


def _days(delta: timedelta) -> float:
    return delta.total_seconds() / _SECONDS_PER_DAY


def lead_time_days(demand: Demand) -> float | None:
    if demand.finished_at is None:
        return None
    return _days(demand.finished_at - demand.created_at)


def cycle_time_days(demand: Demand) -> float | None:
    if demand.finished_at is None:
        return None
    return _days(demand.finished_at - (demand.started_at or demand.created_at))


def _avg(values) -> float:
    values = [v for v in values if v is not None]
    return round(sum(values) / len(values), 1) if values else 0.0


def _pct(part: int, whole: int) -> int:
    return round(part / whole * 100) if whole else 0


def _scoped(demands, coordination_id: str | None):
    if not coordination_id:
        return list(demands)
    return [d for d in demands if d.coordination_id == coordination_id]


def _completed(demands, year: int | None = None) -> list[Demand]:
    return [
        d for d in demands
        if d.status == DemandStatus.COMPLETED
        and d.finished_at is not None
        and (year is None or d.finished_at.year == year)
    ]


def flow_metrics(demands, *, year: int | None = None, coordination_id: str | None = None) -> dict:
    """Headline flow numbers; WIP ignores the year filter."""
    scoped = _scoped(demands, coordination_id)
    completed = _completed(scoped, year)
    late = [d for d in completed if d.delay_justification]

    by_type = {}
    for demand_type in DemandType.ALL:
        items = [d for d in completed if d.demand_type == demand_type]
        by_type[demand_type] = {
            "count": len(items),
            "lead_time_avg": _avg(lead_time_days(d) for d in items),
            "cycle_time_avg": _avg(cycle_time_days(d) for d in items),
        }

    return {
        "total": len(scoped),
        "wip": sum(1 for d in scoped if d.status in ACTIVE_STATUSES),
        "throughput": len(completed),
        "late_count": len(late),
        "late_pct": _pct(len(late), len(completed)),
        "lead_time_avg": _avg(lead_time_days(d) for d in completed),
        "cycle_time_avg": _avg(cycle_time_days(d) for d in completed),
        "by_type": by_type,
    }


def monthly_series(demands, *, year: int | None = None, coordination_id: str | None = None) -> list[dict]:
    """Per-month buckets (``YYYY-MM``) of finished and archived demands."""
    scoped = _scoped(demands, coordination_id)
    finished = defaultdict(list)
    archived = Counter()

    for demand in _completed(scoped, year):
        finished[demand.finished_at.strftime("%Y-%m")].append(demand)
    for demand in scoped:
        if demand.status != DemandStatus.ARCHIVED:
            continue
        stamp = demand.status_timestamps.get(DemandStatus.ARCHIVED)
        if stamp is None or (year is not None and stamp.year != year):
            continue
        archived[stamp.strftime("%Y-%m")] += 1

    series = []
    for month in sorted(set(finished) | set(archived)):
        items = finished.get(month, [])
        late = sum(1 for d in items if d.delay_justification)
        series.append({
            "month": month,
            "finished": len(items),
            "archived": archived.get(month, 0),
            "system": sum(1 for d in items if d.demand_type == DemandType.SYSTEM),
            "task": sum(1 for d in items if d.demand_type == DemandType.TASK),
            "late": late,
            "late_pct": _pct(late, len(items)),
            "lead_time_avg": _avg(lead_time_days(d) for d in items),
            "cycle_time_avg": _avg(cycle_time_days(d) for d in items),
        })
    return series


def capacity_forecast(demands, now: datetime) -> dict:
    """Expected delivery date for work arriving now, from the average lead time."""
    demands = list(demands)
    completed = _completed(demands)
    lead_times = [lead_time_days(d) for d in completed]
    avg_lead = round(sum(lead_times) / len(lead_times)) if lead_times else 0
    return {
        "in_progress": sum(1 for d in demands if d.status == DemandStatus.IN_EXECUTION),
        "avg_lead_time_days": avg_lead,
        "estimated_completion": (now + timedelta(days=avg_lead)).date().isoformat(),
    }


def find_bottleneck(demands, coordinations) -> dict | None:
    """Coordination with the most work waiting in intake or queue (None if nothing waits)."""
    waiting = Counter(
        d.coordination_id for d in demands
        if d.status in (DemandStatus.INTAKE, DemandStatus.QUEUED) and d.coordination_id
    )
    if not waiting:
        return None
    names = {c.id: c for c in coordinations}
    # most_common keeps first-seen order on ties
    coordination_id, count = waiting.most_common(1)[0]
    coord = names.get(coordination_id)
    return {
        "coordination_id": coordination_id,
        "name": coord.name if coord else None,
        "waiting": count,
    }


def recent_wins(demands, limit: int = 3) -> list[Demand]:
    completed = _completed(demands)
    return sorted(completed, key=lambda d: d.finished_at, reverse=True)[:limit]


def efficiency_rate(demands) -> int:
    """Completed share of all non-archived demands, in percent."""
    live = [d for d in demands if d.status != DemandStatus.ARCHIVED]
    return _pct(sum(1 for d in live if d.status == DemandStatus.COMPLETED), len(live))


def delivery_report(demands, start: date, end: date, *, coordination_id: str | None = None) -> dict:
    """Deliveries whose finish date falls in [start, end]."""
    items = [
        d for d in _completed(_scoped(demands, coordination_id))
        if start <= d.finished_at.date() <= end
    ]
    items.sort(key=lambda d: d.finished_at)
    late = [d for d in items if d.delay_justification]
    return {
        "start": start.isoformat(),
        "end": end.isoformat(),
        "delivered": len(items),
        "total_effort": sum(d.effort for d in items),
        "late_items": len(late),
        "on_time_pct": 100 if not items else _pct(len(items) - len(late), len(items)),
        "by_type": dict(Counter(d.demand_type for d in items)),
        "items": [d.to_dict() for d in items],
    }
