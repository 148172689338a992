"""
Temporal overlap between two half-open intervals.

Every capacity figure in the engine is built from this one primitive:
``overlap_days`` gives the shared span in (fractional) days and
``overlap_hours`` converts it with the standard working-day length.
"""

from datetime import datetime, timedelta

_ZERO = timedelta(0)


def overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> timedelta:
    """Length of the intersection of [a_start, a_end) and [b_start, b_end); never negative."""
    shared = min(a_end, b_end) - max(a_start, b_start)
    return shared if shared > _ZERO else _ZERO


def overlap_days(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> float:
    return overlap(a_start, a_end, b_start, b_end).total_seconds() / 86400


def overlap_hours(
    a_start: datetime,
    a_end: datetime,
    b_start: datetime,
    b_end: datetime,
    hours_per_day: float = 8.0,
) -> float:
    """Overlap expressed as working hours (days × hours_per_day)."""
    return overlap_days(a_start, a_end, b_start, b_end) * hours_per_day
