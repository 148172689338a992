"""
Demand Capacity Engine
SLA Evaluator and delivery-risk heuristics.

Formal SLA check:
  - elapsed = started_at (else created_at) → finished_at (else now)
  - the rule is the SLAConfig for (resolved category id, complexity)
  - no rule → not breached (a configuration gap is not a violation)
  - breach ⇔ elapsed hours > sla_hours

Heuristics kept apart from the formal check:
  - find_at_risk:     in-execution work running past effort × buffer
  - delayed_demands:  at-risk work plus completions that carry a delay justification
  - suggest_deadline: queue-based delivery date for new work

All functions are pure; ``now`` is always passed in.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from math import ceil
from typing import NamedTuple

from app.models.domain import (
    OPEN_STATUSES,
    Category,
    Demand,
    DemandStatus,
    SLAConfig,
)

logger = logging.getLogger(__name__)

DEFAULT_AT_RISK_BUFFER = 1.2
DEFAULT_DEADLINE_BUFFER = 1.4


class SLAEvaluation(NamedTuple):
    breached: bool
    allowed_hours: float | None = None
    actual_hours: int | None = None
    rule_id: str | None = None

    def to_dict(self) -> dict:
        return {
            "breached": self.breached,
            "allowed_hours": self.allowed_hours,
            "actual_hours": self.actual_hours,
            "rule_id": self.rule_id,
        }


class AtRiskItem(NamedTuple):
    demand: Demand
    elapsed_hours: float
    expected_hours: float

    def to_dict(self) -> dict:
        return {
            "demand": self.demand.to_dict(),
            "elapsed_hours": round(self.elapsed_hours, 1),
            "expected_hours": round(self.expected_hours, 1),
        }


def _hours(delta: timedelta) -> float:
    return delta.total_seconds() / 3600


def resolve_category_id(category: str | None, categories: list[Category]) -> str | None:
    """Map a demand's category (id, or legacy name) to a category id."""
    if not category:
        return None
    for cat in categories:
        if cat.id == category:
            return cat.id
    wanted = category.strip().lower()
    for cat in categories:
        if cat.name.strip().lower() == wanted:
            return cat.id
    return None


def find_sla_rule(
    demand: Demand,
    sla_configs: list[SLAConfig],
    categories: list[Category],
) -> SLAConfig | None:
    category_id = resolve_category_id(demand.category, categories)
    if category_id is None:
        return None
    for rule in sla_configs:
        if rule.category_id == category_id and rule.complexity == demand.complexity:
            return rule
    return None


def elapsed_hours(demand: Demand, now: datetime) -> float:
    """Hours from started_at (or created_at) to finished_at (or now)."""
    start = demand.started_at or demand.created_at
    end = demand.finished_at or now
    return _hours(end - start)


def evaluate_sla(
    demand: Demand,
    sla_configs,
    categories,
    now: datetime,
) -> SLAEvaluation:
    """Formal SLA check. Side-effect free."""
    rule = find_sla_rule(demand, list(sla_configs), list(categories))
    if rule is None:
        return SLAEvaluation(breached=False)

    elapsed = elapsed_hours(demand, now)
    return SLAEvaluation(
        breached=elapsed > rule.sla_hours,
        allowed_hours=rule.sla_hours,
        actual_hours=round(elapsed),
        rule_id=rule.id,
    )


def sla_compliance(demands, sla_configs, categories) -> dict:
    """Share of completed demands that finished inside their SLA.

    Only demands with a matching rule are counted; compliance_pct is None
    when nothing could be evaluated.
    """
    sla_configs = list(sla_configs)
    categories = list(categories)
    evaluated = breached = 0
    for demand in demands:
        if demand.status != DemandStatus.COMPLETED or demand.finished_at is None:
            continue
        result = evaluate_sla(demand, sla_configs, categories, demand.finished_at)
        if result.allowed_hours is None:
            continue
        evaluated += 1
        if result.breached:
            breached += 1

    return {
        "evaluated": evaluated,
        "within_sla": evaluated - breached,
        "breached": breached,
        "compliance_pct": round((evaluated - breached) / evaluated * 100, 1) if evaluated else None,
    }


# ═════════════════════════════════════════════════════════════════════════════
# Heuristics
# ═════════════════════════════════════════════════════════════════════════════


def find_at_risk(demands, now: datetime, buffer: float = DEFAULT_AT_RISK_BUFFER) -> list[AtRiskItem]:
    """In-execution demands whose elapsed hours already exceed effort × buffer.

    Independent of SLA rules: a demand with no rule can still be at risk.
    """
    items = []
    for demand in demands:
        if demand.status != DemandStatus.IN_EXECUTION or demand.started_at is None:
            continue
        elapsed = _hours(now - demand.started_at)
        expected = demand.effort * buffer
        if elapsed > expected:
            items.append(AtRiskItem(demand, elapsed, expected))
    return items


def delayed_demands(demands, now: datetime, buffer: float = DEFAULT_AT_RISK_BUFFER) -> list[Demand]:
    """At-risk active work followed by completions recorded as late."""
    demands = list(demands)
    result = [item.demand for item in find_at_risk(demands, now, buffer)]
    seen = {d.id for d in result}
    for demand in demands:
        if demand.id in seen:
            continue
        if demand.status == DemandStatus.COMPLETED and demand.delay_justification:
            result.append(demand)
    return result


def suggest_deadline(
    demands,
    person_id: str,
    effort: float,
    now: datetime,
    *,
    buffer: float = DEFAULT_DEADLINE_BUFFER,
    hours_per_day: float = 8.0,
) -> date:
    """Suggest an agreed deadline for new work given the assignee's open queue.

    days = (open queue hours + effort) / hours_per_day, scaled by ``buffer``
    and rounded up to whole days.
    """
    queue_hours = sum(
        d.effort for d in demands
        if d.person_id == person_id and d.status in OPEN_STATUSES
    )
    days = queue_hours / hours_per_day + (effort or 0) / hours_per_day
    suggested = now + timedelta(days=ceil(days * buffer))
    logger.debug(
        "Deadline suggestion person=%s queue=%.1fh effort=%.1fh → %s",
        person_id, queue_hours, effort or 0, suggested.date(),
    )
    return suggested.date()
