"""
Demand Capacity Engine
Status Transition Engine.

Validates and applies lifecycle moves on immutable ``Demand`` records:
  - stamps started_at / finished_at / status_timestamps
  - appends the workflow log and the human-readable history
  - enforces the archive / completion / restore rules

Rejected moves (same status, unknown target, archived → anything but restore)
come back as ``TransitionResult(ok=False)`` with the demand untouched and no
log entry. Missing justifications and summaries raise ``ValidationError``
before anything is applied.

Usage:
    from app.services.demand_workflow import apply_transition

    result = apply_transition(demand, "in_execution", actor="Ana", now=now)
    if not result.ok:
        ...  # result.message explains the conflict
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import NamedTuple

from app.core.exceptions import ValidationError
from app.models.domain import (
    LINEAR_FLOW,
    Demand,
    DemandStatus,
    HistoryAction,
    HistoryEntry,
    WorkflowLog,
)
from app.services.sla_service import evaluate_sla

logger = logging.getLogger(__name__)


# Linear states move freely between each other (board drag and drop);
# anything short of completed can be archived; archived only leaves via restore.
WORKFLOW_TRANSITIONS = {
    "intake": {"qualification", "queued", "in_execution", "validation", "completed", "archived"},
    "qualification": {"intake", "queued", "in_execution", "validation", "completed", "archived"},
    "queued": {"intake", "qualification", "in_execution", "validation", "completed", "archived"},
    "in_execution": {"intake", "qualification", "queued", "validation", "completed", "archived"},
    "validation": {"intake", "qualification", "queued", "in_execution", "completed", "archived"},
    "completed": {"intake", "qualification", "queued", "in_execution", "validation"},
    "archived": {"queued"},
}

# Moves that are only legal through their dedicated operation.
_RESTORE_ONLY = {("archived", "queued")}

SUMMARY_PREVIEW_CHARS = 50


class TransitionResult(NamedTuple):
    demand: Demand
    ok: bool
    message: str = ""


def validate_demand_transition(current: str, target: str) -> tuple[bool, str]:
    """Return (allowed, reason) for a plain status move."""
    if not isinstance(target, str) or target not in WORKFLOW_TRANSITIONS:
        return False, f"Unknown status '{target}'"
    if current == target:
        return False, f"Demand is already '{current}'"
    if target not in WORKFLOW_TRANSITIONS.get(current, set()):
        return False, f"Cannot move from '{current}' to '{target}'"
    if (current, target) in _RESTORE_ONLY:
        return False, "Archived demands can only be restored"
    return True, ""


def _blank(value, field: str) -> bool:
    """True for a missing or whitespace-only text field; non-text raises."""
    if value is None:
        return True
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be text", details={field: "must be text"})
    return not value.strip()


def _enter_status(demand: Demand, target: str, now: datetime, **changes) -> Demand:
    """Apply the timestamp bookkeeping shared by every accepted move."""
    started_at = demand.started_at
    if target == DemandStatus.IN_EXECUTION and started_at is None:
        started_at = now
    finished_at = now if target == DemandStatus.COMPLETED else None

    return demand.evolve(
        status=target,
        started_at=started_at,
        finished_at=finished_at,
        status_timestamps={**demand.status_timestamps, target: now},
        logs=demand.logs + (WorkflowLog(demand.status, target, now),),
        **changes,
    )


def _rejected(demand: Demand, reason: str) -> TransitionResult:
    logger.info("Transition rejected id=%s status=%s: %s", demand.id, demand.status, reason)
    return TransitionResult(demand, False, reason)


# ═════════════════════════════════════════════════════════════════════════════
# Operations
# ═════════════════════════════════════════════════════════════════════════════


def apply_transition(
    demand: Demand,
    target: str,
    *,
    actor: str,
    now: datetime,
    justification: str | None = None,
    delivery_summary: str | None = None,
    delay_justification: str | None = None,
    sla_configs=(),
    categories=(),
) -> TransitionResult:
    """Move ``demand`` to ``target``.

    Archiving and completing are routed through their dedicated operations so
    the same rules apply whichever entry point a caller uses.
    """
    allowed, reason = validate_demand_transition(demand.status, target)
    if not allowed:
        return _rejected(demand, reason)

    if target == DemandStatus.ARCHIVED:
        return archive_demand(demand, actor=actor, now=now, justification=justification)
    if target == DemandStatus.COMPLETED:
        return complete_demand(
            demand,
            actor=actor,
            now=now,
            delivery_summary=delivery_summary,
            delay_justification=delay_justification,
            sla_configs=sla_configs,
            categories=categories,
        )

    updated = _enter_status(demand, target, now)
    logger.info("Demand transitioned id=%s %s → %s", demand.id, demand.status, target)
    return TransitionResult(updated, True, f"Moved to '{target}'")


def archive_demand(
    demand: Demand,
    *,
    actor: str,
    now: datetime,
    justification: str | None,
) -> TransitionResult:
    """Archive with a mandatory reason, stored verbatim as cancellation_reason."""
    allowed, reason = validate_demand_transition(demand.status, DemandStatus.ARCHIVED)
    if not allowed:
        return _rejected(demand, reason)
    if _blank(justification, "justification"):
        raise ValidationError(
            "A justification is required to archive a demand",
            details={"justification": "required"},
        )

    updated = _enter_status(
        demand, DemandStatus.ARCHIVED, now,
        cancellation_reason=justification,
    ).with_history(
        HistoryEntry(now, HistoryAction.CANCELLATION, f"Archived. Reason: {justification}", actor),
    )
    logger.info("Demand archived id=%s from=%s", demand.id, demand.status)
    return TransitionResult(updated, True, "Archived")


def complete_demand(
    demand: Demand,
    *,
    actor: str,
    now: datetime,
    delivery_summary: str | None,
    delay_justification: str | None = None,
    sla_configs=(),
    categories=(),
) -> TransitionResult:
    """Complete with a delivery summary; an SLA breach also needs a delay justification.

    Both history entries and every field change land in one new record, so
    the caller commits or rolls back the completion as a unit.
    """
    allowed, reason = validate_demand_transition(demand.status, DemandStatus.COMPLETED)
    if not allowed:
        return _rejected(demand, reason)
    if _blank(delivery_summary, "delivery_summary"):
        raise ValidationError(
            "A delivery summary is required to complete a demand",
            details={"delivery_summary": "required"},
        )

    evaluation = evaluate_sla(demand, sla_configs, categories, now)
    if evaluation.breached and _blank(delay_justification, "delay_justification"):
        raise ValidationError(
            "SLA exceeded: a delay justification is required",
            details={
                "delay_justification": "required",
                "actual_hours": evaluation.actual_hours,
                "allowed_hours": evaluation.allowed_hours,
            },
        )

    preview = delivery_summary[:SUMMARY_PREVIEW_CHARS]
    if len(delivery_summary) > SUMMARY_PREVIEW_CHARS:
        preview += "..."
    entries = [HistoryEntry(now, HistoryAction.COMPLETION, f"Delivery made. {preview}", actor)]
    changes = {"delivery_summary": delivery_summary}
    if evaluation.breached:
        changes["delay_justification"] = delay_justification
        entries.append(HistoryEntry(
            now,
            HistoryAction.COMPLETION,
            f"SLA exceeded ({evaluation.actual_hours:g}h vs {evaluation.allowed_hours:g}h). "
            f"Justification: {delay_justification}",
            actor,
        ))

    updated = _enter_status(demand, DemandStatus.COMPLETED, now, **changes).with_history(*entries)
    logger.info(
        "Demand completed id=%s breached=%s actual=%sh allowed=%sh",
        demand.id, evaluation.breached, evaluation.actual_hours, evaluation.allowed_hours,
    )
    return TransitionResult(updated, True, "Completed")


def restore_demand(demand: Demand, *, actor: str, now: datetime) -> TransitionResult:
    """Bring an archived demand back to the queue."""
    if demand.status != DemandStatus.ARCHIVED:
        return _rejected(demand, "Only archived demands can be restored")

    updated = _enter_status(
        demand, DemandStatus.QUEUED, now,
        cancellation_reason=None,
    ).with_history(
        HistoryEntry(now, HistoryAction.RESTORATION, "Restored from archive to queue", actor),
    )
    logger.info("Demand restored id=%s", demand.id)
    return TransitionResult(updated, True, "Restored")


def toggle_priority(demand: Demand, *, actor: str, now: datetime) -> Demand:
    """Flip the priority flag; status is untouched."""
    flagged = not demand.is_priority
    details = "Marked as priority" if flagged else "Removed from priority"
    return demand.evolve(is_priority=flagged).with_history(
        HistoryEntry(now, HistoryAction.PRIORITIZATION, details, actor),
    )


# ── Next / previous stepping ─────────────────────────────────────────────────


def next_status(status: str) -> str | None:
    if status not in LINEAR_FLOW:
        return None
    idx = LINEAR_FLOW.index(status)
    return LINEAR_FLOW[idx + 1] if idx + 1 < len(LINEAR_FLOW) else None


def previous_status(status: str) -> str | None:
    if status not in LINEAR_FLOW:
        return None
    idx = LINEAR_FLOW.index(status)
    return LINEAR_FLOW[idx - 1] if idx > 0 else None


def step_status(
    demand: Demand,
    direction: str,
    *,
    actor: str,
    now: datetime,
    **kwargs,
) -> TransitionResult:
    """Advance ("next") or retreat ("previous") one board column, clamped at both ends."""
    if direction == "next":
        target = next_status(demand.status)
    elif direction == "previous":
        target = previous_status(demand.status)
    else:
        raise ValidationError(
            f"Unknown direction '{direction}'",
            details={"direction": "must be 'next' or 'previous'"},
        )
    if target is None:
        return _rejected(demand, f"No {direction} step from '{demand.status}'")
    return apply_transition(demand, target, actor=actor, now=now, **kwargs)
