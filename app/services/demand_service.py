"""
Demand Capacity Engine
Demand Service — orchestrates every demand write.

Business logic for the demand lifecycle as seen by the API:
  - input validation (raises ValidationError before anything is applied)
  - lifecycle moves delegated to the transition engine
  - every accepted change pushed through the mutation coordinator, so a
    failed write leaves the in-memory collection exactly as it was

Architecture:
    blueprint ──▶ DemandService ──▶ demand_workflow (pure)
                        │
                        └──▶ MutationCoordinator ──▶ repository (SQL)

A service instance holds one snapshot of the collection; blueprints build a
fresh one per request with ``DemandService.from_repository``.
"""

from __future__ import annotations

import logging
import math
import uuid
from datetime import datetime

from app.core.exceptions import NotFoundError, ValidationError
from app.models.domain import (
    Complexity,
    Demand,
    DemandStatus,
    DemandType,
    HistoryAction,
    HistoryEntry,
)
from app.services import demand_workflow as workflow
from app.services.classification import classify_demand_type
from app.services.mutation import (
    DemandStore,
    MutationCoordinator,
    MutationResult,
    MutationState,
    add_demand,
    remove_demand,
    replace_demand,
)
from app.services.sla_service import SLAEvaluation, evaluate_sla
from app.utils.helpers import parse_date

logger = logging.getLogger(__name__)

MAX_EFFORT_HOURS = 10_000
MIN_TITLE_LENGTH = 3

EDITABLE_FIELDS = (
    "title",
    "description",
    "person_id",
    "coordination_id",
    "requester_name",
    "requester_area_id",
    "category",
    "demand_type",
    "complexity",
    "effort",
    "agreed_deadline",
)


def new_demand_id() -> str:
    return f"dem-{uuid.uuid4().hex[:12]}"


# ── Validation ───────────────────────────────────────────────────────────────


def _parse_effort(value) -> float:
    if value is None or value == "":
        return 0.0
    if isinstance(value, bool):
        raise ValidationError("effort must be a number", details={"effort": "invalid"})
    try:
        effort = float(value)
    except (TypeError, ValueError):
        raise ValidationError("effort must be a number", details={"effort": "invalid"})
    if not math.isfinite(effort) or effort < 0 or effort > MAX_EFFORT_HOURS:
        raise ValidationError(
            f"effort must be between 0 and {MAX_EFFORT_HOURS} hours",
            details={"effort": "out of range"},
        )
    return effort


def _parse_deadline(value):
    if value in (None, ""):
        return None
    parsed = parse_date(value)
    if parsed is None:
        raise ValidationError(
            "agreed_deadline must be a date (YYYY-MM-DD)",
            details={"agreed_deadline": "invalid"},
        )
    return parsed


TEXT_FIELDS = tuple(key for key in EDITABLE_FIELDS if key not in ("effort", "agreed_deadline"))
REQUIRED_FIELDS = ("title", "person_id", "coordination_id", "requester_area_id")


def _clean(data: dict, required=()) -> dict:
    """Normalise the editable fields present in ``data``.

    Every field problem is collected first, so one ValidationError names all
    of them; ``required`` fields must end up non-empty.
    """
    out, errors = {}, {}
    for key in EDITABLE_FIELDS:
        if key not in data:
            continue
        value = data[key]
        try:
            if key == "effort":
                value = _parse_effort(value)
            elif key == "agreed_deadline":
                value = _parse_deadline(value)
        except ValidationError as exc:
            errors.update(exc.details)
            continue
        if key in TEXT_FIELDS:
            if value is not None and not isinstance(value, str):
                errors[key] = "must be text"
                continue
            value = value.strip() if value else value
        out[key] = value

    for key in required:
        if key not in errors and not out.get(key):
            errors[key] = "required"
    if "title" not in errors and out.get("title") and len(out["title"]) < MIN_TITLE_LENGTH:
        errors["title"] = "too short"
    if "complexity" in out and out["complexity"] not in Complexity.ALL:
        errors["complexity"] = "invalid"
    if out.get("demand_type") and out["demand_type"] not in DemandType.ALL:
        errors["demand_type"] = "invalid"

    if errors:
        raise ValidationError(f"Invalid demand fields: {', '.join(errors)}", details=errors)
    return out


def _describe_changes(before: Demand, after: Demand) -> list[str]:
    changes = []
    for key in EDITABLE_FIELDS:
        old, new = getattr(before, key), getattr(after, key)
        if old == new:
            continue
        if key == "title":
            changes.append("Title changed")
        elif key == "effort":
            changes.append(f"Effort: {old:g}h -> {new:g}h")
        else:
            changes.append(f"{key.replace('_', ' ').capitalize()} changed")
    return changes


# ═════════════════════════════════════════════════════════════════════════════
# Service
# ═════════════════════════════════════════════════════════════════════════════


class DemandService:
    """Demand writes and lookups over one snapshot of the collection."""

    def __init__(self, repository, *, sla_configs=(), categories=(), store: DemandStore | None = None):
        self.repository = repository
        self.store = store if store is not None else DemandStore(repository.list_demands())
        self.coordinator = MutationCoordinator(self.store)
        self.sla_configs = list(sla_configs)
        self.categories = list(categories)

    @classmethod
    def from_repository(cls, repository) -> DemandService:
        return cls(
            repository,
            sla_configs=repository.list_sla_configs(),
            categories=repository.list_categories(),
        )

    # ── reads ────────────────────────────────────────────────────────────

    def get(self, demand_id: str) -> Demand:
        demand = self.store.get(demand_id)
        if demand is None:
            raise NotFoundError("Demand", demand_id)
        return demand

    def list_demands(
        self,
        *,
        status: str | None = None,
        person_id: str | None = None,
        coordination_id: str | None = None,
        priority_only: bool = False,
        include_archived: bool = True,
    ) -> list[Demand]:
        items = list(self.store.snapshot())
        if status:
            items = [d for d in items if d.status == status]
        if person_id:
            items = [d for d in items if d.person_id == person_id]
        if coordination_id:
            items = [d for d in items if d.coordination_id == coordination_id]
        if priority_only:
            items = [d for d in items if d.is_priority]
        if not include_archived:
            items = [d for d in items if d.status != DemandStatus.ARCHIVED]
        return items

    def evaluate_sla(self, demand_id: str, now: datetime) -> SLAEvaluation:
        return evaluate_sla(self.get(demand_id), self.sla_configs, self.categories, now)

    # ── reference checks ─────────────────────────────────────────────────

    def _check_references(self, fields: dict) -> None:
        lookups = (
            ("person_id", self.repository.list_people, "Person"),
            ("coordination_id", self.repository.list_coordinations, "Coordination"),
            ("requester_area_id", self.repository.list_areas, "Area"),
        )
        errors = {}
        for key, loader, label in lookups:
            value = fields.get(key)
            if value and value not in {r.id for r in loader()}:
                errors[key] = f"{label} {value} does not exist"
        if errors:
            raise ValidationError("Unknown reference", details=errors)

    # ── writes ───────────────────────────────────────────────────────────

    def _commit(self, updated: Demand, label: str) -> MutationResult:
        return self.coordinator.mutate(
            lambda items: replace_demand(items, updated),
            lambda: self.repository.update_demand(updated),
            label=label,
        )

    def create_demand(self, data: dict, *, actor: str, now: datetime) -> MutationResult:
        fields = _clean(data, required=REQUIRED_FIELDS)
        self._check_references(fields)

        if not fields.get("demand_type"):
            fields["demand_type"] = classify_demand_type(fields["title"], fields.get("description"))

        demand = Demand(
            id=new_demand_id(),
            created_at=now,
            status=DemandStatus.INTAKE,
            status_timestamps={DemandStatus.INTAKE: now},
            history=(HistoryEntry(now, HistoryAction.CREATION, "Demand created", actor),),
            **fields,
        )
        result = self.coordinator.mutate(
            lambda items: add_demand(items, demand),
            lambda: self.repository.create_demand(demand),
            label="create",
        )
        if result.committed:
            logger.info("Demand created id=%s type=%s person=%s", demand.id, demand.demand_type, demand.person_id)
        return result

    def update_demand(self, demand_id: str, data: dict, *, actor: str, now: datetime) -> MutationResult:
        current = self.get(demand_id)
        if "status" in data:
            raise ValidationError(
                "status cannot be edited directly; use a transition",
                details={"status": "read-only"},
            )
        fields = _clean(data, required=[key for key in REQUIRED_FIELDS if key in data])
        self._check_references(fields)

        candidate = current.evolve(**fields)
        changes = _describe_changes(current, candidate)
        if not changes:
            return MutationResult(MutationState.COMMITTED, value=current, message="No changes")

        updated = candidate.with_history(
            HistoryEntry(now, HistoryAction.EDIT, ". ".join(changes), actor),
        )
        result = self._commit(updated, "edit")
        if result.committed:
            logger.info("Demand edited id=%s changes=%s", demand_id, changes)
        return result

    def _apply(self, outcome: workflow.TransitionResult, label: str) -> MutationResult:
        if not outcome.ok:
            return MutationResult(MutationState.REJECTED, value=outcome.demand, message=outcome.message)
        result = self._commit(outcome.demand, label)
        return result._replace(message=outcome.message) if result.committed else result

    def transition(self, demand_id: str, target: str, *, actor: str, now: datetime, **kwargs) -> MutationResult:
        outcome = workflow.apply_transition(
            self.get(demand_id), target,
            actor=actor, now=now,
            sla_configs=self.sla_configs, categories=self.categories,
            **kwargs,
        )
        return self._apply(outcome, "transition")

    def step(self, demand_id: str, direction: str, *, actor: str, now: datetime, **kwargs) -> MutationResult:
        outcome = workflow.step_status(
            self.get(demand_id), direction,
            actor=actor, now=now,
            sla_configs=self.sla_configs, categories=self.categories,
            **kwargs,
        )
        return self._apply(outcome, "step")

    def archive(self, demand_id: str, justification: str | None, *, actor: str, now: datetime) -> MutationResult:
        outcome = workflow.archive_demand(
            self.get(demand_id), actor=actor, now=now, justification=justification,
        )
        return self._apply(outcome, "archive")

    def restore(self, demand_id: str, *, actor: str, now: datetime) -> MutationResult:
        outcome = workflow.restore_demand(self.get(demand_id), actor=actor, now=now)
        return self._apply(outcome, "restore")

    def toggle_priority(self, demand_id: str, *, actor: str, now: datetime) -> MutationResult:
        updated = workflow.toggle_priority(self.get(demand_id), actor=actor, now=now)
        return self._commit(updated, "priority")

    def delete_demand(self, demand_id: str, *, actor: str, now: datetime) -> MutationResult:
        """Hard delete. The returned record carries a final deletion entry."""
        current = self.get(demand_id)
        result = self.coordinator.mutate(
            lambda items: remove_demand(items, demand_id),
            lambda: self.repository.delete_demand(demand_id),
            label="delete",
        )
        if not result.committed:
            return result
        logger.info("Demand deleted id=%s by=%s", demand_id, actor)
        final = current.with_history(HistoryEntry(now, HistoryAction.DELETION, "Demand deleted", actor))
        return result._replace(value=final)
