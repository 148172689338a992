"""
Demand Capacity Engine
Reference-data service: areas, coordinations, people, categories, SLA rules.

Plain CRUD with field validation; no lifecycle. The engine only ever reads
these records. SLA rules are unique per (category, complexity); a second rule
for the same pair raises ConflictError.

Usage:
    from app.services import config_service

    person = config_service.create_person(repo, {"name": "Ana", "coordination_id": "c1"})
    count = config_service.seed_defaults(repo)
"""

from __future__ import annotations

import logging
import uuid

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models.domain import Area, Category, Complexity, Coordination, Person, SLAConfig

logger = logging.getLogger(__name__)

# Seeded on an empty database (category id, name, {complexity: hours})
DEFAULT_CATEGORIES = (
    ("cat-feature", "Feature", {"low": 24, "medium": 48, "high": 120}),
    ("cat-bugfix", "Bugfix", {"low": 8, "medium": 16, "high": 48}),
    ("cat-improvement", "Improvement", {}),
)


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


def _required_text(data: dict, key: str, max_len: int = 200) -> str:
    raw = data.get(key)
    value = raw.strip() if isinstance(raw, str) else ""
    if not value:
        raise ValidationError(f"{key} is required", details={key: "required"})
    if len(value) > max_len:
        raise ValidationError(f"{key} must be ≤ {max_len} characters", details={key: "too long"})
    return value


def _ensure_new(records, record_id: str | None, label: str) -> None:
    if record_id and any(r.id == record_id for r in records):
        raise ConflictError(label, "id", record_id)


def _find(records, record_id: str, label: str):
    for record in records:
        if record.id == record_id:
            return record
    raise NotFoundError(label, record_id)


# ═════════════════════════════════════════════════════════════════════════════
# Areas & coordinations
# ═════════════════════════════════════════════════════════════════════════════


def create_area(repo, data: dict) -> Area:
    _ensure_new(repo.list_areas(), data.get("id"), "Area")
    area = Area(
        id=data.get("id") or _new_id("area"),
        name=_required_text(data, "name"),
        description=(data.get("description") or "").strip(),
    )
    return repo.save_reference(area)


def update_area(repo, area_id: str, data: dict) -> Area:
    current = _find(repo.list_areas(), area_id, "Area")
    merged = {"name": current.name, "description": current.description, **data}
    return repo.save_reference(Area(
        id=area_id,
        name=_required_text(merged, "name"),
        description=(merged.get("description") or "").strip(),
    ))


def create_coordination(repo, data: dict) -> Coordination:
    _ensure_new(repo.list_coordinations(), data.get("id"), "Coordination")
    coord = Coordination(
        id=data.get("id") or _new_id("coord"),
        name=_required_text(data, "name"),
        description=(data.get("description") or "").strip(),
    )
    return repo.save_reference(coord)


def update_coordination(repo, coordination_id: str, data: dict) -> Coordination:
    current = _find(repo.list_coordinations(), coordination_id, "Coordination")
    merged = {"name": current.name, "description": current.description, **data}
    return repo.save_reference(Coordination(
        id=coordination_id,
        name=_required_text(merged, "name"),
        description=(merged.get("description") or "").strip(),
    ))


# ═════════════════════════════════════════════════════════════════════════════
# People
# ═════════════════════════════════════════════════════════════════════════════


def _person_from(repo, person_id: str, data: dict) -> Person:
    coordination_id = data.get("coordination_id") or None
    if coordination_id:
        _find(repo.list_coordinations(), coordination_id, "Coordination")
    email = (data.get("email") or "").strip()
    if email and "@" not in email:
        raise ValidationError("email is not valid", details={"email": "invalid"})
    return Person(
        id=person_id,
        name=_required_text(data, "name"),
        role=(data.get("role") or "").strip(),
        coordination_id=coordination_id,
        email=email,
    )


def create_person(repo, data: dict) -> Person:
    _ensure_new(repo.list_people(), data.get("id"), "Person")
    return repo.save_reference(_person_from(repo, data.get("id") or _new_id("person"), data))


def update_person(repo, person_id: str, data: dict) -> Person:
    current = _find(repo.list_people(), person_id, "Person")
    merged = {**current.to_dict(), **data}
    return repo.save_reference(_person_from(repo, person_id, merged))


# ═════════════════════════════════════════════════════════════════════════════
# Categories & SLA rules
# ═════════════════════════════════════════════════════════════════════════════


def _check_category_name(repo, name: str, own_id: str | None = None) -> None:
    for cat in repo.list_categories():
        if cat.id != own_id and cat.name.lower() == name.lower():
            raise ConflictError("Category", "name", name)


def create_category(repo, data: dict) -> Category:
    _ensure_new(repo.list_categories(), data.get("id"), "Category")
    name = _required_text(data, "name", max_len=100)
    _check_category_name(repo, name)
    return repo.save_reference(Category(id=data.get("id") or _new_id("cat"), name=name))


def update_category(repo, category_id: str, data: dict) -> Category:
    current = _find(repo.list_categories(), category_id, "Category")
    name = _required_text({"name": current.name, **data}, "name", max_len=100)
    _check_category_name(repo, name, own_id=category_id)
    return repo.save_reference(Category(id=category_id, name=name))


def _sla_from(repo, rule_id: str, data: dict) -> SLAConfig:
    category_id = data.get("category_id")
    if not category_id:
        raise ValidationError("category_id is required", details={"category_id": "required"})
    _find(repo.list_categories(), category_id, "Category")

    complexity = data.get("complexity")
    if complexity not in Complexity.ALL:
        raise ValidationError(
            f"complexity must be one of {', '.join(Complexity.ALL)}",
            details={"complexity": "invalid"},
        )
    try:
        hours = float(data.get("sla_hours"))
    except (TypeError, ValueError):
        raise ValidationError("sla_hours must be a number", details={"sla_hours": "invalid"})
    if hours <= 0:
        raise ValidationError("sla_hours must be positive", details={"sla_hours": "out of range"})

    for rule in repo.list_sla_configs():
        if rule.id != rule_id and rule.category_id == category_id and rule.complexity == complexity:
            raise ConflictError("SLA rule", "category_id/complexity", f"{category_id}/{complexity}")

    return SLAConfig(id=rule_id, category_id=category_id, complexity=complexity, sla_hours=hours)


def create_sla_config(repo, data: dict) -> SLAConfig:
    _ensure_new(repo.list_sla_configs(), data.get("id"), "SLA rule")
    return repo.save_reference(_sla_from(repo, data.get("id") or _new_id("sla"), data))


def update_sla_config(repo, rule_id: str, data: dict) -> SLAConfig:
    current = _find(repo.list_sla_configs(), rule_id, "SLA rule")
    return repo.save_reference(_sla_from(repo, rule_id, {**current.to_dict(), **data}))


# ── Deletes ──────────────────────────────────────────────────────────────────


def delete_reference(repo, record_type, record_id: str) -> None:
    repo.delete_reference(record_type, record_id)
    logger.info("Deleted %s id=%s", record_type.__name__, record_id)


# ── Seed ─────────────────────────────────────────────────────────────────────


def seed_defaults(repo) -> int:
    """Create the default categories and SLA rules that are missing. Returns rows added."""
    existing_categories = {c.id for c in repo.list_categories()}
    existing_rules = {(r.category_id, r.complexity) for r in repo.list_sla_configs()}
    added = 0
    for cat_id, name, rules in DEFAULT_CATEGORIES:
        if cat_id not in existing_categories:
            repo.save_reference(Category(id=cat_id, name=name))
            added += 1
        for complexity, hours in rules.items():
            if (cat_id, complexity) in existing_rules:
                continue
            repo.save_reference(SLAConfig(
                id=f"sla-{cat_id.removeprefix('cat-')}-{complexity}",
                category_id=cat_id,
                complexity=complexity,
                sla_hours=float(hours),
            ))
            added += 1
    logger.info("Seeded %d default reference rows", added)
    return added
