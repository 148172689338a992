"""
Demand Capacity Engine
Persistence collaborator.

``DemandRepository`` / ``ReferenceRepository`` describe what the engine needs
from storage; ``SqlRepository`` implements both over Flask-SQLAlchemy.

Each call commits on its own. Any ``SQLAlchemyError`` rolls the session back
and is re-raised as ``PersistenceError`` so the mutation coordinator can
restore its snapshot. Records go in and come out as ``app.models.domain``
dataclasses; ORM rows never leave this module.
"""

from __future__ import annotations

import logging
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.core.exceptions import ConflictError, NotFoundError, PersistenceError
from app.models import db
from app.models.domain import Area, Category, Coordination, Demand, Person, SLAConfig
from app.models.tables import (
    AreaModel,
    CategoryModel,
    CoordinationModel,
    DemandModel,
    PersonModel,
    SLAConfigModel,
)

logger = logging.getLogger(__name__)


class DemandRepository(Protocol):
    def list_demands(self) -> list[Demand]: ...
    def create_demand(self, demand: Demand) -> Demand: ...
    def update_demand(self, demand: Demand) -> Demand: ...
    def delete_demand(self, demand_id: str) -> None: ...


class ReferenceRepository(Protocol):
    def list_areas(self) -> list[Area]: ...
    def list_coordinations(self) -> list[Coordination]: ...
    def list_people(self) -> list[Person]: ...
    def list_categories(self) -> list[Category]: ...
    def list_sla_configs(self) -> list[SLAConfig]: ...


# record type → (ORM model, label used in errors)
_REFERENCE_MODELS = {
    Area: (AreaModel, "Area"),
    Coordination: (CoordinationModel, "Coordination"),
    Person: (PersonModel, "Person"),
    Category: (CategoryModel, "Category"),
    SLAConfig: (SLAConfigModel, "SLA rule"),
}


class SqlRepository:
    """SQLAlchemy-backed demand and reference-data storage."""

    def __init__(self, session=None):
        self.session = session or db.session

    # ── plumbing ─────────────────────────────────────────────────────────

    def _commit(self, operation: str) -> None:
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            logger.warning("Integrity error during %s: %s", operation, exc.orig)
            raise PersistenceError(operation, "constraint violation") from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("Database error during %s: %s", operation, exc)
            raise PersistenceError(operation, str(exc)) from exc

    def _list(self, model, operation: str) -> list:
        try:
            rows = self.session.execute(select(model)).scalars().all()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("Database error during %s: %s", operation, exc)
            raise PersistenceError(operation, str(exc)) from exc
        return [row.to_record() for row in rows]

    # ── demands ──────────────────────────────────────────────────────────

    def list_demands(self) -> list[Demand]:
        records = self._list(DemandModel, "list_demands")
        return sorted(records, key=lambda d: d.created_at)

    def get_demand(self, demand_id: str) -> Demand:
        row = self.session.get(DemandModel, demand_id)
        if row is None:
            raise NotFoundError("Demand", demand_id)
        return row.to_record()

    def create_demand(self, demand: Demand) -> Demand:
        row = DemandModel()
        row.apply_record(demand)
        self.session.add(row)
        self._commit("create_demand")
        return demand

    def update_demand(self, demand: Demand) -> Demand:
        row = self.session.get(DemandModel, demand.id)
        if row is None:
            raise PersistenceError("update_demand", f"demand {demand.id} no longer exists")
        row.apply_record(demand)
        self._commit("update_demand")
        return demand

    def delete_demand(self, demand_id: str) -> None:
        row = self.session.get(DemandModel, demand_id)
        if row is None:
            return
        self.session.delete(row)
        self._commit("delete_demand")

    # ── reference data ───────────────────────────────────────────────────

    def list_areas(self) -> list[Area]:
        return self._list(AreaModel, "list_areas")

    def list_coordinations(self) -> list[Coordination]:
        return self._list(CoordinationModel, "list_coordinations")

    def list_people(self) -> list[Person]:
        return self._list(PersonModel, "list_people")

    def list_categories(self) -> list[Category]:
        return self._list(CategoryModel, "list_categories")

    def list_sla_configs(self) -> list[SLAConfig]:
        return self._list(SLAConfigModel, "list_sla_configs")

    def save_reference(self, record):
        """Create or full-replace a reference record, keyed by id."""
        model, label = _REFERENCE_MODELS[type(record)]
        row = self.session.get(model, record.id)
        if row is None:
            row = model()
            self.session.add(row)
        row.apply_record(record)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            logger.warning("Duplicate %s rejected: %s", label, exc.orig)
            raise ConflictError(label, "id", record.id) from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("Database error saving %s: %s", label, exc)
            raise PersistenceError(f"save {label}", str(exc)) from exc
        return record

    def delete_reference(self, record_type, record_id: str) -> None:
        model, label = _REFERENCE_MODELS[record_type]
        row = self.session.get(model, record_id)
        if row is None:
            raise NotFoundError(label, record_id)
        self.session.delete(row)
        self._commit(f"delete {label}")
