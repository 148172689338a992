"""
Demand Capacity Engine
ORM tables.

Models:
    - AreaModel:          requesting organisational unit
    - CoordinationModel:  executing team
    - PersonModel:        assignee, member of one coordination
    - CategoryModel:      demand category (SLA rules key on it)
    - SLAConfigModel:     allowed hours per (category, complexity)
    - DemandModel:        the demand itself; logs / history / status_timestamps
                          are stored as JSON columns

Architecture:
    Coordination ──1:N──▶ Person ──1:N──▶ Demand
    Category ──1:N──▶ SLAConfig   (unique per complexity)
    Area ──1:N──▶ Demand          (requester side)

Each model converts to the matching record in ``app.models.domain``
(``to_record``) and back (``apply_record``); the engine never sees ORM rows.
"""

import uuid
from datetime import datetime, timezone

from app.models import db
from app.models.domain import (
    Area,
    Category,
    Complexity,
    Coordination,
    Demand,
    DemandStatus,
    DemandType,
    HistoryEntry,
    Person,
    SLAConfig,
    WorkflowLog,
    as_utc,
    parse_datetime,
)


def _new_id() -> str:
    return uuid.uuid4().hex


class AreaModel(db.Model):
    __tablename__ = "areas"

    id = db.Column(db.String(64), primary_key=True, default=_new_id)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    def to_record(self) -> Area:
        return Area(id=self.id, name=self.name, description=self.description or "")

    def apply_record(self, record: Area) -> None:
        self.id = record.id
        self.name = record.name
        self.description = record.description

    def __repr__(self):
        return f"<Area {self.id}: {self.name}>"


class CoordinationModel(db.Model):
    __tablename__ = "coordinations"

    id = db.Column(db.String(64), primary_key=True, default=_new_id)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    people = db.relationship("PersonModel", backref="coordination", lazy="select")

    def to_record(self) -> Coordination:
        return Coordination(id=self.id, name=self.name, description=self.description or "")

    def apply_record(self, record: Coordination) -> None:
        self.id = record.id
        self.name = record.name
        self.description = record.description

    def __repr__(self):
        return f"<Coordination {self.id}: {self.name}>"


class PersonModel(db.Model):
    __tablename__ = "people"

    id = db.Column(db.String(64), primary_key=True, default=_new_id)
    name = db.Column(db.String(200), nullable=False)
    role = db.Column(db.String(100), default="")
    email = db.Column(db.String(200), default="")
    coordination_id = db.Column(
        db.String(64),
        db.ForeignKey("coordinations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    def to_record(self) -> Person:
        return Person(
            id=self.id,
            name=self.name,
            role=self.role or "",
            coordination_id=self.coordination_id,
            email=self.email or "",
        )

    def apply_record(self, record: Person) -> None:
        self.id = record.id
        self.name = record.name
        self.role = record.role
        self.coordination_id = record.coordination_id
        self.email = record.email

    def __repr__(self):
        return f"<Person {self.id}: {self.name}>"


class CategoryModel(db.Model):
    __tablename__ = "categories"

    id = db.Column(db.String(64), primary_key=True, default=_new_id)
    name = db.Column(db.String(100), nullable=False, unique=True)

    sla_configs = db.relationship(
        "SLAConfigModel", backref="category",
        cascade="all, delete-orphan", lazy="select",
    )

    def to_record(self) -> Category:
        return Category(id=self.id, name=self.name)

    def apply_record(self, record: Category) -> None:
        self.id = record.id
        self.name = record.name

    def __repr__(self):
        return f"<Category {self.id}: {self.name}>"


class SLAConfigModel(db.Model):
    """Allowed elapsed hours per category and complexity."""

    __tablename__ = "sla_configs"

    id = db.Column(db.String(64), primary_key=True, default=_new_id)
    category_id = db.Column(
        db.String(64),
        db.ForeignKey("categories.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    complexity = db.Column(
        db.String(10), nullable=False,
        comment="low | medium | high",
    )
    sla_hours = db.Column(db.Float, nullable=False, comment="Maximum elapsed hours")

    __table_args__ = (
        db.UniqueConstraint("category_id", "complexity", name="uq_sla_category_complexity"),
    )

    def to_record(self) -> SLAConfig:
        return SLAConfig(
            id=self.id,
            category_id=self.category_id,
            complexity=self.complexity,
            sla_hours=self.sla_hours,
        )

    def apply_record(self, record: SLAConfig) -> None:
        self.id = record.id
        self.category_id = record.category_id
        self.complexity = record.complexity
        self.sla_hours = record.sla_hours

    def __repr__(self):
        return f"<SLAConfig {self.category_id}/{self.complexity}: {self.sla_hours}h>"


class DemandModel(db.Model):
    __tablename__ = "demands"

    id = db.Column(db.String(64), primary_key=True, default=_new_id)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    status = db.Column(
        db.String(20), nullable=False, default=DemandStatus.INTAKE, index=True,
        comment="intake | qualification | queued | in_execution | validation | completed | archived",
    )
    person_id = db.Column(
        db.String(64),
        db.ForeignKey("people.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    coordination_id = db.Column(
        db.String(64),
        db.ForeignKey("coordinations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    requester_name = db.Column(db.String(200), default="")
    requester_area_id = db.Column(
        db.String(64),
        db.ForeignKey("areas.id", ondelete="SET NULL"),
        nullable=True,
    )
    # Category id or, for legacy rows, its name; the SLA evaluator resolves both.
    category = db.Column(db.String(100), nullable=True)
    demand_type = db.Column(db.String(10), default=DemandType.TASK, comment="system | task")
    complexity = db.Column(db.String(10), default=Complexity.MEDIUM)
    effort = db.Column(db.Float, default=0.0, comment="Estimated hours")
    agreed_deadline = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    finished_at = db.Column(db.DateTime(timezone=True), nullable=True)

    delivery_summary = db.Column(db.Text, nullable=True)
    delay_justification = db.Column(db.Text, nullable=True)
    cancellation_reason = db.Column(db.Text, nullable=True)
    is_priority = db.Column(db.Boolean, default=False, nullable=False)

    status_timestamps = db.Column(db.JSON, default=dict)
    logs = db.Column(db.JSON, default=list, comment='[{"from", "to", "timestamp"}]')
    history = db.Column(db.JSON, default=list, comment='[{"timestamp", "action", "details", "user"}]')

    def to_record(self) -> Demand:
        return Demand(
            id=self.id,
            title=self.title,
            description=self.description or "",
            status=self.status,
            person_id=self.person_id,
            coordination_id=self.coordination_id,
            requester_name=self.requester_name or "",
            requester_area_id=self.requester_area_id,
            category=self.category,
            demand_type=self.demand_type or DemandType.TASK,
            complexity=self.complexity or Complexity.MEDIUM,
            effort=float(self.effort or 0),
            agreed_deadline=self.agreed_deadline,
            created_at=as_utc(self.created_at),
            started_at=as_utc(self.started_at),
            finished_at=as_utc(self.finished_at),
            delivery_summary=self.delivery_summary,
            delay_justification=self.delay_justification,
            cancellation_reason=self.cancellation_reason,
            is_priority=bool(self.is_priority),
            status_timestamps={
                k: parse_datetime(v) for k, v in (self.status_timestamps or {}).items()
            },
            logs=tuple(WorkflowLog.from_dict(x) for x in (self.logs or [])),
            history=tuple(HistoryEntry.from_dict(x) for x in (self.history or [])),
        )

    def apply_record(self, record: Demand) -> None:
        """Full replace of every column from the record."""
        self.id = record.id
        self.title = record.title
        self.description = record.description
        self.status = record.status
        self.person_id = record.person_id
        self.coordination_id = record.coordination_id
        self.requester_name = record.requester_name
        self.requester_area_id = record.requester_area_id
        self.category = record.category
        self.demand_type = record.demand_type
        self.complexity = record.complexity
        self.effort = record.effort
        self.agreed_deadline = record.agreed_deadline
        self.created_at = record.created_at
        self.started_at = record.started_at
        self.finished_at = record.finished_at
        self.delivery_summary = record.delivery_summary
        self.delay_justification = record.delay_justification
        self.cancellation_reason = record.cancellation_reason
        self.is_priority = record.is_priority
        self.status_timestamps = {
            k: v.isoformat() for k, v in record.status_timestamps.items() if v
        }
        self.logs = [entry.to_dict() for entry in record.logs]
        self.history = [entry.to_dict() for entry in record.history]

    def __repr__(self):
        return f"<Demand {self.id}: {self.title[:30]} [{self.status}]>"
