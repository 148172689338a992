"""
Demand Capacity Engine
Domain records — the immutable snapshot types the engine operates on.

Records:
    - Demand:        a unit of work moving through the lifecycle
    - WorkflowLog:   one status change (from → to, timestamp)
    - HistoryEntry:  one human-readable audit line
    - Person, Coordination, Area, Category, SLAConfig: reference data

Lifecycle:
    intake → qualification → queued → in_execution → validation → completed
    any non-completed state → archived   (archived → queued via restore only)

Every record is a frozen dataclass. Engine functions never mutate a record;
they return a new one built with ``dataclasses.replace``. ``logs`` and
``history`` are tuples in insertion order (oldest first).
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone


# ── Constants ────────────────────────────────────────────────────────────────


class DemandStatus:
    INTAKE = "intake"
    QUALIFICATION = "qualification"
    QUEUED = "queued"
    IN_EXECUTION = "in_execution"
    VALIDATION = "validation"
    COMPLETED = "completed"
    ARCHIVED = "archived"

    ALL = (
        INTAKE, QUALIFICATION, QUEUED, IN_EXECUTION,
        VALIDATION, COMPLETED, ARCHIVED,
    )


# Board order; archived sits outside it.
LINEAR_FLOW = (
    DemandStatus.INTAKE,
    DemandStatus.QUALIFICATION,
    DemandStatus.QUEUED,
    DemandStatus.IN_EXECUTION,
    DemandStatus.VALIDATION,
    DemandStatus.COMPLETED,
)

ACTIVE_STATUSES = frozenset({DemandStatus.IN_EXECUTION, DemandStatus.VALIDATION})
OPEN_STATUSES = frozenset(set(DemandStatus.ALL) - {DemandStatus.COMPLETED, DemandStatus.ARCHIVED})


class Complexity:
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    ALL = (LOW, MEDIUM, HIGH)


class DemandType:
    SYSTEM = "system"
    TASK = "task"

    ALL = (SYSTEM, TASK)


class HistoryAction:
    CREATION = "creation"
    EDIT = "edit"
    CANCELLATION = "cancellation"
    COMPLETION = "completion"
    PRIORITIZATION = "prioritization"
    RESTORATION = "restoration"
    DELETION = "deletion"

    ALL = (CREATION, EDIT, CANCELLATION, COMPLETION, PRIORITIZATION, RESTORATION, DELETION)


# ── Datetime helpers ─────────────────────────────────────────────────────────


def as_utc(dt: datetime | None) -> datetime | None:
    """Normalise a datetime to UTC-aware; SQLite hands back naive values."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_datetime(value) -> datetime | None:
    """Parse an ISO-8601 string (``Z`` suffix accepted) to a UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return as_utc(datetime.fromisoformat(text))


def _iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt else None


# ── Audit records ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class WorkflowLog:
    """A single status change."""
    from_status: str
    to_status: str
    timestamp: datetime

    def to_dict(self) -> dict:
        return {
            "from": self.from_status,
            "to": self.to_status,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> WorkflowLog:
        return cls(
            from_status=data["from"],
            to_status=data["to"],
            timestamp=parse_datetime(data["timestamp"]),
        )


@dataclass(frozen=True)
class HistoryEntry:
    """A human-readable audit line."""
    timestamp: datetime
    action: str
    details: str
    user: str

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "action": self.action,
            "details": self.details,
            "user": self.user,
        }

    @classmethod
    def from_dict(cls, data: dict) -> HistoryEntry:
        return cls(
            timestamp=parse_datetime(data["timestamp"]),
            action=data["action"],
            details=data.get("details", ""),
            user=data.get("user", ""),
        )


# ── Demand ───────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Demand:
    """A unit of work tracked through the lifecycle.

    Invariants kept by the transition engine:
        finished_at is set  ⇔  status == completed
        started_at, once set, is never cleared or moved
        status_timestamps[s] is the time of the most recent entry into s
    """

    id: str
    title: str
    created_at: datetime
    status: str = DemandStatus.INTAKE
    description: str = ""
    person_id: str | None = None
    coordination_id: str | None = None
    requester_name: str = ""
    requester_area_id: str | None = None
    category: str | None = None
    demand_type: str = DemandType.TASK
    complexity: str = Complexity.MEDIUM
    effort: float = 0.0
    agreed_deadline: date | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    delivery_summary: str | None = None
    delay_justification: str | None = None
    cancellation_reason: str | None = None
    is_priority: bool = False
    status_timestamps: dict = field(default_factory=dict)
    logs: tuple = ()
    history: tuple = ()

    def evolve(self, **changes) -> Demand:
        return replace(self, **changes)

    def with_history(self, *entries: HistoryEntry) -> Demand:
        return replace(self, history=self.history + tuple(entries))

    def history_newest_first(self) -> list[HistoryEntry]:
        return list(reversed(self.history))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "person_id": self.person_id,
            "coordination_id": self.coordination_id,
            "requester_name": self.requester_name,
            "requester_area_id": self.requester_area_id,
            "category": self.category,
            "demand_type": self.demand_type,
            "complexity": self.complexity,
            "effort": self.effort,
            "agreed_deadline": self.agreed_deadline.isoformat() if self.agreed_deadline else None,
            "created_at": _iso(self.created_at),
            "started_at": _iso(self.started_at),
            "finished_at": _iso(self.finished_at),
            "delivery_summary": self.delivery_summary,
            "delay_justification": self.delay_justification,
            "cancellation_reason": self.cancellation_reason,
            "is_priority": self.is_priority,
            "status_timestamps": {
                k: _iso(v) for k, v in self.status_timestamps.items()
            },
            "logs": [entry.to_dict() for entry in self.logs],
            "history": [entry.to_dict() for entry in self.history_newest_first()],
        }


# ── Reference data ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Person:
    id: str
    name: str
    role: str = ""
    coordination_id: str | None = None
    email: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role,
            "coordination_id": self.coordination_id,
            "email": self.email,
        }


@dataclass(frozen=True)
class Coordination:
    """Executing team that owns demands."""
    id: str
    name: str
    description: str = ""

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "description": self.description}


@dataclass(frozen=True)
class Area:
    """Requesting organisational unit."""
    id: str
    name: str
    description: str = ""

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "description": self.description}


@dataclass(frozen=True)
class Category:
    id: str
    name: str

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}


@dataclass(frozen=True)
class SLAConfig:
    """Maximum allowed hours for a (category, complexity) pair."""
    id: str
    category_id: str
    complexity: str
    sla_hours: float

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category_id": self.category_id,
            "complexity": self.complexity,
            "sla_hours": self.sla_hours,
        }
