"""
DemandService against the SQL repository: creation, edits, lifecycle moves,
deletion, and rollback when the repository fails a write.
"""

from datetime import timedelta

import pytest

from app.core.exceptions import NotFoundError, PersistenceError, ValidationError
from app.models.domain import DemandStatus, DemandType, HistoryAction
from app.services.classification import classify_demand_type
from app.services.demand_service import DemandService
from app.services.mutation import MutationState
from app.services.persistence import SqlRepository

ACTOR = "Ana"


def _payload(**kw):
    data = {
        "title": "Quarterly revenue report",
        "person_id": "person-alice",
        "coordination_id": "coord-eng",
        "requester_area_id": "area-ops",
        "category": "cat-feature",
        "complexity": "medium",
        "effort": 16,
    }
    data.update(kw)
    return data


@pytest.fixture()
def service(repo, reference):
    return DemandService.from_repository(repo)


@pytest.fixture()
def created(service, now):
    return service.create_demand(_payload(), actor=ACTOR, now=now).value


class FlakyRepository(SqlRepository):
    """Fails every demand write after construction."""

    def create_demand(self, demand):
        raise PersistenceError("create_demand", "connection reset")

    def update_demand(self, demand):
        raise PersistenceError("update_demand", "connection reset")

    def delete_demand(self, demand_id):
        raise PersistenceError("delete_demand", "connection reset")


class TestClassification:
    @pytest.mark.parametrize("title,expected", [
        ("Build onboarding dashboard", DemandType.SYSTEM),
        ("Define data governance", DemandType.SYSTEM),
        ("Call supplier about invoice", DemandType.TASK),
    ])
    def test_keywords(self, title, expected):
        assert classify_demand_type(title) == expected

    def test_description_counts(self):
        assert classify_demand_type("Help finance", "needs a new Pipeline") == DemandType.SYSTEM


class TestCreate:
    def test_create_persists_with_creation_history(self, service, repo, now):
        result = service.create_demand(_payload(), actor=ACTOR, now=now)
        assert result.committed
        demand = result.value
        assert demand.id.startswith("dem-")
        assert demand.status == DemandStatus.INTAKE
        assert demand.demand_type == DemandType.TASK
        assert demand.history[0].action == HistoryAction.CREATION
        assert demand.history[0].user == ACTOR

        stored = repo.get_demand(demand.id)
        assert stored.title == "Quarterly revenue report"
        assert stored.effort == 16
        assert stored.status_timestamps[DemandStatus.INTAKE] == now

    def test_missing_fields(self, service, now):
        with pytest.raises(ValidationError) as exc:
            service.create_demand({"title": "Something"}, actor=ACTOR, now=now)
        assert set(exc.value.details) == {"person_id", "coordination_id", "requester_area_id"}

    @pytest.mark.parametrize("effort", [-1, 10_001, "lots", "nan", "inf"])
    def test_effort_bounds(self, service, now, effort):
        with pytest.raises(ValidationError):
            service.create_demand(_payload(effort=effort), actor=ACTOR, now=now)

    def test_unknown_reference(self, service, now):
        with pytest.raises(ValidationError) as exc:
            service.create_demand(_payload(person_id="person-ghost"), actor=ACTOR, now=now)
        assert "person_id" in exc.value.details

    def test_all_field_errors_reported_together(self, service, now):
        with pytest.raises(ValidationError) as exc:
            service.create_demand({"title": "Hi", "effort": -5}, actor=ACTOR, now=now)
        assert exc.value.details == {
            "title": "too short",
            "effort": "out of range",
            "person_id": "required",
            "coordination_id": "required",
            "requester_area_id": "required",
        }

    @pytest.mark.parametrize("field,value", [
        ("title", 12345),
        ("person_id", ["person-alice"]),
        ("complexity", {"level": "high"}),
        ("description", 7),
    ])
    def test_non_text_fields_rejected(self, service, now, field, value):
        with pytest.raises(ValidationError) as exc:
            service.create_demand(_payload(**{field: value}), actor=ACTOR, now=now)
        assert exc.value.details == {field: "must be text"}

    def test_type_is_inferred_from_title(self, service, now):
        result = service.create_demand(_payload(title="Sales dashboard"), actor=ACTOR, now=now)
        assert result.value.demand_type == DemandType.SYSTEM


class TestUpdate:
    def test_edit_records_changes(self, service, created, now):
        result = service.update_demand(created.id, {"title": "Monthly revenue report", "effort": 24},
                                       actor=ACTOR, now=now)
        assert result.committed
        assert result.value.history[-1].action == HistoryAction.EDIT
        assert result.value.history[-1].details == "Title changed. Effort: 16h -> 24h"

    def test_no_changes_is_a_no_op(self, service, created, now):
        result = service.update_demand(created.id, {"title": created.title}, actor=ACTOR, now=now)
        assert result.committed
        assert result.message == "No changes"
        assert len(result.value.history) == 1

    def test_status_is_read_only(self, service, created, now):
        with pytest.raises(ValidationError):
            service.update_demand(created.id, {"status": "completed"}, actor=ACTOR, now=now)

    def test_required_field_cannot_be_blanked(self, service, created, now):
        with pytest.raises(ValidationError) as exc:
            service.update_demand(created.id, {"person_id": "  ", "title": 9}, actor=ACTOR, now=now)
        assert exc.value.details == {"person_id": "required", "title": "must be text"}
        assert service.get(created.id).person_id == "person-alice"

    def test_unknown_demand(self, service, now):
        with pytest.raises(NotFoundError):
            service.update_demand("dem-missing", {"title": "Nope"}, actor=ACTOR, now=now)


class TestLifecycle:
    def test_full_flow_with_sla_breach(self, service, repo, created, now):
        started = now + timedelta(days=1)
        assert service.transition(created.id, DemandStatus.IN_EXECUTION, actor=ACTOR, now=started).committed
        finished = started + timedelta(days=8)

        with pytest.raises(ValidationError):
            service.transition(created.id, DemandStatus.COMPLETED, actor=ACTOR, now=finished,
                               delivery_summary="Report delivered")
        assert service.get(created.id).status == DemandStatus.IN_EXECUTION

        result = service.transition(created.id, DemandStatus.COMPLETED, actor=ACTOR, now=finished,
                                    delivery_summary="Report delivered",
                                    delay_justification="Source data arrived late")
        assert result.committed
        stored = repo.get_demand(created.id)
        assert stored.status == DemandStatus.COMPLETED
        assert stored.finished_at == finished
        assert stored.started_at == started
        assert stored.delay_justification == "Source data arrived late"
        assert [h.action for h in stored.history][-2:] == [HistoryAction.COMPLETION] * 2

    def test_rejected_move(self, service, created, now):
        result = service.transition(created.id, DemandStatus.INTAKE, actor=ACTOR, now=now)
        assert result.state == MutationState.REJECTED
        assert result.message

    def test_archive_and_restore(self, service, repo, created, now):
        assert service.archive(created.id, "No longer needed", actor=ACTOR, now=now).committed
        assert repo.get_demand(created.id).cancellation_reason == "No longer needed"

        result = service.restore(created.id, actor=ACTOR, now=now + timedelta(hours=1))
        assert result.committed
        stored = repo.get_demand(created.id)
        assert stored.status == DemandStatus.QUEUED
        assert stored.history[-1].action == HistoryAction.RESTORATION

    def test_step_and_priority(self, service, repo, created, now):
        assert service.step(created.id, "next", actor=ACTOR, now=now).value.status == DemandStatus.QUALIFICATION
        assert service.toggle_priority(created.id, actor=ACTOR, now=now).value.is_priority is True
        assert repo.get_demand(created.id).is_priority is True

    def test_delete_returns_final_record(self, service, repo, created, now):
        result = service.delete_demand(created.id, actor=ACTOR, now=now)
        assert result.committed
        assert result.value.history[-1].action == HistoryAction.DELETION
        with pytest.raises(NotFoundError):
            repo.get_demand(created.id)

    def test_sla_evaluation(self, service, created, now):
        evaluation = service.evaluate_sla(created.id, now + timedelta(hours=72))
        assert evaluation.breached is True
        assert evaluation.actual_hours == 72

    def test_list_filters(self, service, created, now):
        service.create_demand(_payload(person_id="person-bruno"), actor=ACTOR, now=now)
        assert len(service.list_demands()) == 2
        assert [d.id for d in service.list_demands(person_id="person-alice")] == [created.id]
        assert service.list_demands(priority_only=True) == []


class TestRollback:
    def test_failed_update_restores_snapshot(self, reference, repo, created, now):
        flaky = DemandService.from_repository(FlakyRepository())
        before = flaky.store.snapshot()

        result = flaky.transition(created.id, DemandStatus.QUEUED, actor=ACTOR, now=now)
        assert result.state == MutationState.ROLLED_BACK
        assert flaky.store.snapshot() == before
        assert repo.get_demand(created.id).status == DemandStatus.INTAKE

    def test_failed_create_leaves_collection_unchanged(self, reference, now):
        flaky = DemandService.from_repository(FlakyRepository())
        result = flaky.create_demand(_payload(), actor=ACTOR, now=now)
        assert result.rolled_back
        assert len(flaky.store) == 0

    def test_failed_delete_keeps_demand(self, reference, created, now):
        flaky = DemandService.from_repository(FlakyRepository())
        result = flaky.delete_demand(created.id, actor=ACTOR, now=now)
        assert result.rolled_back
        assert flaky.get(created.id).id == created.id
