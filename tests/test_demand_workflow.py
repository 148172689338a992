"""
State-machine tests for the demand lifecycle (``app/services/demand_workflow.py``).

    intake → qualification → queued → in_execution → validation → completed
    any linear state except completed → archived
    archived → queued   (restore only)

Covers timestamp invariants, archive / completion / restore rules, priority
toggling, next/previous stepping and rejected moves.
"""

from datetime import datetime, timedelta, timezone

import pytest

from app.core.exceptions import ValidationError
from app.models.domain import (
    LINEAR_FLOW,
    Category,
    Demand,
    DemandStatus,
    HistoryAction,
    SLAConfig,
)
from app.services import demand_workflow as wf

DAY0 = datetime(2026, 2, 2, 9, 0, tzinfo=timezone.utc)
ACTOR = "Tester"


def _demand(status: str = DemandStatus.INTAKE, **kw) -> Demand:
    base = {
        "id": "dem-1",
        "title": "Build intake form",
        "created_at": DAY0,
        "status": status,
        "person_id": "p1",
        "coordination_id": "c1",
        "effort": 16,
    }
    base.update(kw)
    return Demand(**base)


def _at(days: float) -> datetime:
    return DAY0 + timedelta(days=days)


# ═════════════════════════════════════════════════════════════════════════════
# Plain moves
# ═════════════════════════════════════════════════════════════════════════════


class TestApplyTransition:
    def test_move_appends_log_and_timestamp(self):
        result = wf.apply_transition(_demand(), DemandStatus.QUALIFICATION, actor=ACTOR, now=_at(1))
        assert result.ok
        d = result.demand
        assert d.status == DemandStatus.QUALIFICATION
        assert len(d.logs) == 1
        assert d.logs[0].from_status == DemandStatus.INTAKE
        assert d.logs[0].to_status == DemandStatus.QUALIFICATION
        assert d.status_timestamps[DemandStatus.QUALIFICATION] == _at(1)

    def test_entering_execution_sets_started_at_once(self):
        first = wf.apply_transition(_demand(DemandStatus.QUEUED), DemandStatus.IN_EXECUTION,
                                    actor=ACTOR, now=_at(2)).demand
        back = wf.apply_transition(first, DemandStatus.QUEUED, actor=ACTOR, now=_at(3)).demand
        again = wf.apply_transition(back, DemandStatus.IN_EXECUTION, actor=ACTOR, now=_at(4)).demand
        assert first.started_at == _at(2)
        assert back.started_at == _at(2)
        assert again.started_at == _at(2)
        assert again.status_timestamps[DemandStatus.IN_EXECUTION] == _at(4)

    def test_leaving_completed_clears_finished_at(self):
        done = _demand(DemandStatus.COMPLETED, finished_at=_at(5), started_at=_at(1))
        result = wf.apply_transition(done, DemandStatus.VALIDATION, actor=ACTOR, now=_at(6))
        assert result.ok
        assert result.demand.finished_at is None
        assert result.demand.started_at == _at(1)

    def test_original_record_is_untouched(self):
        original = _demand()
        wf.apply_transition(original, DemandStatus.QUEUED, actor=ACTOR, now=_at(1))
        assert original.status == DemandStatus.INTAKE
        assert original.logs == ()

    @pytest.mark.parametrize("current,target", [
        (DemandStatus.INTAKE, DemandStatus.INTAKE),
        (DemandStatus.ARCHIVED, DemandStatus.COMPLETED),
        (DemandStatus.ARCHIVED, DemandStatus.QUEUED),
        (DemandStatus.COMPLETED, DemandStatus.ARCHIVED),
        (DemandStatus.QUEUED, "on_hold"),
        (DemandStatus.QUEUED, ["in_execution"]),
    ])
    def test_rejected_moves_are_no_ops(self, current, target):
        demand = _demand(current, cancellation_reason="x" if current == DemandStatus.ARCHIVED else None)
        result = wf.apply_transition(demand, target, actor=ACTOR, now=_at(1),
                                     justification="why", delivery_summary="done")
        assert not result.ok
        assert result.demand is demand
        assert result.message

    def test_finished_at_invariant_over_a_sequence(self):
        d = _demand()
        path = [
            DemandStatus.QUEUED, DemandStatus.IN_EXECUTION, DemandStatus.VALIDATION,
            DemandStatus.COMPLETED, DemandStatus.IN_EXECUTION, DemandStatus.COMPLETED,
        ]
        for i, target in enumerate(path, start=1):
            d = wf.apply_transition(d, target, actor=ACTOR, now=_at(i), delivery_summary="Shipped").demand
            assert (d.finished_at is not None) == (d.status == DemandStatus.COMPLETED)
            assert d.started_at in (None, _at(2))
        assert len(d.logs) == len(path)


# ═════════════════════════════════════════════════════════════════════════════
# Archive / restore
# ═════════════════════════════════════════════════════════════════════════════


class TestArchive:
    @pytest.mark.parametrize("justification", [None, "", "   "])
    def test_archive_requires_justification(self, justification):
        with pytest.raises(ValidationError):
            wf.archive_demand(_demand(), actor=ACTOR, now=_at(1), justification=justification)

    def test_archive_stores_reason_verbatim(self):
        result = wf.archive_demand(_demand(DemandStatus.QUEUED), actor=ACTOR, now=_at(1),
                                   justification="  Duplicate of DEM-9 ")
        assert result.ok
        d = result.demand
        assert d.status == DemandStatus.ARCHIVED
        assert d.cancellation_reason == "  Duplicate of DEM-9 "
        assert d.history[-1].action == HistoryAction.CANCELLATION
        assert d.history[-1].user == ACTOR

    def test_transition_to_archived_uses_archive_rules(self):
        with pytest.raises(ValidationError):
            wf.apply_transition(_demand(), DemandStatus.ARCHIVED, actor=ACTOR, now=_at(1))

    def test_non_text_justification_rejected(self):
        with pytest.raises(ValidationError) as exc:
            wf.archive_demand(_demand(), actor=ACTOR, now=_at(1), justification=42)
        assert exc.value.details == {"justification": "must be text"}


class TestRestore:
    def test_restore_returns_to_queue(self):
        archived = wf.archive_demand(_demand(), actor=ACTOR, now=_at(1), justification="Paused").demand
        result = wf.restore_demand(archived, actor=ACTOR, now=_at(2))
        assert result.ok
        d = result.demand
        assert d.status == DemandStatus.QUEUED
        assert d.cancellation_reason is None
        assert len(d.history) == len(archived.history) + 1
        assert d.history[-1].action == HistoryAction.RESTORATION
        assert d.status_timestamps[DemandStatus.QUEUED] == _at(2)

    def test_restore_only_from_archived(self):
        demand = _demand(DemandStatus.QUEUED)
        result = wf.restore_demand(demand, actor=ACTOR, now=_at(1))
        assert not result.ok
        assert result.demand is demand


# ═════════════════════════════════════════════════════════════════════════════
# Completion
# ═════════════════════════════════════════════════════════════════════════════


CATEGORIES = [Category("cat-feature", "Feature")]
RULES = [SLAConfig("sla-1", "cat-feature", "medium", 48.0)]


class TestComplete:
    def test_summary_required(self):
        with pytest.raises(ValidationError):
            wf.complete_demand(_demand(DemandStatus.VALIDATION), actor=ACTOR, now=_at(1),
                               delivery_summary="  ")

    def test_non_text_summary_rejected(self):
        with pytest.raises(ValidationError) as exc:
            wf.complete_demand(_demand(DemandStatus.VALIDATION), actor=ACTOR, now=_at(1),
                               delivery_summary=123)
        assert exc.value.details == {"delivery_summary": "must be text"}

    def test_within_sla_needs_no_justification(self):
        demand = _demand(DemandStatus.VALIDATION, category="cat-feature", started_at=_at(1))
        result = wf.complete_demand(demand, actor=ACTOR, now=_at(2), delivery_summary="Released v1",
                                    sla_configs=RULES, categories=CATEGORIES)
        assert result.ok
        d = result.demand
        assert d.finished_at == _at(2)
        assert d.delay_justification is None
        assert [h.action for h in d.history] == [HistoryAction.COMPLETION]
        assert d.history[0].details == "Delivery made. Released v1"

    def test_breach_requires_delay_justification(self):
        demand = _demand(DemandStatus.VALIDATION, category="cat-feature", started_at=_at(2))
        with pytest.raises(ValidationError) as exc:
            wf.complete_demand(demand, actor=ACTOR, now=_at(10), delivery_summary="Done",
                               sla_configs=RULES, categories=CATEGORIES)
        assert exc.value.details["actual_hours"] == 192
        assert exc.value.details["allowed_hours"] == 48.0

    def test_breach_with_justification_writes_two_entries(self):
        demand = _demand(DemandStatus.VALIDATION, category="Feature", started_at=_at(2))
        result = wf.apply_transition(
            demand, DemandStatus.COMPLETED, actor=ACTOR, now=_at(10),
            delivery_summary="x" * 80, delay_justification="Vendor delay",
            sla_configs=RULES, categories=CATEGORIES,
        )
        d = result.demand
        assert d.delay_justification == "Vendor delay"
        assert [h.action for h in d.history] == [HistoryAction.COMPLETION, HistoryAction.COMPLETION]
        assert d.history[0].details == "Delivery made. " + "x" * 50 + "..."
        assert d.history[1].details == "SLA exceeded (192h vs 48h). Justification: Vendor delay"

    def test_no_rule_means_no_breach(self):
        demand = _demand(DemandStatus.VALIDATION, category="cat-unknown", started_at=_at(0))
        result = wf.complete_demand(demand, actor=ACTOR, now=_at(60), delivery_summary="Done",
                                    sla_configs=RULES, categories=CATEGORIES)
        assert result.ok
        assert len(result.demand.history) == 1


# ═════════════════════════════════════════════════════════════════════════════
# Priority & stepping
# ═════════════════════════════════════════════════════════════════════════════


class TestPriority:
    def test_toggle_flips_flag_and_logs(self):
        on = wf.toggle_priority(_demand(DemandStatus.QUEUED), actor=ACTOR, now=_at(1))
        off = wf.toggle_priority(on, actor=ACTOR, now=_at(2))
        assert on.is_priority is True
        assert off.is_priority is False
        assert [h.details for h in off.history] == ["Marked as priority", "Removed from priority"]
        assert off.status == DemandStatus.QUEUED
        assert off.logs == ()


class TestStepping:
    def test_next_walks_the_board(self):
        d = _demand()
        for expected in LINEAR_FLOW[1:5]:
            d = wf.step_status(d, "next", actor=ACTOR, now=_at(1)).demand
            assert d.status == expected

    def test_previous_from_intake_is_clamped(self):
        result = wf.step_status(_demand(), "previous", actor=ACTOR, now=_at(1))
        assert not result.ok

    def test_next_from_completed_is_clamped(self):
        done = _demand(DemandStatus.COMPLETED, finished_at=_at(1))
        assert not wf.step_status(done, "next", actor=ACTOR, now=_at(2)).ok

    def test_stepping_into_completed_needs_summary(self):
        with pytest.raises(ValidationError):
            wf.step_status(_demand(DemandStatus.VALIDATION), "next", actor=ACTOR, now=_at(1))

    def test_unknown_direction(self):
        with pytest.raises(ValidationError):
            wf.step_status(_demand(), "sideways", actor=ACTOR, now=_at(1))

    def test_archived_has_no_step(self):
        assert wf.next_status(DemandStatus.ARCHIVED) is None
        assert wf.previous_status(DemandStatus.ARCHIVED) is None
