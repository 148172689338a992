"""
Demand blueprint — lifecycle and CRUD endpoints.

Endpoints:
    GET    /api/v1/demands                       list (status, person_id, coordination_id,
                                                 priority, include_archived filters;
                                                 limit / offset)
    POST   /api/v1/demands                       create (status starts at intake)
    GET    /api/v1/demands/<id>                  detail
    PUT    /api/v1/demands/<id>                  edit descriptive fields
    DELETE /api/v1/demands/<id>                  hard delete
    POST   /api/v1/demands/<id>/transition       {status, justification?, delivery_summary?,
                                                  delay_justification?}
    POST   /api/v1/demands/<id>/step             {direction: next | previous, ...}
    POST   /api/v1/demands/<id>/archive          {justification}
    POST   /api/v1/demands/<id>/restore
    POST   /api/v1/demands/<id>/priority         toggle
    GET    /api/v1/demands/<id>/sla              SLA evaluation (?as_of=)
    GET    /api/v1/demands/<id>/history          audit trail, newest first

Every body may carry ``actor``; it defaults to DEFAULT_ACTOR. Rejected moves
answer 409, rolled-back writes 503, validation failures 422.
"""

import logging
from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify, request

from app.blueprints import paginate_items
from app.services.demand_service import DemandService
from app.services.mutation import MutationState
from app.services.persistence import SqlRepository
from app.utils.errors import E, api_error
from app.utils.helpers import parse_as_of, require_json

logger = logging.getLogger(__name__)

demand_bp = Blueprint("demand", __name__, url_prefix="/api/v1")


# ── Helpers ──────────────────────────────────────────────────────────────────


def _service() -> DemandService:
    return DemandService.from_repository(SqlRepository())


def _actor(data: dict | None) -> str:
    actor = (data or {}).get("actor")
    if isinstance(actor, str) and actor.strip():
        return actor.strip()
    return current_app.config.get("DEFAULT_ACTOR", "User")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _result_response(result, success_status: int = 200):
    """Translate a MutationResult into an HTTP response."""
    if result.state == MutationState.REJECTED:
        return api_error(
            E.CONFLICT_STATE,
            result.message,
            details={"status": result.value.status if result.value else None},
        )
    if result.state == MutationState.ROLLED_BACK:
        return api_error(
            E.DATABASE,
            "Change could not be saved and was rolled back; retry the request",
            details={"retryable": True},
        )
    return jsonify(result.value.to_dict()), success_status


# ═════════════════════════════════════════════════════════════════════════
# CRUD
# ═════════════════════════════════════════════════════════════════════════


@demand_bp.route("/demands", methods=["GET"])
def list_demands():
    include_archived = request.args.get("include_archived", "true").lower() != "false"
    demands = _service().list_demands(
        status=request.args.get("status"),
        person_id=request.args.get("person_id"),
        coordination_id=request.args.get("coordination_id"),
        priority_only=request.args.get("priority", "").lower() in ("1", "true"),
        include_archived=include_archived,
    )
    page, total = paginate_items(demands)
    return jsonify({"items": [d.to_dict() for d in page], "total": total}), 200


@demand_bp.route("/demands", methods=["POST"])
def create_demand():
    """Create a demand.

    Body: {title, person_id, coordination_id, requester_area_id,
           description?, requester_name?, category?, complexity?, effort?,
           demand_type?, agreed_deadline?, actor?}
    """
    data, err = require_json()
    if err:
        return err
    result = _service().create_demand(data, actor=_actor(data), now=_now())
    return _result_response(result, 201)


@demand_bp.route("/demands/<demand_id>", methods=["GET"])
def get_demand(demand_id):
    return jsonify(_service().get(demand_id).to_dict()), 200


@demand_bp.route("/demands/<demand_id>", methods=["PUT"])
def update_demand(demand_id):
    data, err = require_json()
    if err:
        return err
    payload = {k: v for k, v in data.items() if k != "actor"}
    result = _service().update_demand(demand_id, payload, actor=_actor(data), now=_now())
    return _result_response(result)


@demand_bp.route("/demands/<demand_id>", methods=["DELETE"])
def delete_demand(demand_id):
    data = request.get_json(silent=True) or {}
    result = _service().delete_demand(demand_id, actor=_actor(data), now=_now())
    if result.state != MutationState.COMMITTED:
        return _result_response(result)
    return jsonify({"deleted": True, "id": demand_id, "demand": result.value.to_dict()}), 200


# ═════════════════════════════════════════════════════════════════════════
# Lifecycle
# ═════════════════════════════════════════════════════════════════════════


def _outcome_fields(data: dict) -> dict:
    return {
        key: data.get(key)
        for key in ("justification", "delivery_summary", "delay_justification")
        if key in data
    }


@demand_bp.route("/demands/<demand_id>/transition", methods=["POST"])
def transition_demand(demand_id):
    data, err = require_json()
    if err:
        return err
    target = data.get("status")
    if not target:
        return api_error(E.VALIDATION_REQUIRED, "status is required")
    if not isinstance(target, str):
        return api_error(E.VALIDATION_INVALID, "status must be a string")
    result = _service().transition(
        demand_id, target, actor=_actor(data), now=_now(), **_outcome_fields(data),
    )
    return _result_response(result)


@demand_bp.route("/demands/<demand_id>/step", methods=["POST"])
def step_demand(demand_id):
    data, err = require_json()
    if err:
        return err
    direction = data.get("direction")
    if direction not in ("next", "previous"):
        return api_error(E.VALIDATION_INVALID, "direction must be 'next' or 'previous'")
    result = _service().step(
        demand_id, direction, actor=_actor(data), now=_now(), **_outcome_fields(data),
    )
    return _result_response(result)


@demand_bp.route("/demands/<demand_id>/archive", methods=["POST"])
def archive_demand(demand_id):
    data, err = require_json()
    if err:
        return err
    result = _service().archive(
        demand_id, data.get("justification"), actor=_actor(data), now=_now(),
    )
    return _result_response(result)


@demand_bp.route("/demands/<demand_id>/restore", methods=["POST"])
def restore_demand(demand_id):
    data = request.get_json(silent=True) or {}
    result = _service().restore(demand_id, actor=_actor(data), now=_now())
    return _result_response(result)


@demand_bp.route("/demands/<demand_id>/priority", methods=["POST"])
def toggle_priority(demand_id):
    data = request.get_json(silent=True) or {}
    result = _service().toggle_priority(demand_id, actor=_actor(data), now=_now())
    return _result_response(result)


# ═════════════════════════════════════════════════════════════════════════
# Read-only views
# ═════════════════════════════════════════════════════════════════════════


@demand_bp.route("/demands/<demand_id>/sla", methods=["GET"])
def demand_sla(demand_id):
    now, err = parse_as_of()
    if err:
        return err
    evaluation = _service().evaluate_sla(demand_id, now)
    return jsonify({"demand_id": demand_id, **evaluation.to_dict()}), 200


@demand_bp.route("/demands/<demand_id>/history", methods=["GET"])
def demand_history(demand_id):
    demand = _service().get(demand_id)
    return jsonify({
        "history": [entry.to_dict() for entry in demand.history_newest_first()],
        "logs": [entry.to_dict() for entry in demand.logs],
    }), 200
