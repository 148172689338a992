"""
Planning blueprint — projections, capacity and delivery risk.

Endpoints:
    GET /api/v1/planning/timeline              FIFO timeline (start, end, coordination_id, person_id)
    GET /api/v1/planning/allocation            per-person range utilization (start, end)
    GET /api/v1/planning/allocation/teams      per-team range utilization (start, end)
    GET /api/v1/planning/heatmap               weekly load buckets (start, end)
    GET /api/v1/planning/occupation            4-week per-team outlook (weeks)
    GET /api/v1/planning/at-risk               in-execution work past effort × buffer
    GET /api/v1/planning/delayed               at-risk plus late deliveries
    GET /api/v1/planning/deadline-suggestion   person_id, effort

Every endpoint accepts ``as_of`` (ISO datetime) to pin "now"; dates are
YYYY-MM-DD. Read-only: nothing here writes.
"""

import logging
import math

from flask import Blueprint, current_app, jsonify, request

from app.services import capacity, projection, sla_service
from app.services.demand_service import MAX_EFFORT_HOURS
from app.services.persistence import SqlRepository
from app.utils.errors import E, api_error
from app.utils.helpers import parse_as_of, parse_date_range

logger = logging.getLogger(__name__)

planning_bp = Blueprint("planning", __name__, url_prefix="/api/v1/planning")


def _cfg(key: str) -> float:
    return float(current_app.config[key])


@planning_bp.route("/timeline", methods=["GET"])
def timeline():
    now, err = parse_as_of()
    if err:
        return err
    start, end, err = parse_date_range(default_days=30)
    if err:
        return err
    repo = SqlRepository()
    rows = projection.build_timeline(
        repo.list_demands(),
        repo.list_people(),
        start,
        end,
        now,
        coordination_id=request.args.get("coordination_id"),
        person_id=request.args.get("person_id"),
        hours_per_day=_cfg("HOURS_PER_DAY"),
    )
    return jsonify({
        "start": start.isoformat(),
        "end": end.isoformat(),
        "rows": [row.to_dict() for row in rows],
    }), 200


@planning_bp.route("/allocation", methods=["GET"])
def allocation():
    start, end, err = parse_date_range(default_days=30)
    if err:
        return err
    repo = SqlRepository()
    rows = capacity.allocate_range(
        repo.list_demands(),
        repo.list_people(),
        start,
        end,
        hours_per_day=_cfg("HOURS_PER_DAY"),
        high_threshold=_cfg("HIGH_LOAD_THRESHOLD"),
    )
    return jsonify({
        "start": start.isoformat(),
        "end": end.isoformat(),
        "working_days": capacity.working_days(start, end),
        "people": [row.to_dict() for row in rows],
    }), 200


@planning_bp.route("/allocation/teams", methods=["GET"])
def team_allocation():
    start, end, err = parse_date_range(default_days=30)
    if err:
        return err
    repo = SqlRepository()
    rows = capacity.allocate_teams(
        repo.list_demands(),
        repo.list_people(),
        repo.list_coordinations(),
        start,
        end,
        hours_per_day=_cfg("HOURS_PER_DAY"),
        high_threshold=_cfg("HIGH_LOAD_THRESHOLD"),
    )
    return jsonify({
        "start": start.isoformat(),
        "end": end.isoformat(),
        "teams": [row.to_dict() for row in rows],
    }), 200


@planning_bp.route("/heatmap", methods=["GET"])
def heatmap():
    start, end, err = parse_date_range(default_days=56)
    if err:
        return err
    repo = SqlRepository()
    result = capacity.weekly_heatmap(
        repo.list_demands(),
        repo.list_people(),
        repo.list_coordinations(),
        start,
        end,
        weekly_hours=_cfg("STANDARD_WEEKLY_HOURS"),
        hours_per_day=_cfg("HOURS_PER_DAY"),
    )
    return jsonify(result.to_dict()), 200


@planning_bp.route("/occupation", methods=["GET"])
def occupation():
    now, err = parse_as_of()
    if err:
        return err
    weeks = request.args.get("weeks", 4, type=int)
    if not weeks or weeks < 1 or weeks > 52:
        return api_error(E.VALIDATION_INVALID, "weeks must be between 1 and 52")
    repo = SqlRepository()
    result = capacity.occupation_outlook(
        repo.list_demands(),
        repo.list_people(),
        repo.list_coordinations(),
        now,
        weeks=weeks,
        weekly_hours=_cfg("STANDARD_WEEKLY_HOURS"),
        hours_per_day=_cfg("HOURS_PER_DAY"),
    )
    return jsonify({"teams": result}), 200


@planning_bp.route("/at-risk", methods=["GET"])
def at_risk():
    now, err = parse_as_of()
    if err:
        return err
    items = sla_service.find_at_risk(
        SqlRepository().list_demands(), now, buffer=_cfg("AT_RISK_BUFFER"),
    )
    return jsonify({"items": [item.to_dict() for item in items], "total": len(items)}), 200


@planning_bp.route("/delayed", methods=["GET"])
def delayed():
    now, err = parse_as_of()
    if err:
        return err
    demands = sla_service.delayed_demands(
        SqlRepository().list_demands(), now, buffer=_cfg("AT_RISK_BUFFER"),
    )
    return jsonify({"items": [d.to_dict() for d in demands], "total": len(demands)}), 200


@planning_bp.route("/deadline-suggestion", methods=["GET"])
def deadline_suggestion():
    now, err = parse_as_of()
    if err:
        return err
    person_id = request.args.get("person_id")
    if not person_id:
        return api_error(E.VALIDATION_REQUIRED, "person_id is required")
    try:
        effort = float(request.args.get("effort", 0))
    except ValueError:
        effort = None
    if effort is None or not math.isfinite(effort) or not 0 <= effort <= MAX_EFFORT_HOURS:
        return api_error(E.VALIDATION_INVALID, f"effort must be a number between 0 and {MAX_EFFORT_HOURS}")
    suggested = sla_service.suggest_deadline(
        SqlRepository().list_demands(),
        person_id,
        effort,
        now,
        buffer=_cfg("DEADLINE_BUFFER"),
        hours_per_day=_cfg("HOURS_PER_DAY"),
    )
    return jsonify({
        "person_id": person_id,
        "effort": effort,
        "suggested_deadline": suggested.isoformat(),
    }), 200
