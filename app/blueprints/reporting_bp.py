"""
Reporting blueprint — flow metrics and delivery reports.

Endpoints:
    GET /api/v1/reports/flow         headline metrics (year, coordination_id)
    GET /api/v1/reports/monthly      per-month series (year, coordination_id)
    GET /api/v1/reports/forecast     lead-time based completion estimate (as_of)
    GET /api/v1/reports/bottleneck   most-waiting coordination, recent wins, efficiency
    GET /api/v1/reports/delivery     deliveries in a date range (start, end, coordination_id)
    GET /api/v1/reports/sla          SLA compliance of completed work
"""

import logging

from flask import Blueprint, jsonify, request

from app.services import reporting, sla_service
from app.services.persistence import SqlRepository
from app.utils.helpers import parse_as_of, parse_date_range

logger = logging.getLogger(__name__)

reporting_bp = Blueprint("reporting", __name__, url_prefix="/api/v1/reports")


@reporting_bp.route("/flow", methods=["GET"])
def flow():
    metrics = reporting.flow_metrics(
        SqlRepository().list_demands(),
        year=request.args.get("year", type=int),
        coordination_id=request.args.get("coordination_id"),
    )
    return jsonify(metrics), 200


@reporting_bp.route("/monthly", methods=["GET"])
def monthly():
    series = reporting.monthly_series(
        SqlRepository().list_demands(),
        year=request.args.get("year", type=int),
        coordination_id=request.args.get("coordination_id"),
    )
    return jsonify({"months": series}), 200


@reporting_bp.route("/forecast", methods=["GET"])
def forecast():
    now, err = parse_as_of()
    if err:
        return err
    return jsonify(reporting.capacity_forecast(SqlRepository().list_demands(), now)), 200


@reporting_bp.route("/bottleneck", methods=["GET"])
def bottleneck():
    repo = SqlRepository()
    demands = repo.list_demands()
    return jsonify({
        "bottleneck": reporting.find_bottleneck(demands, repo.list_coordinations()),
        "recent_wins": [d.to_dict() for d in reporting.recent_wins(demands)],
        "efficiency_rate": reporting.efficiency_rate(demands),
    }), 200


@reporting_bp.route("/delivery", methods=["GET"])
def delivery():
    start, end, err = parse_date_range(default_days=30)
    if err:
        return err
    report = reporting.delivery_report(
        SqlRepository().list_demands(),
        start,
        end,
        coordination_id=request.args.get("coordination_id"),
    )
    return jsonify(report), 200


@reporting_bp.route("/sla", methods=["GET"])
def sla_compliance():
    repo = SqlRepository()
    result = sla_service.sla_compliance(
        repo.list_demands(), repo.list_sla_configs(), repo.list_categories(),
    )
    return jsonify(result), 200
