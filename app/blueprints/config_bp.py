"""
Reference-data blueprint — areas, coordinations, people, categories, SLA rules.

Endpoints (same shape for each collection):
    GET    /api/v1/<collection>
    POST   /api/v1/<collection>
    PUT    /api/v1/<collection>/<id>
    DELETE /api/v1/<collection>/<id>

Collections: areas, coordinations, people, categories, slas.
Service layer owns validation and commits.
"""

import logging

from flask import Blueprint, jsonify

from app.models.domain import Area, Category, Coordination, Person, SLAConfig
from app.services import config_service as svc
from app.services.persistence import SqlRepository
from app.utils.helpers import require_json

logger = logging.getLogger(__name__)

config_bp = Blueprint("config", __name__, url_prefix="/api/v1")


# collection → (record type, list method name, create fn, update fn)
_COLLECTIONS = {
    "areas": (Area, "list_areas", svc.create_area, svc.update_area),
    "coordinations": (Coordination, "list_coordinations", svc.create_coordination, svc.update_coordination),
    "people": (Person, "list_people", svc.create_person, svc.update_person),
    "categories": (Category, "list_categories", svc.create_category, svc.update_category),
    "slas": (SLAConfig, "list_sla_configs", svc.create_sla_config, svc.update_sla_config),
}

_COLLECTION_PATTERN = "<any(areas, coordinations, people, categories, slas):collection>"


@config_bp.route(f"/{_COLLECTION_PATTERN}", methods=["GET"])
def list_records(collection):
    _, list_method, _, _ = _COLLECTIONS[collection]
    records = getattr(SqlRepository(), list_method)()
    return jsonify({"items": [r.to_dict() for r in records], "total": len(records)}), 200


@config_bp.route(f"/{_COLLECTION_PATTERN}", methods=["POST"])
def create_record(collection):
    data, err = require_json()
    if err:
        return err
    _, _, create, _ = _COLLECTIONS[collection]
    record = create(SqlRepository(), data)
    logger.info("Created %s id=%s", collection, record.id)
    return jsonify(record.to_dict()), 201


@config_bp.route(f"/{_COLLECTION_PATTERN}/<record_id>", methods=["PUT"])
def update_record(collection, record_id):
    data, err = require_json()
    if err:
        return err
    _, _, _, update = _COLLECTIONS[collection]
    record = update(SqlRepository(), record_id, data)
    return jsonify(record.to_dict()), 200


@config_bp.route(f"/{_COLLECTION_PATTERN}/<record_id>", methods=["DELETE"])
def delete_record(collection, record_id):
    record_type, _, _, _ = _COLLECTIONS[collection]
    svc.delete_reference(SqlRepository(), record_type, record_id)
    return jsonify({"deleted": True, "id": record_id}), 200
