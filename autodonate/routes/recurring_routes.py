from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import get_jwt_identity, jwt_required

from autodonate.errors import NotFoundError, ValidationError

recurring_bp = Blueprint("recurring", __name__)


def _service():
    return current_app.extensions["autodonate"].recurring


@recurring_bp.get("/")
@jwt_required()
def list_recurring():
    return jsonify({"success": True, "data": _service().list_for_owner(get_jwt_identity())})


@recurring_bp.post("/")
@jwt_required()
def create_recurring():
    body = request.get_json(force=True, silent=True) or {}
    try:
        sub = _service().create(get_jwt_identity(), body)
    except ValidationError as e:
        return jsonify({"success": False, "error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"success": False, "error": str(e)}), 404
    return jsonify({"success": True, "data": sub}), 201


@recurring_bp.put("/<subscription_id>")
@jwt_required()
def update_recurring(subscription_id):
    body = request.get_json(force=True, silent=True) or {}
    try:
        sub = _service().update(get_jwt_identity(), subscription_id, body)
    except ValidationError as e:
        return jsonify({"success": False, "error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"success": False, "error": str(e)}), 404
    return jsonify({"success": True, "data": sub})


@recurring_bp.delete("/<subscription_id>")
@jwt_required()
def delete_recurring(subscription_id):
    try:
        _service().delete(get_jwt_identity(), subscription_id)
    except NotFoundError as e:
        return jsonify({"success": False, "error": str(e)}), 404
    return jsonify({"success": True})
