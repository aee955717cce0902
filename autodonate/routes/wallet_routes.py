from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import get_jwt_identity, jwt_required

from autodonate.errors import InsufficientBalanceError, NotFoundError, ValidationError

wallet_bp = Blueprint("wallet", __name__)


@wallet_bp.post("/api/donations/pay-with-wallet")
@jwt_required()
def pay_with_wallet():
    body = request.get_json(force=True, silent=True) or {}
    service = current_app.extensions["autodonate"].wallet
    try:
        donation = service.pay(get_jwt_identity(), body)
    except ValidationError as e:
        return jsonify({"success": False, "error": str(e)}), 400
    except InsufficientBalanceError:
        return jsonify({"success": False, "error": "Insufficient balance"}), 400
    except NotFoundError as e:
        return jsonify({"success": False, "error": str(e)}), 404
    return jsonify({"success": True, "data": donation}), 201
