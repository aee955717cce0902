import hmac
from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify, request

from autodonate.utils.db import StorageError
from autodonate.utils.logger import get_logger

logger = get_logger(__name__)

cron_bp = Blueprint("cron", __name__)


def _authorized() -> bool:
    secret = current_app.config.get("CRON_SECRET")
    if not secret:
        return True
    header = request.headers.get("Authorization", "")
    return hmac.compare_digest(header, f"Bearer {secret}")


@cron_bp.get("/api/cron/process-recurring")
def process_recurring():
    if not _authorized():
        return jsonify({"success": False, "error": "unauthorized"}), 401

    scheduler = current_app.extensions["autodonate"].scheduler
    try:
        report = scheduler.run_once(datetime.now(timezone.utc))
    except StorageError as e:
        logger.error(f"recurring pass aborted, due list unavailable: {e}")
        return jsonify({"success": False, "error": "storage unavailable"}), 500

    return jsonify({"success": True, **report.to_dict()})
