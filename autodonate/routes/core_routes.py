from flask import Blueprint, jsonify

core = Blueprint("core", __name__)


@core.get("/")
def root():
    return jsonify({"service": "autodonate-api", "ok": True})


@core.get("/api")
def api_index():
    return jsonify(
        {
            "endpoints": {
                "cron": ["/api/cron/process-recurring (GET)"],
                "recurring": [
                    "/api/recurring-donations (GET, POST)",
                    "/api/recurring-donations/<id> (PUT, DELETE)",
                ],
                "donations": ["/api/donations/pay-with-wallet (POST)"],
            }
        }
    )
