# autodonate/__init__.py
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Optional

from flask import Flask, jsonify
from flask_jwt_extended import JWTManager

from autodonate import config
from autodonate.models.ledger import LedgerStore
from autodonate.models.recurring_donation import SubscriptionRepository
from autodonate.routes import core, cron_bp, recurring_bp, wallet_bp
from autodonate.realtime import donation_broadcaster, init_socketio
from autodonate.services.notification_service import NotificationService
from autodonate.services.recurring_service import RecurrenceScheduler, RecurringDonationService
from autodonate.services.settlement_service import SettlementExecutor
from autodonate.services.wallet_service import WalletDonationService
from autodonate.utils.cache import invalidate_campaign_progress
from autodonate.utils.db import Database, InvalidDataError, StorageError
from autodonate.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class Services:
    db: Optional[Database]
    ledger: Any
    subscriptions: Any
    notifier: Any
    executor: SettlementExecutor
    scheduler: RecurrenceScheduler
    recurring: RecurringDonationService
    wallet: WalletDonationService


def build_services(app_config: dict, *, db=None, ledger=None, subscriptions=None, notifier=None) -> Services:
    """
    Wire the store handle into every collaborator. Anything passed in is used
    as-is; the rest is built on top of ``db`` (created from config if absent).
    """
    if db is None and None in (ledger, subscriptions, notifier):
        db = Database.from_config(app_config)
    ledger = ledger or LedgerStore(db, lock_timeout_ms=app_config.get("SETTLEMENT_LOCK_TIMEOUT_MS"))
    subscriptions = subscriptions or SubscriptionRepository(db)
    notifier = notifier or NotificationService(
        db,
        use_queue=app_config.get("USE_NOTIFY_QUEUE", False),
        redis_url=app_config.get("REDIS_URL"),
    )

    hooks = []
    if app_config.get("PUBLISH_DONATION_EVENTS", True):
        hooks = [
            lambda cid, amount, email: invalidate_campaign_progress(cid),
            donation_broadcaster(ledger),
        ]
    symbol = app_config.get("CURRENCY_SYMBOL", "Rp")

    executor = SettlementExecutor(
        ledger,
        subscriptions,
        notifier,
        retry_hours=app_config.get("FAILURE_RETRY_HOURS", 24),
        currency_symbol=symbol,
        on_settled=hooks,
    )
    return Services(
        db=db,
        ledger=ledger,
        subscriptions=subscriptions,
        notifier=notifier,
        executor=executor,
        scheduler=RecurrenceScheduler(
            subscriptions, executor, max_workers=app_config.get("RECURRING_MAX_WORKERS", 1)
        ),
        recurring=RecurringDonationService(subscriptions),
        wallet=WalletDonationService(ledger, notifier, currency_symbol=symbol, on_paid=hooks),
    )


def create_app(test_config: Optional[dict] = None, **collaborators):
    app = Flask(__name__)
    app.url_map.strict_slashes = False

    app.config.update(config.as_flask_config())
    # JWT (issued by the auth service, verified here)
    app.config["JWT_TOKEN_LOCATION"] = ["headers"]
    app.config["JWT_HEADER_NAME"] = "Authorization"
    app.config["JWT_HEADER_TYPE"] = "Bearer"
    app.config["JWT_ACCESS_TOKEN_EXPIRES"] = timedelta(minutes=15)
    if test_config:
        app.config.update(test_config)
    JWTManager(app)

    app.extensions["autodonate"] = build_services(app.config, **collaborators)

    @app.errorhandler(StorageError)
    def handle_storage_error(e):
        logger.error(f"storage error: {e}")
        return jsonify({"success": False, "error": "storage unavailable"}), 503

    @app.errorhandler(InvalidDataError)
    def handle_invalid_data(e):
        logger.info(f"rejected by the database: {e}")
        return jsonify({"success": False, "error": "invalid id or value"}), 400

    app.register_blueprint(core)
    app.register_blueprint(cron_bp)
    app.register_blueprint(recurring_bp, url_prefix="/api/recurring-donations")
    app.register_blueprint(wallet_bp)

    init_socketio(app)
    return app
