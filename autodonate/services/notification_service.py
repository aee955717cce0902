"""
Fire-and-forget user notifications.

``notify`` never raises: a lost notification must not undo or fail a
settlement that already committed.
"""

from __future__ import annotations

from decimal import Decimal

from autodonate.models.notification import insert_notification
from autodonate.utils.db import Database, StorageError
from autodonate.utils.logger import get_logger
from autodonate.utils.money import format_money

logger = get_logger(__name__)


class NotificationService:
    def __init__(self, db: Database, *, use_queue: bool = False, redis_url: str | None = None):
        self.db = db
        self.use_queue = use_queue
        self.redis_url = redis_url

    def notify(self, owner_id: str, title: str, message: str, type: str = "system") -> None:
        if self.use_queue:
            from autodonate.tasks import enqueue_notification

            if enqueue_notification(owner_id, title, message, type, redis_url=self.redis_url):
                return
            # queue down: write it inline instead
        try:
            insert_notification(self.db, user_id=owner_id, title=title, message=message, type=type)
        except StorageError as e:
            logger.error(f"notification for user {owner_id} dropped: {e}")


# ── message templates ─────────────────────────────────────


def auto_donation_succeeded(amount: Decimal, campaign_title: str, symbol: str = "Rp") -> tuple[str, str]:
    return (
        "Automatic donation succeeded",
        f'Your automatic donation of {format_money(amount, symbol)} to "{campaign_title}" '
        "has been debited from your wallet.",
    )


def auto_donation_failed(
    amount: Decimal, balance: Decimal, campaign_title: str, symbol: str = "Rp"
) -> tuple[str, str]:
    return (
        "Automatic donation failed",
        f'Your automatic donation to "{campaign_title}" failed because your wallet balance '
        f"({format_money(balance, symbol)}) is below the {format_money(amount, symbol)} needed. "
        "Please top up your wallet; we will try again tomorrow.",
    )


def wallet_donation_succeeded(amount: Decimal, symbol: str = "Rp") -> tuple[str, str]:
    return (
        "Donation succeeded",
        f"Thank you! Your donation of {format_money(amount, symbol)} from your wallet was successful.",
    )
