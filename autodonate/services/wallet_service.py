from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from autodonate.errors import InsufficientBalanceError, NotFoundError, ValidationError
from autodonate.models.ledger import PAYMENT_METHOD_WALLET, DonationRecord
from autodonate.services import notification_service as messages
from autodonate.utils.logger import get_logger
from autodonate.utils.money import as_json_number, to_positive_money

logger = get_logger(__name__)

ANONYMOUS_DONOR_NAME = "Hamba Allah"


class WalletDonationService:
    """One-off donations paid from the donor's wallet balance."""

    def __init__(self, ledger, notifier, *, currency_symbol: str = "Rp", on_paid=()):
        self.ledger = ledger
        self.notifier = notifier
        self.currency_symbol = currency_symbol
        self.on_paid = list(on_paid)

    def pay(self, owner_id: str, body: dict[str, Any], now: Optional[datetime] = None) -> dict[str, Any]:
        campaign_id = body.get("campaign_id") or body.get("campaignId")
        if not campaign_id:
            raise ValidationError("campaign_id is required")
        amount = to_positive_money(body.get("amount"))
        is_anonymous = bool(body.get("is_anonymous") or body.get("isAnonymous"))
        message = (body.get("message") or "").strip() or None
        now = now or datetime.now(timezone.utc)

        with self.ledger.transaction() as tx:
            owner = tx.get_balance_and_owner(owner_id)
            if owner is None:
                raise NotFoundError("user not found")
            if owner.balance < amount:
                raise InsufficientBalanceError(owner.balance, amount)
            balance_after = tx.debit_balance(owner.id, amount)
            if balance_after is None:
                raise InsufficientBalanceError(owner.balance, amount)
            if not tx.credit_campaign(campaign_id, amount):
                raise NotFoundError("campaign not found")

            donor_name = ANONYMOUS_DONOR_NAME if is_anonymous else (body.get("name") or owner.name)
            record = DonationRecord(
                campaign_id=campaign_id,
                user_id=owner.id,
                amount=amount,
                donor_name=donor_name,
                donor_email=body.get("email") or owner.email,
                payment_method=PAYMENT_METHOD_WALLET,
                paid_at=now,
                message=message,
                is_anonymous=is_anonymous,
            )
            donation_id = tx.insert_donation(record)

        logger.info(f"wallet donation {donation_id}: user {owner_id} -> campaign {campaign_id} {amount}")
        title, text = messages.wallet_donation_succeeded(amount, self.currency_symbol)
        self.notifier.notify(owner_id, title, text, "donation")
        for hook in self.on_paid:
            try:
                hook(campaign_id, amount, record.donor_email)
            except Exception:
                logger.exception(f"wallet donation {donation_id}: post-payment hook failed")

        return {
            "id": donation_id,
            "external_id": record.external_id,
            "amount": as_json_number(amount),
            "balance": as_json_number(balance_after),
            "status": "paid",
            "method": PAYMENT_METHOD_WALLET,
        }
