"""
Ledger store: wallet balances, donation records and campaign aggregates.

Every money-moving write goes through ``LedgerStore.transaction()``, which
yields a ``LedgerTransaction`` bound to one database transaction. Rows that
decide whether money moves (subscription, owner) are read ``FOR UPDATE``;
campaign totals are only ever changed with an in-SQL add.
"""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterator, Optional

from autodonate.models import recurring_donation
from autodonate.utils.db import Database

PAYMENT_METHOD_AUTO = "wallet-auto"
PAYMENT_METHOD_WALLET = "wallet"


@dataclass
class Owner:
    id: str
    name: str
    email: Optional[str]
    balance: Decimal


@dataclass
class DonationRecord:
    campaign_id: str
    user_id: str
    amount: Decimal
    donor_name: str
    donor_email: Optional[str]
    payment_method: str
    paid_at: datetime
    status: str = "paid"
    recurring_donation_id: Optional[str] = None
    message: Optional[str] = None
    is_anonymous: bool = False
    id: str = ""
    external_id: str = ""

    def __post_init__(self):
        if not self.id:
            self.id = str(uuid.uuid4())
        if not self.external_id:
            prefix = "AUTO" if self.payment_method == PAYMENT_METHOD_AUTO else "WALLET"
            self.external_id = f"{prefix}-{self.id[:8].upper()}"


class LedgerTransaction:
    def __init__(self, cur):
        self.cur = cur

    def lock_subscription(self, subscription_id: str):
        return recurring_donation.lock_for_settlement(self.cur, subscription_id)

    def stamp_executed(self, subscription_id: str, executed_at: datetime) -> None:
        recurring_donation.stamp_executed(self.cur, subscription_id, executed_at)

    def get_balance_and_owner(self, owner_id: str) -> Optional[Owner]:
        self.cur.execute(
            "SELECT id, name, email, balance FROM users WHERE id = %s FOR UPDATE",
            (owner_id,),
        )
        row = self.cur.fetchone()
        if not row:
            return None
        return Owner(
            id=str(row["id"]),
            name=row["name"],
            email=row["email"],
            balance=Decimal(row["balance"]),
        )

    def debit_balance(self, owner_id: str, amount: Decimal) -> Optional[Decimal]:
        """Return the new balance, or None if the debit would go below zero."""
        self.cur.execute(
            """
            UPDATE users SET balance = balance - %s
            WHERE id = %s AND balance >= %s
            RETURNING balance
            """,
            (amount, owner_id, amount),
        )
        row = self.cur.fetchone()
        return Decimal(row["balance"]) if row else None

    def insert_donation(self, record: DonationRecord) -> str:
        self.cur.execute(
            """
            INSERT INTO donations
                (id, campaign_id, user_id, recurring_donation_id, donor_name, donor_email,
                 amount, status, payment_method, external_id, message, is_anonymous, paid_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING id
            """,
            (
                record.id,
                record.campaign_id,
                record.user_id,
                record.recurring_donation_id,
                record.donor_name,
                record.donor_email,
                record.amount,
                record.status,
                record.payment_method,
                record.external_id,
                record.message,
                record.is_anonymous,
                record.paid_at,
            ),
        )
        return str(self.cur.fetchone()["id"])

    def credit_campaign(self, campaign_id: str, amount: Decimal) -> bool:
        self.cur.execute(
            """
            UPDATE campaigns
            SET current_amount = current_amount + %s,
                donor_count = donor_count + 1,
                updated_at = now()
            WHERE id = %s
            """,
            (amount, campaign_id),
        )
        return self.cur.rowcount == 1


class LedgerStore:
    def __init__(self, db: Database, *, lock_timeout_ms: Optional[int] = None):
        self.db = db
        self.lock_timeout_ms = lock_timeout_ms

    @contextmanager
    def transaction(self) -> Iterator[LedgerTransaction]:
        with self.db.transaction(lock_timeout_ms=self.lock_timeout_ms) as cur:
            yield LedgerTransaction(cur)

    def campaign_progress(self, campaign_id: str) -> Optional[dict[str, Any]]:
        with self.db.transaction() as cur:
            cur.execute(
                "SELECT id, current_amount, donor_count FROM campaigns WHERE id = %s",
                (campaign_id,),
            )
            row = cur.fetchone()
        if not row:
            return None
        return {
            "campaign_id": str(row["id"]),
            "current_amount": Decimal(row["current_amount"]),
            "donor_count": int(row["donor_count"]),
        }
