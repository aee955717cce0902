"""
Recurring donations (auto-donate subscriptions).

All SQL against ``recurring_donations`` lives here: the repository used by the
scheduler and the management routes, and the two cursor-level helpers that
run inside the settlement transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from autodonate.utils.db import Database
from autodonate.utils.logger import get_logger

logger = get_logger(__name__)

_COLUMNS = """
    rd.id, rd.user_id, rd.campaign_id, rd.amount, rd.frequency, rd.is_active,
    rd.last_executed_at, rd.next_execution_at, rd.created_at,
    c.title AS campaign_title
"""

# settled in the monetary transaction, reschedule not yet written
_AWAITING_RESCHEDULE = """
    rd.last_executed_at IS NOT NULL
    AND rd.last_executed_at >= COALESCE(rd.next_execution_at, rd.last_executed_at)
"""


@dataclass
class RecurringDonation:
    user_id: str
    campaign_id: str
    amount: Decimal
    frequency: str
    is_active: bool = True
    last_executed_at: Optional[datetime] = None
    next_execution_at: Optional[datetime] = None
    id: Optional[str] = None
    campaign_title: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "RecurringDonation":
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            campaign_id=str(row["campaign_id"]),
            amount=Decimal(row["amount"]),
            frequency=row["frequency"],
            is_active=bool(row["is_active"]),
            last_executed_at=row.get("last_executed_at"),
            next_execution_at=row.get("next_execution_at"),
            campaign_title=row.get("campaign_title"),
            created_at=row.get("created_at"),
        )

    def awaiting_reschedule(self) -> bool:
        if self.last_executed_at is None:
            return False
        if self.next_execution_at is None:
            return True
        return self.last_executed_at >= self.next_execution_at

    def is_due(self, now: datetime) -> bool:
        if not self.is_active or self.awaiting_reschedule():
            return False
        return self.next_execution_at is None or self.next_execution_at <= now

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "campaign_id": self.campaign_id,
            "campaign_title": self.campaign_title,
            "amount": str(self.amount),
            "frequency": self.frequency,
            "is_active": self.is_active,
            "last_executed_at": _iso(self.last_executed_at),
            "next_execution_at": _iso(self.next_execution_at),
            "created_at": _iso(self.created_at),
        }


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


# ── inside the settlement transaction ─────────────────────


def lock_for_settlement(cur, subscription_id: str) -> Optional[RecurringDonation]:
    """Row-lock the subscription and return its current state."""
    cur.execute(
        f"""
        SELECT {_COLUMNS}
        FROM recurring_donations rd
        JOIN campaigns c ON c.id = rd.campaign_id
        WHERE rd.id = %s
        FOR UPDATE OF rd
        """,
        (subscription_id,),
    )
    row = cur.fetchone()
    return RecurringDonation.from_row(row) if row else None


def stamp_executed(cur, subscription_id: str, executed_at: datetime) -> None:
    cur.execute(
        "UPDATE recurring_donations SET last_executed_at = %s, updated_at = now() WHERE id = %s",
        (executed_at, subscription_id),
    )


# ── repository ────────────────────────────────────────────


class SubscriptionRepository:
    """Postgres-backed store for recurring donations. Raises StorageError."""

    def __init__(self, db: Database):
        self.db = db

    def list_due(self, now: datetime) -> list[RecurringDonation]:
        sql = f"""
            SELECT {_COLUMNS}
            FROM recurring_donations rd
            JOIN campaigns c ON c.id = rd.campaign_id
            WHERE rd.is_active = TRUE
              AND (rd.next_execution_at IS NULL OR rd.next_execution_at <= %s)
              AND NOT ({_AWAITING_RESCHEDULE})
            ORDER BY rd.id
        """
        with self.db.transaction() as cur:
            cur.execute(sql, (now,))
            return [RecurringDonation.from_row(r) for r in cur.fetchall()]

    def list_awaiting_reschedule(self) -> list[RecurringDonation]:
        sql = f"""
            SELECT {_COLUMNS}
            FROM recurring_donations rd
            JOIN campaigns c ON c.id = rd.campaign_id
            WHERE rd.is_active = TRUE AND {_AWAITING_RESCHEDULE}
            ORDER BY rd.id
        """
        with self.db.transaction() as cur:
            cur.execute(sql)
            return [RecurringDonation.from_row(r) for r in cur.fetchall()]

    def get(self, subscription_id: str) -> Optional[RecurringDonation]:
        sql = f"""
            SELECT {_COLUMNS}
            FROM recurring_donations rd
            JOIN campaigns c ON c.id = rd.campaign_id
            WHERE rd.id = %s
        """
        with self.db.transaction() as cur:
            cur.execute(sql, (subscription_id,))
            row = cur.fetchone()
            return RecurringDonation.from_row(row) if row else None

    def list_for_owner(self, owner_id: str) -> list[RecurringDonation]:
        sql = f"""
            SELECT {_COLUMNS}
            FROM recurring_donations rd
            JOIN campaigns c ON c.id = rd.campaign_id
            WHERE rd.user_id = %s
            ORDER BY rd.created_at DESC, rd.id
        """
        with self.db.transaction() as cur:
            cur.execute(sql, (owner_id,))
            return [RecurringDonation.from_row(r) for r in cur.fetchall()]

    def create(
        self,
        *,
        owner_id: str,
        campaign_id: str,
        amount: Decimal,
        frequency: str,
        next_execution_at: Optional[datetime] = None,
    ) -> Optional[RecurringDonation]:
        """Insert a subscription; None when the campaign does not exist."""
        sql = """
            INSERT INTO recurring_donations
                (user_id, campaign_id, amount, frequency, is_active, next_execution_at)
            SELECT %s, c.id, %s, %s, TRUE, %s
            FROM campaigns c
            WHERE c.id = %s
            RETURNING id
        """
        with self.db.transaction() as cur:
            cur.execute(sql, (owner_id, amount, frequency, next_execution_at, campaign_id))
            row = cur.fetchone()
        if not row:
            return None
        logger.info(f"created recurring donation {row['id']} for user {owner_id}")
        return self.get(str(row["id"]))

    def update(
        self,
        subscription_id: str,
        owner_id: str,
        *,
        amount: Optional[Decimal] = None,
        frequency: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> Optional[RecurringDonation]:
        fields: list[str] = []
        params: list[Any] = []
        if amount is not None:
            fields.append("amount = %s")
            params.append(amount)
        if frequency is not None:
            fields.append("frequency = %s")
            params.append(frequency)
        if is_active is not None:
            fields.append("is_active = %s")
            params.append(is_active)
        if fields:
            sql = f"""
                UPDATE recurring_donations
                SET {", ".join(fields)}, updated_at = now()
                WHERE id = %s AND user_id = %s
            """
            with self.db.transaction() as cur:
                cur.execute(sql, (*params, subscription_id, owner_id))
                if cur.rowcount == 0:
                    return None
        sub = self.get(subscription_id)
        if not sub or sub.user_id != str(owner_id):
            return None
        return sub

    def delete(self, subscription_id: str, owner_id: str) -> bool:
        with self.db.transaction() as cur:
            cur.execute(
                "DELETE FROM recurring_donations WHERE id = %s AND user_id = %s",
                (subscription_id, owner_id),
            )
            deleted = cur.rowcount > 0
        if deleted:
            logger.info(f"deleted recurring donation {subscription_id}")
        return deleted

    def record_success(
        self, subscription_id: str, executed_at: datetime, next_execution_at: datetime
    ) -> bool:
        # same arguments twice -> same row
        with self.db.transaction() as cur:
            cur.execute(
                """
                UPDATE recurring_donations
                SET last_executed_at = %s, next_execution_at = %s, updated_at = now()
                WHERE id = %s
                """,
                (executed_at, next_execution_at, subscription_id),
            )
            return cur.rowcount > 0

    def record_failure_reschedule(
        self,
        subscription_id: str,
        retry_at: datetime,
        *,
        expected_last_executed_at: Optional[datetime],
        expected_next_execution_at: Optional[datetime],
    ) -> bool:
        """
        Push the next run to ``retry_at`` only if the row still holds the
        schedule the failed attempt read. False means another pass settled or
        rescheduled it in the meantime and nothing was written.
        """
        with self.db.transaction() as cur:
            cur.execute(
                """
                UPDATE recurring_donations
                SET next_execution_at = %s, updated_at = now()
                WHERE id = %s
                  AND last_executed_at IS NOT DISTINCT FROM %s
                  AND next_execution_at IS NOT DISTINCT FROM %s
                """,
                (retry_at, subscription_id, expected_last_executed_at, expected_next_execution_at),
            )
            return cur.rowcount > 0
