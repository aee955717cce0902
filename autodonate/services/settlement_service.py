"""
Settlement of one due recurring donation.

``settle`` runs the money movement (lock subscription, lock owner, check
balance, debit, record donation, credit campaign, stamp execution) as one
database transaction, then applies the reschedule and notification policy
for the outcome outside of it. It never raises for per-item problems; the
caller gets one of the outcome types below.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Iterable, Optional, Union

from autodonate.models.ledger import PAYMENT_METHOD_AUTO, DonationRecord
from autodonate.models.recurring_donation import RecurringDonation
from autodonate.services import notification_service as messages
from autodonate.services.schedule_service import (
    ScheduleComputationError,
    as_utc,
    failure_retry_at,
    next_run,
    parse_frequency,
)
from autodonate.utils.db import StorageError
from autodonate.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Settled:
    donation_id: str
    amount: Decimal
    balance_after: Decimal
    donor_email: Optional[str] = None


@dataclass(frozen=True)
class InsufficientBalance:
    balance: Decimal
    amount: Decimal


@dataclass(frozen=True)
class StorageFailure:
    error: str


@dataclass(frozen=True)
class AlreadySettled:
    """The locked re-read shows another run already handled this period."""


@dataclass(frozen=True)
class InvalidFrequency:
    frequency: str


SettlementOutcome = Union[Settled, InsufficientBalance, StorageFailure, AlreadySettled, InvalidFrequency]

# (campaign_id, amount, donor_email) -> None, run after a committed donation
DonationHook = Callable[[str, Decimal, Optional[str]], None]


class _Shortfall(Exception):
    def __init__(self, balance: Decimal, amount: Decimal):
        super().__init__("insufficient balance")
        self.balance = balance
        self.amount = amount


class SettlementExecutor:
    """
    Args:
        ledger: store whose ``transaction()`` yields an object with
            lock_subscription / get_balance_and_owner / debit_balance /
            insert_donation / credit_campaign / stamp_executed.
        subscriptions: repository with record_success and
            record_failure_reschedule.
        notifier: object with ``notify(owner_id, title, message, type)``.
        on_settled: callbacks for committed settlements (cache, realtime).
    """

    def __init__(
        self,
        ledger,
        subscriptions,
        notifier,
        *,
        retry_hours: int = 24,
        currency_symbol: str = "Rp",
        on_settled: Iterable[DonationHook] = (),
    ):
        self.ledger = ledger
        self.subscriptions = subscriptions
        self.notifier = notifier
        self.retry_hours = retry_hours
        self.currency_symbol = currency_symbol
        self.on_settled = list(on_settled)

    def settle(self, subscription: RecurringDonation, now: datetime) -> SettlementOutcome:
        now = as_utc(now)
        outcome, current = self._move_money(subscription, now)
        current = current or subscription

        if isinstance(outcome, Settled):
            self._after_settled(current, outcome, now)
        elif isinstance(outcome, InsufficientBalance):
            self._after_shortfall(current, outcome, now)
        elif isinstance(outcome, StorageFailure):
            logger.error(
                f"recurring {subscription.id}: storage failure, left for next pass: {outcome.error}"
            )
        elif isinstance(outcome, InvalidFrequency):
            logger.error(
                f"recurring {subscription.id}: unknown frequency {outcome.frequency!r}, skipped"
            )
        else:
            logger.info(f"recurring {subscription.id}: already settled by a concurrent run")
        return outcome

    # ── monetary transaction ──────────────────────────────

    def _move_money(
        self, subscription: RecurringDonation, now: datetime
    ) -> tuple[SettlementOutcome, Optional[RecurringDonation]]:
        current = None
        try:
            with self.ledger.transaction() as tx:
                current = tx.lock_subscription(subscription.id)
                if current is None or not current.is_due(now):
                    return AlreadySettled(), current
                parse_frequency(current.frequency)

                owner = tx.get_balance_and_owner(current.user_id)
                if owner is None:
                    raise StorageError(f"owner {current.user_id} not found")

                amount = current.amount
                if owner.balance < amount:
                    raise _Shortfall(owner.balance, amount)
                balance_after = tx.debit_balance(owner.id, amount)
                if balance_after is None:
                    raise _Shortfall(owner.balance, amount)

                donation_id = tx.insert_donation(
                    DonationRecord(
                        campaign_id=current.campaign_id,
                        user_id=owner.id,
                        recurring_donation_id=current.id,
                        amount=amount,
                        donor_name=owner.name,
                        donor_email=owner.email,
                        payment_method=PAYMENT_METHOD_AUTO,
                        paid_at=now,
                    )
                )
                if not tx.credit_campaign(current.campaign_id, amount):
                    raise StorageError(f"campaign {current.campaign_id} not found")
                tx.stamp_executed(current.id, now)
        except _Shortfall as s:
            return InsufficientBalance(balance=s.balance, amount=s.amount), current
        except ScheduleComputationError:
            return InvalidFrequency(frequency=str(current.frequency)), current
        except StorageError as e:
            return StorageFailure(error=str(e)), current
        return (
            Settled(
                donation_id=donation_id,
                amount=amount,
                balance_after=balance_after,
                donor_email=owner.email,
            ),
            current,
        )

    # ── reschedule + notify, outside the transaction ──────

    def _after_settled(self, sub: RecurringDonation, outcome: Settled, now: datetime) -> None:
        logger.info(
            f"recurring {sub.id}: settled {outcome.amount} as donation {outcome.donation_id}"
        )
        try:
            self.subscriptions.record_success(sub.id, now, next_run(sub.frequency, now))
        except StorageError as e:
            # row keeps last_executed_at >= next_execution_at; the next pass repairs it
            logger.error(f"recurring {sub.id}: reschedule after success failed: {e}")

        title, message = messages.auto_donation_succeeded(
            outcome.amount, sub.campaign_title or "", self.currency_symbol
        )
        self.notifier.notify(sub.user_id, title, message, "system")

        for hook in self.on_settled:
            try:
                hook(sub.campaign_id, outcome.amount, outcome.donor_email)
            except Exception:
                logger.exception(f"recurring {sub.id}: post-settlement hook failed")

    def _after_shortfall(
        self, sub: RecurringDonation, outcome: InsufficientBalance, now: datetime
    ) -> None:
        retry_at = failure_retry_at(now, self.retry_hours)
        logger.info(
            f"recurring {sub.id}: balance {outcome.balance} < {outcome.amount}, retry at {retry_at.isoformat()}"
        )
        superseded = False
        try:
            # sub is the locked read from the failed attempt; a pass that settled
            # the row since then must keep its schedule
            superseded = not self.subscriptions.record_failure_reschedule(
                sub.id,
                retry_at,
                expected_last_executed_at=sub.last_executed_at,
                expected_next_execution_at=sub.next_execution_at,
            )
        except StorageError as e:
            logger.error(f"recurring {sub.id}: failure reschedule failed: {e}")
        if superseded:
            logger.info(f"recurring {sub.id}: changed by a concurrent pass, retry not written")
            return

        title, message = messages.auto_donation_failed(
            outcome.amount, outcome.balance, sub.campaign_title or "", self.currency_symbol
        )
        self.notifier.notify(sub.user_id, title, message, "system")
