"""
Recurring donations: the cron-driven batch runner and the owner-facing
management operations.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from autodonate.errors import NotFoundError, ValidationError
from autodonate.models.recurring_donation import RecurringDonation
from autodonate.services.schedule_service import (
    ScheduleComputationError,
    as_utc,
    next_run,
    parse_frequency,
)
from autodonate.services.settlement_service import (
    AlreadySettled,
    InsufficientBalance,
    InvalidFrequency,
    Settled,
    SettlementOutcome,
    StorageFailure,
)
from autodonate.utils.db import StorageError
from autodonate.utils.logger import get_logger
from autodonate.utils.money import to_positive_money

logger = get_logger(__name__)

STATUS_SUCCESS = "success"
STATUS_INSUFFICIENT = "failed_insufficient_balance"
STATUS_STORAGE = "failed_storage_error"
STATUS_INVALID_FREQUENCY = "failed_invalid_frequency"
STATUS_ALREADY_SETTLED = "skipped_already_settled"

_STATUS_BY_OUTCOME = {
    Settled: STATUS_SUCCESS,
    InsufficientBalance: STATUS_INSUFFICIENT,
    StorageFailure: STATUS_STORAGE,
    InvalidFrequency: STATUS_INVALID_FREQUENCY,
    AlreadySettled: STATUS_ALREADY_SETTLED,
}


@dataclass
class BatchItem:
    subscription_id: str
    status: str
    campaign_title: Optional[str]
    donation_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        out = {
            "subscription_id": self.subscription_id,
            "status": self.status,
            "campaign_title": self.campaign_title,
        }
        if self.donation_id:
            out["donation_id"] = self.donation_id
        return out


@dataclass
class BatchReport:
    processed_count: int = 0
    details: list[BatchItem] = field(default_factory=list)

    def count(self, status: str) -> int:
        return sum(1 for d in self.details if d.status == status)

    def to_dict(self) -> dict[str, Any]:
        return {
            "processed_count": self.processed_count,
            "details": [d.to_dict() for d in self.details],
        }


class RecurrenceScheduler:
    """
    One pass over the due recurring donations.

    ``run_once`` is safe to call while another pass is running: the settlement
    transaction re-checks each subscription under a row lock, so an item
    seen by two passes is charged once and reported as already settled by
    the other.
    """

    def __init__(self, subscriptions, executor, *, max_workers: int = 1):
        self.subscriptions = subscriptions
        self.executor = executor
        self.max_workers = max(1, int(max_workers))

    def run_once(self, now: Optional[datetime] = None) -> BatchReport:
        now = as_utc(now or datetime.now(timezone.utc))
        self.repair_reschedules()

        # the only failure that aborts the whole batch
        due = self.subscriptions.list_due(now)
        logger.info(f"recurring pass at {now.isoformat()}: {len(due)} due")

        if self.max_workers == 1 or len(due) <= 1:
            details = [self._run_item(sub, now) for sub in due]
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                details = list(pool.map(lambda sub: self._run_item(sub, now), due))

        report = BatchReport(processed_count=len(due), details=details)
        logger.info(
            f"recurring pass done: {report.count(STATUS_SUCCESS)} settled, "
            f"{report.count(STATUS_INSUFFICIENT)} short, {report.count(STATUS_STORAGE)} storage errors"
        )
        return report

    def repair_reschedules(self) -> int:
        """
        Write the next run for subscriptions whose settlement committed but
        whose reschedule did not. Returns how many were repaired.
        """
        try:
            stuck = self.subscriptions.list_awaiting_reschedule()
        except StorageError as e:
            logger.error(f"cannot list subscriptions awaiting reschedule: {e}")
            return 0
        repaired = 0
        for sub in stuck:
            try:
                nxt = next_run(sub.frequency, sub.last_executed_at)
                self.subscriptions.record_success(sub.id, sub.last_executed_at, nxt)
                repaired += 1
                logger.warning(f"recurring {sub.id}: repaired reschedule to {nxt.isoformat()}")
            except ScheduleComputationError:
                logger.error(f"recurring {sub.id}: unknown frequency {sub.frequency!r}, not repaired")
            except StorageError as e:
                logger.error(f"recurring {sub.id}: repair failed: {e}")
        return repaired

    def _run_item(self, sub: RecurringDonation, now: datetime) -> BatchItem:
        try:
            outcome: SettlementOutcome = self.executor.settle(sub, now)
        except Exception as e:
            # a bug in one item must not cost the rest of the batch
            logger.exception(f"recurring {sub.id}: unexpected settlement error")
            outcome = StorageFailure(error=str(e))
        return BatchItem(
            subscription_id=sub.id,
            status=_STATUS_BY_OUTCOME[type(outcome)],
            campaign_title=sub.campaign_title,
            donation_id=getattr(outcome, "donation_id", None),
        )


class RecurringDonationService:
    """Owner-facing create/list/update/delete of recurring donations."""

    def __init__(self, subscriptions):
        self.subscriptions = subscriptions

    def list_for_owner(self, owner_id: str) -> list[dict[str, Any]]:
        return [s.to_dict() for s in self.subscriptions.list_for_owner(owner_id)]

    def create(self, owner_id: str, body: dict[str, Any]) -> dict[str, Any]:
        campaign_id = body.get("campaign_id") or body.get("campaignId")
        if not campaign_id:
            raise ValidationError("campaign_id is required")
        amount = to_positive_money(body.get("amount"))
        frequency = _frequency(body.get("frequency", "monthly"))
        sub = self.subscriptions.create(
            owner_id=owner_id,
            campaign_id=campaign_id,
            amount=amount,
            frequency=frequency,
        )
        if sub is None:
            raise NotFoundError("campaign not found")
        return sub.to_dict()

    def update(self, owner_id: str, subscription_id: str, body: dict[str, Any]) -> dict[str, Any]:
        changes: dict[str, Any] = {}
        if body.get("amount") is not None:
            changes["amount"] = to_positive_money(body["amount"])
        if body.get("frequency") is not None:
            changes["frequency"] = _frequency(body["frequency"])
        active = body.get("is_active", body.get("isActive"))
        if active is not None:
            if not isinstance(active, bool):
                raise ValidationError("is_active must be a boolean")
            changes["is_active"] = active
        sub = self.subscriptions.update(subscription_id, owner_id, **changes)
        if sub is None:
            raise NotFoundError("recurring donation not found")
        return sub.to_dict()

    def delete(self, owner_id: str, subscription_id: str) -> None:
        if not self.subscriptions.delete(subscription_id, owner_id):
            raise NotFoundError("recurring donation not found")


def _frequency(value: Any) -> str:
    try:
        return parse_frequency(value).value
    except ScheduleComputationError:
        raise ValidationError("frequency must be one of minute, daily, weekly, monthly")
