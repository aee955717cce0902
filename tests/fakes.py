"""
In-memory stand-ins for the Postgres ledger and subscription repository.

One re-entrant lock serializes every transaction (the strongest form of the
row locks the real store takes), writes inside a transaction are rolled back
on any exception, and faults can be injected per operation.
"""

import copy
import threading
import uuid
from contextlib import contextmanager
from dataclasses import replace
from decimal import Decimal

from autodonate.models.ledger import Owner
from autodonate.models.recurring_donation import RecurringDonation
from autodonate.utils.db import StorageError


class InMemoryStore:
    def __init__(self):
        self.lock = threading.RLock()
        self.users = {}
        self.campaigns = {}
        self.donations = {}
        self.subscriptions = {}
        self.notifications = []
        self._faults = []

    # ── setup helpers ─────────────────────────────────────

    def add_user(self, user_id, balance, name="Donor", email=None):
        self.users[user_id] = {
            "id": user_id,
            "name": name,
            "email": email or f"{user_id}@example.com",
            "balance": Decimal(str(balance)),
        }

    def add_campaign(self, campaign_id, title="Campaign", current_amount=0, donor_count=0):
        self.campaigns[campaign_id] = {
            "id": campaign_id,
            "title": title,
            "current_amount": Decimal(str(current_amount)),
            "donor_count": donor_count,
        }

    def add_subscription(self, sub_id, user_id, campaign_id, amount, frequency="weekly", **kw):
        sub = RecurringDonation(
            id=sub_id,
            user_id=user_id,
            campaign_id=campaign_id,
            amount=Decimal(str(amount)),
            frequency=frequency,
            **kw,
        )
        self.subscriptions[sub_id] = sub
        return self._view(sub)

    def inject_fault(self, op, when=lambda *args: True, error=StorageError):
        """Make ``op`` raise ``error`` whenever ``when(*op_args)`` is true."""
        self._faults.append((op, when, error))

    def clear_faults(self):
        self._faults = []

    def maybe_fail(self, op, *args):
        for name, when, error in self._faults:
            if name == op and when(*args):
                raise error(f"injected fault in {op}")

    # ── views ─────────────────────────────────────────────

    def balance(self, user_id):
        return self.users[user_id]["balance"]

    def subscription(self, sub_id):
        return self._view(self.subscriptions[sub_id])

    def _view(self, sub):
        camp = self.campaigns.get(sub.campaign_id) or {}
        return replace(sub, campaign_title=camp.get("title"))

    def snapshot(self):
        return copy.deepcopy((self.users, self.campaigns, self.donations, self.subscriptions))

    def restore(self, snap):
        self.users, self.campaigns, self.donations, self.subscriptions = snap


class FakeLedgerTransaction:
    def __init__(self, store):
        self.store = store

    def lock_subscription(self, subscription_id):
        self.store.maybe_fail("lock_subscription", subscription_id)
        sub = self.store.subscriptions.get(subscription_id)
        return self.store._view(sub) if sub else None

    def stamp_executed(self, subscription_id, executed_at):
        self.store.maybe_fail("stamp_executed", subscription_id)
        sub = self.store.subscriptions[subscription_id]
        self.store.subscriptions[subscription_id] = replace(sub, last_executed_at=executed_at)

    def get_balance_and_owner(self, owner_id):
        self.store.maybe_fail("get_balance_and_owner", owner_id)
        u = self.store.users.get(owner_id)
        if not u:
            return None
        return Owner(id=u["id"], name=u["name"], email=u["email"], balance=u["balance"])

    def debit_balance(self, owner_id, amount):
        self.store.maybe_fail("debit_balance", owner_id, amount)
        u = self.store.users[owner_id]
        if u["balance"] < amount:
            return None
        u["balance"] -= amount
        return u["balance"]

    def insert_donation(self, record):
        self.store.maybe_fail("insert_donation", record)
        self.store.donations[record.id] = copy.deepcopy(record)
        return record.id

    def credit_campaign(self, campaign_id, amount):
        self.store.maybe_fail("credit_campaign", campaign_id, amount)
        camp = self.store.campaigns.get(campaign_id)
        if not camp:
            return False
        camp["current_amount"] += amount
        camp["donor_count"] += 1
        return True


class FakeLedger:
    def __init__(self, store):
        self.store = store

    @contextmanager
    def transaction(self):
        with self.store.lock:
            snap = self.store.snapshot()
            try:
                yield FakeLedgerTransaction(self.store)
            except BaseException:
                self.store.restore(snap)
                raise

    def campaign_progress(self, campaign_id):
        camp = self.store.campaigns.get(campaign_id)
        if not camp:
            return None
        return {
            "campaign_id": campaign_id,
            "current_amount": camp["current_amount"],
            "donor_count": camp["donor_count"],
        }


class FakeSubscriptionRepository:
    def __init__(self, store):
        self.store = store
        self.record_success_calls = []

    def list_due(self, now):
        with self.store.lock:
            self.store.maybe_fail("list_due", now)
            due = [s for s in self.store.subscriptions.values() if s.is_due(now)]
            return [self.store._view(s) for s in sorted(due, key=lambda s: s.id)]

    def list_awaiting_reschedule(self):
        with self.store.lock:
            self.store.maybe_fail("list_awaiting_reschedule")
            stuck = [
                s for s in self.store.subscriptions.values() if s.is_active and s.awaiting_reschedule()
            ]
            return [self.store._view(s) for s in sorted(stuck, key=lambda s: s.id)]

    def get(self, subscription_id):
        with self.store.lock:
            sub = self.store.subscriptions.get(subscription_id)
            return self.store._view(sub) if sub else None

    def list_for_owner(self, owner_id):
        with self.store.lock:
            return [
                self.store._view(s)
                for s in self.store.subscriptions.values()
                if s.user_id == owner_id
            ]

    def create(self, *, owner_id, campaign_id, amount, frequency, next_execution_at=None):
        with self.store.lock:
            if campaign_id not in self.store.campaigns:
                return None
            return self.store.add_subscription(
                str(uuid.uuid4()),
                owner_id,
                campaign_id,
                amount,
                frequency,
                next_execution_at=next_execution_at,
            )

    def update(self, subscription_id, owner_id, *, amount=None, frequency=None, is_active=None):
        with self.store.lock:
            self.store.maybe_fail("update", subscription_id)
            sub = self.store.subscriptions.get(subscription_id)
            if not sub or sub.user_id != owner_id:
                return None
            changes = {
                k: v
                for k, v in (("amount", amount), ("frequency", frequency), ("is_active", is_active))
                if v is not None
            }
            sub = replace(sub, **changes)
            self.store.subscriptions[subscription_id] = sub
            return self.store._view(sub)

    def delete(self, subscription_id, owner_id):
        with self.store.lock:
            sub = self.store.subscriptions.get(subscription_id)
            if not sub or sub.user_id != owner_id:
                return False
            del self.store.subscriptions[subscription_id]
            return True

    def record_success(self, subscription_id, executed_at, next_execution_at):
        with self.store.lock:
            self.store.maybe_fail("record_success", subscription_id)
            self.record_success_calls.append((subscription_id, executed_at, next_execution_at))
            sub = self.store.subscriptions.get(subscription_id)
            if not sub:
                return False
            self.store.subscriptions[subscription_id] = replace(
                sub, last_executed_at=executed_at, next_execution_at=next_execution_at
            )
            return True

    def record_failure_reschedule(
        self, subscription_id, retry_at, *, expected_last_executed_at, expected_next_execution_at
    ):
        with self.store.lock:
            self.store.maybe_fail("record_failure_reschedule", subscription_id)
            sub = self.store.subscriptions.get(subscription_id)
            if not sub:
                return False
            if (sub.last_executed_at, sub.next_execution_at) != (
                expected_last_executed_at,
                expected_next_execution_at,
            ):
                return False
            self.store.subscriptions[subscription_id] = replace(sub, next_execution_at=retry_at)
            return True


class RecordingNotifier:
    def __init__(self):
        self.sent = []
        self._lock = threading.Lock()

    def notify(self, owner_id, title, message, type="system"):
        with self._lock:
            self.sent.append({"user_id": owner_id, "title": title, "message": message, "type": type})

    def for_user(self, owner_id):
        return [n for n in self.sent if n["user_id"] == owner_id]
