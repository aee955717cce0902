from datetime import timedelta
from decimal import Decimal

import pytest

from autodonate.models.ledger import PAYMENT_METHOD_AUTO
from autodonate.services.settlement_service import (
    AlreadySettled,
    InsufficientBalance,
    InvalidFrequency,
    Settled,
    SettlementExecutor,
    StorageFailure,
)


def _donations_for(store, sub_id):
    return [d for d in store.donations.values() if d.recurring_donation_id == sub_id]


def test_settles_from_sufficient_balance(store, executor, notifier, now):
    store.add_user("u1", 100000)
    sub = store.add_subscription("s1", "u1", "camp-1", 25000, "weekly", next_execution_at=now)

    outcome = executor.settle(sub, now)

    assert isinstance(outcome, Settled)
    assert outcome.amount == Decimal("25000")
    assert outcome.balance_after == Decimal("75000")
    assert store.balance("u1") == Decimal("75000")

    donations = _donations_for(store, "s1")
    assert len(donations) == 1
    assert donations[0].status == "paid"
    assert donations[0].payment_method == PAYMENT_METHOD_AUTO
    assert donations[0].external_id.startswith("AUTO-")
    assert donations[0].paid_at == now

    assert store.campaigns["camp-1"]["current_amount"] == Decimal("25000")
    assert store.campaigns["camp-1"]["donor_count"] == 1

    sub_after = store.subscription("s1")
    assert sub_after.last_executed_at == now
    assert sub_after.next_execution_at == now + timedelta(days=7)

    sent = notifier.for_user("u1")
    assert len(sent) == 1
    assert sent[0]["title"] == "Automatic donation succeeded"
    assert "Clean Water for Sumba" in sent[0]["message"]


def test_spends_the_whole_balance_when_it_matches(store, executor, now):
    store.add_user("u1", 25000)
    sub = store.add_subscription("s1", "u1", "camp-1", 25000, "daily")

    outcome = executor.settle(sub, now)

    assert isinstance(outcome, Settled)
    assert store.balance("u1") == Decimal("0")


def test_insufficient_balance_reschedules_a_day_out(store, executor, notifier, now):
    store.add_user("u1", 50000)
    sub = store.add_subscription("s1", "u1", "camp-1", 75000, "monthly", next_execution_at=now)

    outcome = executor.settle(sub, now)

    assert outcome == InsufficientBalance(balance=Decimal("50000"), amount=Decimal("75000"))
    assert store.balance("u1") == Decimal("50000")
    assert _donations_for(store, "s1") == []
    assert store.campaigns["camp-1"]["current_amount"] == Decimal("0")

    sub_after = store.subscription("s1")
    assert sub_after.next_execution_at == now + timedelta(days=1)
    assert sub_after.last_executed_at is None
    assert sub_after.is_active

    sent = notifier.for_user("u1")
    assert len(sent) == 1
    assert sent[0]["title"] == "Automatic donation failed"
    assert "top up" in sent[0]["message"]


def test_failure_between_debit_and_record_leaves_no_trace(store, executor, notifier, now):
    store.add_user("u1", 100000)
    sub = store.add_subscription("s1", "u1", "camp-1", 25000, "weekly", next_execution_at=now)
    store.inject_fault("insert_donation")

    outcome = executor.settle(sub, now)

    assert isinstance(outcome, StorageFailure)
    assert store.balance("u1") == Decimal("100000")
    assert store.donations == {}
    assert store.campaigns["camp-1"]["current_amount"] == Decimal("0")
    assert store.subscription("s1").next_execution_at == now
    assert store.subscription("s1").last_executed_at is None
    assert notifier.sent == []


def test_failure_crediting_campaign_rolls_back_debit(store, executor, now):
    store.add_user("u1", 100000)
    sub = store.add_subscription("s1", "u1", "camp-1", 25000, "weekly")
    store.inject_fault("credit_campaign")

    assert isinstance(executor.settle(sub, now), StorageFailure)
    assert store.balance("u1") == Decimal("100000")
    assert store.donations == {}


def test_storage_failure_item_is_retried_on_a_later_pass(store, executor, now):
    store.add_user("u1", 100000)
    sub = store.add_subscription("s1", "u1", "camp-1", 25000, "weekly", next_execution_at=now)
    store.inject_fault("debit_balance")
    assert isinstance(executor.settle(sub, now), StorageFailure)

    store.clear_faults()
    later = now + timedelta(minutes=1)
    assert isinstance(executor.settle(store.subscription("s1"), later), Settled)
    assert store.balance("u1") == Decimal("75000")


def test_missing_owner_is_a_storage_failure(store, executor, now):
    sub = store.add_subscription("s1", "ghost", "camp-1", 25000, "weekly")
    assert isinstance(executor.settle(sub, now), StorageFailure)


def test_second_settle_of_same_period_is_a_no_op(store, executor, notifier, now):
    store.add_user("u1", 100000)
    sub = store.add_subscription("s1", "u1", "camp-1", 25000, "weekly", next_execution_at=now)

    assert isinstance(executor.settle(sub, now), Settled)
    # stale snapshot from before the first settlement
    assert isinstance(executor.settle(sub, now), AlreadySettled)

    assert store.balance("u1") == Decimal("75000")
    assert len(_donations_for(store, "s1")) == 1
    assert len(notifier.sent) == 1


def test_inactive_subscription_is_not_charged(store, executor, now):
    store.add_user("u1", 100000)
    sub = store.add_subscription("s1", "u1", "camp-1", 25000, "weekly", is_active=False)

    assert isinstance(executor.settle(sub, now), AlreadySettled)
    assert store.balance("u1") == Decimal("100000")


def test_unknown_frequency_is_reported_and_nothing_moves(store, executor, notifier, now):
    store.add_user("u1", 100000)
    sub = store.add_subscription("s1", "u1", "camp-1", 25000, "fortnightly")

    outcome = executor.settle(sub, now)

    assert outcome == InvalidFrequency(frequency="fortnightly")
    assert store.balance("u1") == Decimal("100000")
    assert store.donations == {}
    assert notifier.sent == []


def test_reschedule_write_is_idempotent(store, subscriptions, now):
    store.add_user("u1", 100000)
    store.add_subscription("s1", "u1", "camp-1", 25000, "weekly", next_execution_at=now)
    nxt = now + timedelta(days=7)

    assert subscriptions.record_success("s1", now, nxt)
    first = store.subscription("s1")
    assert subscriptions.record_success("s1", now, nxt)

    assert store.subscription("s1") == first


def test_lost_reschedule_keeps_row_out_of_the_due_set(store, subscriptions, executor, now):
    store.add_user("u1", 100000)
    sub = store.add_subscription("s1", "u1", "camp-1", 25000, "weekly", next_execution_at=now)
    store.inject_fault("record_success")

    outcome = executor.settle(sub, now)

    assert isinstance(outcome, Settled)
    assert store.balance("u1") == Decimal("75000")
    stuck = store.subscription("s1")
    assert stuck.awaiting_reschedule()
    assert subscriptions.list_due(now + timedelta(days=30)) == []


def test_hooks_run_after_commit_and_their_failures_are_contained(
    store, ledger, subscriptions, notifier, now
):
    seen = []

    def record(campaign_id, amount, donor_email):
        seen.append((campaign_id, amount, donor_email, store.campaigns[campaign_id]["donor_count"]))

    def explode(campaign_id, amount, donor_email):
        raise RuntimeError("socket closed")

    executor = SettlementExecutor(ledger, subscriptions, notifier, on_settled=[explode, record])
    store.add_user("u1", 100000, email="donor@example.com")
    sub = store.add_subscription("s1", "u1", "camp-1", 25000, "weekly")

    assert isinstance(executor.settle(sub, now), Settled)
    assert seen == [("camp-1", Decimal("25000"), "donor@example.com", 1)]


@pytest.mark.parametrize("retry_hours", [1, 48])
def test_retry_delay_is_configurable(store, ledger, subscriptions, notifier, now, retry_hours):
    executor = SettlementExecutor(ledger, subscriptions, notifier, retry_hours=retry_hours)
    store.add_user("u1", 0)
    sub = store.add_subscription("s1", "u1", "camp-1", 1000, "daily")

    executor.settle(sub, now)

    assert store.subscription("s1").next_execution_at == now + timedelta(hours=retry_hours)


def test_late_shortfall_reschedule_keeps_a_concurrent_settlement(
    store, subscriptions, executor, notifier, now, monkeypatch
):
    store.add_user("u1", 10000)
    sub = store.add_subscription("s1", "u1", "camp-1", 25000, "weekly", next_execution_at=now)
    write_retry = subscriptions.record_failure_reschedule
    overtaking = []

    def slow_retry_write(*args, **kwargs):
        # the owner tops up and another pass settles before this write lands
        store.users["u1"]["balance"] += Decimal("100000")
        overtaking.append(executor.settle(sub, now))
        return write_retry(*args, **kwargs)

    monkeypatch.setattr(subscriptions, "record_failure_reschedule", slow_retry_write)

    first = executor.settle(sub, now)

    assert isinstance(first, InsufficientBalance)
    assert isinstance(overtaking[0], Settled)
    after = store.subscription("s1")
    assert after.last_executed_at == now
    assert after.next_execution_at == now + timedelta(days=7)
    assert subscriptions.list_due(now + timedelta(days=1)) == []
    assert store.balance("u1") == Decimal("85000")
    assert [n["title"] for n in notifier.sent] == ["Automatic donation succeeded"]


def test_shortfall_reschedule_skipped_when_row_changed(store, subscriptions, now):
    store.add_subscription("s1", "u1", "camp-1", 25000, "weekly", next_execution_at=now)
    later = now + timedelta(days=7)
    subscriptions.record_success("s1", now, later)

    written = subscriptions.record_failure_reschedule(
        "s1",
        now + timedelta(days=1),
        expected_last_executed_at=None,
        expected_next_execution_at=now,
    )

    assert written is False
    assert store.subscription("s1").next_execution_at == later
