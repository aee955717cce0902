from datetime import datetime, timezone

import pytest

from flask_jwt_extended import create_access_token

from autodonate import create_app
from autodonate.services.recurring_service import RecurrenceScheduler
from autodonate.services.settlement_service import SettlementExecutor
from tests.fakes import FakeLedger, FakeSubscriptionRepository, InMemoryStore, RecordingNotifier

NOW = datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)
JWT_TEST_SECRET = "test-secret-key-that-is-long-enough-for-hs256"


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def store():
    s = InMemoryStore()
    s.add_campaign("camp-1", title="Clean Water for Sumba")
    return s


@pytest.fixture
def ledger(store):
    return FakeLedger(store)


@pytest.fixture
def subscriptions(store):
    return FakeSubscriptionRepository(store)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def executor(ledger, subscriptions, notifier):
    return SettlementExecutor(ledger, subscriptions, notifier)


@pytest.fixture
def scheduler(subscriptions, executor):
    return RecurrenceScheduler(subscriptions, executor)


@pytest.fixture
def app(ledger, subscriptions, notifier):
    app = create_app(
        {
            "TESTING": True,
            "JWT_SECRET_KEY": JWT_TEST_SECRET,
            "CRON_SECRET": "",
            "PUBLISH_DONATION_EVENTS": False,
            "RECURRING_MAX_WORKERS": 1,
        },
        ledger=ledger,
        subscriptions=subscriptions,
        notifier=notifier,
    )
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers(app):
    def _headers(user_id):
        with app.app_context():
            token = create_access_token(identity=user_id)
        return {"Authorization": f"Bearer {token}"}

    return _headers
