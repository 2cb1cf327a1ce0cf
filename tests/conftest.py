import json
import time
import uuid
from datetime import timedelta

import pytest
from faker import Faker

from subsync import create_app
from subsync.billing.authenticator import compute_signature
from subsync.billing.store import SubscriptionStore
from subsync.extensions import db
from subsync.models import Account, Subscription
from subsync.models.base import utcnow

# Initialize Faker for generating test data
fake = Faker()

WEBHOOK_SECRET = "whsec_test_secret"


# Custom pytest marks for organizing tests
def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "db: mark test as database-intensive"
    )
    config.addinivalue_line(
        "markers",
        "webhook: mark test as exercising the full webhook endpoint"
    )


@pytest.fixture(scope="session")
def app():
    """Create application for testing"""
    app = create_app("testing")

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(autouse=True)
def clean_db(app):
    """Fresh tables for every test"""
    yield
    db.session.rollback()
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()
    db.session.remove()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def billing_config(app):
    return app.extensions["billing_config"]


@pytest.fixture()
def store(app):
    return SubscriptionStore()


@pytest.fixture()
def make_account(app):
    """Factory for dashboard accounts"""

    def _make(email=None, provider_customer_id=None):
        account = Account(
            id=str(uuid.uuid4()),
            email=(email or fake.unique.email()).lower(),
            provider_customer_id=provider_customer_id,
        )
        db.session.add(account)
        db.session.commit()
        return account

    return _make


@pytest.fixture()
def make_subscription(app):
    """Factory for stored subscription rows"""

    def _make(account, subscription_id=None, status="active", tier="starter",
              is_current=True, created_at=None, **fields):
        subscription = Subscription(
            id=subscription_id or f"sub_{uuid.uuid4().hex[:12]}",
            account_id=account.id,
            status=status,
            tier=tier,
            is_current=is_current,
            created_at=created_at or utcnow(),
            **fields,
        )
        db.session.add(subscription)
        db.session.commit()
        return subscription

    return _make


def build_event(event_type="subscription.updated", event_id=None, occurred_at=None, **data):
    """Provider-shaped event payload"""
    return {
        "event_id": event_id or f"evt_{uuid.uuid4().hex[:16]}",
        "event_type": event_type,
        "occurred_at": occurred_at or utcnow().isoformat() + "Z",
        "notification_id": f"ntf_{uuid.uuid4().hex[:16]}",
        "data": data,
    }


def subscription_event(subscription_id="sub_123", status="active", price_id="price_pro_monthly",
                       customer_id="ctm_123", event_type="subscription.updated", **extra):
    now = utcnow()
    data = {
        "id": subscription_id,
        "status": status,
        "customer_id": customer_id,
        "items": [{"price": {"id": price_id}, "quantity": 1}] if price_id else [],
        "current_billing_period": {
            "starts_at": now.isoformat() + "Z",
            "ends_at": (now + timedelta(days=30)).isoformat() + "Z",
        },
    }
    data.update(extra)
    return build_event(event_type, **data)


def signed_headers(body, secret=WEBHOOK_SECRET, timestamp=None):
    return {
        "Content-Type": "application/json",
        "Paddle-Signature": compute_signature(secret, body),
        "Paddle-Timestamp": str(int(timestamp if timestamp is not None else time.time())),
    }


@pytest.fixture()
def post_webhook(client):
    """Sign and deliver a payload to the webhook endpoint"""

    def _post(payload, headers=None, raw=None):
        body = raw if raw is not None else json.dumps(payload).encode("utf-8")
        return client.post(
            "/webhooks/paddle",
            data=body,
            headers=headers or signed_headers(body),
        )

    return _post
