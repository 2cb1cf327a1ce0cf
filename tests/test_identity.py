from datetime import timedelta
from unittest.mock import Mock

import pytest

from subsync.billing.events import WebhookEvent
from subsync.billing.identity import (
    DEFAULT_STRATEGIES,
    IdentityResolver,
    by_customer_id,
    by_email,
    recent_pending_or_active,
)
from subsync.config import BillingConfig
from subsync.errors import IdentityResolutionError
from subsync.extensions import db
from subsync.models import CustomerMapping
from subsync.models.base import utcnow

pytestmark = pytest.mark.db


def sub_event(subscription_id="sub_new", customer_id=None, email=None):
    data = {"id": subscription_id, "status": "active"}
    if customer_id:
        data["customer_id"] = customer_id
    if email:
        data["custom_data"] = {"email": email}
    return WebhookEvent(event_id="evt_1", event_type="subscription.updated", data=data)


@pytest.fixture
def resolver(store, billing_config):
    return IdentityResolver(store, billing_config)


def test_exact_subscription_id_wins(resolver, make_account, make_subscription):
    owner = make_account()
    other = make_account(provider_customer_id="ctm_other")
    make_subscription(owner, "sub_known")

    resolution = resolver.resolve(sub_event("sub_known", customer_id="ctm_other"))

    assert resolution.account_id == owner.id
    assert resolution.strategy == "subscription_id"


def test_customer_id_short_circuits_email_and_heuristic(store, billing_config, make_account, make_subscription):
    by_customer = make_account(provider_customer_id="ctm_42")
    by_mail = make_account(email="billing@example.com")
    make_subscription(make_account(), "pending_recent", status="active")

    email_strategy = Mock(wraps=by_email)
    heuristic = Mock(wraps=recent_pending_or_active)
    resolver = IdentityResolver(store, billing_config, strategies=(
        DEFAULT_STRATEGIES[0],
        ("customer_id", by_customer_id),
        ("email", email_strategy),
        ("heuristic", heuristic),
    ))

    resolution = resolver.resolve(sub_event(customer_id="ctm_42", email="billing@example.com"))

    assert resolution.account_id == by_customer.id
    assert resolution.account_id != by_mail.id
    assert resolution.strategy == "customer_id"
    email_strategy.assert_not_called()
    heuristic.assert_not_called()


def test_customer_id_found_on_existing_subscription(resolver, make_account, make_subscription):
    account = make_account()
    make_subscription(account, "sub_old", provider_customer_id="ctm_77", is_current=False)

    resolution = resolver.resolve(sub_event("sub_new", customer_id="ctm_77"))

    assert resolution.account_id == account.id
    assert resolution.strategy == "customer_id"


def test_customer_id_found_on_customer_mapping(resolver, make_account):
    account = make_account()
    db.session.add(CustomerMapping(customer_id="ctm_map", email=account.email, account_id=account.id))
    db.session.commit()

    resolution = resolver.resolve(sub_event(customer_id="ctm_map"))

    assert resolution.account_id == account.id
    assert resolution.strategy == "customer_id"


def test_email_match_is_case_insensitive(resolver, make_account):
    account = make_account(email="owner@example.com")

    resolution = resolver.resolve(sub_event(customer_id="ctm_unknown", email="Owner@Example.COM"))

    assert resolution.account_id == account.id
    assert resolution.strategy == "email"


def test_email_taken_from_unlinked_customer_mapping(resolver, make_account):
    account = make_account(email="late@example.com")
    db.session.add(CustomerMapping(customer_id="ctm_unlinked", email="late@example.com", account_id=None))
    db.session.commit()

    resolution = resolver.resolve(sub_event(customer_id="ctm_unlinked"))

    assert resolution.account_id == account.id
    assert resolution.strategy == "email"


def test_heuristic_prefers_recent_placeholder(resolver, make_account, make_subscription, caplog):
    placeholder_owner = make_account()
    newer_owner = make_account()
    now = utcnow()
    make_subscription(placeholder_owner, "pending_abc", created_at=now - timedelta(minutes=5))
    make_subscription(newer_owner, "sub_other", created_at=now)

    resolution = resolver.resolve(sub_event("sub_123", customer_id="ctm_nobody"))

    assert resolution.account_id == placeholder_owner.id
    assert resolution.strategy == "heuristic"
    heuristic_logs = [r for r in caplog.records if getattr(r, "resolution_strategy", None) == "heuristic"]
    assert heuristic_logs and heuristic_logs[0].levelname == "WARNING"


def test_heuristic_ignores_terminal_rows(resolver, make_account, make_subscription):
    make_subscription(make_account(), "sub_gone", status="canceled")

    with pytest.raises(IdentityResolutionError):
        resolver.resolve(sub_event("sub_123"))


def test_heuristic_can_be_disabled(store, make_account, make_subscription):
    make_subscription(make_account(), "pending_abc")
    resolver = IdentityResolver(store, BillingConfig(webhook_secret="x", heuristic_enabled=False))

    with pytest.raises(IdentityResolutionError) as exc_info:
        resolver.resolve(sub_event("sub_123"))

    assert exc_info.value.status_code == 404


def test_no_signal_raises_404(resolver):
    with pytest.raises(IdentityResolutionError):
        resolver.resolve(sub_event("sub_123", customer_id="ctm_x", email="nobody@example.com"))
