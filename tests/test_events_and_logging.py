from datetime import datetime

import pytest

from subsync.billing.events import WebhookEvent, parse_timestamp
from subsync.logging_config import get_event_logger, mask_account_id, mask_email


@pytest.mark.parametrize("value, expected", [
    ("2025-06-01T12:30:00Z", datetime(2025, 6, 1, 12, 30)),
    ("2025-06-01T12:30:00.123456789Z", datetime(2025, 6, 1, 12, 30, 0, 123456)),
    ("2025-06-01T14:30:00+02:00", datetime(2025, 6, 1, 12, 30)),
    ("2025-06-01T12:30:00", datetime(2025, 6, 1, 12, 30)),
    (1748781000, datetime(2025, 6, 1, 12, 30)),
    ("1748781000", datetime(2025, 6, 1, 12, 30)),
])
def test_parse_timestamp_accepts_provider_formats(value, expected):
    assert parse_timestamp(value) == expected


@pytest.mark.parametrize("value", [None, "", "soon", True, {"at": 1}, "2025-02-30T00:00:00Z"])
def test_parse_timestamp_rejects_garbage(value):
    assert parse_timestamp(value) is None


def test_flat_payload_fields_are_read():
    event = WebhookEvent(
        event_id="evt_1",
        event_type="subscription.updated",
        data={
            "id": "sub_1",
            "status": "active",
            "price_id": "price_flat",
            "quantity": 2,
            "cancel_at_period_end": True,
            "customer_id": "ctm_flat",
        },
    )

    assert event.price_id == "price_flat"
    assert event.quantity == 2
    assert event.cancel_at_period_end is True
    assert event.customer_id == "ctm_flat"


def test_scheduled_cancel_sets_cancel_at_period_end():
    event = WebhookEvent(
        event_id="evt_1",
        event_type="subscription.updated",
        data={"id": "sub_1", "status": "active", "scheduled_change": {"action": "cancel"}},
    )

    assert event.cancel_at_period_end is True


def test_customer_event_ids():
    event = WebhookEvent(event_id="evt_1", event_type="customer.updated",
                         data={"id": "ctm_1", "email": " Someone@Example.com "})

    assert event.subscription_id is None
    assert event.customer_id == "ctm_1"
    assert event.email == "someone@example.com"


def test_masking_helpers():
    assert mask_email("jonathan@example.com") == "jo***@example.com"
    assert mask_email(None) == "***"
    assert mask_account_id("5b1f6f5e-2a4b-4f0c-9a53-0c3f1e7d9a11") == "5b1f6f5e..."


def test_event_logger_attaches_category_and_context(caplog):
    log = get_event_logger("PADDLE_WEBHOOK")

    log.warning("Something odd", error=ValueError("bad"), subscription_id="sub_1")

    record = caplog.records[-1]
    assert record.category == "PADDLE_WEBHOOK"
    assert record.subscription_id == "sub_1"
    assert record.error == "bad"
    assert record.error_type == "ValueError"
