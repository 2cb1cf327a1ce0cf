import json

import pytest

from subsync.billing.validator import ACTIONABLE, IGNORED, EventValidator
from subsync.config import BillingConfig
from subsync.errors import ValidationError

from conftest import build_event, subscription_event


@pytest.fixture
def validator():
    return EventValidator(BillingConfig(webhook_secret="whsec_unit"))


def encode(payload):
    return json.dumps(payload).encode("utf-8")


class TestTransport:
    def test_json_with_charset_passes(self, validator):
        validator.check_transport("application/json; charset=utf-8", 10, b"{}")

    @pytest.mark.parametrize("content_type", [None, "", "text/plain", "application/x-www-form-urlencoded"])
    def test_non_json_content_type_rejected(self, validator, content_type):
        with pytest.raises(ValidationError):
            validator.check_transport(content_type, 2, b"{}")

    def test_declared_length_over_limit_rejected(self, validator):
        with pytest.raises(ValidationError):
            validator.check_transport("application/json", 10 * 1024 + 1, b"{}")

    def test_actual_body_over_limit_rejected(self, validator):
        body = b"x" * (10 * 1024 + 1)
        with pytest.raises(ValidationError):
            validator.check_transport("application/json", None, body)

    def test_body_at_limit_passes(self, validator):
        validator.check_transport("application/json", 10 * 1024, b"x" * (10 * 1024))


class TestParse:
    def test_parses_envelope(self, validator):
        payload = subscription_event(subscription_id="sub_abc", status="active")
        event = validator.parse(encode(payload))

        assert event.event_type == "subscription.updated"
        assert event.event_id == payload["event_id"]
        assert event.subscription_id == "sub_abc"
        assert event.price_id == "price_pro_monthly"
        assert event.occurred_at is not None

    @pytest.mark.parametrize("body", [b"not json", b"\xff\xfe", b"[1, 2]", b'"text"'])
    def test_malformed_body_rejected(self, validator, body):
        with pytest.raises(ValidationError):
            validator.parse(body)

    def test_missing_event_type_rejected(self, validator):
        payload = build_event(id="sub_1", status="active")
        del payload["event_type"]
        with pytest.raises(ValidationError):
            validator.parse(encode(payload))

    def test_missing_event_id_rejected(self, validator):
        payload = build_event(id="sub_1", status="active")
        del payload["event_id"]
        with pytest.raises(ValidationError):
            validator.parse(encode(payload))

    def test_non_object_data_rejected(self, validator):
        payload = build_event()
        payload["data"] = ["sub_1"]
        with pytest.raises(ValidationError):
            validator.parse(encode(payload))


class TestClassify:
    @pytest.mark.parametrize("event_type", [
        "subscription.created",
        "subscription.updated",
        "subscription.activated",
        "subscription.canceled",
        "subscription.deleted",
        "subscription.paused",
        "subscription.payment_failed",
        "customer.created",
    ])
    def test_actionable(self, validator, event_type):
        assert validator.classify(event_type) == ACTIONABLE

    @pytest.mark.parametrize("event_type", ["transaction.completed", "transaction.paid", "subscription.imported"])
    def test_recognized_noop(self, validator, event_type):
        assert validator.classify(event_type) == IGNORED

    @pytest.mark.parametrize("event_type", ["subscription.exploded", "invoice.paid", "SUBSCRIPTION.CREATED", "x"])
    def test_unknown_rejected(self, validator, event_type):
        with pytest.raises(ValidationError):
            validator.classify(event_type)


class TestValidate:
    def test_subscription_requires_id(self, validator):
        event = validator.parse(encode(build_event("subscription.updated", status="active")))
        with pytest.raises(ValidationError):
            validator.validate(event)

    def test_subscription_requires_known_status(self, validator):
        event = validator.parse(encode(build_event("subscription.updated", id="sub_1", status="exploded")))
        with pytest.raises(ValidationError):
            validator.validate(event)

    def test_subscription_status_must_be_string(self, validator):
        event = validator.parse(encode(build_event("subscription.updated", id="sub_1", status=None)))
        with pytest.raises(ValidationError):
            validator.validate(event)

    def test_valid_subscription_passes(self, validator):
        event = validator.parse(encode(subscription_event()))
        validator.validate(event)

    def test_subscription_rejects_placeholder_status(self, validator):
        event = validator.parse(encode(subscription_event(status="pending")))
        with pytest.raises(ValidationError):
            validator.validate(event)

    @pytest.mark.parametrize("extra", [
        {"price_id": 42},
        {"items": [{"price": {"id": {"nested": 1}}}]},
        {"customer_id": {"id": 5}},
        {"email": True},
    ])
    def test_subscription_rejects_non_string_fields(self, validator, extra):
        event = validator.parse(encode(subscription_event(**extra)))
        with pytest.raises(ValidationError):
            validator.validate(event)

    def test_customer_requires_id(self, validator):
        event = validator.parse(encode(build_event("customer.created", email="a@example.com")))
        with pytest.raises(ValidationError):
            validator.validate(event)

    def test_valid_customer_passes(self, validator):
        event = validator.parse(encode(build_event("customer.created", id="ctm_1", email="a@example.com")))
        validator.validate(event)
        assert event.customer_id == "ctm_1"
        assert event.email == "a@example.com"
