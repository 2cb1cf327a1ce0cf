import json
from typing import Mapping, Optional

from subsync.billing.events import (
    CUSTOMER_ID_PATHS,
    EMAIL_PATHS,
    PRICE_ID_PATHS,
    WebhookEvent,
    parse_timestamp,
    values_at,
)
from subsync.billing.state_machine import SubscriptionStatus
from subsync.config import BillingConfig
from subsync.errors import ValidationError
from subsync.logging_config import get_event_logger

log = get_event_logger("PADDLE_WEBHOOK")

ACTIONABLE = "actionable"
IGNORED = "ignored"


class EventValidator:
    """
    Transport checks, JSON parsing and schema checks for inbound deliveries.

    ``check_transport`` runs before authentication so oversized or non-JSON
    requests are rejected without hashing them; ``parse`` runs after the
    signature has been verified against the raw bytes.
    """

    def __init__(self, config: BillingConfig):
        self.config = config

    def check_transport(
        self,
        content_type: Optional[str],
        content_length: Optional[int],
        raw_body: bytes,
    ) -> None:
        mimetype = (content_type or "").split(";", 1)[0].strip().lower()
        if mimetype != "application/json":
            log.warning("Invalid content type", content_type=(content_type or "")[:100])
            raise ValidationError("Invalid content type")

        limit = self.config.max_payload_bytes
        if content_length is not None and content_length > limit:
            log.warning("Payload too large", size=content_length, limit=limit)
            raise ValidationError("Payload too large")
        if len(raw_body) > limit:
            log.warning("Payload too large", size=len(raw_body), limit=limit)
            raise ValidationError("Payload too large")

    def classify(self, event_type: str) -> str:
        if event_type in self.config.actionable_event_types:
            return ACTIONABLE
        if event_type in self.config.ignored_event_types:
            return IGNORED
        log.warning("Unsupported event type", event_type=event_type[:100])
        raise ValidationError("Unsupported event type")

    def parse(self, raw_body: bytes) -> WebhookEvent:
        """Decode the body into a ``WebhookEvent`` and enforce its envelope."""
        try:
            payload = json.loads(raw_body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            log.warning("Invalid JSON payload")
            raise ValidationError("Invalid JSON")

        if not isinstance(payload, dict):
            raise ValidationError("Payload must be a JSON object")

        event_type = payload.get("event_type")
        if not isinstance(event_type, str) or not event_type:
            log.warning("Missing or invalid event type")
            raise ValidationError("Missing event type")

        event_id = payload.get("event_id")
        if not isinstance(event_id, str) or not event_id:
            log.warning("Missing or invalid event id", event_type=event_type[:100])
            raise ValidationError("Missing event id")

        data = payload.get("data")
        if not isinstance(data, dict):
            log.warning("Missing or invalid data object", event_type=event_type[:100])
            raise ValidationError("Missing data object")

        return WebhookEvent(
            event_id=event_id,
            event_type=event_type,
            data=data,
            raw_body=raw_body,
            occurred_at=parse_timestamp(payload.get("occurred_at")),
        )

    def validate(self, event: WebhookEvent) -> None:
        """Field checks for actionable events."""
        if event.event_type in self.config.subscription_event_types:
            self._validate_subscription(event.data)
        elif event.event_type in self.config.customer_event_types:
            self._validate_customer(event.data)

    def _validate_subscription(self, data: Mapping) -> None:
        subscription_id = data.get("id")
        if not isinstance(subscription_id, str) or not subscription_id.strip():
            log.warning("Missing or invalid subscription ID")
            raise ValidationError("Missing subscription id")

        status = data.get("status")
        if not isinstance(status, str) or status not in SubscriptionStatus.provider_values():
            log.warning(
                "Missing or invalid subscription status",
                subscription_id=subscription_id,
                status=status if isinstance(status, str) else None,
            )
            raise ValidationError("Invalid subscription status")

        for name, paths in (
            ("price_id", PRICE_ID_PATHS),
            ("customer_id", CUSTOMER_ID_PATHS),
            ("email", EMAIL_PATHS),
        ):
            if any(v is not None and not isinstance(v, str) for v in values_at(data, paths)):
                log.warning("Non-string subscription field", subscription_id=subscription_id, field=name)
                raise ValidationError(f"Invalid {name}")

    def _validate_customer(self, data: Mapping) -> None:
        customer_id = data.get("id")
        if not isinstance(customer_id, str) or not customer_id.strip():
            log.warning("Missing or invalid customer ID")
            raise ValidationError("Missing customer id")

        email = data.get("email")
        if email is not None and not isinstance(email, str):
            raise ValidationError("Invalid customer email")
