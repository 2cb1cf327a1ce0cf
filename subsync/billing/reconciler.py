from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from subsync.billing.events import WebhookEvent
from subsync.billing.state_machine import is_allowed_transition
from subsync.billing.store import SubscriptionStore
from subsync.config import ORDERING_OCCURRED_AT, BillingConfig
from subsync.errors import PersistenceError
from subsync.logging_config import get_event_logger, mask_account_id

log = get_event_logger("RECONCILER")

PERIOD_START_PATHS = (
    ("current_billing_period", "starts_at"),
    "current_period_start",
    ("items", 0, "trial_dates", "starts_at"),
    ("trial_dates", "starts_at"),
    "trial_start",
    "started_at",
    "first_billed_at",
)

PERIOD_END_PATHS = (
    ("current_billing_period", "ends_at"),
    "current_period_end",
    ("items", 0, "trial_dates", "ends_at"),
    ("trial_dates", "ends_at"),
    "trial_end",
    "next_billed_at",
)

TRIAL_START_PATHS = (
    ("items", 0, "trial_dates", "starts_at"),
    ("trial_dates", "starts_at"),
    "trial_start",
)

TRIAL_END_PATHS = (
    ("items", 0, "trial_dates", "ends_at"),
    ("trial_dates", "ends_at"),
    "trial_end",
)


@dataclass(frozen=True)
class ReconcileResult:
    operation: str
    status: Optional[str]
    previous_status: Optional[str]
    account_id: str
    subscription_id: Optional[str] = None
    tier: Optional[str] = None


def derive_period(event: WebhookEvent) -> Tuple[Optional[datetime], Optional[datetime]]:
    """First non-null candidate for each end of the billing period."""
    return event.timestamp(*PERIOD_START_PATHS), event.timestamp(*PERIOD_END_PATHS)


def derive_cancel_at(event: WebhookEvent) -> Optional[datetime]:
    scheduled = event.data.get("scheduled_change")
    if isinstance(scheduled, dict) and scheduled.get("action") == "cancel":
        effective = event.timestamp(("scheduled_change", "effective_at"))
        if effective is not None:
            return effective
    return event.timestamp("cancel_at")


def derive_tier(price_id: Optional[str], config: BillingConfig, *, subscription_id=None) -> str:
    if not price_id:
        return config.free_tier

    tier = config.price_tiers.get(price_id)
    if tier is None:
        log.warning(
            "Unrecognized price_id, defaulting to %s tier",
            config.default_paid_tier,
            price_id=price_id,
            subscription_id=subscription_id,
            default_tier=config.default_paid_tier,
        )
        return config.default_paid_tier
    return tier


class StateReconciler:
    """
    Applies a validated, resolved event to the canonical subscription row.

    Subscription events go through one atomic upsert in the store. Customer
    events only refresh the customer mapping.
    """

    def __init__(self, store: SubscriptionStore, config: BillingConfig):
        self.store = store
        self.config = config

    def build_fields(self, event: WebhookEvent, account_id: str) -> dict:
        period_start, period_end = derive_period(event)
        price_id = event.price_id
        return {
            "id": event.subscription_id,
            "account_id": account_id,
            "status": event.status,
            "price_id": price_id,
            "tier": derive_tier(price_id, self.config, subscription_id=event.subscription_id),
            "quantity": event.quantity,
            "cancel_at_period_end": event.cancel_at_period_end,
            "current_period_start": period_start,
            "current_period_end": period_end,
            "trial_start": event.timestamp(*TRIAL_START_PATHS),
            "trial_end": event.timestamp(*TRIAL_END_PATHS),
            "cancel_at": derive_cancel_at(event),
            "canceled_at": event.timestamp("canceled_at"),
            "ended_at": event.timestamp("ended_at"),
            "provider_customer_id": event.customer_id,
            "last_event_id": event.event_id,
            "last_event_at": event.occurred_at,
        }

    def reconcile(self, event: WebhookEvent, account_id: str) -> ReconcileResult:
        if event.is_customer_event:
            return self._reconcile_customer(event)

        fields = self.build_fields(event, account_id)
        result = self.store.upsert_subscription(
            fields,
            placeholder_prefix=self.config.placeholder_prefix,
            require_newer=self.config.ordering == ORDERING_OCCURRED_AT,
        )

        if not result.success:
            raise PersistenceError(
                "Subscription upsert failed",
                context={"error_code": result.error_code},
            )

        if not is_allowed_transition(result.previous_status, fields["status"]):
            log.warning(
                "Unexpected subscription status transition applied",
                subscription_id=event.subscription_id,
                previous_status=result.previous_status,
                new_status=fields["status"],
                event_type=event.event_type,
            )

        log.info(
            "Subscription %s",
            result.operation,
            subscription_id=event.subscription_id,
            account_id=mask_account_id(result.account_id),
            status=result.status,
            previous_status=result.previous_status,
            tier=result.tier,
            event_type=event.event_type,
        )

        return ReconcileResult(
            operation=result.operation,
            status=result.status,
            previous_status=result.previous_status,
            account_id=result.account_id,
            subscription_id=event.subscription_id,
            tier=result.tier,
        )

    def _reconcile_customer(self, event: WebhookEvent) -> ReconcileResult:
        try:
            account_id = self.store.upsert_customer(event.customer_id, event.email)
        except SQLAlchemyError as exc:
            raise PersistenceError("Customer upsert failed") from exc

        return ReconcileResult(
            operation="linked" if account_id else "recorded",
            status=None,
            previous_status=None,
            account_id=account_id,
        )
