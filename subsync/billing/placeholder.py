import re
import uuid
from datetime import timedelta
from typing import Optional

from subsync.billing.state_machine import SubscriptionStatus
from subsync.billing.store import SubscriptionStore
from subsync.config import BillingConfig
from subsync.errors import PersistenceError, ValidationError
from subsync.logging_config import get_event_logger, mask_account_id
from subsync.models.base import utcnow

log = get_event_logger("CHECKOUT_SUCCESS")

ACCOUNT_ID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)
SUBSCRIPTION_ID_PATTERN = re.compile(r"^(sub_|pending_)[a-zA-Z0-9_-]+$")
MAX_PARAMETER_LENGTH = 100

PROVISIONAL_PERIOD = timedelta(days=30)


def validate_account_id(value: Optional[str]) -> str:
    if not value or len(value) > MAX_PARAMETER_LENGTH or not ACCOUNT_ID_PATTERN.match(value):
        raise ValidationError("Invalid account id")
    return value


def validate_subscription_id(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    if len(value) > MAX_PARAMETER_LENGTH or not SUBSCRIPTION_ID_PATTERN.match(value):
        raise ValidationError("Invalid subscription id")
    return value


def create_checkout_placeholder(
    store: SubscriptionStore,
    config: BillingConfig,
    account_id: str,
    subscription_id: Optional[str] = None,
):
    """
    Record a speculative subscription when the user returns from checkout.

    The provider's own events may arrive before or after this call. If the
    account already has a current subscription nothing is written; otherwise
    a row with a placeholder id (or the id the checkout redirect supplied)
    is created so the dashboard unlocks immediately. The first provider
    event for the account later merges into it.
    """
    current = store.current_subscription_for(account_id)
    if current is not None:
        log.info(
            "Account already has a current subscription; placeholder not created",
            account_id=mask_account_id(account_id),
            subscription_id=current.id,
        )
        return current.id, False

    placeholder_id = subscription_id or f"{config.placeholder_prefix}{uuid.uuid4()}"
    now = utcnow()
    result = store.upsert_subscription(
        {
            "id": placeholder_id,
            "account_id": account_id,
            "status": SubscriptionStatus.ACTIVE.value,
            "tier": config.default_paid_tier,
            "current_period_start": now,
            "current_period_end": now + PROVISIONAL_PERIOD,
        },
        placeholder_prefix=config.placeholder_prefix,
    )
    if not result.success:
        raise PersistenceError("Placeholder subscription could not be saved")

    log.info(
        "Placeholder subscription created",
        account_id=mask_account_id(account_id),
        subscription_id=placeholder_id,
        operation=result.operation,
    )
    return placeholder_id, True
