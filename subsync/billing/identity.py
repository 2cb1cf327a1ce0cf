"""
Identity resolution: which account does this event belong to?

Each strategy is a pure function ``(store, event, config) -> account id or
None``. The resolver walks them in order and stops at the first match, so
an exact signal always wins over a weaker one.
"""

from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Tuple

from subsync.billing.events import WebhookEvent
from subsync.billing.state_machine import SubscriptionStatus
from subsync.billing.store import SubscriptionStore
from subsync.config import BillingConfig
from subsync.errors import IdentityResolutionError
from subsync.logging_config import get_event_logger, mask_account_id, mask_email

log = get_event_logger("IDENTITY")

Strategy = Callable[[SubscriptionStore, WebhookEvent, BillingConfig], Optional[str]]


def by_subscription_id(store, event, config):
    if not event.subscription_id:
        return None
    return store.account_id_for_subscription(event.subscription_id)


def by_customer_id(store, event, config):
    customer_id = event.customer_id
    if not customer_id:
        return None

    account_id = store.account_id_for_customer_on_subscriptions(customer_id)
    if account_id:
        return account_id

    mapping = store.get_customer_mapping(customer_id)
    if mapping is not None and mapping.account_id:
        return mapping.account_id

    account = store.find_account_by_customer_id(customer_id)
    return account.id if account else None


def by_email(store, event, config):
    email = event.email
    if not email and event.customer_id:
        mapping = store.get_customer_mapping(event.customer_id)
        email = mapping.email if mapping is not None else None
    if not email:
        return None

    account = store.find_account_by_email(email)
    return account.id if account else None


def recent_pending_or_active(store, event, config):
    """
    Last resort for the checkout race: the provider's first event arrives
    before anything links its ids to an account. Prefer the most recent
    placeholder row, else the most recent pending/active row.
    """
    if not config.heuristic_enabled:
        return None

    candidates = store.recent_subscriptions(
        (SubscriptionStatus.PENDING.value, SubscriptionStatus.ACTIVE.value),
        config.heuristic_lookback,
    )
    if not candidates:
        return None

    for candidate in candidates:
        if candidate.id.startswith(config.placeholder_prefix):
            return candidate.account_id
    return candidates[0].account_id


DEFAULT_STRATEGIES: Tuple[Tuple[str, Strategy], ...] = (
    ("subscription_id", by_subscription_id),
    ("customer_id", by_customer_id),
    ("email", by_email),
    ("heuristic", recent_pending_or_active),
)


@dataclass(frozen=True)
class Resolution:
    account_id: str
    strategy: str


class IdentityResolver:
    def __init__(
        self,
        store: SubscriptionStore,
        config: BillingConfig,
        strategies: Sequence[Tuple[str, Strategy]] = DEFAULT_STRATEGIES,
    ):
        self.store = store
        self.config = config
        self.strategies = tuple(strategies)

    def resolve(self, event: WebhookEvent) -> Resolution:
        for name, strategy in self.strategies:
            account_id = strategy(self.store, event, self.config)
            if not account_id:
                continue

            context = {
                "event_type": event.event_type,
                "subscription_id": event.subscription_id,
                "account_id": mask_account_id(account_id),
                "resolution_strategy": name,
            }
            if name == "heuristic":
                log.warning("Resolved account by heuristic fallback", **context)
            else:
                log.info("Resolved account", **context)
            return Resolution(account_id=account_id, strategy=name)

        log.warning(
            "No account found for event",
            event_type=event.event_type,
            subscription_id=event.subscription_id,
            customer_id=event.customer_id,
            customer_email=mask_email(event.email) if event.email else None,
        )
        raise IdentityResolutionError("No account found for event")
