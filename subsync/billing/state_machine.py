from enum import Enum
from typing import Optional


class SubscriptionStatus(str, Enum):
    TRIALING = "trialing"
    ACTIVE = "active"
    PAUSED = "paused"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    DELETED = "deleted"
    # Placeholder rows created at checkout before the provider confirms
    PENDING = "pending"

    @classmethod
    def values(cls):
        return frozenset(s.value for s in cls)

    @classmethod
    def provider_values(cls):
        """Statuses the provider sends; ``pending`` is only ever written locally."""
        return cls.values() - {cls.PENDING.value}


ALLOWED_TRANSITIONS = {
    SubscriptionStatus.PENDING: {
        SubscriptionStatus.TRIALING,
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.PAST_DUE,
        SubscriptionStatus.CANCELED,
        SubscriptionStatus.DELETED,
    },
    SubscriptionStatus.TRIALING: {
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.PAUSED,
        SubscriptionStatus.PAST_DUE,
        SubscriptionStatus.CANCELED,
        SubscriptionStatus.DELETED,
    },
    SubscriptionStatus.ACTIVE: {
        SubscriptionStatus.TRIALING,
        SubscriptionStatus.PAUSED,
        SubscriptionStatus.PAST_DUE,
        SubscriptionStatus.CANCELED,
        SubscriptionStatus.DELETED,
    },
    SubscriptionStatus.PAUSED: {
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.TRIALING,
        SubscriptionStatus.CANCELED,
        SubscriptionStatus.DELETED,
    },
    SubscriptionStatus.PAST_DUE: {
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.CANCELED,
        SubscriptionStatus.DELETED,
    },
    SubscriptionStatus.CANCELED: {
        SubscriptionStatus.DELETED,
    },
    SubscriptionStatus.DELETED: set(),
}


def is_allowed_transition(previous: Optional[str], new: str) -> bool:
    """
    Whether ``previous -> new`` is a transition the provider is expected to
    produce. Same-status updates and first sightings are always allowed.

    The reconciler never refuses an event on this basis; out-of-order
    deliveries are applied and only flagged in the logs.
    """
    if previous is None or previous == new:
        return True
    try:
        return SubscriptionStatus(new) in ALLOWED_TRANSITIONS[SubscriptionStatus(previous)]
    except (ValueError, KeyError):
        return False
