from subsync.models.account import Account
from subsync.models.customer_mapping import CustomerMapping
from subsync.models.subscription import SUBSCRIPTION_STATUSES, Subscription

__all__ = ["Account", "CustomerMapping", "Subscription", "SUBSCRIPTION_STATUSES"]
