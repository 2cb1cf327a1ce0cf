# subscription.py
from sqlalchemy import CheckConstraint, Index, text

from subsync.extensions import db
from subsync.models.base import utcnow

SUBSCRIPTION_STATUSES = (
    "trialing",
    "active",
    "paused",
    "past_due",
    "canceled",
    "deleted",
    "pending",
)


class Subscription(db.Model):
    """
    Canonical billing state for one account.

    ``id`` is the provider's subscription id once known; rows created at
    checkout before the provider confirms carry a ``pending_`` placeholder id.
    Rows are never hard-deleted: superseded and canceled rows stay as history
    with ``is_current`` cleared.
    """

    __tablename__ = "subscriptions"

    id = db.Column(db.String(255), primary_key=True)
    account_id = db.Column(
        db.String(36),
        db.ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    status = db.Column(db.String(32), nullable=False, index=True)
    price_id = db.Column(db.String(255), nullable=True)
    tier = db.Column(db.String(32), nullable=False, default="free")
    quantity = db.Column(db.Integer, nullable=True)
    # NULL until an event says either way
    cancel_at_period_end = db.Column(db.Boolean, nullable=True)

    # Billing period
    current_period_start = db.Column(db.DateTime, nullable=True)
    current_period_end = db.Column(db.DateTime, nullable=True)

    # Trial information
    trial_start = db.Column(db.DateTime, nullable=True)
    trial_end = db.Column(db.DateTime, nullable=True)

    # Cancellation details
    cancel_at = db.Column(db.DateTime, nullable=True)
    canceled_at = db.Column(db.DateTime, nullable=True)
    ended_at = db.Column(db.DateTime, nullable=True)

    provider_customer_id = db.Column(db.String(255), nullable=True, index=True)
    is_current = db.Column(db.Boolean, nullable=False, default=True)

    last_event_id = db.Column(db.String(255), nullable=True)
    last_event_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    account = db.relationship("Account", back_populates="subscriptions")

    __table_args__ = (
        CheckConstraint(
            "status IN ({})".format(", ".join(f"'{s}'" for s in SUBSCRIPTION_STATUSES)),
            name="ck_subscriptions_status",
        ),
        CheckConstraint("quantity IS NULL OR quantity > 0", name="ck_subscriptions_quantity"),
        # At most one current subscription per account
        Index(
            "uq_subscriptions_current_account",
            "account_id",
            unique=True,
            sqlite_where=text("is_current"),
            postgresql_where=text("is_current"),
        ),
        Index("idx_subscriptions_status_created", "status", "created_at"),
    )

    def is_placeholder(self, prefix="pending_"):
        return self.id.startswith(prefix)

    def to_dict(self) -> dict:
        def iso(value):
            return value.isoformat() if value else None

        return {
            "id": self.id,
            "account_id": self.account_id,
            "status": self.status,
            "price_id": self.price_id,
            "tier": self.tier,
            "quantity": self.quantity,
            "cancel_at_period_end": self.cancel_at_period_end,
            "current_period_start": iso(self.current_period_start),
            "current_period_end": iso(self.current_period_end),
            "trial_start": iso(self.trial_start),
            "trial_end": iso(self.trial_end),
            "cancel_at": iso(self.cancel_at),
            "canceled_at": iso(self.canceled_at),
            "ended_at": iso(self.ended_at),
            "provider_customer_id": self.provider_customer_id,
            "is_current": self.is_current,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Subscription {self.id} {self.status}>"
