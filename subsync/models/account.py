# account.py
import uuid

from subsync.extensions import db
from subsync.models.base import utcnow


class Account(db.Model):
    """
    Dashboard account. Created by onboarding; the billing engine only reads it
    and links the provider customer id when a customer event names one.
    """

    __tablename__ = "accounts"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    provider_customer_id = db.Column(db.String(255), nullable=True, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    subscriptions = db.relationship(
        "Subscription",
        back_populates="account",
        lazy="dynamic",
        order_by="Subscription.created_at.desc()",
    )

    def __repr__(self):
        return f"<Account {self.id}>"
