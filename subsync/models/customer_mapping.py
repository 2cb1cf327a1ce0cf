from subsync.extensions import db
from subsync.models.base import utcnow


class CustomerMapping(db.Model):
    """Links a provider customer id and billing email to an account."""

    __tablename__ = "customer_mappings"

    customer_id = db.Column(db.String(255), primary_key=True)
    email = db.Column(db.String(255), nullable=True, index=True)
    account_id = db.Column(
        db.String(36),
        db.ForeignKey("accounts.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<CustomerMapping {self.customer_id}>"
