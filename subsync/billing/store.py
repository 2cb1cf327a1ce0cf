"""
Backing store for subscription state.

All writes to ``subscriptions`` go through ``upsert_subscription``: a single
transaction that migrates or archives the account's current row when a new
subscription id appears, then applies the event with one
``INSERT ... ON CONFLICT (id) DO UPDATE``. Optional columns are merged with
``COALESCE(new, existing)`` so an event that omits a field never clears it.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import and_, case, func, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError

from subsync.extensions import db
from subsync.logging_config import get_event_logger, mask_account_id, mask_email
from subsync.models import Account, CustomerMapping, Subscription
from subsync.models.base import utcnow

log = get_event_logger("SUBSCRIPTION_STORE")

CREATED = "created"
UPDATED = "updated"
MERGED = "merged"
SKIPPED = "skipped"

# Columns merged with COALESCE(new, existing) on conflict
MERGED_COLUMNS = (
    "price_id",
    "quantity",
    "cancel_at_period_end",
    "current_period_start",
    "current_period_end",
    "trial_start",
    "trial_end",
    "cancel_at",
    "canceled_at",
    "ended_at",
    "provider_customer_id",
    "last_event_at",
)

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


@dataclass
class UpsertResult:
    success: bool
    operation: Optional[str] = None
    previous_status: Optional[str] = None
    status: Optional[str] = None
    account_id: Optional[str] = None
    tier: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


class SubscriptionStore:
    def __init__(self, session=None):
        self._session = session

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    def _insert(self, table):
        dialect = self.session.get_bind().dialect.name
        try:
            return _DIALECT_INSERTS[dialect](table)
        except KeyError:
            raise NotImplementedError(f"Upsert is not supported on {dialect}")

    def _lock_existing(self, subscription_id: str) -> Optional[str]:
        """Lock the row for ``subscription_id`` and return its status, if stored."""
        table = Subscription.__table__
        return self.session.execute(
            select(table.c.status)
            .where(table.c.id == subscription_id)
            .with_for_update()
        ).scalar_one_or_none()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert_subscription(
        self,
        fields: Dict[str, Any],
        *,
        placeholder_prefix: str = "pending_",
        require_newer: bool = False,
    ) -> UpsertResult:
        """
        Apply one event's fields to the subscription keyed by ``fields["id"]``.

        ``fields`` must contain ``id``, ``account_id``, ``status`` and ``tier``;
        every other column may be ``None`` meaning "not carried by this
        event". When ``require_newer`` is set the update only applies if
        ``last_event_at`` is not older than the stored one; otherwise the
        result is ``skipped``.
        """
        session = self.session
        table = Subscription.__table__
        subscription_id = fields["id"]
        now = utcnow()
        migrated = False

        try:
            previous_status = self._lock_existing(subscription_id)

            if previous_status is None:
                current = session.execute(
                    select(table.c.id, table.c.status)
                    .where(and_(
                        table.c.account_id == fields["account_id"],
                        table.c.is_current.is_(True),
                    ))
                    .with_for_update()
                ).first()

                if current is not None and current.id == subscription_id:
                    # A concurrent delivery renamed the placeholder while we waited on the lock
                    previous_status = current.status
                elif current is not None and current.id.startswith(placeholder_prefix):
                    session.execute(
                        update(table)
                        .where(table.c.id == current.id)
                        .values(id=subscription_id, updated_at=now)
                    )
                    previous_status = current.status
                    migrated = True
                    log.info(
                        "Migrated placeholder subscription to provider id",
                        placeholder_id=current.id,
                        subscription_id=subscription_id,
                        account_id=mask_account_id(fields["account_id"]),
                    )
                elif current is not None:
                    session.execute(
                        update(table)
                        .where(table.c.id == current.id)
                        .values(
                            is_current=False,
                            ended_at=func.coalesce(table.c.ended_at, now),
                            updated_at=now,
                        )
                    )
                    log.info(
                        "Archived superseded subscription",
                        archived_id=current.id,
                        subscription_id=subscription_id,
                        account_id=mask_account_id(fields["account_id"]),
                    )

            values = {column: fields.get(column) for column in MERGED_COLUMNS}
            values.update(
                id=subscription_id,
                account_id=fields["account_id"],
                status=fields["status"],
                tier=fields["tier"],
                last_event_id=fields.get("last_event_id"),
                is_current=True,
                created_at=now,
                updated_at=now,
            )

            stmt = self._insert(table).values(**values)
            excluded = stmt.excluded
            set_ = {
                column: func.coalesce(excluded[column], table.c[column])
                for column in MERGED_COLUMNS
            }
            set_.update(
                status=excluded.status,
                # Tier follows the price; an event without a price keeps the stored tier
                tier=case((excluded.price_id.is_(None), table.c.tier), else_=excluded.tier),
                last_event_id=func.coalesce(excluded.last_event_id, table.c.last_event_id),
                updated_at=excluded.updated_at,
            )

            where = None
            if require_newer:
                where = or_(
                    table.c.last_event_at.is_(None),
                    excluded.last_event_at.is_(None),
                    excluded.last_event_at >= table.c.last_event_at,
                )

            stmt = stmt.on_conflict_do_update(
                index_elements=[table.c.id],
                set_=set_,
                where=where,
            ).returning(table.c.created_at, table.c.account_id, table.c.status, table.c.tier)

            row = session.execute(stmt).first()
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            code = getattr(getattr(exc, "orig", None), "pgcode", None) or type(exc).__name__
            log.error(
                "Subscription upsert failed",
                error=exc,
                subscription_id=subscription_id,
                error_code=code,
            )
            return UpsertResult(success=False, error=str(exc), error_code=code)

        if row is None:
            return UpsertResult(
                success=True,
                operation=SKIPPED,
                previous_status=previous_status,
                status=previous_status,
                account_id=fields["account_id"],
            )

        if migrated:
            operation = MERGED
        elif row.created_at == now:
            operation = CREATED
        else:
            operation = UPDATED

        return UpsertResult(
            success=True,
            operation=operation,
            previous_status=previous_status,
            status=row.status,
            account_id=row.account_id,
            tier=row.tier,
        )

    def upsert_customer(self, customer_id: str, email: Optional[str]) -> Optional[str]:
        """
        Record a provider customer and link it to the account with the same
        email, if any. Returns the linked account id.
        """
        session = self.session
        table = CustomerMapping.__table__
        now = utcnow()
        email = email.strip().lower() if email else None

        try:
            account = self.find_account_by_email(email) if email else None
            account_id = account.id if account else None

            stmt = self._insert(table).values(
                customer_id=customer_id,
                email=email,
                account_id=account_id,
                created_at=now,
                updated_at=now,
            )
            excluded = stmt.excluded
            stmt = stmt.on_conflict_do_update(
                index_elements=[table.c.customer_id],
                set_={
                    "email": func.coalesce(excluded.email, table.c.email),
                    "account_id": func.coalesce(excluded.account_id, table.c.account_id),
                    "updated_at": excluded.updated_at,
                },
            )
            session.execute(stmt)

            if account_id is not None:
                session.execute(
                    update(Account.__table__)
                    .where(Account.__table__.c.id == account_id)
                    .values(provider_customer_id=customer_id)
                )
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            log.error("Customer upsert failed", error=exc, customer_id=customer_id)
            raise

        if account_id is None:
            log.warning(
                "No account found for customer email",
                customer_id=customer_id,
                customer_email=mask_email(email) if email else None,
            )
        return account_id

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_subscription(self, subscription_id: str) -> Optional[Subscription]:
        return self.session.get(Subscription, subscription_id)

    def account_id_for_subscription(self, subscription_id: str) -> Optional[str]:
        return self.session.execute(
            select(Subscription.account_id).where(Subscription.id == subscription_id)
        ).scalar_one_or_none()

    def current_subscription_for(self, account_id: str) -> Optional[Subscription]:
        return self.session.execute(
            select(Subscription).where(
                Subscription.account_id == account_id,
                Subscription.is_current.is_(True),
            )
        ).scalar_one_or_none()

    def account_id_for_customer_on_subscriptions(self, customer_id: str) -> Optional[str]:
        return self.session.execute(
            select(Subscription.account_id)
            .where(Subscription.provider_customer_id == customer_id)
            .order_by(Subscription.created_at.desc())
            .limit(1)
        ).scalar_one_or_none()

    def get_customer_mapping(self, customer_id: str) -> Optional[CustomerMapping]:
        return self.session.get(CustomerMapping, customer_id)

    def find_account_by_customer_id(self, customer_id: str) -> Optional[Account]:
        return self.session.execute(
            select(Account).where(Account.provider_customer_id == customer_id).limit(1)
        ).scalar_one_or_none()

    def find_account_by_email(self, email: str) -> Optional[Account]:
        return self.session.execute(
            select(Account).where(func.lower(Account.email) == email.strip().lower()).limit(1)
        ).scalar_one_or_none()

    def recent_subscriptions(self, statuses: Iterable[str], limit: int) -> List[Subscription]:
        return list(
            self.session.execute(
                select(Subscription)
                .where(Subscription.status.in_(list(statuses)))
                .order_by(Subscription.created_at.desc())
                .limit(limit)
            ).scalars()
        )
