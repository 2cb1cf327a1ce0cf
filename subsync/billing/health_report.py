from sqlalchemy import func, select

from subsync.extensions import db
from subsync.models import Account, CustomerMapping, Subscription
from subsync.models.base import utcnow


def subscription_health_report(placeholder_prefix="pending_", sample_size=10):
    """
    Consistency report over billing state, for operators.

    Flags placeholder rows the provider never confirmed, accounts that were
    never linked to a provider customer, and customer records no account
    claims.
    """
    session = db.session

    pending = session.execute(
        select(Subscription.id, Subscription.account_id, Subscription.created_at)
        .where(
            Subscription.id.startswith(placeholder_prefix, autoescape=True),
            Subscription.is_current.is_(True),
        )
        .order_by(Subscription.created_at.desc())
    ).all()

    unlinked_accounts = session.execute(
        select(Account.id, Account.created_at).where(Account.provider_customer_id.is_(None))
    ).all()

    orphaned_customers = session.execute(
        select(CustomerMapping.customer_id, CustomerMapping.created_at).where(
            CustomerMapping.account_id.is_(None)
        )
    ).all()

    missing_mappings = session.execute(
        select(Account.id, Account.provider_customer_id)
        .outerjoin(CustomerMapping, CustomerMapping.customer_id == Account.provider_customer_id)
        .where(
            Account.provider_customer_id.is_not(None),
            CustomerMapping.customer_id.is_(None),
        )
    ).all()

    by_tier_status = {
        f"{tier}_{status}": count
        for tier, status, count in session.execute(
            select(Subscription.tier, Subscription.status, func.count())
            .where(Subscription.is_current.is_(True))
            .group_by(Subscription.tier, Subscription.status)
        ).all()
    }

    recommendations = []
    if pending:
        recommendations.append(
            "Placeholder subscriptions are waiting for provider confirmation; "
            "check webhook delivery for these accounts."
        )
    if orphaned_customers:
        recommendations.append(
            "Customer records without an account; billing email may differ from the account email."
        )
    if missing_mappings:
        recommendations.append("Accounts reference customers with no customer record.")

    return {
        "generated_at": utcnow().isoformat(),
        "summary": {
            "pending_subscriptions": len(pending),
            "unlinked_accounts": len(unlinked_accounts),
            "orphaned_customers": len(orphaned_customers),
            "missing_customer_mappings": len(missing_mappings),
        },
        "details": {
            "pending_subscriptions": [
                {"id": row.id, "account_id": row.account_id, "created_at": row.created_at.isoformat()}
                for row in pending[:sample_size]
            ],
            "orphaned_customers": [row.customer_id for row in orphaned_customers[:sample_size]],
            "missing_customer_mappings": [
                row.provider_customer_id for row in missing_mappings[:sample_size]
            ],
        },
        "stats": {"by_tier_status": by_tier_status},
        "recommendations": recommendations,
    }
