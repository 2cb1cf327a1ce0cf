from flask import Blueprint, current_app, jsonify, redirect, request

from subsync.billing.placeholder import (
    create_checkout_placeholder,
    validate_account_id,
    validate_subscription_id,
)
from subsync.billing.store import SubscriptionStore
from subsync.errors import IdentityResolutionError
from subsync.extensions import db
from subsync.models import Account

billing_bp = Blueprint("billing", __name__, url_prefix="/billing")


@billing_bp.route("/checkout/success", methods=["GET"])
def checkout_success():
    """
    Redirect target after the hosted checkout completes.

    Creates the placeholder subscription so the dashboard unlocks before the
    provider's webhook lands, then sends the user to the processing page.
    """
    account_id = validate_account_id(request.args.get("account_id"))
    subscription_id = validate_subscription_id(request.args.get("subscription_id"))

    if db.session.get(Account, account_id) is None:
        raise IdentityResolutionError("Unknown account")

    placeholder_id, created = create_checkout_placeholder(
        SubscriptionStore(),
        current_app.extensions["billing_config"],
        account_id,
        subscription_id,
    )

    if request.args.get("format") == "json":
        return jsonify({"subscription_id": placeholder_id, "created": created}), 200

    frontend = current_app.config["FRONTEND_URL"]
    return redirect(f"{frontend}/subscription/processing?subscription_id={placeholder_id}")
