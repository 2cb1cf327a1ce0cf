from flask import Blueprint, current_app, jsonify, request

from subsync.errors import WebhookError
from subsync.logging_config import get_event_logger

log = get_event_logger("PADDLE_WEBHOOK")

webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/webhooks")


@webhooks_bp.errorhandler(WebhookError)
def handle_webhook_error(error):
    if error.status_code >= 500:
        log.error(error.message, error_type=type(error).__name__, **error.context)
    else:
        log.warning(error.message, error_type=type(error).__name__, **error.context)
    return jsonify(error.to_dict()), error.status_code


@webhooks_bp.route("/paddle", methods=["POST"])
def paddle_webhook():
    # Raw bytes are needed for the signature; never let Flask parse first
    raw_body = request.get_data(cache=True, as_text=False)

    processor = current_app.extensions["webhook_processor"]
    outcome = processor.process(
        raw_body=raw_body,
        headers=request.headers,
        content_type=request.headers.get("Content-Type"),
        content_length=request.content_length,
    )
    return jsonify(outcome.to_dict()), 200
