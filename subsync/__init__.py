import logging

from flask import Flask

from subsync.billing.processor import WebhookProcessor
from subsync.config import BillingConfig, get_config
from subsync.error_handlers import register_error_handlers
from subsync.extensions import init_extensions
from subsync.logging_config import setup_logging
from subsync.middleware.request_id import init_request_id_middleware

logger = logging.getLogger(__name__)


def create_app(config_name=None):
    app = Flask(__name__)

    config = get_config(config_name)
    config.validate()
    app.config.from_object(config)

    setup_logging(app)
    init_request_id_middleware(app)
    init_extensions(app)

    from subsync import models  # noqa: F401
    from subsync.health import health_bp
    from subsync.routes.billing import billing_bp
    from subsync.routes.webhooks import webhooks_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(webhooks_bp)
    app.register_blueprint(billing_bp)

    register_error_handlers(app)

    billing_config = BillingConfig.from_flask_config(app.config)
    app.extensions["billing_config"] = billing_config
    app.extensions["webhook_processor"] = WebhookProcessor.build(billing_config)

    logger.info(
        "Application created",
        extra={
            "env": app.config.get("ENV"),
            "priced_tiers": len(billing_config.price_tiers),
            "heuristic_enabled": billing_config.heuristic_enabled,
        },
    )
    return app
