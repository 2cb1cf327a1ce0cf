"""
Configuration management for the subscription sync service.

Flask settings live on the environment classes below and are read from the
process environment. The billing engine never reads Flask config directly:
``create_app`` freezes the relevant settings into a ``BillingConfig`` once and
hands that object to every component.
"""

import logging
import os
import warnings
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import FrozenSet, Mapping, Optional

from subsync.errors import ConfigurationError

logger = logging.getLogger(__name__)


class Environment(str, Enum):
    """Environment types"""
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TESTING = "testing"


def _env_bool(name, default=False):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name, default):
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")


def _env_list(name):
    raw = os.getenv(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


# Subscription lifecycle events the reconciler acts on
SUBSCRIPTION_EVENT_TYPES = frozenset({
    "subscription.created",
    "subscription.updated",
    "subscription.activated",
    "subscription.canceled",
    "subscription.deleted",
    "subscription.paused",
    "subscription.payment_failed",
    "subscription.resumed",
    "subscription.past_due",
    "subscription.trialing",
})

# Customer events only maintain the customer mapping
CUSTOMER_EVENT_TYPES = frozenset({
    "customer.created",
    "customer.updated",
})

# Provider events we know about and deliberately acknowledge without acting
IGNORED_EVENT_TYPES = frozenset({
    "transaction.billed",
    "transaction.canceled",
    "transaction.completed",
    "transaction.created",
    "transaction.paid",
    "transaction.past_due",
    "transaction.payment_failed",
    "transaction.ready",
    "transaction.revised",
    "transaction.updated",
    "subscription.imported",
    "customer.imported",
    "address.created",
    "address.updated",
    "address.imported",
    "business.created",
    "business.updated",
    "business.imported",
    "adjustment.created",
    "adjustment.updated",
    "price.created",
    "price.updated",
    "price.imported",
    "product.created",
    "product.updated",
    "product.imported",
    "discount.created",
    "discount.updated",
    "discount.imported",
    "payment_method.saved",
    "payment_method.deleted",
    "payout.created",
    "payout.paid",
    "report.created",
    "report.updated",
})

RELEASE_STATUSES = frozenset({"canceled", "deleted", "past_due"})

ORDERING_LAST_PROCESSED = "last_processed"
ORDERING_OCCURRED_AT = "occurred_at"


@dataclass(frozen=True)
class BillingConfig:
    """
    Immutable settings shared by every stage of the webhook pipeline.

    Built once at startup; tests construct their own instances.
    """

    webhook_secret: Optional[str] = None
    signature_header: str = "Paddle-Signature"
    timestamp_header: str = "Paddle-Timestamp"
    max_timestamp_age: int = 300
    max_payload_bytes: int = 10 * 1024

    subscription_event_types: FrozenSet[str] = SUBSCRIPTION_EVENT_TYPES
    customer_event_types: FrozenSet[str] = CUSTOMER_EVENT_TYPES
    ignored_event_types: FrozenSet[str] = IGNORED_EVENT_TYPES

    price_tiers: Mapping[str, str] = field(default_factory=dict)
    default_paid_tier: str = "starter"
    free_tier: str = "free"

    placeholder_prefix: str = "pending_"
    heuristic_enabled: bool = True
    heuristic_lookback: int = 10

    release_statuses: FrozenSet[str] = RELEASE_STATUSES
    ordering: str = ORDERING_LAST_PROCESSED

    def __post_init__(self):
        object.__setattr__(self, "price_tiers", MappingProxyType(dict(self.price_tiers)))
        if self.ordering not in (ORDERING_LAST_PROCESSED, ORDERING_OCCURRED_AT):
            raise ConfigurationError(f"Unknown reconcile ordering: {self.ordering!r}")
        if self.max_timestamp_age <= 0:
            raise ConfigurationError("Webhook timestamp window must be positive")
        if self.max_payload_bytes <= 0:
            raise ConfigurationError("Webhook payload ceiling must be positive")

    @property
    def actionable_event_types(self) -> FrozenSet[str]:
        return self.subscription_event_types | self.customer_event_types

    @classmethod
    def from_flask_config(cls, config) -> "BillingConfig":
        price_tiers = {}
        for tier, key in (
            ("starter", "PADDLE_STARTER_PRICE_IDS"),
            ("pro", "PADDLE_PRO_PRICE_IDS"),
            ("business", "PADDLE_BUSINESS_PRICE_IDS"),
        ):
            for price_id in config.get(key) or ():
                price_tiers[price_id] = tier

        return cls(
            webhook_secret=config.get("PADDLE_WEBHOOK_SECRET") or None,
            signature_header=config.get("WEBHOOK_SIGNATURE_HEADER", "Paddle-Signature"),
            timestamp_header=config.get("WEBHOOK_TIMESTAMP_HEADER", "Paddle-Timestamp"),
            max_timestamp_age=int(config.get("WEBHOOK_MAX_TIMESTAMP_AGE_SECONDS", 300)),
            max_payload_bytes=int(config.get("WEBHOOK_MAX_PAYLOAD_BYTES", 10 * 1024)),
            price_tiers=price_tiers,
            heuristic_enabled=bool(config.get("IDENTITY_HEURISTIC_ENABLED", True)),
            heuristic_lookback=int(config.get("IDENTITY_HEURISTIC_LOOKBACK", 10)),
            ordering=config.get("RECONCILE_ORDERING", ORDERING_LAST_PROCESSED),
        )


class BaseConfig:
    """Settings shared by every environment."""

    APP_NAME = os.getenv("APP_NAME", "subsync")
    ENV = os.getenv("ENV", os.getenv("FLASK_ENV", Environment.DEVELOPMENT.value)).lower()
    DEBUG = False
    TESTING = False
    PROPAGATE_EXCEPTIONS = False

    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key-change-in-production")
    FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000").rstrip("/")

    # Database
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///subsync.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}

    # Webhook authentication and transport limits
    PADDLE_WEBHOOK_SECRET = os.getenv(
        "PADDLE_WEBHOOK_SECRET", os.getenv("PADDLE_NOTIF_WEBHOOK_SECRET")
    )
    WEBHOOK_SIGNATURE_HEADER = os.getenv("WEBHOOK_SIGNATURE_HEADER", "Paddle-Signature")
    WEBHOOK_TIMESTAMP_HEADER = os.getenv("WEBHOOK_TIMESTAMP_HEADER", "Paddle-Timestamp")
    WEBHOOK_MAX_TIMESTAMP_AGE_SECONDS = _env_int("WEBHOOK_MAX_TIMESTAMP_AGE_SECONDS", 300)
    WEBHOOK_MAX_PAYLOAD_BYTES = _env_int("WEBHOOK_MAX_PAYLOAD_BYTES", 10 * 1024)

    # Price -> tier table
    PADDLE_STARTER_PRICE_IDS = _env_list("PADDLE_STARTER_PRICE_IDS")
    PADDLE_PRO_PRICE_IDS = _env_list("PADDLE_PRO_PRICE_IDS")
    PADDLE_BUSINESS_PRICE_IDS = _env_list("PADDLE_BUSINESS_PRICE_IDS")

    # Identity resolution and reconciliation
    IDENTITY_HEURISTIC_ENABLED = _env_bool("IDENTITY_HEURISTIC_ENABLED", True)
    IDENTITY_HEURISTIC_LOOKBACK = _env_int("IDENTITY_HEURISTIC_LOOKBACK", 10)
    RECONCILE_ORDERING = os.getenv("RECONCILE_ORDERING", ORDERING_LAST_PROCESSED)

    # Downstream resource release (phone number deprovisioning)
    RESOURCE_RELEASE_URL = os.getenv("RESOURCE_RELEASE_URL")
    RESOURCE_RELEASE_TOKEN = os.getenv("RESOURCE_RELEASE_TOKEN")
    RESOURCE_RELEASE_CONNECT_TIMEOUT = float(os.getenv("RESOURCE_RELEASE_CONNECT_TIMEOUT", "3"))
    RESOURCE_RELEASE_READ_TIMEOUT = float(os.getenv("RESOURCE_RELEASE_READ_TIMEOUT", "10"))

    # Background workers
    REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    @property
    def CELERY(self):
        return {
            "broker_url": self.REDIS_URL,
            "result_backend": self.REDIS_URL,
            "task_serializer": "json",
            "accept_content": ["json"],
            "result_serializer": "json",
            "timezone": "UTC",
            "enable_utc": True,
            "worker_prefetch_multiplier": 1,
            "task_acks_late": True,
            "task_ignore_result": True,
            # Publishing must fail fast when the broker is down
            "task_publish_retry": False,
            "broker_connection_timeout": 2,
        }

    # Observability
    SENTRY_DSN = os.getenv("SENTRY_DSN")
    SENTRY_TRACES_SAMPLE_RATE = float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.0"))
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_REQUESTS = _env_bool("LOG_REQUESTS", False)

    def validate(self):
        """Hook for environment-specific checks. Called by ``create_app``."""
        if not self.PADDLE_WEBHOOK_SECRET:
            warnings.warn("PADDLE_WEBHOOK_SECRET not set; webhook deliveries will be rejected")


class DevelopmentConfig(BaseConfig):
    ENV = Environment.DEVELOPMENT.value
    DEBUG = True
    LOG_REQUESTS = True


class TestingConfig(BaseConfig):
    ENV = Environment.TESTING.value
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite://")
    SQLALCHEMY_ENGINE_OPTIONS = {}
    PADDLE_WEBHOOK_SECRET = "whsec_test_secret"
    PADDLE_STARTER_PRICE_IDS = ["price_starter_monthly"]
    PADDLE_PRO_PRICE_IDS = ["price_pro_monthly", "price_pro_yearly"]
    PADDLE_BUSINESS_PRICE_IDS = ["price_business_monthly"]
    RESOURCE_RELEASE_URL = "https://voice.example.test/accounts/{account_id}/phone-number"
    RESOURCE_RELEASE_TOKEN = "test-token"
    SENTRY_DSN = None

    @property
    def CELERY(self):
        config = dict(super().CELERY)
        config.update(
            broker_url="memory://",
            result_backend="cache+memory://",
            task_always_eager=True,
            task_eager_propagates=False,
        )
        return config

    def validate(self):
        pass


class ProductionConfig(BaseConfig):
    ENV = Environment.PRODUCTION.value

    def validate(self):
        if self.SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
            raise ConfigurationError("SQLite is not supported in production; set DATABASE_URL")
        if self.SECRET_KEY.startswith("dev-"):
            raise ConfigurationError("SECRET_KEY is required in production")
        if not self.PADDLE_WEBHOOK_SECRET:
            # Not fatal: the endpoint fails closed with 500 and alerts through Sentry
            logger.error("PADDLE_WEBHOOK_SECRET is not configured")
        if not self.FRONTEND_URL.startswith("https://"):
            warnings.warn(f"Frontend URL should use HTTPS in production: {self.FRONTEND_URL}")


config_by_name = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
}


def get_config(config_name=None):
    name = (config_name or os.getenv("FLASK_CONFIG") or BaseConfig.ENV).lower()
    try:
        return config_by_name[name]()
    except KeyError:
        raise ConfigurationError(f"Unknown configuration: {name!r}")
