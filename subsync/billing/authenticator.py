import base64
import hashlib
import hmac
import time
from datetime import datetime
from typing import Callable, Mapping, Optional

from werkzeug.datastructures import Headers

from subsync.billing.events import parse_timestamp
from subsync.config import BillingConfig
from subsync.errors import AuthenticationError, ConfigurationError
from subsync.logging_config import get_event_logger

log = get_event_logger("PADDLE_WEBHOOK")

_EPOCH = datetime(1970, 1, 1)


def compute_signature(secret: str, raw_body: bytes) -> str:
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


class RequestAuthenticator:
    """
    Verifies a delivery came from the provider and is fresh.

    The signature is HMAC-SHA256 over the exact bytes received, base64
    encoded. The timestamp header bounds replay: anything older than the
    configured window, or dated in the future, is rejected.
    """

    def __init__(self, config: BillingConfig, clock: Callable[[], float] = time.time):
        self.config = config
        self.clock = clock

    def authenticate(self, raw_body: bytes, headers: Mapping[str, str]) -> None:
        secret = self.config.webhook_secret
        if not secret:
            log.error("Webhook secret is not configured; rejecting delivery")
            raise ConfigurationError("Webhook secret is not configured")

        if not isinstance(headers, Headers):
            headers = Headers(headers)

        self._check_timestamp(headers.get(self.config.timestamp_header))
        self._check_signature(secret, raw_body, headers.get(self.config.signature_header))

    def _check_timestamp(self, header_value: Optional[str]) -> None:
        if not header_value:
            log.warning("Missing timestamp header")
            raise AuthenticationError("Missing timestamp header")

        sent_at = parse_timestamp(header_value)
        if sent_at is None:
            log.warning("Invalid timestamp format", timestamp=header_value[:64])
            raise AuthenticationError("Invalid timestamp format")

        now = self.clock()
        sent_epoch = (sent_at - _EPOCH).total_seconds()
        age = now - sent_epoch

        if age < 0:
            log.warning("Webhook timestamp from future", future_seconds=round(-age))
            raise AuthenticationError("Webhook timestamp is in the future")

        if age > self.config.max_timestamp_age:
            log.warning(
                "Webhook timestamp too old, possible replay attack",
                age_seconds=round(age),
                max_age_seconds=self.config.max_timestamp_age,
            )
            raise AuthenticationError("Webhook timestamp too old")

    def _check_signature(self, secret: str, raw_body: bytes, signature: Optional[str]) -> None:
        if not signature:
            log.warning("Missing signature header")
            raise AuthenticationError("Missing signature")

        expected = compute_signature(secret, raw_body)
        if not hmac.compare_digest(signature.strip().encode("utf-8"), expected.encode("ascii")):
            log.warning("Signature verification failed")
            raise AuthenticationError("Invalid signature")
