"""
Webhook event envelope and payload field extraction.

The provider sends subscription payloads in its nested shape (``items[0].price.id``,
``current_billing_period.starts_at``) while older integrations and test fixtures
use flat keys (``price_id``, ``current_period_start``). Every accessor here
accepts both and returns ``None`` when a field is absent.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def parse_timestamp(value) -> Optional[datetime]:
    """
    Parse a provider timestamp into naive UTC.

    Accepts ISO-8601 strings (``Z`` suffix and fractional seconds allowed),
    integer epoch seconds, or digit strings. Returns ``None`` for anything
    unparseable.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc).replace(tzinfo=None)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(value, str):
        return None

    text = value.strip()
    if text.isdigit():
        return parse_timestamp(int(text))

    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    # fromisoformat before 3.11 only takes 3 or 6 fractional digits
    if "." in text:
        head, _, rest = text.partition(".")
        digits = ""
        while rest and rest[0].isdigit():
            digits, rest = digits + rest[0], rest[1:]
        text = f"{head}.{digits[:6].ljust(6, '0')}{rest}"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _dig(data, *path):
    current = data
    for key in path:
        if isinstance(key, int):
            if not isinstance(current, list) or len(current) <= key:
                return None
            current = current[key]
        elif isinstance(current, dict):
            current = current.get(key)
        else:
            return None
    return current


def first_present(*values):
    for value in values:
        if value is not None and value != "":
            return value
    return None


# Key paths for fields that arrive in either the nested or the flat shape
PRICE_ID_PATHS = (("items", 0, "price", "id"), ("items", 0, "price_id"), ("price_id",))
CUSTOMER_ID_PATHS = (("customer_id",), ("customer", "id"))
EMAIL_PATHS = (("email",), ("customer", "email"), ("custom_data", "email"))


def values_at(data, paths):
    return [_dig(data, *path) for path in paths]


@dataclass(frozen=True)
class WebhookEvent:
    """One delivery of a provider notification. Never persisted."""

    event_id: str
    event_type: str
    data: Dict[str, Any]
    raw_body: bytes = field(repr=False, default=b"")
    occurred_at: Optional[datetime] = None

    @property
    def namespace(self) -> str:
        return self.event_type.split(".", 1)[0]

    @property
    def is_subscription_event(self) -> bool:
        return self.namespace == "subscription"

    @property
    def is_customer_event(self) -> bool:
        return self.namespace == "customer"

    # -- identifiers -------------------------------------------------------

    @property
    def subscription_id(self) -> Optional[str]:
        return self.data.get("id") if self.is_subscription_event else None

    @property
    def status(self) -> Optional[str]:
        return self.data.get("status")

    @property
    def customer_id(self) -> Optional[str]:
        if self.is_customer_event:
            return self.data.get("id")
        return first_present(*values_at(self.data, CUSTOMER_ID_PATHS))

    @property
    def email(self) -> Optional[str]:
        email = first_present(*values_at(self.data, EMAIL_PATHS))
        return email.strip().lower() if isinstance(email, str) else None

    # -- subscription fields -----------------------------------------------

    @property
    def price_id(self) -> Optional[str]:
        return first_present(*values_at(self.data, PRICE_ID_PATHS))

    @property
    def quantity(self) -> Optional[int]:
        value = first_present(
            _dig(self.data, "items", 0, "quantity"),
            self.data.get("quantity"),
        )
        if isinstance(value, bool) or not isinstance(value, int):
            return None
        return value

    @property
    def cancel_at_period_end(self) -> Optional[bool]:
        flag = self.data.get("cancel_at_period_end")
        if isinstance(flag, bool):
            return flag
        if _dig(self.data, "scheduled_change", "action") == "cancel":
            return True
        return None

    def timestamp(self, *paths) -> Optional[datetime]:
        """First parseable timestamp among the given key paths."""
        for path in paths:
            if isinstance(path, str):
                path = (path,)
            parsed = parse_timestamp(_dig(self.data, *path))
            if parsed is not None:
                return parsed
        return None
