from dataclasses import dataclass
from typing import Mapping, Optional

from subsync.billing.authenticator import RequestAuthenticator
from subsync.billing.dispatcher import SideEffectDispatcher
from subsync.billing.identity import IdentityResolver
from subsync.billing.reconciler import StateReconciler
from subsync.billing.store import SubscriptionStore
from subsync.billing.validator import IGNORED, EventValidator
from subsync.config import BillingConfig
from subsync.logging_config import get_event_logger

log = get_event_logger("PADDLE_WEBHOOK")


@dataclass(frozen=True)
class ProcessOutcome:
    status: str
    event_type: str
    operation: Optional[str] = None
    resolution_strategy: Optional[str] = None
    dispatched: bool = False

    def to_dict(self):
        body = {"status": self.status, "event_type": self.event_type}
        if self.operation:
            body["operation"] = self.operation
        return body


class WebhookProcessor:
    """
    Runs one delivery through the pipeline:

        transport checks -> authenticate -> parse -> classify -> validate
        -> resolve account -> reconcile -> dispatch side effects

    Any stage may raise a ``WebhookError``; the route turns it into the
    response code that tells the provider whether to redeliver. Nothing
    after a successful reconcile can change the outcome.
    """

    def __init__(
        self,
        config: BillingConfig,
        authenticator: RequestAuthenticator,
        validator: EventValidator,
        resolver: IdentityResolver,
        reconciler: StateReconciler,
        dispatcher: SideEffectDispatcher,
    ):
        self.config = config
        self.authenticator = authenticator
        self.validator = validator
        self.resolver = resolver
        self.reconciler = reconciler
        self.dispatcher = dispatcher

    @classmethod
    def build(cls, config: BillingConfig, store: Optional[SubscriptionStore] = None, **overrides):
        store = store or SubscriptionStore()
        components = {
            "authenticator": RequestAuthenticator(config),
            "validator": EventValidator(config),
            "resolver": IdentityResolver(store, config),
            "reconciler": StateReconciler(store, config),
            "dispatcher": SideEffectDispatcher(config),
        }
        components.update(overrides)
        return cls(config, **components)

    def process(
        self,
        raw_body: bytes,
        headers: Mapping[str, str],
        content_type: Optional[str],
        content_length: Optional[int],
    ) -> ProcessOutcome:
        self.validator.check_transport(content_type, content_length, raw_body)
        self.authenticator.authenticate(raw_body, headers)

        event = self.validator.parse(raw_body)
        log.info(
            "Webhook received",
            event_type=event.event_type,
            event_id=event.event_id,
            subscription_id=event.subscription_id,
        )

        if self.validator.classify(event.event_type) == IGNORED:
            log.info("Event acknowledged without action", event_type=event.event_type)
            return ProcessOutcome(status="ignored", event_type=event.event_type)

        self.validator.validate(event)

        if event.is_customer_event:
            result = self.reconciler.reconcile(event, account_id=None)
            return ProcessOutcome(
                status="ok",
                event_type=event.event_type,
                operation=result.operation,
            )

        resolution = self.resolver.resolve(event)
        result = self.reconciler.reconcile(event, resolution.account_id)
        dispatched = self.dispatcher.dispatch(result)

        return ProcessOutcome(
            status="ok",
            event_type=event.event_type,
            operation=result.operation,
            resolution_strategy=resolution.strategy,
            dispatched=dispatched,
        )
