from typing import Callable, Optional

from subsync.billing.reconciler import ReconcileResult
from subsync.config import BillingConfig
from subsync.errors import DownstreamEffectError
from subsync.logging_config import get_event_logger, mask_account_id
from subsync.workers.tasks import release_account_resources

log = get_event_logger("SIDE_EFFECTS")


def _default_enqueue(**kwargs):
    return release_account_resources.apply_async(kwargs=kwargs)


class SideEffectDispatcher:
    """
    Fires downstream actions after a successful reconciliation.

    Only transitions count: a subscription entering a release status from a
    different one. Replays of the same event see an unchanged status and do
    nothing. Publishing never raises into the request.
    """

    def __init__(self, config: BillingConfig, enqueue: Optional[Callable] = None):
        self.config = config
        self.enqueue = enqueue or _default_enqueue

    def should_release(self, result: ReconcileResult) -> bool:
        return (
            result.account_id is not None
            and result.status in self.config.release_statuses
            and result.status != result.previous_status
        )

    def dispatch(self, result: ReconcileResult) -> bool:
        if not self.should_release(result):
            return False

        try:
            self.enqueue(
                account_id=result.account_id,
                subscription_id=result.subscription_id,
                status=result.status,
            )
        except Exception as exc:
            error = DownstreamEffectError(f"Could not enqueue resource release: {exc}")
            log.error(
                "Failed to dispatch resource release",
                error=error,
                account_id=mask_account_id(result.account_id),
                subscription_id=result.subscription_id,
                subscription_status=result.status,
            )
            return False

        log.info(
            "Resource release dispatched",
            account_id=mask_account_id(result.account_id),
            subscription_id=result.subscription_id,
            subscription_status=result.status,
            previous_status=result.previous_status,
        )
        return True
