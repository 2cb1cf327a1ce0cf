import logging

from celery import shared_task
from celery.exceptions import SoftTimeLimitExceeded

from subsync.logging_config import mask_account_id
from subsync.services.resource_release import ResourceReleaseClient, ResourceReleaseError

logger = logging.getLogger(__name__)


@shared_task(
    name="subsync.release_account_resources",
    soft_time_limit=30,
    time_limit=45,
    ignore_result=True,
)
def release_account_resources(account_id, subscription_id=None, status=None):
    """
    Release the phone number held by an account whose subscription went
    canceled, deleted or past due.

    Not retried: a failure is logged for an operator to follow up.
    """
    client = ResourceReleaseClient.from_app()
    try:
        released = client.release(account_id)
    except (ResourceReleaseError, SoftTimeLimitExceeded) as e:
        logger.error(
            "Failed to release account resources",
            extra={
                "account_id": mask_account_id(account_id),
                "subscription_id": subscription_id,
                "subscription_status": status,
                "error": str(e),
            },
        )
        return {"released": False, "error": str(e)}

    return {"released": released}
