import logging

import requests
from flask import current_app

from subsync.logging_config import mask_account_id

logger = logging.getLogger(__name__)

# 404/410 mean the resource is already gone
ALREADY_RELEASED = (404, 410)


class ResourceReleaseError(Exception):
    pass


class ResourceReleaseClient:
    """
    Calls the voice platform to release the phone number provisioned for an
    account. Releasing is idempotent on the remote side.
    """

    def __init__(self, url_template, token=None, connect_timeout=3.0, read_timeout=10.0, session=None):
        self.url_template = url_template
        self.token = token
        self.timeout = (connect_timeout, read_timeout)
        self.session = session or requests.Session()

    @classmethod
    def from_app(cls, app=None):
        config = (app or current_app).config
        return cls(
            url_template=config.get("RESOURCE_RELEASE_URL"),
            token=config.get("RESOURCE_RELEASE_TOKEN"),
            connect_timeout=config.get("RESOURCE_RELEASE_CONNECT_TIMEOUT", 3.0),
            read_timeout=config.get("RESOURCE_RELEASE_READ_TIMEOUT", 10.0),
        )

    def release(self, account_id):
        """Returns True when released (or already released), False when not configured."""
        if not self.url_template:
            logger.warning(
                "Resource release endpoint not configured; skipping",
                extra={"account_id": mask_account_id(account_id)},
            )
            return False

        url = self.url_template.format(account_id=account_id)
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            response = self.session.delete(url, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise ResourceReleaseError(f"Release request failed: {e}") from e

        if response.ok or response.status_code in ALREADY_RELEASED:
            logger.info(
                "Account resources released",
                extra={
                    "account_id": mask_account_id(account_id),
                    "status_code": response.status_code,
                },
            )
            return True

        raise ResourceReleaseError(
            f"Release endpoint returned {response.status_code}"
        )
