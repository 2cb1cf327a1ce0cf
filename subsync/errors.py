class WebhookError(Exception):
    """
    Base error for the webhook pipeline.

    Every subclass carries the HTTP status the provider should see, which in
    turn decides whether the provider redelivers the event.
    """

    status_code = 500
    public_message = "Webhook processing failed"

    def __init__(self, message=None, *, context=None):
        super().__init__(message or self.public_message)
        self.message = message or self.public_message
        self.context = context or {}

    def to_dict(self):
        # Never echo payload content back to the caller
        return {
            "error": self.__class__.__name__,
            "message": self.public_message,
        }


class AuthenticationError(WebhookError):
    status_code = 400
    public_message = "Invalid signature or timestamp"


class ConfigurationError(WebhookError):
    """Raised when the service is missing configuration it cannot run without."""

    status_code = 500
    public_message = "Webhook endpoint is not configured"


class ValidationError(WebhookError):
    status_code = 400
    public_message = "Invalid webhook payload"


class IdentityResolutionError(WebhookError):
    status_code = 404
    public_message = "No account found for event"


class PersistenceError(WebhookError):
    status_code = 500
    public_message = "Subscription could not be saved"


class DownstreamEffectError(WebhookError):
    """Failure of a side effect after reconciliation. Logged, never returned."""

    status_code = 200
    public_message = "Downstream effect failed"
