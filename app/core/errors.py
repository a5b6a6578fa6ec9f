"""
Webhook error taxonomy.

Each error carries the HTTP status returned to the billing provider. A non-200
status makes the provider redeliver the event.
"""


class WebhookError(Exception):
    status_code = 500
    message = "Webhook processing failed"

    def __init__(self, detail: str = None):
        super().__init__(detail or self.message)
        self.detail = detail or self.message


# Verification
class MissingSignature(WebhookError):
    status_code = 400
    message = "No signature found"


class InvalidSignature(WebhookError):
    status_code = 400
    message = "Invalid signature"


class MalformedEvent(WebhookError):
    status_code = 400
    message = "Malformed event payload"


# Configuration
class MissingSecret(WebhookError):
    status_code = 500
    message = "Webhook secret not configured"


# Store / provider
class EventLogError(WebhookError):
    message = "Failed to log webhook event"


class StoreError(WebhookError):
    message = "Failed to update billing records"


class ProviderError(WebhookError):
    message = "Billing provider request failed"


# Resolution
class UserResolutionFailed(WebhookError):
    message = "Unable to find associated user"
