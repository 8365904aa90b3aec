"""Payment domain exceptions"""

from ...webhook_security import WebhookSignatureError

__all__ = [
    "CorrelationTokenError",
    "MalformedEventError",
    "PaymentConfigurationError",
    "PaymentNotCompletedError",
    "ProviderAPIError",
    "WebhookSignatureError",
]


class CorrelationTokenError(ValueError):
    """Raised when a correlation token or metadata map cannot be parsed"""


class MalformedEventError(ValueError):
    """Raised when a webhook body is not a well-formed provider event"""


class PaymentConfigurationError(Exception):
    """Raised when a business has no usable credentials for a provider"""


class PaymentNotCompletedError(Exception):
    """Raised when a checkout fetched from the provider has not been paid yet"""


class ProviderAPIError(Exception):
    """Raised when a provider REST call fails"""

    def __init__(self, provider: str, message: str, status_code: int = None):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.status_code = status_code
