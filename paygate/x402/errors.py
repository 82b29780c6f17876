# paygate/x402/errors.py
"""Exception hierarchy for the payment gate."""


class PaygateError(Exception):
    """Base class for all payment gate errors."""


class ConfigurationError(PaygateError):
    """Required configuration is missing or invalid. Fatal at startup."""


class ProvisioningError(PaygateError):
    """The deposit-address provisioning service failed or returned an unexpected shape."""


class ProvisioningTimeout(ProvisioningError):
    """The provisioning call did not complete within the configured timeout."""


class FacilitatorError(PaygateError):
    """A call to the settlement facilitator failed before a business decision was returned."""

    def __init__(self, message: str, kind: str = "transport"):
        super().__init__(message)
        self.kind = kind


class FacilitatorTimeout(FacilitatorError):
    """A facilitator call exceeded the configured timeout."""

    def __init__(self, message: str):
        super().__init__(message, kind="timeout")


class SchemeNotFoundError(PaygateError):
    """No payment scheme is registered for the requested network."""
