# paygate/x402/provisioning.py
"""
Deposit address provisioning.

A provisioning service is an external payment processor that, given an amount
and currency, returns a freshly generated receiving address on a target ledger
network. The production implementation uses Stripe crypto PaymentIntents:

1. Create and confirm a PaymentIntent restricted to the crypto payment method
2. Read next_action.crypto_collect_deposit_details.deposit_addresses[<network>]
3. Return that address with the PaymentIntent id as the provisioning reference

The Stripe client is synchronous, so the call runs in a worker thread and is
bounded by an explicit timeout. Nothing is retried. A call that outlives the
timeout still finishes in its thread, and the PaymentIntent it creates is
logged as orphaned.
"""
import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Any, Optional

import stripe

from paygate.x402.errors import ProvisioningError, ProvisioningTimeout
from paygate.x402.pricing import format_minor

logger = logging.getLogger(__name__)

CRYPTO_DEPOSIT_ACTION = "crypto_collect_deposit_details"


def _field(obj: Any, key: str) -> Any:
    """Read a key from a Stripe object or plain dict, None when absent."""
    if obj is None or isinstance(obj, str) or key not in obj:
        return None
    return obj[key]


@dataclass(frozen=True)
class ProvisionedAddress:
    """A receiving address handed out by the provisioning service."""
    address: str
    reference: str
    amount_minor: int
    currency: str


class DepositAddressProvider:
    """Interface for services that issue single-use receiving addresses."""

    async def provision(self, amount_minor: int, currency: str = "usd") -> ProvisionedAddress:
        raise NotImplementedError


def extract_deposit_address(payment_intent: Any, network: str) -> str:
    """
    Pull the deposit address for a network out of a confirmed PaymentIntent.

    Stripe objects are read through subscript and membership checks only,
    which every supported SDK release provides.

    Args:
        payment_intent: stripe.PaymentIntent (or its dict form)
        network: Key inside deposit_addresses (e.g. "base")

    Returns:
        The receiving address

    Raises:
        ProvisioningError: If the next_action payload does not have the expected shape
    """
    try:
        details = _field(_field(payment_intent, "next_action"), CRYPTO_DEPOSIT_ACTION)
        if details is None:
            raise ProvisioningError(
                "PaymentIntent did not return expected crypto deposit details"
            )
        address = _field(_field(_field(details, "deposit_addresses"), network), "address")
    except (TypeError, KeyError) as e:
        raise ProvisioningError(f"Unexpected PaymentIntent shape: {e}") from e

    if not address or not isinstance(address, str):
        raise ProvisioningError(
            f"PaymentIntent has no deposit address for network '{network}'"
        )
    return address


class _PendingIntent:
    """
    Tracks a PaymentIntent creation running in a worker thread.

    If the caller stops waiting, the intent Stripe eventually creates is
    logged so it can be reconciled.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._abandoned = False
        self._result = None

    def _log_orphan(self):
        logger.warning(
            f"x402: PaymentIntent {_field(self._result, 'id')} completed after provisioning "
            f"timed out; its deposit address was never handed out"
        )

    def complete(self, payment_intent):
        with self._lock:
            self._result = payment_intent
            if self._abandoned:
                self._log_orphan()

    def abandon(self):
        with self._lock:
            self._abandoned = True
            if self._result is not None:
                self._log_orphan()


class StripeDepositProvider(DepositAddressProvider):
    """Provision deposit addresses through Stripe crypto PaymentIntents."""

    def __init__(
        self,
        api_key: str,
        network: str = "base",
        timeout_seconds: float = 15.0,
        client: Optional[Any] = None,
    ):
        """
        Args:
            api_key: Stripe secret key with crypto payments enabled
            network: Deposit network to read from the PaymentIntent
            timeout_seconds: Upper bound for the whole provisioning call
            client: PaymentIntent API (defaults to stripe.PaymentIntent)
        """
        self._api_key = api_key
        self._network = network
        self._timeout_seconds = timeout_seconds
        self._client = client or stripe.PaymentIntent

    def _create_payment_intent(self, amount_minor: int, currency: str, pending: _PendingIntent):
        payment_intent = self._client.create(
            api_key=self._api_key,
            amount=amount_minor,
            currency=currency,
            payment_method_types=["crypto"],
            payment_method_data={"type": "crypto"},
            payment_method_options={"crypto": {"mode": "custom"}},
            confirm=True,
        )
        pending.complete(payment_intent)
        return payment_intent

    async def provision(self, amount_minor: int, currency: str = "usd") -> ProvisionedAddress:
        """
        Create a PaymentIntent and return its deposit address.

        Raises:
            ProvisioningTimeout: If Stripe does not answer in time
            ProvisioningError: On Stripe errors or an unexpected response shape
        """
        pending = _PendingIntent()
        try:
            payment_intent = await asyncio.wait_for(
                asyncio.to_thread(self._create_payment_intent, amount_minor, currency, pending),
                timeout=self._timeout_seconds,
            )
        except asyncio.TimeoutError:
            pending.abandon()
            raise ProvisioningTimeout(
                f"PaymentIntent creation timed out after {self._timeout_seconds}s"
            )
        except stripe.StripeError as e:
            raise ProvisioningError(f"Stripe rejected PaymentIntent creation: {e}") from e

        address = extract_deposit_address(payment_intent, self._network)
        reference = _field(payment_intent, "id") or ""

        logger.info(
            f"Created PaymentIntent {reference} for {format_minor(amount_minor)} -> {address}"
        )
        return ProvisionedAddress(
            address=address,
            reference=reference,
            amount_minor=amount_minor,
            currency=currency,
        )
