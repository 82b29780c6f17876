# paygate/x402/resolver.py
"""
Deposit address resolution.

Decides, per request, which receiving address a payment requirement should
carry:

1. If the request carries a payment proof whose destination is a live cached
   address, hand back that same address. A client retrying with a signed
   authorization must see the destination it signed against.
2. Otherwise provision a brand-new address for the configured price and cache it.

A proof whose address is not in the cache (expired, forged, mismatched) is not
an error here. Resolution falls through to provisioning, and the facilitator
rejects the stale proof downstream.
"""
import logging
from typing import Optional

from paygate.x402.cache import AddressCache, DepositAddressRecord
from paygate.x402.errors import ProvisioningError, ProvisioningTimeout
from paygate.x402.hooks import EventContext, LifecycleEvent, LifecycleEvents
from paygate.x402.models import PaymentContext
from paygate.x402.pricing import USDC_DECIMALS, smallest_unit_to_minor, to_smallest_unit
from paygate.x402.proof import extract_proof_claim
from paygate.x402.provisioning import DepositAddressProvider

logger = logging.getLogger(__name__)


class DepositAddressResolver:
    """Reuse-or-provision resolver for per-payment deposit addresses."""

    def __init__(
        self,
        cache: AddressCache,
        provider: DepositAddressProvider,
        price: str,
        decimals: int = USDC_DECIMALS,
        currency: str = "usd",
        ttl_seconds: Optional[int] = None,
        events: Optional[LifecycleEvents] = None,
    ):
        """
        Args:
            cache: Shared address cache
            provider: Provisioning service used on cache misses
            price: Configured price, e.g. "$0.01"
            decimals: Decimals of the payment asset
            currency: Fiat currency for the provisioning call
            ttl_seconds: TTL for new records, defaults to the cache TTL
            events: Lifecycle emitter for provisioned/reused notifications
        """
        self._cache = cache
        self._provider = provider
        self._currency = currency
        self._ttl_seconds = ttl_seconds
        self._events = events
        self.expected_amount = to_smallest_unit(price, decimals)
        self.amount_minor = smallest_unit_to_minor(self.expected_amount, decimals)

    async def resolve_destination(self, context: PaymentContext) -> str:
        """
        Return the destination address for this request attempt.

        Raises:
            ProvisioningError: If a new address is needed and provisioning fails
        """
        if context.payment_header:
            claim = extract_proof_claim(context.payment_header)
            if claim is not None:
                record = self._cache.get(claim.asserted_to_address)
                if record is not None:
                    logger.info(
                        f"Reusing deposit address {claim.asserted_to_address} "
                        f"({record.provisioning_reference})"
                    )
                    await self._emit(LifecycleEvent.ADDRESS_REUSED, record)
                    return claim.asserted_to_address
                logger.info(
                    f"Payment proof address {claim.asserted_to_address} is not a live "
                    f"deposit address, provisioning a new one"
                )

        try:
            provisioned = await self._provider.provision(self.amount_minor, self._currency)
        except ProvisioningError as e:
            logger.error(f"Deposit address provisioning failed: {e}")
            if self._events is not None:
                await self._events.emit(EventContext(
                    event=LifecycleEvent.PROVISIONING_FAILURE,
                    error=str(e),
                    data={"amount_minor": self.amount_minor, "timeout": isinstance(e, ProvisioningTimeout)},
                ))
            raise

        record = DepositAddressRecord(
            address=provisioned.address.lower(),
            expected_amount=self.expected_amount,
            provisioning_reference=provisioned.reference,
            amount_minor=provisioned.amount_minor,
        )
        self._cache.put(record.address, record, ttl=self._ttl_seconds)
        await self._emit(LifecycleEvent.ADDRESS_PROVISIONED, record)

        return provisioned.address

    async def _emit(self, event: LifecycleEvent, record: DepositAddressRecord) -> None:
        if self._events is None:
            return
        await self._events.emit(EventContext(
            event=event,
            data={
                "address": record.address,
                "expected_amount": record.expected_amount,
                "amount_minor": record.amount_minor,
                "provisioning_reference": record.provisioning_reference,
            },
        ))
