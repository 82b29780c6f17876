# paygate/x402/schemes.py
"""
Payment schemes per network family.

A scheme knows how to turn a configured PaymentOption into a concrete
PaymentRequirement for its networks (asset address, decimals, extra data) and
how to verify/settle a payment through the facilitator. Schemes are registered
against network identifiers so the gate never branches on network names.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from paygate.x402.errors import SchemeNotFoundError
from paygate.x402.facilitator import FacilitatorAdapter, SettlementOutcome, VerificationOutcome
from paygate.x402.models import PaymentOption, PaymentRequirement
from paygate.x402.pricing import USDC_DECIMALS, to_smallest_unit

logger = logging.getLogger(__name__)

# USDC contract addresses by EVM network
USDC_ADDRESSES = {
    "eip155:8453": "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",  # Base
    "eip155:84532": "0x036CbD53842c5426634e7929541eC2318f3dCF7e",  # Base Sepolia
}

# EIP-712 domain of the USDC contract, needed by clients to sign transfers
USDC_EIP712_DOMAINS = {
    "eip155:8453": {"name": "USD Coin", "version": "2"},
    "eip155:84532": {"name": "USDC", "version": "2"},
}

# USDC mint addresses by Solana cluster
USDC_MINTS = {
    "solana:5eykt4UsFv8P8NJdTREpY1vzqKqZKvdp": "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v",  # mainnet
    "solana:EtWTRABZaYq6iMfeYKouRu166VU2xqa1": "4zMMC9srt5Ri5X14GAgXhaHii3GnPAEERYPJgZJDncDU",  # devnet
}


class PaymentScheme:
    """Base class for a scheme implementation on one network family."""

    scheme = "exact"
    decimals = USDC_DECIMALS

    def asset_for(self, network: str) -> str:
        raise NotImplementedError

    def extra_for(self, network: str) -> Optional[Dict[str, Any]]:
        return None

    def build_requirement(
        self,
        option: PaymentOption,
        pay_to: str,
        max_timeout_seconds: int = 300,
        supported_extra: Optional[Dict[str, Any]] = None,
    ) -> PaymentRequirement:
        """
        Build the requirement a client must satisfy for this option.

        Args:
            option: Configured payment option
            pay_to: Resolved receiving address for this request
            max_timeout_seconds: Default authorization window
            supported_extra: Extra data the facilitator advertised for this network
        """
        extra = dict(self.extra_for(option.network) or {})
        if supported_extra:
            extra.update(supported_extra)
        if option.extra:
            extra.update(option.extra)

        return PaymentRequirement(
            scheme=option.scheme,
            network=option.network,
            amount=str(to_smallest_unit(option.price, self.decimals)),
            asset=self.asset_for(option.network),
            pay_to=pay_to,
            max_timeout_seconds=option.max_timeout_seconds or max_timeout_seconds,
            price=option.price,
            extra=extra or None,
        )

    async def verify(
        self,
        facilitator: FacilitatorAdapter,
        payment_payload: Dict[str, Any],
        requirement: PaymentRequirement,
    ) -> VerificationOutcome:
        return await facilitator.verify(payment_payload, requirement)

    async def settle(
        self,
        facilitator: FacilitatorAdapter,
        payment_payload: Dict[str, Any],
        requirement: PaymentRequirement,
    ) -> SettlementOutcome:
        return await facilitator.settle(payment_payload, requirement)


class ExactEvmScheme(PaymentScheme):
    """EIP-3009 transferWithAuthorization of USDC on EVM networks."""

    def asset_for(self, network: str) -> str:
        try:
            return USDC_ADDRESSES[network]
        except KeyError:
            raise SchemeNotFoundError(f"No USDC contract known for {network}")

    def extra_for(self, network: str) -> Optional[Dict[str, Any]]:
        return USDC_EIP712_DOMAINS.get(network)


class ExactSvmScheme(PaymentScheme):
    """Pre-signed SPL token transfer of USDC on Solana; the fee payer comes from the facilitator."""

    def asset_for(self, network: str) -> str:
        try:
            return USDC_MINTS[network]
        except KeyError:
            raise SchemeNotFoundError(f"No USDC mint known for {network}")


def matches_network(pattern: str, network: str) -> bool:
    """Match "eip155:8453" exactly or "eip155:*" by namespace."""
    if pattern.endswith(":*"):
        return network.startswith(pattern[:-1])
    return pattern == network


class SchemeRegistry:
    """Network identifier -> scheme implementation."""

    def __init__(self):
        self._schemes: List[Tuple[str, PaymentScheme]] = []
        self._supported_extra: Dict[Tuple[str, str], Dict[str, Any]] = {}

    def register(self, network: str, scheme: PaymentScheme) -> "SchemeRegistry":
        self._schemes.append((network, scheme))
        return self

    def get(self, network: str, scheme: str = "exact") -> PaymentScheme:
        """
        Raises:
            SchemeNotFoundError: If nothing is registered for the network and scheme
        """
        for pattern, implementation in self._schemes:
            if implementation.scheme == scheme and matches_network(pattern, network):
                return implementation
        raise SchemeNotFoundError(f"No '{scheme}' scheme registered for network {network}")

    def networks(self) -> List[str]:
        return [pattern for pattern, _ in self._schemes]

    def set_supported_extra(self, scheme: str, network: str, extra: Dict[str, Any]) -> None:
        self._supported_extra[(scheme, network)] = dict(extra)

    def supported_extra(self, scheme: str, network: str) -> Optional[Dict[str, Any]]:
        return self._supported_extra.get((scheme, network))
