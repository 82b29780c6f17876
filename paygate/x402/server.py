# paygate/x402/server.py
"""
Resource server: the payment logic behind the gate.

Builds the payment requirements for a protected route, picks the requirement
a submitted proof is paying against, and runs verify/settle through the scheme
registered for that requirement's network.
"""
import logging
from typing import Any, Dict, List, Optional

from paygate.x402.errors import FacilitatorError
from paygate.x402.facilitator import FacilitatorAdapter, SettlementOutcome, VerificationOutcome
from paygate.x402.hooks import LifecycleEvents, Subscriber
from paygate.x402.models import PaymentContext, PaymentRequirement, RouteConfig
from paygate.x402.proof import claim_from_document, declared_network, declared_scheme
from paygate.x402.schemes import PaymentScheme, SchemeRegistry

logger = logging.getLogger(__name__)


class ResourceServer:
    """Scheme registry plus facilitator, shared by every protected route."""

    def __init__(
        self,
        facilitator: FacilitatorAdapter,
        registry: Optional[SchemeRegistry] = None,
        max_timeout_seconds: int = 300,
    ):
        self.facilitator = facilitator
        self.registry = registry or SchemeRegistry()
        self.max_timeout_seconds = max_timeout_seconds

    @property
    def events(self) -> LifecycleEvents:
        return self.facilitator.events

    def register(self, network: str, scheme: PaymentScheme) -> "ResourceServer":
        self.registry.register(network, scheme)
        return self

    def on_before_verify(self, subscriber: Subscriber) -> "ResourceServer":
        self.events.on_before_verify(subscriber)
        return self

    def on_after_verify(self, subscriber: Subscriber) -> "ResourceServer":
        self.events.on_after_verify(subscriber)
        return self

    def on_verify_failure(self, subscriber: Subscriber) -> "ResourceServer":
        self.events.on_verify_failure(subscriber)
        return self

    def on_before_settle(self, subscriber: Subscriber) -> "ResourceServer":
        self.events.on_before_settle(subscriber)
        return self

    def on_after_settle(self, subscriber: Subscriber) -> "ResourceServer":
        self.events.on_after_settle(subscriber)
        return self

    def on_settle_failure(self, subscriber: Subscriber) -> "ResourceServer":
        self.events.on_settle_failure(subscriber)
        return self

    async def initialize(self) -> None:
        """
        Fetch the facilitator's supported kinds and remember their extra data.

        Failures are logged; requirements are then built without facilitator extras.
        """
        try:
            supported = await self.facilitator.supported()
        except FacilitatorError as e:
            logger.warning(f"x402: Could not fetch facilitator supported kinds: {e}")
            return

        offered = set()
        for kind in supported.kinds:
            offered.add((kind.scheme, kind.network))
            if kind.extra:
                self.registry.set_supported_extra(kind.scheme, kind.network, kind.extra)

        for network in self.registry.networks():
            if not any(n == network for _, n in offered) and not network.endswith(":*"):
                logger.warning(f"x402: Facilitator does not advertise support for {network}")

        logger.info(f"x402: Facilitator supports {len(supported.kinds)} payment kinds")

    async def build_requirements(self, route: RouteConfig, context: PaymentContext) -> List[PaymentRequirement]:
        """
        Build one requirement per payment option, resolving each pay_to independently.

        Raises:
            ProvisioningError: If a dynamic pay_to needs a new address and provisioning fails
            SchemeNotFoundError: If an option's network has no registered scheme
        """
        requirements = []
        for option in route.accepts:
            scheme = self.registry.get(option.network, option.scheme)
            if callable(option.pay_to):
                pay_to = await option.pay_to(context)
            else:
                pay_to = option.pay_to

            requirements.append(scheme.build_requirement(
                option,
                pay_to=pay_to,
                max_timeout_seconds=self.max_timeout_seconds,
                supported_extra=self.registry.supported_extra(option.scheme, option.network),
            ))
        return requirements

    def find_matching_requirement(
        self,
        requirements: List[PaymentRequirement],
        payment_payload: Dict[str, Any],
    ) -> Optional[PaymentRequirement]:
        """
        Pick the requirement a proof pays against.

        The requirement whose pay_to equals the proof's destination wins.
        Otherwise fall back to the network and scheme the proof declares, so
        that a proof for a stale address still reaches the facilitator and is
        rejected there.
        """
        claim = claim_from_document(payment_payload)
        if claim is not None:
            for requirement in requirements:
                if requirement.pay_to.lower() == claim.asserted_to_address:
                    return requirement

        network = declared_network(payment_payload)
        scheme = declared_scheme(payment_payload)
        if network is None:
            return None
        for requirement in requirements:
            if requirement.network == network and (scheme is None or requirement.scheme == scheme):
                return requirement
        return None

    async def verify_payment(
        self,
        payment_payload: Dict[str, Any],
        requirement: PaymentRequirement,
    ) -> VerificationOutcome:
        scheme = self.registry.get(requirement.network, requirement.scheme)
        return await scheme.verify(self.facilitator, payment_payload, requirement)

    async def settle_payment(
        self,
        payment_payload: Dict[str, Any],
        requirement: PaymentRequirement,
    ) -> SettlementOutcome:
        scheme = self.registry.get(requirement.network, requirement.scheme)
        return await scheme.settle(self.facilitator, payment_payload, requirement)
