# tests/test_x402_server.py
"""
Unit tests for the resource server.
"""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import BASE_NETWORK, SOLANA_NETWORK, SOLANA_PAY_TO
from paygate.x402.errors import FacilitatorError, SchemeNotFoundError
from paygate.x402.facilitator import FacilitatorAdapter
from paygate.x402.models import (
    PaymentContext,
    PaymentOption,
    PaymentRequirement,
    RouteConfig,
    SupportedKind,
    SupportedResponse,
)
from paygate.x402.schemes import ExactEvmScheme, ExactSvmScheme
from paygate.x402.server import ResourceServer

CONTEXT = PaymentContext(method="GET", path="/api/data", url="http://testserver/api/data")


def make_server(facilitator_client):
    server = ResourceServer(FacilitatorAdapter(facilitator_client))
    server.register(BASE_NETWORK, ExactEvmScheme())
    server.register(SOLANA_NETWORK, ExactSvmScheme())
    return server


def requirement(network, pay_to):
    return PaymentRequirement(scheme="exact", network=network, amount="10000", asset="A", pay_to=pay_to)


class TestBuildRequirements:
    """Test requirement building per route."""

    def test_static_and_dynamic_pay_to(self, facilitator_client):
        """Callable pay_to is awaited with the request context."""
        resolver = AsyncMock(return_value="0xdynamic")
        route = RouteConfig(accepts=[
            PaymentOption(scheme="exact", price="$0.01", network=BASE_NETWORK, pay_to=resolver),
            PaymentOption(scheme="exact", price="$0.01", network=SOLANA_NETWORK, pay_to=SOLANA_PAY_TO),
        ])

        requirements = asyncio.run(make_server(facilitator_client).build_requirements(route, CONTEXT))

        assert [r.pay_to for r in requirements] == ["0xdynamic", SOLANA_PAY_TO]
        resolver.assert_awaited_once_with(CONTEXT)

    def test_unregistered_network(self, facilitator_client):
        route = RouteConfig(accepts=[
            PaymentOption(scheme="exact", price="$0.01", network="eip155:1", pay_to="0xabc"),
        ])
        with pytest.raises(SchemeNotFoundError):
            asyncio.run(make_server(facilitator_client).build_requirements(route, CONTEXT))

    def test_default_timeout_applied(self, facilitator_client):
        server = ResourceServer(FacilitatorAdapter(facilitator_client), max_timeout_seconds=90)
        server.register(BASE_NETWORK, ExactEvmScheme())
        route = RouteConfig(accepts=[
            PaymentOption(scheme="exact", price="$0.01", network=BASE_NETWORK, pay_to="0xabc"),
        ])

        requirements = asyncio.run(server.build_requirements(route, CONTEXT))

        assert requirements[0].max_timeout_seconds == 90


class TestFindMatchingRequirement:
    """Test picking the requirement a proof pays against."""

    def setup_method(self):
        self.server = ResourceServer(FacilitatorAdapter(MagicMock()))
        self.requirements = [
            requirement(BASE_NETWORK, "0xAbC"),
            requirement(SOLANA_NETWORK, SOLANA_PAY_TO),
        ]

    def test_match_by_destination(self):
        """Destination match is case-insensitive."""
        payload = {"payload": {"authorization": {"to": "0xABC"}}}
        assert self.server.find_matching_requirement(self.requirements, payload) is self.requirements[0]

    def test_fallback_to_declared_network(self):
        """A proof for another address still matches its network's requirement."""
        payload = {
            "accepted": {"scheme": "exact", "network": BASE_NETWORK},
            "payload": {"authorization": {"to": "0xstale"}},
        }
        assert self.server.find_matching_requirement(self.requirements, payload) is self.requirements[0]

    def test_solana_by_network(self):
        payload = {"accepted": {"scheme": "exact", "network": SOLANA_NETWORK}, "payload": {"transaction": "x"}}
        assert self.server.find_matching_requirement(self.requirements, payload) is self.requirements[1]

    def test_v1_network_field(self):
        payload = {"scheme": "exact", "network": BASE_NETWORK, "payload": {}}
        assert self.server.find_matching_requirement(self.requirements, payload) is self.requirements[0]

    def test_scheme_mismatch(self):
        payload = {"accepted": {"scheme": "upto", "network": BASE_NETWORK}, "payload": {}}
        assert self.server.find_matching_requirement(self.requirements, payload) is None

    def test_no_network_no_destination(self):
        assert self.server.find_matching_requirement(self.requirements, {"payload": {}}) is None


class TestInitialize:
    """Test fetching the facilitator's supported kinds."""

    def test_stores_supported_extra(self, facilitator_client):
        facilitator_client.supported.return_value = SupportedResponse(kinds=[
            SupportedKind(scheme="exact", network=BASE_NETWORK),
            SupportedKind(scheme="exact", network=SOLANA_NETWORK, extra={"feePayer": "FEE"}),
        ])
        server = make_server(facilitator_client)

        asyncio.run(server.initialize())

        assert server.registry.supported_extra("exact", SOLANA_NETWORK) == {"feePayer": "FEE"}
        route = RouteConfig(accepts=[
            PaymentOption(scheme="exact", price="$0.01", network=SOLANA_NETWORK, pay_to=SOLANA_PAY_TO),
        ])
        requirements = asyncio.run(server.build_requirements(route, CONTEXT))
        assert requirements[0].extra == {"feePayer": "FEE"}

    def test_facilitator_unavailable(self, facilitator_client):
        """Startup continues without facilitator extras."""
        facilitator_client.supported.side_effect = FacilitatorError("connection refused")
        server = make_server(facilitator_client)

        asyncio.run(server.initialize())

        assert server.registry.supported_extra("exact", SOLANA_NETWORK) is None


class TestPaymentOperations:
    """Test verify/settle routing through schemes."""

    def test_verify_and_settle(self, facilitator_client):
        server = make_server(facilitator_client)
        req = requirement(BASE_NETWORK, "0xabc")

        verification = asyncio.run(server.verify_payment({"x402Version": 2}, req))
        settlement = asyncio.run(server.settle_payment({"x402Version": 2}, req))

        assert verification.success is True
        assert settlement.success is True
        assert settlement.transaction == "0xTX"

    def test_hooks_registered_through_server(self, facilitator_client):
        seen = []
        server = make_server(facilitator_client)
        server.on_before_verify(lambda c: seen.append("before_verify"))
        server.on_after_verify(lambda c: seen.append("after_verify"))
        server.on_before_settle(lambda c: seen.append("before_settle"))
        server.on_after_settle(lambda c: seen.append("after_settle"))
        req = requirement(BASE_NETWORK, "0xabc")

        asyncio.run(server.verify_payment({}, req))
        asyncio.run(server.settle_payment({}, req))

        assert seen == ["before_verify", "after_verify", "before_settle", "after_settle"]
