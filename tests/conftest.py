# tests/conftest.py
"""
Shared fixtures for the payment gate tests.

The provisioning service and facilitator are replaced with in-process fakes so
no test talks to Stripe or a real facilitator.
"""
import json
from base64 import b64encode
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI

from paygate.x402.cache import AddressCache
from paygate.x402.facilitator import FacilitatorAdapter
from paygate.x402.hooks import LifecycleEvents
from paygate.x402.middleware import X402Middleware
from paygate.x402.models import (
    PaymentOption,
    RouteConfig,
    SettleResponse,
    SupportedResponse,
    VerifyResponse,
)
from paygate.x402.provisioning import DepositAddressProvider, ProvisionedAddress
from paygate.x402.resolver import DepositAddressResolver
from paygate.x402.schemes import ExactEvmScheme, ExactSvmScheme
from paygate.x402.server import ResourceServer

BASE_NETWORK = "eip155:8453"
SOLANA_NETWORK = "solana:5eykt4UsFv8P8NJdTREpY1vzqKqZKvdp"
SOLANA_PAY_TO = "9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeDepositProvider(DepositAddressProvider):
    """Hands out addresses from a list and records every provisioning call."""

    def __init__(self, addresses=None, error=None):
        self.addresses = list(addresses or [])
        self.error = error
        self.calls = []

    async def provision(self, amount_minor, currency="usd"):
        self.calls.append((amount_minor, currency))
        if self.error is not None:
            raise self.error
        if self.addresses:
            address = self.addresses.pop(0)
        else:
            address = f"0x{len(self.calls):040x}"
        return ProvisionedAddress(
            address=address,
            reference=f"pi_test_{len(self.calls)}",
            amount_minor=amount_minor,
            currency=currency,
        )


def build_payment_header(
    to: str,
    network: str = BASE_NETWORK,
    payer: str = "0xPAYER",
    value: str = "10000",
) -> str:
    """Base64-encoded v2 payment payload paying `to`."""
    payload = {
        "x402Version": 2,
        "accepted": {"scheme": "exact", "network": network},
        "payload": {
            "signature": "0x" + "ab" * 65,
            "authorization": {
                "from": payer,
                "to": to,
                "value": value,
                "validAfter": "0",
                "validBefore": "9999999999",
                "nonce": "0x" + "01" * 32,
            },
        },
    }
    return b64encode(json.dumps(payload).encode()).decode()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def payment_header():
    return build_payment_header


@pytest.fixture
def facilitator_client():
    """Facilitator client whose verify and settle succeed by default."""
    client = MagicMock()
    client.verify = AsyncMock(return_value=VerifyResponse(is_valid=True, payer="0xPAYER"))
    client.settle = AsyncMock(return_value=SettleResponse(
        success=True,
        transaction="0xTX",
        network=BASE_NETWORK,
        payer="0xPAYER",
    ))
    client.supported = AsyncMock(return_value=SupportedResponse(kinds=[]))
    return client


@pytest.fixture
def gate_factory(facilitator_client, clock):
    """
    Build a FastAPI app guarded by X402Middleware.

    Returns a callable producing (app, handler_calls, parts) where
    handler_calls counts how often the protected handler ran.
    """

    def build(provider=None, cache=None, solana_pay_to=None, events=None, paywall=None):
        provider = provider or FakeDepositProvider(addresses=["0xNEW"])
        if cache is None:
            cache = AddressCache(ttl_seconds=300, clock=clock)
        events = events or LifecycleEvents()
        resolver = DepositAddressResolver(cache, provider, price="$0.01", events=events)

        server = ResourceServer(FacilitatorAdapter(facilitator_client, events))
        server.register(BASE_NETWORK, ExactEvmScheme())

        accepts = [PaymentOption(
            scheme="exact",
            price="$0.01",
            network=BASE_NETWORK,
            pay_to=resolver.resolve_destination,
        )]
        if solana_pay_to:
            server.register(SOLANA_NETWORK, ExactSvmScheme())
            accepts.append(PaymentOption(
                scheme="exact",
                price="$0.01",
                network=SOLANA_NETWORK,
                pay_to=solana_pay_to,
            ))

        routes = {
            "GET /api/data": RouteConfig(
                accepts=accepts,
                description="Data retrieval endpoint",
                mime_type="application/json",
            ),
        }

        handler_calls = []
        app = FastAPI()
        app.add_middleware(X402Middleware, routes=routes, server=server, paywall=paywall)

        @app.get("/api/data")
        async def get_data():
            handler_calls.append(1)
            return {"success": True, "data": "protected"}

        @app.get("/api/health")
        async def health():
            return {"status": "healthy"}

        parts = {
            "provider": provider,
            "cache": cache,
            "resolver": resolver,
            "server": server,
            "events": events,
        }
        return app, handler_calls, parts

    return build
