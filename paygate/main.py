# paygate/main.py
"""
Application factory.

Run with: uvicorn paygate.main:create_app --factory

Settings are read once here and passed explicitly into the cache, resolver,
facilitator and middleware. Missing or invalid configuration is fatal: the
factory raises and the process never starts serving.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from pydantic import ValidationError

from paygate.api.endpoints import data
from paygate.core.config import Settings, get_settings
from paygate.x402.audit import AuditLog
from paygate.x402.auth import CdpTokenMinter
from paygate.x402.cache import AddressCache
from paygate.x402.errors import ConfigurationError
from paygate.x402.facilitator import FacilitatorAdapter, FacilitatorClient
from paygate.x402.hooks import LifecycleEvents, register_default_logging
from paygate.x402.middleware import X402Middleware
from paygate.x402.models import PaymentOption, RouteConfig, RoutesConfig
from paygate.x402.paywall import PaywallConfig
from paygate.x402.provisioning import DepositAddressProvider, StripeDepositProvider
from paygate.x402.resolver import DepositAddressResolver
from paygate.x402.schemes import ExactEvmScheme, ExactSvmScheme
from paygate.x402.server import ResourceServer

# Configure basic logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

PROTECTED_DATA_ROUTE = "GET /api/data"


def load_settings() -> Settings:
    """
    Read settings, turning validation errors into a fatal ConfigurationError.
    """
    try:
        return get_settings()
    except ValidationError as e:
        missing = ", ".join(str(err["loc"][0]) for err in e.errors())
        logger.critical(f"Invalid or missing configuration: {missing}")
        raise ConfigurationError(f"Invalid or missing configuration: {missing}") from e


def build_routes(settings: Settings, resolver: DepositAddressResolver) -> RoutesConfig:
    """
    Payment options per protected route.

    The EVM option gets a fresh deposit address per payment attempt; the Solana
    option pays a fixed address and is only offered when one is configured.
    """
    accepts = [
        PaymentOption(
            scheme="exact",
            price=settings.X402_PRICE,
            network=settings.X402_EVM_NETWORK,
            pay_to=resolver.resolve_destination,
        ),
    ]
    if settings.SOLANA_PAY_TO:
        accepts.append(PaymentOption(
            scheme="exact",
            price=settings.X402_PRICE,
            network=settings.X402_SOLANA_NETWORK,
            pay_to=settings.SOLANA_PAY_TO,
        ))

    return {
        PROTECTED_DATA_ROUTE: RouteConfig(
            accepts=accepts,
            description="Data retrieval endpoint",
            mime_type="application/json",
        ),
    }


def build_facilitator_client(settings: Settings) -> FacilitatorClient:
    """Facilitator client that mints fresh bearer tokens for every call."""
    facilitator_url = settings.facilitator_base_url
    minter = CdpTokenMinter(
        api_key_id=settings.CDP_KEY,
        api_key_secret=settings.CDP_API_KEY_SECRET,
        expires_in=settings.FACILITATOR_JWT_EXPIRES_IN,
    )
    return FacilitatorClient(
        url=facilitator_url,
        create_headers=lambda: minter.create_auth_headers(facilitator_url),
        timeout_seconds=settings.FACILITATOR_TIMEOUT_SECONDS,
    )


def create_app(
    settings: Optional[Settings] = None,
    provider: Optional[DepositAddressProvider] = None,
    facilitator_client: Optional[FacilitatorClient] = None,
    cache: Optional[AddressCache] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Configuration, read from the environment when omitted
        provider: Deposit address provider (defaults to Stripe)
        facilitator_client: Facilitator client (defaults to the authenticated HTTP client)
        cache: Address cache (defaults to a fresh TTL cache)

    Raises:
        ConfigurationError: If required configuration is missing or invalid
    """
    settings = settings or load_settings()
    logging.getLogger().setLevel(settings.LOG_LEVEL.upper())

    events = register_default_logging(LifecycleEvents())
    if settings.AUDIT_LOG_ENABLED:
        AuditLog(settings.AUDIT_LOG_PATH).subscribe(events)

    if cache is None:
        cache = AddressCache(
            ttl_seconds=settings.DEPOSIT_ADDRESS_TTL_SECONDS,
            check_period_seconds=settings.DEPOSIT_CACHE_CHECK_PERIOD_SECONDS,
        )
    provider = provider or StripeDepositProvider(
        api_key=settings.STRIPE_SECRET_KEY,
        network=settings.DEPOSIT_NETWORK,
        timeout_seconds=settings.PROVISIONING_TIMEOUT_SECONDS,
    )
    resolver = DepositAddressResolver(
        cache=cache,
        provider=provider,
        price=settings.X402_PRICE,
        ttl_seconds=settings.DEPOSIT_ADDRESS_TTL_SECONDS,
        events=events,
    )

    facilitator_client = facilitator_client or build_facilitator_client(settings)
    server = ResourceServer(
        FacilitatorAdapter(facilitator_client, events),
        max_timeout_seconds=settings.X402_MAX_TIMEOUT_SECONDS,
    )
    server.register(settings.X402_EVM_NETWORK, ExactEvmScheme())
    if settings.SOLANA_PAY_TO:
        server.register(settings.X402_SOLANA_NETWORK, ExactSvmScheme())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await server.initialize()
        yield

    app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)
    app.state.settings = settings
    app.state.address_cache = cache
    app.state.resource_server = server

    app.add_middleware(
        X402Middleware,
        routes=build_routes(settings, resolver),
        server=server,
        paywall=PaywallConfig(app_name=settings.PAYWALL_APP_NAME, testnet=settings.PAYWALL_TESTNET),
    )

    app.include_router(data.router, prefix="/api", tags=["data"])

    @app.get("/", summary="Health Check", tags=["default"])
    def read_root():
        """ Basic health check endpoint. """
        logger.info("Root endpoint '/' accessed.")
        return {"status": "ok", "message": f"Welcome to {settings.PROJECT_NAME}"}

    return app
