# paygate/x402/middleware.py
"""
FastAPI middleware for x402 payment gating.

This module provides HTTP middleware that:
1. Intercepts requests to protected routes
2. Without a payment proof, returns 402 Payment Required with one requirement
   per accepted payment option, each carrying its resolved pay-to address
3. With a proof, verifies it via the facilitator
4. Settles the payment via the facilitator
5. Only after settlement succeeds, runs the route handler and attaches the
   settlement receipt header

Settlement happens before the handler: a request whose settlement fails never
reaches the protected resource.
"""
import json
import logging
from typing import Callable, List, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import HTMLResponse, JSONResponse

from paygate.x402.errors import ProvisioningError, ProvisioningTimeout, SchemeNotFoundError
from paygate.x402.facilitator import SettlementOutcome
from paygate.x402.hooks import EventContext, LifecycleEvent
from paygate.x402.models import (
    PaymentContext,
    PaymentRequiredResponse,
    PaymentRequirement,
    ResourceInfo,
    RouteConfig,
    RoutesConfig,
    SettleResponse,
)
from paygate.x402.paywall import PaywallConfig, is_browser_request, render_paywall
from paygate.x402.proof import decode_payment_header, safe_base64_encode
from paygate.x402.server import ResourceServer

logger = logging.getLogger(__name__)

# x402 protocol headers (v2 names first, v1 names kept for older clients)
PAYMENT_SIGNATURE_HEADER = "PAYMENT-SIGNATURE"
X_PAYMENT_HEADER = "X-PAYMENT"
PAYMENT_REQUIRED_HEADER = "PAYMENT-REQUIRED"
PAYMENT_RESPONSE_HEADER = "PAYMENT-RESPONSE"
X_PAYMENT_RESPONSE_HEADER = "X-PAYMENT-RESPONSE"


def match_route(routes: RoutesConfig, method: str, path: str) -> Optional[RouteConfig]:
    """
    Find the route config for a request.

    Route keys look like "GET /api/data"; a path ending in "/*" matches by prefix.
    Trailing slashes are ignored.
    """
    normalized_path = path.rstrip("/") or "/"
    for key, config in routes.items():
        route_method, _, route_path = key.partition(" ")
        if route_method.upper() != method.upper():
            continue
        if route_path.endswith("/*"):
            if normalized_path.startswith(route_path[:-2]):
                return config
        elif (route_path.rstrip("/") or "/") == normalized_path:
            return config
    return None


def get_client_ip(request: Request) -> str:
    """Extract client IP from request, handling proxies."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # Take the first IP in the chain
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    if request.client:
        return request.client.host

    return "unknown"


def get_payment_header(request: Request) -> Optional[str]:
    """Return the payment proof header, preferring the v2 name."""
    return request.headers.get(PAYMENT_SIGNATURE_HEADER) or request.headers.get(X_PAYMENT_HEADER)


def encode_payment_response(settle_response: SettleResponse) -> str:
    """Encode a settlement response as base64 JSON for the receipt header."""
    return safe_base64_encode(json.dumps(settle_response.to_wire()).encode("utf-8"))


def settlement_receipt(outcome: SettlementOutcome, requirement: PaymentRequirement) -> SettleResponse:
    if outcome.response is not None:
        return outcome.response
    return SettleResponse(
        success=outcome.success,
        transaction=outcome.transaction or "",
        network=outcome.network or requirement.network,
        payer=outcome.payer,
    )


class X402Middleware(BaseHTTPMiddleware):
    """
    x402 payment gate for FastAPI.

    For each protected route:
    - No proof (or an undecodable one): respond 402 with payment requirements
    - Proof present: verify, then settle, then serve the handler's response
    Unprotected routes pass through unchanged.
    """

    def __init__(
        self,
        app,
        routes: RoutesConfig,
        server: ResourceServer,
        paywall: Optional[PaywallConfig] = None,
    ):
        super().__init__(app)
        self.routes = routes
        self.server = server
        self.paywall = paywall

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Response]
    ) -> Response:
        route = match_route(self.routes, request.method, request.url.path)
        if route is None:
            return await call_next(request)

        client_ip = get_client_ip(request)
        logger.info(f"x402: Processing protected request from {client_ip}: {request.method} {request.url.path}")

        payment_header = get_payment_header(request)
        context = PaymentContext(
            method=request.method,
            path=request.url.path,
            url=str(request.url),
            payment_header=payment_header,
            client_ip=client_ip,
        )
        resource = ResourceInfo(
            url=str(request.url),
            description=route.description,
            mime_type=route.mime_type,
        )

        # Resolve destinations and build one requirement per accepted option
        try:
            requirements = await self.server.build_requirements(route, context)
        except ProvisioningTimeout as e:
            logger.error(f"x402: Deposit address provisioning timed out: {e}")
            return JSONResponse(
                status_code=504,
                content={"error": "Deposit address provisioning timed out", "detail": str(e)},
            )
        except ProvisioningError as e:
            logger.error(f"x402: Deposit address provisioning failed: {e}")
            return JSONResponse(
                status_code=502,
                content={"error": "Deposit address provisioning failed", "detail": str(e)},
            )
        except SchemeNotFoundError as e:
            logger.error(f"x402: Payment option misconfigured: {e}")
            return JSONResponse(
                status_code=500,
                content={"error": "Payment configuration error", "detail": str(e)},
            )

        if not payment_header:
            logger.info(f"x402: No payment header, returning 402 with {len(requirements)} option(s)")
            return await self._payment_required(
                request, requirements, resource, "Payment required", browser_ok=True
            )

        payment_payload = decode_payment_header(payment_header)
        if payment_payload is None:
            logger.warning(f"x402: Invalid payment header from {client_ip}")
            return await self._payment_required(
                request, requirements, resource, "Invalid payment header format"
            )

        requirement = self.server.find_matching_requirement(requirements, payment_payload)
        if requirement is None:
            logger.warning(f"x402: Payment from {client_ip} matches no accepted option")
            return await self._payment_required(
                request, requirements, resource, "No matching payment requirements"
            )

        verification = await self.server.verify_payment(payment_payload, requirement)
        if not verification.success:
            logger.warning(f"x402: Payment verification failed: {verification.error}")
            return await self._payment_required(
                request, requirements, resource,
                f"Payment verification failed: {verification.error}",
            )

        settlement = await self.server.settle_payment(payment_payload, requirement)
        if not settlement.success:
            logger.warning(f"x402: Payment settlement failed: {settlement.error}")
            return await self._payment_required(
                request, requirements, resource,
                f"Payment settlement failed: {settlement.error}",
            )

        logger.info(f"x402: Payment settled for payer {verification.payer}: {settlement.transaction}")

        response = await call_next(request)
        encoded_receipt = encode_payment_response(settlement_receipt(settlement, requirement))
        response.headers[PAYMENT_RESPONSE_HEADER] = encoded_receipt
        response.headers[X_PAYMENT_RESPONSE_HEADER] = encoded_receipt
        return response

    async def _payment_required(
        self,
        request: Request,
        requirements: List[PaymentRequirement],
        resource: ResourceInfo,
        error_message: str,
        browser_ok: bool = False,
    ) -> Response:
        """
        Create an HTTP 402 Payment Required response.

        The 402 document goes in the body and, base64-encoded, in the
        PAYMENT-REQUIRED header. Browsers get the HTML paywall instead of JSON
        when they have not attempted a payment yet.
        """
        payment_required = PaymentRequiredResponse(
            error=error_message,
            resource=resource,
            accepts=requirements,
        )
        body = payment_required.to_wire()
        headers = {
            PAYMENT_REQUIRED_HEADER: safe_base64_encode(json.dumps(body).encode("utf-8")),
        }

        await self.server.events.emit(EventContext(
            event=LifecycleEvent.PAYMENT_REQUIRED,
            error=error_message,
            data={
                "resource": resource.url,
                "error": error_message,
                "accepts": [
                    {"network": r.network, "pay_to": r.pay_to, "amount": r.amount, "price": r.price}
                    for r in requirements
                ],
            },
        ))

        if browser_ok and self.paywall is not None and is_browser_request(request):
            return HTMLResponse(
                status_code=402,
                content=render_paywall(payment_required, self.paywall),
                headers=headers,
            )

        return JSONResponse(status_code=402, content=body, headers=headers)
