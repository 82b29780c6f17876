# paygate/x402/facilitator.py
"""
Settlement facilitator integration.

The facilitator is a remote service that cryptographically verifies a payment
authorization and, if valid, settles it on-chain. Three operations are used:

- POST {url}/verify    -> {isValid, invalidReason?, payer?}
- POST {url}/settle    -> {success, errorReason?, transaction, network, payer?}
- GET  {url}/supported -> {kinds: [{x402Version, scheme, network, extra?}]}

FacilitatorClient speaks HTTP and raises on transport problems.
FacilitatorAdapter wraps it for the gate: every failure (network, auth,
timeout, business rejection) becomes a failure outcome carrying an opaque
message, and lifecycle events fire around each call.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import httpx
from pydantic import ValidationError

from paygate.x402.errors import FacilitatorError, FacilitatorTimeout
from paygate.x402.hooks import EventContext, LifecycleEvent, LifecycleEvents
from paygate.x402.models import (
    X402_VERSION,
    PaymentRequirement,
    SettleResponse,
    SupportedResponse,
    VerifyResponse,
)

logger = logging.getLogger(__name__)

# Returns {"verify": {...}, "settle": {...}, "supported": {...}} header maps
AuthHeadersFactory = Callable[[], Dict[str, Dict[str, str]]]


class FacilitatorClient:
    """Async HTTP client for a remote facilitator."""

    def __init__(
        self,
        url: str,
        create_headers: Optional[AuthHeadersFactory] = None,
        timeout_seconds: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            url: Facilitator base URL
            create_headers: Mints fresh per-operation auth headers for each call
            timeout_seconds: Timeout applied to each HTTP call
            transport: Optional httpx transport (used by tests)
        """
        self.url = url.rstrip("/")
        self._create_headers = create_headers
        self._timeout = httpx.Timeout(timeout_seconds)
        self._transport = transport

    async def verify(self, payment_payload: Dict[str, Any], requirement: PaymentRequirement) -> VerifyResponse:
        data = await self._request("verify", "POST", self._body(payment_payload, requirement))
        return self._parse(VerifyResponse, data, "verify")

    async def settle(self, payment_payload: Dict[str, Any], requirement: PaymentRequirement) -> SettleResponse:
        data = await self._request("settle", "POST", self._body(payment_payload, requirement))
        return self._parse(SettleResponse, data, "settle")

    async def supported(self) -> SupportedResponse:
        data = await self._request("supported", "GET")
        return self._parse(SupportedResponse, data, "supported")

    @staticmethod
    def _body(payment_payload: Dict[str, Any], requirement: PaymentRequirement) -> Dict[str, Any]:
        return {
            "x402Version": payment_payload.get("x402Version", X402_VERSION),
            "paymentPayload": payment_payload,
            "paymentRequirements": requirement.model_dump(
                by_alias=True, exclude_none=True, exclude={"price"}
            ),
        }

    @staticmethod
    def _parse(model, data: Dict[str, Any], operation: str):
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise FacilitatorError(f"Malformed {operation} response: {e}", kind="malformed") from e

    async def _request(self, operation: str, method: str, body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if self._create_headers is not None:
            headers.update(self._create_headers().get(operation, {}))

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.request(
                    method,
                    f"{self.url}/{operation}",
                    json=body,
                    headers=headers,
                    follow_redirects=True,
                )
        except httpx.TimeoutException as e:
            raise FacilitatorTimeout(f"Facilitator {operation} timed out: {e}") from e
        except httpx.HTTPError as e:
            raise FacilitatorError(f"Facilitator {operation} request failed: {e}") from e

        if response.status_code in (401, 403):
            raise FacilitatorError(
                f"Facilitator rejected credentials for {operation} ({response.status_code})",
                kind="auth",
            )

        try:
            data = response.json()
        except ValueError:
            data = None

        # Facilitators answer business rejections with 4xx plus a normal body
        if not isinstance(data, dict):
            raise FacilitatorError(
                f"Facilitator {operation} returned {response.status_code} without a JSON body",
                kind="malformed" if response.is_success else "http",
            )
        if not response.is_success and operation == "supported":
            raise FacilitatorError(
                f"Facilitator supported returned {response.status_code}", kind="http"
            )
        return data


@dataclass
class VerificationOutcome:
    success: bool
    payer: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None  # "rejected", "transport", "auth", "timeout", ...


@dataclass
class SettlementOutcome:
    success: bool
    transaction: Optional[str] = None
    network: Optional[str] = None
    payer: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    response: Optional[SettleResponse] = None


class FacilitatorAdapter:
    """Verify/settle with uniform outcomes and lifecycle events."""

    def __init__(self, client: FacilitatorClient, events: Optional[LifecycleEvents] = None):
        self.client = client
        self.events = events or LifecycleEvents()

    async def verify(self, payment_payload: Dict[str, Any], requirement: PaymentRequirement) -> VerificationOutcome:
        await self._emit(LifecycleEvent.BEFORE_VERIFY, payment_payload, requirement)

        try:
            response = await self.client.verify(payment_payload, requirement)
        except FacilitatorError as e:
            outcome = VerificationOutcome(success=False, error=str(e), error_kind=e.kind)
        else:
            if response.is_valid:
                outcome = VerificationOutcome(success=True, payer=response.payer)
            else:
                outcome = VerificationOutcome(
                    success=False,
                    payer=response.payer,
                    error=response.invalid_reason or "Unknown reason",
                    error_kind="rejected",
                )

        if outcome.success:
            await self._emit(LifecycleEvent.AFTER_VERIFY, payment_payload, requirement, result=outcome)
        else:
            await self._emit(
                LifecycleEvent.VERIFY_FAILURE, payment_payload, requirement,
                result=outcome, error=outcome.error,
            )
        return outcome

    async def settle(self, payment_payload: Dict[str, Any], requirement: PaymentRequirement) -> SettlementOutcome:
        await self._emit(LifecycleEvent.BEFORE_SETTLE, payment_payload, requirement)

        try:
            response = await self.client.settle(payment_payload, requirement)
        except FacilitatorError as e:
            outcome = SettlementOutcome(success=False, error=str(e), error_kind=e.kind)
        else:
            if response.success:
                outcome = SettlementOutcome(
                    success=True,
                    transaction=response.transaction,
                    network=response.network or requirement.network,
                    payer=response.payer,
                    response=response,
                )
            else:
                outcome = SettlementOutcome(
                    success=False,
                    network=response.network,
                    payer=response.payer,
                    error=response.error_reason or "Unknown reason",
                    error_kind="rejected",
                    response=response,
                )

        if outcome.success:
            await self._emit(LifecycleEvent.AFTER_SETTLE, payment_payload, requirement, result=outcome)
        else:
            await self._emit(
                LifecycleEvent.SETTLE_FAILURE, payment_payload, requirement,
                result=outcome, error=outcome.error,
            )
        return outcome

    async def supported(self) -> SupportedResponse:
        return await self.client.supported()

    async def _emit(self, event, payment_payload, requirement, result=None, error=None) -> None:
        await self.events.emit(EventContext(
            event=event,
            payment_payload=payment_payload,
            requirement=requirement,
            result=result,
            error=error,
        ))
