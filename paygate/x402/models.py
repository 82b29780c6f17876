# paygate/x402/models.py
"""
x402 wire models and route configuration types.

Wire models use snake_case attributes and camelCase JSON via aliases, so
model_dump(by_alias=True) produces the protocol's field names.
"""
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

X402_VERSION = 2


class X402Model(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class PaymentRequirement(X402Model):
    """What a client must pay to access a resource on one network."""
    scheme: str
    network: str
    amount: str  # smallest units of the asset
    asset: str
    pay_to: str
    max_timeout_seconds: int = 300
    price: Optional[str] = None  # human-denominated, as configured
    extra: Optional[Dict[str, Any]] = None


class ResourceInfo(X402Model):
    url: str
    description: Optional[str] = None
    mime_type: Optional[str] = None


class PaymentRequiredResponse(X402Model):
    """Body of an HTTP 402 response."""
    x402_version: int = X402_VERSION
    error: Optional[str] = None
    resource: Optional[ResourceInfo] = None
    accepts: List[PaymentRequirement]


class VerifyResponse(X402Model):
    is_valid: bool
    invalid_reason: Optional[str] = None
    payer: Optional[str] = None


class SettleResponse(X402Model):
    success: bool
    error_reason: Optional[str] = None
    payer: Optional[str] = None
    transaction: str = ""
    network: Optional[str] = None


class SupportedKind(X402Model):
    x402_version: int = X402_VERSION
    scheme: str
    network: str
    extra: Optional[Dict[str, Any]] = None


class SupportedResponse(X402Model):
    kinds: List[SupportedKind] = []


@dataclass
class PaymentContext:
    """The parts of an inbound request the payment flow needs."""
    method: str
    path: str
    url: str
    payment_header: Optional[str] = None
    client_ip: Optional[str] = None


PayToResolver = Callable[[PaymentContext], Awaitable[str]]


@dataclass
class PaymentOption:
    """
    One acceptable way to pay for a route.

    pay_to is either a fixed address or an async callable resolving a
    destination per request.
    """
    scheme: str
    price: str
    network: str
    pay_to: Union[str, PayToResolver]
    max_timeout_seconds: Optional[int] = None
    extra: Optional[Dict[str, Any]] = None


@dataclass
class RouteConfig:
    """Payment configuration for one protected route."""
    accepts: List[PaymentOption]
    description: str = ""
    mime_type: str = "application/json"


# Route keys look like "GET /api/data"
RoutesConfig = Dict[str, RouteConfig]
