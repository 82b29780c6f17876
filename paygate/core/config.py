# paygate/core/config.py
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import AnyHttpUrl, field_validator
from pydantic_settings import BaseSettings

from paygate.x402.pricing import parse_price

# Load .env file if it exists
load_dotenv()


class Settings(BaseSettings):
    PROJECT_NAME: str = "Paygate"
    LOG_LEVEL: str = "INFO"

    # Settlement facilitator
    FACILITATOR_URL: AnyHttpUrl  # validates that it's a URL
    FACILITATOR_TIMEOUT_SECONDS: float = 15.0
    FACILITATOR_JWT_EXPIRES_IN: int = 120

    # Facilitator API credentials, used to mint per-request bearer tokens
    CDP_KEY: str
    CDP_API_KEY_SECRET: str

    # Deposit address provisioning
    STRIPE_SECRET_KEY: str
    DEPOSIT_NETWORK: str = "base"  # key inside the deposit_addresses map
    DEPOSIT_ADDRESS_TTL_SECONDS: int = 300
    DEPOSIT_CACHE_CHECK_PERIOD_SECONDS: int = 60
    PROVISIONING_TIMEOUT_SECONDS: float = 15.0

    # Payment options
    X402_PRICE: str = "$0.01"
    X402_EVM_NETWORK: str = "eip155:8453"
    X402_SOLANA_NETWORK: str = "solana:5eykt4UsFv8P8NJdTREpY1vzqKqZKvdp"
    X402_MAX_TIMEOUT_SECONDS: int = 300
    SOLANA_PAY_TO: Optional[str] = None  # Solana option is only offered when set

    # Browser paywall
    PAYWALL_APP_NAME: str = "My App"
    PAYWALL_TESTNET: bool = False

    # Audit trail
    AUDIT_LOG_ENABLED: bool = True
    AUDIT_LOG_PATH: str = "logs/x402_audit.jsonl"

    @field_validator("X402_PRICE")
    @classmethod
    def _price_is_positive(cls, value: str) -> str:
        if parse_price(value) <= 0:
            raise ValueError("X402_PRICE must be greater than zero")
        return value

    @field_validator("CDP_KEY", "CDP_API_KEY_SECRET", "STRIPE_SECRET_KEY")
    @classmethod
    def _secret_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value

    @field_validator(
        "DEPOSIT_ADDRESS_TTL_SECONDS",
        "PROVISIONING_TIMEOUT_SECONDS",
        "FACILITATOR_TIMEOUT_SECONDS",
    )
    @classmethod
    def _positive(cls, value):
        if value <= 0:
            raise ValueError("must be greater than zero")
        return value

    @property
    def facilitator_base_url(self) -> str:
        """Facilitator URL without a trailing slash."""
        return str(self.FACILITATOR_URL).rstrip("/")

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields from .env


@lru_cache()  # Settings are built once per process
def get_settings() -> Settings:
    return Settings()
