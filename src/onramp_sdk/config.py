"""Centralized configuration for the on-ramp SDK.

Loads all configuration from environment variables with sensible defaults.
"""

from typing import Literal

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings

# Load environment variables from .env file
load_dotenv()


class Config(BaseSettings):
    """Settings shared by the API client, monitor and recovery engine."""

    # Payment service
    halliday_api_key: str = Field(default="", description="Bearer credential for the payment API")
    halliday_base_url: str = Field(default="https://v2.prod.halliday.xyz")
    request_timeout_seconds: float = Field(default=30.0)

    # Funding monitor
    poll_interval_seconds: float = Field(default=3.0, description="Delay between funding status checks")
    client_redirect_url: str = Field(default="https://google.com")
    enforce_quote_expiry: bool = Field(
        default=True, description="Refuse to confirm a quote batch past its accept_by"
    )

    # Default quote request (USD $100 -> stable token)
    default_input_asset: str = Field(default="USD")
    default_input_amount: str = Field(default="100")
    default_output_asset: str = Field(default="stable:0x779ded0c9e1022225f8e0630b35a9b54be713736")
    price_currency: str = Field(default="USD")

    # Local signer (examples and tests only; production signing lives in the wallet)
    wallet_private_key: str = Field(default="", description="EVM private key for LocalAccountSigner")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_format: Literal["json", "text"] = Field(default="json")

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"

    def is_configured(self) -> bool:
        """Whether an API credential is available."""
        return bool(self.halliday_api_key)


# Global config instance
config = Config()


def validate_config_for(component: Literal["api", "wallet"]) -> None:
    """Validate that required configuration is present for a component.

    Args:
        component: The component to validate configuration for.

    Raises:
        ValueError: If required configuration is missing.
    """
    errors = []

    if component == "api":
        if not config.is_configured():
            errors.append("HALLIDAY_API_KEY must be set")
        if not config.halliday_base_url:
            errors.append("HALLIDAY_BASE_URL must not be empty")

    if component == "wallet":
        if not config.wallet_private_key:
            errors.append("WALLET_PRIVATE_KEY must be set to sign locally")

    if errors:
        error_msg = f"Configuration errors for {component}:\n" + "\n".join(f"  - {e}" for e in errors)
        raise ValueError(error_msg)
