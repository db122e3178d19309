"""
storefront/config.py - Settings loaded from the environment.

Every field can be set with a ``STOREFRONT_`` prefixed environment variable
or in a ``.env`` file, e.g. ``STOREFRONT_API_BASE_URL=http://localhost:5000/api``.
"""

from decimal import Decimal
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .pricing import PricingPolicy

_default_data_dir = Path.home() / ".storefront"


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="STOREFRONT_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    api_base_url: str = Field("http://localhost:5000/api", description="Store API root")
    api_token: Optional[str] = Field(None, description="Bearer token forwarded to the store API")
    request_timeout: float = 10.0
    data_dir: Path = _default_data_dir

    flat_shipping_fee: Decimal = Decimal("50")
    free_shipping_threshold: Decimal = Decimal("10000")
    tax_rate: Decimal = Decimal("0.18")
    currency_symbol: str = "₹"

    log_level: str = "WARNING"
    allowed_origins: str = "http://localhost:5173,http://localhost:3000"

    def pricing_policy(self) -> PricingPolicy:
        return PricingPolicy(
            flat_shipping_fee=self.flat_shipping_fee,
            free_shipping_threshold=self.free_shipping_threshold,
            tax_rate=self.tax_rate,
        )

    def origins(self) -> list[str]:
        """Comma-separated ``allowed_origins`` as a list; '*' allows all."""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]
