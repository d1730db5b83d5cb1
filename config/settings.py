"""
Configuration settings for the application
"""
from decimal import Decimal
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Normalized access tiers
PLAN_TRIAL = "trial"
PLAN_PRO = "pro"
PLAN_EXPIRED = "expired"


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,  # Allow both field name and alias
        extra="ignore",
    )

    # Cashfree payment gateway configuration
    cashfree_app_id: Optional[str] = Field(default=None, alias="CASHFREE_APP_ID")
    cashfree_secret_key: Optional[str] = Field(default=None, alias="CASHFREE_SECRET_KEY")
    cashfree_env: str = Field(default="SANDBOX", alias="CASHFREE_ENV")
    cashfree_api_version: str = Field(default="2023-08-01", alias="CASHFREE_API_VERSION")
    cashfree_timeout_seconds: float = Field(default=10.0, alias="CASHFREE_TIMEOUT_SECONDS")
    webhook_signature_required: bool = Field(default=False, alias="WEBHOOK_SIGNATURE_REQUIRED")

    # Identity verification
    jwt_secret_key: Optional[str] = Field(default=None, alias="JWT_SECRET_KEY")
    auth_jwks_url: Optional[str] = Field(default=None, alias="AUTH_JWKS_URL")
    auth_audience: Optional[str] = Field(default=None, alias="AUTH_AUDIENCE")

    # Infrastructure configuration
    database_url: Optional[str] = Field(default="sqlite+aiosqlite:///./expense_tracker.db", alias="DATABASE_URL")
    backend_url: Optional[str] = Field(default="http://localhost:3001", alias="BACKEND_URL")
    cors_origin: str = Field(default="*", alias="CORS_ORIGIN")

    # Pricing configuration (single Pro tier, monthly and annual price points)
    price_pro_monthly: Decimal = Field(default=Decimal("50"), alias="PRICE_PRO_MONTHLY")
    price_pro_annual: Decimal = Field(default=Decimal("500"), alias="PRICE_PRO_ANNUAL")
    pay_currency: str = Field(default="INR", alias="PAY_CURRENCY")
    fallback_pro_days: int = Field(default=30, alias="FALLBACK_PRO_DAYS")

    # Trial configuration
    trial_days: int = Field(default=2, alias="TRIAL_DAYS")

    # Deployment configuration
    render: Optional[str] = Field(default=None, alias="RENDER")
    env: Optional[str] = Field(default=None, alias="ENV")


# Instantiate settings object
settings = Settings()

# Determine if we're in production mode
IS_PRODUCTION = bool(settings.render) or bool(settings.env and settings.env.lower() == "production")
