from pydantic_settings import BaseSettings
from typing import Optional, List, Dict


def _parse_allowed_origins(v: str) -> List[str]:
    """Parse comma-separated origins string; strip whitespace; keep non-empty."""
    if not v or not v.strip():
        return []
    return [o.strip() for o in v.split(",") if o.strip()]


def _parse_tenant_secrets(v: str) -> Dict[str, str]:
    """
    Parse "host=secret,host2=secret2" into {tenant_key: signing_secret}.
    Tenant keys are lower-cased; entries without a secret are dropped.
    """
    secrets: Dict[str, str] = {}
    if not v or not v.strip():
        return secrets
    for pair in v.split(","):
        if "=" not in pair:
            continue
        host, secret = pair.split("=", 1)
        host = host.strip().lower()
        secret = secret.strip()
        if host and secret:
            secrets[host] = secret
    return secrets


_DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:19006",
    "http://127.0.0.1:3000",
]


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "postgresql://postgres:postgres@db:5432/hoodpay"

    # CORS: comma-separated extra origins for production (e.g. https://www.hoodfy.com)
    ALLOWED_ORIGINS_EXTRA: str = ""

    def get_allowed_origins(self) -> List[str]:
        """Return CORS allowed origins: default localhost + ALLOWED_ORIGINS_EXTRA."""
        return _DEFAULT_CORS_ORIGINS + _parse_allowed_origins(self.ALLOWED_ORIGINS_EXTRA)

    # Auth
    SECRET_KEY: str = "supersecret_jwt_key_change_in_production"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Stripe
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None  # Default signing secret for hosts without their own entry
    # Per-tenant signing secrets: "hoodfy.com=whsec_...,qahood.com=whsec_..."
    STRIPE_WEBHOOK_TENANT_SECRETS: str = ""
    STRIPE_WEBHOOK_TOLERANCE: int = 300  # Seconds a signed timestamp stays valid
    STRIPE_PLATFORM_FEE_PERCENTAGE: int = 12
    STRIPE_CURRENCY: str = "usd"
    STRIPE_PRICE_INTERVAL: str = "month"

    def get_webhook_tenant_secrets(self) -> Dict[str, str]:
        """Return the explicit {tenant_key: signing_secret} table."""
        return _parse_tenant_secrets(self.STRIPE_WEBHOOK_TENANT_SECRETS)

    # Frontend
    FRONTEND_URL: str = "http://localhost:3000"  # Checkout/portal redirect base

    # Notifications
    NOTIFICATION_WEBHOOK_URL: Optional[str] = None  # Unset = log-only sink
    NOTIFICATION_TIMEOUT_SECONDS: float = 5.0

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        # Environment variables win over the .env file


settings = Settings()
