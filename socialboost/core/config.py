import os

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', extra='ignore')

    app_name: str = 'SocialBoost'
    debug: bool = False
    log_level: str = 'INFO'

    database_url: str = 'sqlite:///./socialboost.db'
    jwt_secret_key: str = 'change-me'
    jwt_algorithm: str = 'HS256'
    jwt_expire_minutes: int = 60 * 24
    session_secret: str = 'change-me-too'
    google_client_id: str = ''
    google_client_secret: str = ''
    auth_frontend_success_url: str = ''

    # Billing provider: 'stripe' or 'memory'
    billing_provider: str = 'memory'
    stripe_secret_key: str = ''
    billing_timeout_seconds: float = 10.0
    billing_currency: str = 'usd'
    product_name: str = 'SocialBoost'
    sales_contact_url: str = '/contact-sales'

    # Social publisher: 'mock' or 'instagram'
    social_publisher: str = 'mock'
    instagram_client_id: str = ''
    instagram_client_secret: str = ''
    instagram_redirect_uri: str = ''
    social_timeout_seconds: int = 20


def _resolve_database_url() -> str:
    explicit = os.getenv("DATABASE_URL", "").strip()
    is_serverless = any(
        os.getenv(k, "").strip()
        for k in ["VERCEL", "VERCEL_ENV", "AWS_REGION", "NOW_REGION"]
    )
    if explicit:
        # In serverless runtimes, relative sqlite paths are read-only.
        if is_serverless and explicit.startswith("sqlite:///./"):
            return "sqlite:////tmp/socialboost.db"
        return explicit
    if is_serverless:
        return "sqlite:////tmp/socialboost.db"
    return "sqlite:///./socialboost.db"


settings = Settings(database_url=_resolve_database_url())
