from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables or a .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    app_name: str = "Mish Mush Kids Storefront Hooks"
    app_version: str = "0.1.0"
    environment: str = "local"

    shop: str | None = None
    admin_token: str | None = None
    price_rule_id: str | None = None
    shopify_api_version: str = "2025-10"
    catalog_timeout_seconds: float = 15.0

    flow_shared_secret: str | None = None
    cron_secret: str | None = None
    slack_webhook_url: str | None = None

    resend_api_key: str | None = None
    resend_api_url: str = "https://api.resend.com/emails"
    email_from: str = "Mish Mush Kids <support@em.mishmushkids.com>"
    shop_domain: str = "mishmushkids.com"
    logo_url: str = "https://mishmushkids.com/cdn/shop/files/mishmush.webp"

    welcome_code_prefix: str = "MISHMUSH"
    welcome_code_length: int = 6
    welcome_code_max_attempts: int = 3

    days_to_keep: int = 8
    retry_max_retries: int = 3
    retry_initial_delay_seconds: float = 1.0

    redis_url: str | None = None
    issuance_lock_ttl_seconds: int = 30

    maintenance_scheduler_enabled: bool = False
    maintenance_interval_seconds: int = 86400

    cors_origins: list[str] = ["https://mishmushkids.com", "https://www.mishmushkids.com"]

    log_json: bool = False
    sentry_dsn: str | None = None
    sentry_traces_sample_rate: float = 0.0
    sentry_enable_logs: bool = False
    sentry_log_level: str = "error"


def missing_catalog_settings(current: Settings) -> list[str]:
    required = {"SHOP": current.shop, "ADMIN_TOKEN": current.admin_token, "PRICE_RULE_ID": current.price_rule_id}
    return [name for name, value in required.items() if not (value or "").strip()]


def missing_email_settings(current: Settings) -> list[str]:
    required = {"SHOP": current.shop, "ADMIN_TOKEN": current.admin_token, "RESEND_API_KEY": current.resend_api_key}
    return [name for name, value in required.items() if not (value or "").strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
