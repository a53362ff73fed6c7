import os


def _getenv(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None:
        return default
    value = value.strip()
    return value if value else default


def _getenv_bool(name: str, default: bool = False) -> bool:
    raw = _getenv(name)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "y", "on"}


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


class Settings:
    def __init__(self) -> None:
        self.environment = (_getenv("ENVIRONMENT", "development") or "development").lower()
        self.database_url = _getenv("DATABASE_URL", "sqlite:///./billing.db") or "sqlite:///./billing.db"
        self.db_auto_create = _getenv_bool("DB_AUTO_CREATE", default=True)
        self.log_level = (_getenv("LOG_LEVEL", "INFO") or "INFO").upper()
        self.cors_allow_origins = _getenv("CORS_ALLOW_ORIGINS")

        self.paddle_api_key = _getenv("PADDLE_API_KEY")
        self.paddle_api_base_url = _getenv("PADDLE_API_BASE_URL", "https://api.paddle.com") or "https://api.paddle.com"
        self.paddle_price_id = _getenv("PADDLE_PRICE_ID")
        self.paddle_webhook_secret = _getenv("PADDLE_WEBHOOK_SECRET")
        self.paddle_signature_scheme = (_getenv("PADDLE_SIGNATURE_SCHEME", "paddle") or "paddle").lower()
        self.paddle_signature_max_age_s = _getenv_int("PADDLE_SIGNATURE_MAX_AGE_SECONDS", 300)
        self.paddle_timeout_s = float(_getenv("PADDLE_TIMEOUT_SECONDS", "30") or "30")

        self.credits_min_purchase = _getenv_int("CREDITS_MIN_PURCHASE", 100)
        self.credits_max_purchase = _getenv_int("CREDITS_MAX_PURCHASE", 100_000)
        self.pending_checkout_ttl_minutes = _getenv_int("PENDING_CHECKOUT_TTL_MINUTES", 60)

        self.admin_api_token = _getenv("ADMIN_API_TOKEN")

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def payments_configured(self) -> bool:
        return bool(self.paddle_api_key and self.paddle_price_id)

    def resolved_cors_origins(self) -> list[str]:
        raw = self.cors_allow_origins
        if raw is None:
            return ["http://localhost:5173", "http://localhost:8000"]
        if raw.strip() == "*":
            return ["*"]
        origins = [o.strip() for o in raw.split(",") if o.strip()]
        return origins


settings = Settings()
