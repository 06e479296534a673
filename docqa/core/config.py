from functools import lru_cache
from typing import Any, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_CORS = ["http://localhost:3000", "http://localhost:5173"]


def _parse_cors_origins(v: Any) -> List[str]:
    if v is None or v == "":
        return _DEFAULT_CORS.copy()
    if isinstance(v, list):
        return [x for x in v if isinstance(x, str) and x.strip()]
    s = str(v).strip()
    if s.startswith("["):
        import json
        try:
            out = json.loads(s)
        except ValueError:
            return _DEFAULT_CORS.copy()
        return [x for x in out if isinstance(x, str) and x.strip()] or _DEFAULT_CORS.copy()
    return [x.strip() for x in s.split(",") if x.strip()] or _DEFAULT_CORS.copy()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # App
    env: str = Field(default="development", description="ENV")
    debug: bool = Field(default=False, description="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    secret_key: str = Field(default="change-me-in-production-min-32-chars")

    # MongoDB
    mongodb_uri: str = Field(default="mongodb://localhost:27017", alias="MONGODB_URI")
    mongodb_db_name: str = Field(default="docqa", alias="MONGODB_DB_NAME")
    mongodb_timeout_ms: int = Field(default=5000, alias="MONGODB_TIMEOUT_MS")

    # Google sign-in
    google_client_id: str = Field(default="", alias="GOOGLE_CLIENT_ID")

    # Retrieval (Ragie)
    ragie_api_key: str = Field(default="", alias="RAGIE_API_KEY")
    ragie_base_url: str = Field(default="https://api.ragie.ai", alias="RAGIE_BASE_URL")
    ragie_scope: str = Field(default="tutorial", alias="RAGIE_SCOPE")
    ragie_timeout_seconds: float = Field(default=30.0, alias="RAGIE_TIMEOUT_SECONDS")

    # LLM providers (all reached through OpenAI-compatible endpoints)
    openai_api_key: str = Field(default="", alias="OPENAI_API_KEY")
    google_api_key: str = Field(default="", alias="GOOGLE_API_KEY")
    mistral_api_key: str = Field(default="", alias="MISTRAL_API_KEY")
    anthropic_api_key: str = Field(default="", alias="ANTHROPIC_API_KEY")
    fireworks_api_key: str = Field(default="", alias="FIREWORKS_API_KEY")
    default_model: str = Field(default="gpt-4o", alias="DEFAULT_MODEL")

    # Stripe
    stripe_secret_key: str = Field(default="", alias="STRIPE_SECRET_KEY")
    stripe_publishable_key: str = Field(default="", alias="STRIPE_PUBLISHABLE_KEY")
    stripe_webhook_secret: str = Field(default="", alias="STRIPE_WEBHOOK_SECRET")
    stripe_currency: str = Field(default="usd", alias="STRIPE_CURRENCY")

    # Storage
    storage_backend: str = Field(default="local", alias="STORAGE_BACKEND")
    storage_local_path: str = Field(default="./uploads", alias="STORAGE_LOCAL_PATH")
    gcs_bucket_name: str | None = Field(default=None, alias="GCS_BUCKET_NAME")

    # Sentry
    sentry_dsn: str | None = Field(default=None, alias="SENTRY_DSN")

    # CORS: env as string, exposed as list
    cors_origins_raw: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        alias="CORS_ORIGINS",
        description="Comma-separated or JSON list",
    )

    @property
    def cors_origins(self) -> List[str]:
        return _parse_cors_origins(getattr(self, "cors_origins_raw", None))

    # Pricing (credits)
    default_credits: int = Field(default=1000, alias="DEFAULT_CREDITS")
    credits_per_question: int = Field(default=1, alias="CREDITS_PER_QUESTION")
    credits_per_currency_unit: int = Field(default=1, alias="CREDITS_PER_CURRENCY_UNIT")
    payment_bonus_credits: int = Field(default=1, alias="PAYMENT_BONUS_CREDITS")


@lru_cache
def get_settings() -> Settings:
    return Settings()
