# ─────────────────────────────────────────────────────────────────────────────
# Settings — Pydantic v2 BaseSettings
# ─────────────────────────────────────────────────────────────────────────────


from functools import lru_cache

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Server configuration sourced from environment variables.

    Uses pydantic-settings v2 (separate package from pydantic).
    """

    model_config = SettingsConfigDict(env_prefix="", env_file=".env", protected_namespaces=())

    # ── Upstream ─────────────────────────────────────────────────────────────
    # SecretStr prevents the key from leaking into logs, repr(), or
    # model_dump(). Access via settings.openai_api_key.get_secret_value().
    # Empty string = unconfigured; caption requests answer 500.
    openai_api_key: SecretStr = SecretStr("")
    openai_base_url: str = ""  # empty = SDK default endpoint
    model: str = "gpt-4o-mini"
    moderation_model: str = "omni-moderation-latest"
    upstream_timeout_seconds: float = 60.0

    # ── Security ─────────────────────────────────────────────────────────────
    # Comma-separated origins for CORS (e.g. "https://app.example.com,http://localhost:3000").
    # Empty string = deny all cross-origin requests (secure default).
    allowed_origins: str = ""

    # Outer HTTP-layer limit on the caption endpoint (slowapi format).
    rate_limit: str = "60/minute"

    # Per-identity caption quota, fixed window (limits format, e.g. "10/hour").
    caption_rate_limit: str = "10/hour"

    # ── Limits ───────────────────────────────────────────────────────────────
    max_input_text_length: int = 2000

    # False = only the first moderation result gates the request.
    moderate_all_images: bool = False

    # ── Logging + tracing ────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool = True
    otel_exporter: str = ""  # "console", "otlp", or empty for no tracing

    @property
    def upstream_configured(self) -> bool:
        return bool(self.openai_api_key.get_secret_value())

    @property
    def cors_origins(self) -> list[str]:
        """ALLOWED_ORIGINS split on commas. Empty means deny all."""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()
