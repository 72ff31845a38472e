import logging

from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # AI providers; a provider is enabled iff its key is set
    groq_api_key: str = ""
    google_ai_api_key: str = ""
    huggingface_api_key: str = ""
    together_api_key: str = ""
    cohere_api_key: str = ""

    # Provider call parameters
    provider_timeout_seconds: float = 10.0
    provider_max_tokens: int = 500
    provider_temperature: float = 0.7

    # Chat endpoint
    chat_rate_limit: int = 15  # requests per window per client (raised for free-tier APIs)
    chat_rate_window_seconds: float = 60.0
    chat_max_message_length: int = 1000
    chat_history_limit: int = 4  # prior turns forwarded to the provider

    # App
    app_env: str = "development"
    app_debug: bool = True
    app_host: str = "0.0.0.0"
    app_port: int = 3001

    # CORS
    allowed_origins: str = "*"  # comma-separated, e.g. "https://app.example.com,https://admin.example.com"

    # Logging
    log_level: str = "INFO"
    log_json: bool = False  # set True in production for structured JSON logs

    # Sentry
    sentry_dsn: str = ""  # leave empty to disable

    @property
    def configured_providers(self) -> list[str]:
        """Settings attribute names of the provider keys that are set."""
        keys = ("groq_api_key", "google_ai_api_key", "huggingface_api_key", "together_api_key", "cohere_api_key")
        return [k for k in keys if getattr(self, k).strip()]


settings = Settings()


def validate_settings_for_production() -> None:
    """Validate critical settings. Called on startup in non-test environments."""
    errors: list[str] = []

    if settings.chat_rate_limit < 1:
        errors.append("CHAT_RATE_LIMIT must be at least 1")

    if settings.chat_rate_window_seconds <= 0:
        errors.append("CHAT_RATE_WINDOW_SECONDS must be positive")

    if settings.provider_timeout_seconds <= 0:
        errors.append("PROVIDER_TIMEOUT_SECONDS must be positive")

    if settings.app_env == "production":
        if settings.allowed_origins == "*":
            errors.append("ALLOWED_ORIGINS must not be '*' in production")
        if settings.app_debug:
            errors.append("APP_DEBUG must be false in production")

    if errors:
        raise SystemExit("Configuration errors:\n  - " + "\n  - ".join(errors))

    # Not fatal: the service runs and reports it via /api/chatbot/health
    if not settings.configured_providers:
        logger.warning(
            "No AI provider keys set (GROQ_API_KEY, GOOGLE_AI_API_KEY, HUGGINGFACE_API_KEY, "
            "TOGETHER_API_KEY, COHERE_API_KEY); chatbot will answer 500"
        )
