"""
Application Configuration - Pydantic Settings for type-safe config.

NO DICTIONARIES - All configuration is strongly typed.
FAIL FAST - Critical config is validated at startup.
"""

import sys
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SYSTEM_PROMPT = (
    "You are an attentive relationship advisor. Read the conversation, "
    "including any screenshots or voice notes the user shares, and point out "
    "warning signs and healthy patterns honestly. Reply in Markdown."
)


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration - NO DEFAULT for production safety
    database_url: str = ""
    database_read_url: str | None = None  # Optional read replica
    database_pool_size: int = 25
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_pool_recycle: int = 3600

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8080
    api_title: str = "ChatGate API"
    api_version: str = "0.1.0"
    api_description: str = "Credit-gated multi-modal chat backend for the mobile app"
    auto_migrate: bool = True  # Apply pending Alembic migrations at startup

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Metrics
    metrics_enabled: bool = True

    # Observability - Tracing
    tracing_enabled: bool = True
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "chatgate-api"
    environment: str = "production"
    trace_sample_rate: float = 1.0  # 1.0 = 100% sampling

    # Model provider (OpenAI-compatible)
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o"
    openai_transcription_model: str = "whisper-1"
    openai_timeout_seconds: float = 60.0

    # Object storage (Supabase)
    supabase_url: str = ""
    supabase_service_role: str = ""
    supabase_bucket_name: str = ""  # Image bucket
    supabase_voice_bucket_name: str = "redflagged-voices"
    signed_url_expires_seconds: int = 3600

    # Billing provider (RevenueCat)
    revenue_cat_api_key: str = ""
    revenue_cat_base_url: str = "https://api.revenuecat.com"
    revenue_cat_webhook_token: str = ""
    store_product_prefix: str = "com.40apps.redflagged."

    # Entitlement policy
    free_messages_per_user: int = 5

    # Conversation
    system_prompt_path: str = ".prompt"
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    default_chat_title: str = "New Chat"
    chat_title_max_length: int = 50

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration at startup.

        The app MUST NOT start if critical config is missing.
        """
        errors: list[str] = []

        if not self.database_url:
            errors.append("DATABASE_URL is required but empty or missing")
        elif not self.database_url.startswith(("postgresql", "postgres")):
            errors.append(
                f"DATABASE_URL must be a PostgreSQL URL, got: {self.database_url[:20]}..."
            )

        if self.free_messages_per_user < 0:
            errors.append("FREE_MESSAGES_PER_USER cannot be negative")

        if errors:
            error_msg = "\n".join(
                [
                    "",
                    "=" * 60,
                    "CRITICAL CONFIGURATION ERROR - APPLICATION CANNOT START",
                    "=" * 60,
                    *[f"  ✗ {e}" for e in errors],
                    "=" * 60,
                    "",
                ]
            )
            print(error_msg, file=sys.stderr)
            raise ConfigurationError(error_msg)

        return self

    @property
    def read_database_url(self) -> str:
        """Get read database URL (fallback to primary if no replica)."""
        return self.database_read_url or self.database_url

    def load_system_prompt(self) -> str:
        """
        Get the conversation instructions inserted as the first message of every chat.

        The prompt file wins when present; otherwise the configured text is used.
        """
        path = Path(self.system_prompt_path)
        if path.is_file():
            content = path.read_text(encoding="utf-8").strip()
            if content:
                return content
        return self.system_prompt


# Global settings instance - validates at import time
settings = Settings()


def get_settings() -> Settings:
    """Get application settings instance."""
    return settings
