"""Application configuration using Pydantic settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = False
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    # Twilio (WhatsApp + SMS)
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_whatsapp_number: str = ""
    twilio_sms_number: str = ""

    # Telegram
    telegram_api_base: str = "https://api.telegram.org"

    # Meta Graph API (Facebook Messenger + Instagram Direct)
    meta_graph_api_base: str = "https://graph.facebook.com/v18.0"

    # SMTP
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_use_tls: bool = True

    # Channel HTTP client
    channel_request_timeout_seconds: float = 15.0

    # LLM Providers
    openai_api_key: str = ""
    google_api_key: str = ""
    anthropic_api_key: str = ""

    # LiteLLM
    litellm_primary_model: str = "gpt-3.5-turbo"
    litellm_fallback_model: str = "gemini/gemini-1.5-flash"

    # Firestore
    firestore_emulator_host: str | None = None
    gcp_project_id: str = ""

    # AWS Comprehend
    aws_access_key_id: str = ""
    aws_secret_access_key: str = ""
    aws_region: str = "us-east-1"

    # Security
    secret_key: str = Field(default="development-secret-key-change-in-production")
    agent_token_ttl_seconds: int = 12 * 3600

    # Logging
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "json"

    # Routing
    # Must outlast a full bot turn (AI timeout plus the channel send)
    routing_lock_timeout_seconds: float = 60.0
    business_timezone: str = "America/Sao_Paulo"
    business_weekdays: list[int] = Field(default_factory=lambda: [0, 1, 2, 3, 4])
    business_open_hour: int = 9
    business_close_hour: int = 18

    # Chatbot
    chatbot_context_messages: int = 10
    chatbot_max_tokens: int = 500
    chatbot_temperature: float = 0.7
    ai_timeout_seconds: float = 20.0
    chatbot_fallback_reply: str = (
        "Desculpe, estou com dificuldades técnicas. "
        "Vou transferir você para um de nossos atendentes."
    )
    chatbot_handoff_message: str = (
        "Vou transferir você para um de nossos atendentes. Aguarde um momento, por favor."
    )
    escalation_keywords: list[str] = Field(
        default_factory=lambda: [
            "transferir",
            "atendente",
            "humano",
            "supervisor",
            "gerente",
            "reclamação",
            "urgente",
            "problema grave",
            "agent",
            "human",
            "complaint",
            "urgent",
        ]
    )

    # Handoff triggers
    handoff_sentiment_threshold: float = -0.5

    # Campaigns
    campaign_batch_size: int = 10
    campaign_message_delay_seconds: float = 2.0
    campaign_batch_delay_seconds: float = 30.0
    campaign_rate_limit_backoff: float = 2.0
    campaign_sweep_interval_seconds: float = 60.0

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
