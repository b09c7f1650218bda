"""Application settings loaded from environment variables."""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Medly server configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # Server
    # Loopback by default: there is no auth layer in front of the tools.
    medly_host: str = "127.0.0.1"
    medly_port: int = 8001
    medly_log_level: str = "info"
    medly_allow_insecure_bind: bool = False

    # Generation backend
    llm_provider: Literal["anthropic", "openai", "mock"] = "anthropic"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-5-20250929"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    llm_temperature: float = 0.3
    llm_max_tokens: int = 1000
    llm_max_retries: int = 3
    llm_retry_base_delay_s: float = 0.5

    # Storage
    db_path: str = "~/.medly/health.db"
    encryption_key: str = ""

    # Privacy
    default_privacy_mode: Literal["strict", "standard", "explicit"] = "standard"

    # Knowledge base ("" means the bundled pack)
    knowledge_pack_path: str = ""

    # Analysis windows
    pattern_analysis_days: int = 180
    max_pattern_logs: int = 500
    max_review_logs: int = 500
    max_chat_history: int = 20
    evidence_top_n: int = 8


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
