"""Application configuration via pydantic-settings.

Reads from .env file or environment variables. All settings are validated
at startup — if a setting has the wrong type, the app fails fast with a
clear error message.

Usage:
    from aetherlock.config import get_settings
    settings = get_settings()
    print(settings.database_url)
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """Central configuration for the AetherLock coordination core."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = True
    app_log_level: str = "DEBUG"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    frontend_url: str = "http://localhost:5173"

    # --- Database ---
    # When use_database is False every store lives in process memory.
    use_database: bool = True
    database_url: str = (
        "postgresql+asyncpg://aetherlock:aetherlock_dev"
        "@localhost:5432/aetherlock"
    )
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_timeout: int = 30
    db_echo_sql: bool = False

    # --- Redis ---
    redis_url: str = "redis://localhost:6379/0"
    redis_idempotency_ttl_seconds: int = 86400  # 24 hours

    # --- Verification providers (LiteLLM model strings, tried in order) ---
    # "mock" selects the offline MockAssessmentProvider.
    verification_models: str = (
        "gemini/gemini-1.5-flash,"
        "anthropic/claude-3-5-sonnet-20241022,"
        "gpt-4"
    )
    provider_timeout_seconds: float = 30.0
    llm_max_tokens: int = 2048
    llm_temperature: float = 0.0
    gemini_api_key: str = ""
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    # 0 means a failed verification can be retried without limit.
    max_verification_attempts: int = 0
    auto_verify_on_submit: bool = True

    # --- Evidence storage (Pinata pinning service) ---
    use_pinata: bool = False
    pinata_jwt: str = ""
    pinata_api_url: str = "https://api.pinata.cloud"
    pinata_gateway: str = "gateway.pinata.cloud"
    storage_max_attempts: int = 3
    storage_retry_base_seconds: float = 1.0
    storage_timeout_seconds: float = 30.0
    storage_max_file_bytes: int = 100 * 1024 * 1024

    # --- Chain settlement ---
    settlement_simulate: bool = True
    settlement_chain: str = "solana-devnet"
    settlement_token_contract: str = ""
    cdp_api_key_id: str = ""
    cdp_api_key_secret: str = ""
    cdp_wallet_secret: str = ""
    cdp_network_id: str = "base-sepolia"
    escrow_wallet_address: str = ""

    # --- Chat / realtime ---
    chat_max_length: int = 5000
    chat_history_limit: int = 50
    typing_timeout_seconds: float = 3.0

    # --- Lifecycle policy ---
    cancellable_statuses: str = "PENDING"

    # --- Auth ---
    # Accept any well-formed wallet token without a real signature check.
    # Never enable outside development.
    auth_allow_unverified: bool = True

    # --- MCP ---
    mcp_enabled: bool = True

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def verification_model_list(self) -> list[str]:
        """Parse comma-separated provider models into an ordered list."""
        return _split_csv(self.verification_models)

    @property
    def cancellable_status_list(self) -> list[str]:
        return [s.upper() for s in _split_csv(self.cancellable_statuses)]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton of the application settings."""
    return Settings()
