from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # OpenAI settings
    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-3.5-turbo"
    OPENAI_TIMEOUT_SECONDS: float = 30.0
    OPENAI_MAX_RETRIES: int = 3

    # Redis settings (in-memory stores are used when unset)
    REDIS_URL: str | None = None
    REDIS_MAX_CONNECTIONS: int = 20

    # Chat platform bot (reads guild history during sync)
    DISCORD_BOT_TOKEN: str | None = None

    # Deep links
    GMAIL_WEB_URL: str = "https://mail.google.com/mail/u"

    # =================================================================
    # SEARCH PIPELINE
    # =================================================================
    SEARCH_LIST_LIMIT: int = 50
    SEARCH_PER_ACCOUNT_LIMIT: int = 20
    RESPONSE_SOURCE_CAP: int = 5
    BODY_PREVIEW_CHARS: int = 1500
    MAX_CONCURRENT_PLATFORM_CALLS: int = 8
    MESSAGE_BUFFER_CAP: int = 1000

    # =================================================================
    # SIGNAL SCANNER
    # =================================================================
    SIGNAL_LOOKBACK_DAYS: int = 3
    SIGNAL_MAX_DOCUMENTS_PER_ACCOUNT: int = 10
    SIGNAL_BATCH_SIZE: int = 3
    SIGNAL_BATCH_DELAY_SECONDS: float = 0.2
    SIGNAL_ANALYSIS_TIMEOUT_SECONDS: float = 8.0
    SIGNAL_MIN_IMPORTANCE: int = 6
    SIGNAL_EXTRA_TARGET: int = 2

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def gmail_message_url(self, account_index: int, message_id: str) -> str:
        """Deep link into the web client for a given signed-in account slot."""
        base = self.GMAIL_WEB_URL.rstrip("/")
        return f"{base}/{account_index}/#inbox/{message_id}"


settings = Settings()

# =================================================================
# QUICK CONFIGURATION REFERENCE
# =================================================================
"""
Signal scanner cost knobs:

FAST (demo):
    SIGNAL_MAX_DOCUMENTS_PER_ACCOUNT: int = 5
    SIGNAL_ANALYSIS_TIMEOUT_SECONDS: float = 5.0

DEFAULT:
    SIGNAL_MAX_DOCUMENTS_PER_ACCOUNT: int = 10
    SIGNAL_ANALYSIS_TIMEOUT_SECONDS: float = 8.0

Raise SIGNAL_BATCH_DELAY_SECONDS if the language backend starts returning 429s.
"""
