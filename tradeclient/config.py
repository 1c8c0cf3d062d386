from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APCA_API_KEY_ID: str | None = None
    APCA_API_SECRET_KEY: str | None = None
    APCA_PAPER: bool = True
    APCA_DATA_FEED: str = "iex"
    CRYPTO_FEED: str = "us"


    DRY_RUN: bool = False
    ORDER_CLIENT_PREFIX: str = "tradeclient"


    DISCORD_WEBHOOK_URL: str | None = None
    NOTIFY_TIMEOUT_SEC: float = 5.0


    BARS_CACHE_TTL_MS: int = 60_000
    BARS_CACHE_MAX_ENTRIES: int = 512
    FILL_SETTLE_TIMEOUT_SEC: float = 2.0
    FILL_POLL_INTERVAL_SEC: float = 0.25


    RUNTIME_LOG_PATH: str = "logs/runtime.log"
    DEBUG_LOG_PATH: str = "bot-debug.txt"
    LOG_LEVEL: str = "INFO"


    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


    @field_validator("APCA_DATA_FEED")
    @classmethod
    def _feed(cls, v: str) -> str:
        allowed = {"iex", "sip"}
        if v.lower() not in allowed:
            raise ValueError("APCA_DATA_FEED must be 'iex' or 'sip'")
        return v.lower()


    @field_validator("LOG_LEVEL")
    @classmethod
    def _level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        if v.upper() not in allowed:
            raise ValueError("LOG_LEVEL must be one of DEBUG/INFO/WARNING/ERROR")
        return v.upper()


settings = Settings()
