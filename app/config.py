# app/config.py
from dataclasses import dataclass
from typing import Literal
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # App
    APP_ENV: Literal["dev", "prod", "staging"] = "dev"
    PORT: int = 3000

    # OpenAI
    OPENAI_API_KEY: str = ""
    OPENAI_MODEL: str = "gpt-3.5-turbo"
    OPENAI_MAX_TOKENS: int = 150
    OPENAI_TEMPERATURE: float = 0.8

    # Twilio
    TWILIO_ACCOUNT_SID: str = ""
    TWILIO_AUTH_TOKEN: str = ""
    TWILIO_PHONE_NUMBER: str = ""
    VALIDATE_TWILIO_SIGNATURE: bool = True

    # State store windows
    ACTIVE_USER_TIMEOUT_MINUTES: int = 30
    CONVERSATION_CLEANUP_HOURS: int = 24
    CACHE_EXPIRY_HOURS: int = 1
    RATE_LIMIT_WINDOW_MS: int = 5000
    MAX_COMMANDS_PER_WINDOW: int = 1
    MAX_MESSAGES_IN_HISTORY: int = 10
    CLEANUP_INTERVAL_MINUTES: int = 60

    # Timeouts
    RESPONSE_TIMEOUT_SECONDS: float = 10.0
    DELIVERY_TIMEOUT_SECONDS: float = 10.0

    # read .env and ignore any extra keys so this doesn't break again
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@dataclass(frozen=True)
class StoreConfig:
    """Store windows in seconds."""

    active_ttl: float = 30 * 60
    conversation_ttl: float = 24 * 60 * 60
    cache_ttl: float = 60 * 60
    rate_window: float = 5.0
    rate_cap: int = 1
    history_cap: int = 10
    sweep_interval: float = 60 * 60

    @classmethod
    def from_settings(cls, s: "Settings") -> "StoreConfig":
        return cls(
            active_ttl=s.ACTIVE_USER_TIMEOUT_MINUTES * 60,
            conversation_ttl=s.CONVERSATION_CLEANUP_HOURS * 60 * 60,
            cache_ttl=s.CACHE_EXPIRY_HOURS * 60 * 60,
            rate_window=s.RATE_LIMIT_WINDOW_MS / 1000.0,
            rate_cap=s.MAX_COMMANDS_PER_WINDOW,
            history_cap=s.MAX_MESSAGES_IN_HISTORY,
            sweep_interval=s.CLEANUP_INTERVAL_MINUTES * 60,
        )


# Character voice for user-facing fallbacks
ERROR_MESSAGES = {
    "UNKNOWN_COMMAND": "I can roast people, play truth or dare, give advice, summarize convos, or play 'most likely to' - what sounds fun? 🤖",
    "EMPTY_MESSAGE": "Did you mean to text me? Try 'buddi roast [name]' or 'buddi truth or dare' 😅",
    "API_FAILURE": "My brain is buffering... try again in a sec 🤖",
    "RATE_LIMIT": "Chill, let me catch up! ⚡",
    "NO_HISTORY": "I just got here, catch me up! 👋",
}

settings = Settings()
