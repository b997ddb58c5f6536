"""Application configuration using Pydantic settings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Chat completion service
    api_token: str = Field(
        ..., alias="OPENAI_API_KEY",
        description="Static bearer token sent in the Authorization header of every request.",
    )
    endpoint: str = Field(
        "https://api.openai.com/v1/chat/completions", alias="CHAT_ENDPOINT",
        description="Full URL of the chat-completion endpoint requests are POSTed to.",
    )
    model_name: str = Field(
        "gpt-3.5-turbo", alias="CHAT_MODEL",
        description="Model identifier sent with each completion request.",
    )
    system_message: str = Field(
        "You are a helpful AI assistant.", alias="CHAT_SYSTEM_MESSAGE",
        description="System prompt prepended to every request. Never stored in the conversation.",
    )
    temperature: float | None = Field(
        None, alias="CHAT_TEMPERATURE",
        description="Sampling temperature between 0 and 2. Unset = service default.",
    )
    max_tokens: int | None = Field(
        None, alias="CHAT_MAX_TOKENS",
        description="Upper bound on generated tokens per answer. Unset = service default.",
    )
    timeout: float = Field(
        60.0, alias="CHAT_TIMEOUT",
        description="HTTP timeout in seconds. Also bounds how long a stalled streaming read can block.",
    )

    # Logging
    log_level: str = Field(
        "INFO", alias="LOG_LEVEL",
        description="Logging level: DEBUG, INFO, WARNING, ERROR, or CRITICAL.",
    )
    log_file: str = Field(
        "", alias="LOG_FILE",
        description="Path to log file for file-based logging with rotation. Empty = console only.",
    )
    log_file_max_bytes: int = Field(
        10_485_760, alias="LOG_FILE_MAX_BYTES",
        description="Max size in bytes per log file before rotation. Default: 10 MB.",
    )
    log_file_backup_count: int = Field(
        5, alias="LOG_FILE_BACKUP_COUNT",
        description="Number of rotated backup log files to keep.",
    )

    def sampling_options(self) -> dict:
        """Optional request parameters that are set in the environment."""
        options = {}
        if self.temperature is not None:
            options["temperature"] = self.temperature
        if self.max_tokens is not None:
            options["max_tokens"] = self.max_tokens
        return options


def get_settings() -> Settings:
    """Get application settings."""
    return Settings()
