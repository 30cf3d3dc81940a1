"""
Configuration for the Workflow Engine
"""

from functools import lru_cache
from typing import Any, Dict

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """
    Workflow Engine configuration settings
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
    )

    # Credential codec
    credential_encryption_key: str = Field(
        default="",
        description="Secret for credential field encryption; 32 bytes are used raw, anything else is stretched",
        validation_alias=AliasChoices(
            "CREDENTIAL_ENCRYPTION_KEY", "ENCRYPTION_KEY", "credential_encryption_key"
        ),
    )
    credential_key_salt: str = Field(
        default="workflow-credential-codec",
        description="PBKDF2 salt used when the key is not exactly 32 bytes",
        validation_alias=AliasChoices("CREDENTIAL_KEY_SALT", "credential_key_salt"),
    )

    # Outbound HTTP
    http_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout for node HTTP calls",
        validation_alias=AliasChoices("HTTP_TIMEOUT_SECONDS", "http_timeout_seconds"),
    )
    telegram_api_base: str = Field(default="https://api.telegram.org", description="Telegram Bot API base")
    slack_api_base: str = Field(default="https://slack.com/api", description="Slack Web API base")
    openai_api_base: str = Field(
        default="https://api.openai.com/v1",
        description="OpenAI API base",
        validation_alias=AliasChoices("OPENAI_API_BASE", "openai_api_base"),
    )
    gemini_api_base: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Gemini API base",
        validation_alias=AliasChoices("GEMINI_API_BASE", "gemini_api_base"),
    )
    openai_default_model: str = Field(default="gpt-4o", description="Model used when a node sets none")
    gemini_default_model: str = Field(default="gemini-1.5-flash", description="Model used when a node sets none")

    # SMTP Configuration (gmail_send nodes)
    smtp_host: str = Field(default="smtp.gmail.com", description="SMTP host")
    smtp_port: int = Field(default=465, description="SMTP port")
    smtp_username: str = Field(
        default="",
        description="SMTP username",
        validation_alias=AliasChoices("SMTP_USERNAME", "smtp_username"),
    )
    smtp_password: str = Field(
        default="",
        description="SMTP password",
        validation_alias=AliasChoices("SMTP_PASSWORD", "smtp_password"),
    )
    smtp_use_ssl: bool = Field(default=True, description="Use SSL for SMTP")
    smtp_sender_email: str = Field(default="", description="SMTP sender email")
    smtp_timeout: int = Field(default=30, description="SMTP timeout in seconds")

    # Node limits
    max_wait_seconds: float = Field(
        default=3600.0,
        description="Upper bound for a single wait node",
        validation_alias=AliasChoices("MAX_WAIT_SECONDS", "max_wait_seconds"),
    )
    default_batch_size: int = Field(default=10, description="splitInBatches size when a node sets none")
    max_code_length: int = Field(default=10000, description="Largest accepted code node source")
    code_timeout_seconds: float = Field(
        default=5.0,
        description="Wall-clock limit for a single code node snippet",
        validation_alias=AliasChoices("CODE_TIMEOUT_SECONDS", "code_timeout_seconds"),
    )

    def get_smtp_config(self) -> Dict[str, Any]:
        """Get SMTP configuration"""
        return {
            "host": self.smtp_host,
            "port": self.smtp_port,
            "username": self.smtp_username,
            "password": self.smtp_password,
            "use_ssl": self.smtp_use_ssl,
            "sender_email": self.smtp_sender_email or self.smtp_username,
            "timeout": self.smtp_timeout,
        }


@lru_cache()
def get_engine_settings() -> EngineSettings:
    """Get settings instance (cached)"""
    return EngineSettings()


__all__ = ["EngineSettings", "get_engine_settings"]
