"""Runtime settings for the passkey RP service."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServiceSettings(BaseSettings):
    """Settings read from ``PASSKEY_RP_*`` environment variables."""

    model_config = SettingsConfigDict(env_prefix="PASSKEY_RP_")

    host: str = Field(default="127.0.0.1", description="Interface the development server binds to")
    port: int = Field(default=8787, description="Port the development server listens on")
    log_level: str = Field(default="INFO", description="Root logging level")
    ceremony_timeout_ms: int = Field(
        default=60_000,
        description="Timeout advertised to the client in generated ceremony options",
    )
    challenge_ttl_seconds: float = Field(
        default=300.0,
        description="How long a spent challenge is remembered to block replays",
    )
    cors_origins: str = Field(
        default="*",
        description="Origins allowed to call the service cross-origin",
    )
