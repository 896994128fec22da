"""Application settings and configuration helpers."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Strongly-typed configuration sourced from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    app_name: str = Field(default="Shopbot Commerce Engine", description="Human-readable service name.")
    environment: str = Field(default="local", description="Deployment environment identifier.")
    log_level: str = Field(default="INFO", description="Application log level.")

    sqlite_path: Path = Field(
        default=Path("db/shopbot.db"),
        description="Conversation and cart DB path.",
    )
    catalog_path: Path = Field(
        default=Path("db/catalog.json"),
        description="JSON file used to seed the in-memory catalog.",
    )

    conversation_timeout_seconds: int = Field(
        default=1800,
        ge=1,
        description="Inactivity after which an active conversation is timed out.",
    )
    history_limit: int = Field(
        default=10,
        ge=1,
        description="Number of transition records kept per conversation.",
    )
    cart_expiry_hours: int = Field(
        default=72,
        ge=1,
        description="Inactivity window after which an active cart expires.",
    )
    max_transition_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts made when the conversation row changed underneath a transition.",
    )
    unknown_guard_policy: Literal["allow", "deny"] = Field(
        default="allow",
        description="Outcome of a guard name that nothing registered.",
    )
    strict_registry: bool = Field(
        default=False,
        description="Fail at startup when a rule references an unregistered guard or action.",
    )
    lazy_timeout: bool = Field(
        default=True,
        description="Apply the inactivity timeout whenever a conversation is loaded.",
    )
    sweep_interval_seconds: int = Field(
        default=60,
        ge=0,
        description="Cadence of the background timeout sweep. 0 disables it.",
    )

    payment_link_ttl_seconds: int = Field(
        default=900,
        ge=1,
        description="Delay before a generated payment link is expired.",
    )
    handoff_escalation_seconds: int = Field(
        default=300,
        ge=1,
        description="Delay before an unanswered human handoff is escalated.",
    )
    payment_link_base_url: str = Field(
        default="https://pay.example.com/checkout",
        description="Base URL used by the static payment link gateway.",
    )
    currency: str = Field(default="USD", description="Currency label used in customer messages.")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings instance."""

    return Settings()
