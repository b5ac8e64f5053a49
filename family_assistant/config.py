"""
Family Assistant — Centralized configuration.

Loads all settings from .env and validates required keys.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from family_assistant/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Telegram
    TELEGRAM_BOT_TOKEN: str

    # LLM — provider-agnostic (openai, anthropic, gemini, cohere)
    LLM_PROVIDER: str = "openai"
    LLM_MODEL: str = ""          # empty → smart default per provider
    LLM_API_KEY: str

    # Audio — OpenAI Whisper (transcription only)
    OPENAI_API_KEY: str = ""

    # SQLite
    DATABASE_PATH: str = "data/family.db"

    # Locale
    TIMEZONE: str = "Europe/Rome"
    DEFAULT_LANGUAGE: str = "it"

    # Chat turn
    CHAT_MAX_TOKENS: int = 2048
    CHAT_HISTORY_LIMIT: int = 20
    CHAT_RATE_LIMIT: int = 20
    CHAT_RATE_WINDOW_SECONDS: int = 60
    RATE_LIMIT_STORAGE_URI: str = "async+memory://"   # e.g. async+redis://localhost:6379

    # Action execution
    AUDIT_DETAILS_MAX_CHARS: int = 5000
    PURCHASE_DESCRIPTION_MAX_CHARS: int = 200

    @field_validator(
        "CHAT_MAX_TOKENS",
        "CHAT_HISTORY_LIMIT",
        "CHAT_RATE_LIMIT",
        "CHAT_RATE_WINDOW_SECONDS",
        "AUDIT_DETAILS_MAX_CHARS",
        "PURCHASE_DESCRIPTION_MAX_CHARS",
        mode="before",
    )
    @classmethod
    def parse_positive_int(cls, v: str | int) -> int:
        value = int(v)
        if value <= 0:
            raise ValueError(f"must be a positive integer, got {value}")
        return value

    @field_validator("DEFAULT_LANGUAGE", mode="before")
    @classmethod
    def parse_language(cls, v: str) -> str:
        return (v or "it").strip().lower()


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    token = os.getenv("TELEGRAM_BOT_TOKEN", "")
    llm_api_key = os.getenv("LLM_API_KEY", "")

    if not token or token.startswith("your-"):
        print("ERROR: TELEGRAM_BOT_TOKEN is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    if not llm_api_key or llm_api_key.startswith("your-"):
        print("ERROR: LLM_API_KEY is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    return Settings(
        TELEGRAM_BOT_TOKEN=token,
        LLM_PROVIDER=os.getenv("LLM_PROVIDER", "openai"),
        LLM_MODEL=os.getenv("LLM_MODEL", ""),
        LLM_API_KEY=llm_api_key,
        OPENAI_API_KEY=os.getenv("OPENAI_API_KEY", ""),
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/family.db"),
        TIMEZONE=os.getenv("TIMEZONE", "Europe/Rome"),
        DEFAULT_LANGUAGE=os.getenv("DEFAULT_LANGUAGE", "it"),
        CHAT_MAX_TOKENS=os.getenv("CHAT_MAX_TOKENS", "2048"),
        CHAT_HISTORY_LIMIT=os.getenv("CHAT_HISTORY_LIMIT", "20"),
        CHAT_RATE_LIMIT=os.getenv("CHAT_RATE_LIMIT", "20"),
        CHAT_RATE_WINDOW_SECONDS=os.getenv("CHAT_RATE_WINDOW_SECONDS", "60"),
        RATE_LIMIT_STORAGE_URI=os.getenv("RATE_LIMIT_STORAGE_URI", "async+memory://"),
        AUDIT_DETAILS_MAX_CHARS=os.getenv("AUDIT_DETAILS_MAX_CHARS", "5000"),
        PURCHASE_DESCRIPTION_MAX_CHARS=os.getenv("PURCHASE_DESCRIPTION_MAX_CHARS", "200"),
    )


# Singleton — imported by all other modules as:
#   from family_assistant.config import settings
settings = _load_settings()
