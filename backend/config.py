"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No replication logic
- No protocol constants (see spec.py)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from spec import BROADCAST_CHANNEL_NAME


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup.
    Passed downward to the server and session controller bootstrap.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str
    log_level: str

    # ------------------------------------------------------------------
    # Broadcast medium
    # ------------------------------------------------------------------

    broadcast_backend: str
    broadcast_channel: str
    redis_url: str

    # ------------------------------------------------------------------
    # Durable stats store
    # ------------------------------------------------------------------

    # None means "keep stats in memory only"
    stats_path: str | None

    # ------------------------------------------------------------------
    # LLM configuration
    # ------------------------------------------------------------------

    llm_provider: str
    llm_model: str
    openai_api_key: str | None
    groq_api_key: str | None

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    enable_json_logs: bool

    # ------------------------------------------------------------------
    # Derived
    # ------------------------------------------------------------------

    @property
    def llm_api_key(self) -> str | None:
        """API key for the selected LLM provider."""
        if self.llm_provider.lower() == "groq":
            return self.groq_api_key
        return self.openai_api_key

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Raises:
            ValueError if BROADCAST_BACKEND names an unknown backend.
        """
        backend = os.environ.get("BROADCAST_BACKEND", "local").lower()
        if backend not in ("local", "redis"):
            raise ValueError(f"Unknown BROADCAST_BACKEND: {backend}")

        return AppConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),

            broadcast_backend=backend,
            broadcast_channel=os.environ.get("BROADCAST_CHANNEL", BROADCAST_CHANNEL_NAME),
            redis_url=os.environ.get("REDIS_URL", "redis://127.0.0.1:6379/0"),

            stats_path=os.environ.get("STATS_PATH", "./coffee_break_stats.json") or None,

            llm_provider=os.environ.get("LLM_PROVIDER", "openai"),
            llm_model=os.environ.get("LLM_MODEL", "gpt-4o-mini"),
            openai_api_key=os.environ.get("OPENAI_API_KEY"),
            groq_api_key=os.environ.get("GROQ_API_KEY"),

            enable_json_logs=os.environ.get("ENABLE_JSON_LOGS", "1") == "1",
        )
