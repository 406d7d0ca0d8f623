"""Application settings — all configuration loaded from environment variables.

Usage:
    from config.settings import Settings
    settings = Settings()
    settings.validate()   # raises ValueError if the provider needs a missing key
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

#: Providers that call a remote API and therefore need ``ANTHROPIC_API_KEY``.
_KEYED_PROVIDERS: frozenset[str] = frozenset(["anthropic", "claude"])


@dataclass
class Settings:
    """Centralised application configuration.

    All values are read from environment variables at instantiation time
    so that tests can override them by patching ``os.environ``.
    """

    # ── Provider ────────────────────────────────────────────────────────────
    llm_provider: str = field(
        default_factory=lambda: os.environ.get("LLM_PROVIDER", "").strip() or "mock"
    )
    anthropic_api_key: str = field(
        default_factory=lambda: os.environ.get("ANTHROPIC_API_KEY", "")
    )
    llm_model: str = field(
        default_factory=lambda: os.environ.get("LLM_MODEL", "claude-haiku-4-5")
    )
    max_tokens: int = field(
        default_factory=lambda: int(os.environ.get("LLM_MAX_TOKENS", "500"))
    )

    # ── Mock provider ───────────────────────────────────────────────────────
    mock_failure_rate: float = field(
        default_factory=lambda: float(os.environ.get("MOCK_FAILURE_RATE", "0.1"))
    )
    mock_delay_ms: int = field(
        default_factory=lambda: int(os.environ.get("MOCK_DELAY_MS", "100"))
    )

    # ── Storage ─────────────────────────────────────────────────────────────
    db_path: str = field(
        default_factory=lambda: os.environ.get("DB_PATH", "./data/knowledge.db")
    )

    # ── Pipeline ────────────────────────────────────────────────────────────
    #: Number of locally extracted keywords stored per record.
    keyword_count: int = field(
        default_factory=lambda: int(os.environ.get("KEYWORD_COUNT", "3"))
    )
    #: Provider timeout (seconds) for the single-item path.
    request_timeout: float = field(
        default_factory=lambda: float(os.environ.get("REQUEST_TIMEOUT", "45"))
    )
    #: Provider timeout (seconds) for each item of a batch.
    item_timeout: float = field(
        default_factory=lambda: float(os.environ.get("ITEM_TIMEOUT", "30"))
    )

    # ── Flask ───────────────────────────────────────────────────────────────
    debug: bool = field(
        default_factory=lambda: os.environ.get("FLASK_DEBUG", "0") == "1"
    )
    port: int = field(
        default_factory=lambda: int(os.environ.get("PORT", "8080"))
    )

    def validate(self) -> None:
        """Raise ``ValueError`` if any required setting is missing."""
        if self.llm_provider.lower() in _KEYED_PROVIDERS and not self.anthropic_api_key:
            raise ValueError(
                "ANTHROPIC_API_KEY environment variable is not set. "
                "Set it or choose LLM_PROVIDER=mock."
            )
        if not 0.0 <= self.mock_failure_rate <= 1.0:
            raise ValueError("MOCK_FAILURE_RATE must be between 0 and 1.")
