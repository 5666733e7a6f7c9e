"""Application settings — all configuration loaded from environment variables.

Usage:
    from config.settings import Settings
    settings = Settings()
    settings.validate()   # raises ValueError naming every missing credential
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field


#: Per-attempt LLM timeouts used when ``LLM_TIMEOUTS`` is unset or empty.
DEFAULT_LLM_TIMEOUTS: tuple[float, ...] = (8.0, 6.0, 4.0)


def _float_list(raw: str) -> tuple[float, ...]:
    """Parse a comma-separated list of seconds, e.g. ``"8,6,4"``.

    A list with no values falls back to ``DEFAULT_LLM_TIMEOUTS``.
    """
    return tuple(float(part) for part in raw.split(",") if part.strip()) or DEFAULT_LLM_TIMEOUTS


@dataclass
class Settings:
    """Centralised application configuration.

    All values are read from environment variables at instantiation time
    so that tests can override them by patching ``os.environ``.
    """

    # ── API Keys ────────────────────────────────────────────────────────────
    anthropic_api_key: str = field(
        default_factory=lambda: os.environ.get("ANTHROPIC_API_KEY", "")
    )
    twitter_bearer_token: str = field(
        default_factory=lambda: os.environ.get("TWITTER_BEARER_TOKEN", "")
    )

    # ── Flask ───────────────────────────────────────────────────────────────
    debug: bool = field(
        default_factory=lambda: os.environ.get("FLASK_DEBUG", "0") == "1"
    )
    port: int = field(
        default_factory=lambda: int(os.environ.get("PORT", "3000"))
    )

    # ── Thread fetching ─────────────────────────────────────────────────────
    max_thread_chars: int = field(
        default_factory=lambda: int(os.environ.get("MAX_THREAD_CHARS", "8000"))
    )
    max_fetch_urls: int = field(
        default_factory=lambda: int(os.environ.get("MAX_FETCH_URLS", "3"))
    )
    #: Timeout for the root tweet lookup (seconds).
    fetch_timeout: float = 3.0
    #: Timeout for the conversation search (seconds).
    conversation_timeout: float = 2.0

    # ── AI Models ───────────────────────────────────────────────────────────
    summary_model: str = field(
        default_factory=lambda: os.environ.get("SUMMARY_MODEL", "claude-haiku-4-5")
    )
    explain_model: str = field(
        default_factory=lambda: os.environ.get("EXPLAIN_MODEL", "claude-haiku-4-5")
    )
    summary_max_tokens: int = 400
    explain_max_tokens: int = 300
    summary_temperature: float = 0.7
    explain_temperature: float = 0.8
    summary_attempts: int = 3
    explain_attempts: int = 2

    # ── Retry budget ────────────────────────────────────────────────────────
    #: Per-attempt timeouts; the last value is reused for extra attempts.
    llm_timeouts: tuple[float, ...] = field(
        default_factory=lambda: _float_list(os.environ.get("LLM_TIMEOUTS", ""))
    )
    #: Wall-clock budget for all attempts of a single request.
    llm_deadline: float = field(
        default_factory=lambda: float(os.environ.get("LLM_DEADLINE", "20"))
    )
    #: Server errors back off ``server_backoff * attempt ** 2`` seconds.
    server_backoff: float = 0.5
    #: Fixed pause before retrying a timeout or connection error.
    network_retry_delay: float = 0.3

    # ── Analytics sheet (optional) ──────────────────────────────────────────
    google_spreadsheet_id: str = field(
        default_factory=lambda: os.environ.get("GOOGLE_SPREADSHEET_ID", "")
    )
    google_project_id: str = field(
        default_factory=lambda: os.environ.get("GOOGLE_PROJECT_ID", "")
    )
    google_private_key_id: str = field(
        default_factory=lambda: os.environ.get("GOOGLE_PRIVATE_KEY_ID", "")
    )
    google_private_key: str = field(
        default_factory=lambda: os.environ.get("GOOGLE_PRIVATE_KEY", "")
    )
    google_client_email: str = field(
        default_factory=lambda: os.environ.get("GOOGLE_CLIENT_EMAIL", "")
    )
    google_client_id: str = field(
        default_factory=lambda: os.environ.get("GOOGLE_CLIENT_ID", "")
    )

    @property
    def sheets_configured(self) -> bool:
        """True when enough service-account fields exist to reach the sheet."""
        return bool(
            self.google_spreadsheet_id
            and self.google_private_key
            and self.google_client_email
        )

    def service_account_info(self) -> dict:
        """Build the service-account dict expected by ``gspread``."""
        return {
            "type": "service_account",
            "project_id": self.google_project_id,
            "private_key_id": self.google_private_key_id,
            # Keys pasted into env files usually carry literal "\n" sequences.
            "private_key": self.google_private_key.replace("\\n", "\n"),
            "client_email": self.google_client_email,
            "client_id": self.google_client_id,
            "token_uri": "https://oauth2.googleapis.com/token",
        }

    def missing_required(self) -> list[str]:
        """Return the names of required environment variables that are unset."""
        required = {
            "ANTHROPIC_API_KEY": self.anthropic_api_key,
            "TWITTER_BEARER_TOKEN": self.twitter_bearer_token,
        }
        return [name for name, value in required.items() if not value]

    def validate(self) -> None:
        """Raise ``ValueError`` if any required setting is missing."""
        missing = self.missing_required()
        if missing:
            raise ValueError(
                "Missing required environment variables: "
                + ", ".join(missing)
                + ". Copy .env.example to .env and add your keys."
            )
