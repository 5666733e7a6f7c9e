"""
Pydantic models shared across the Thread Summarizer core.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

#: Hard cap on pasted text; the fetcher/prompt path truncates further.
MAX_RAW_TEXT_LEN = 100_000
MAX_OPTION_LEN = 64
MAX_TERM_LEN = 200


# ── Requests ───────────────────────────────────────────────────────────────


class SummarizeRequest(BaseModel):
    """Body of ``POST /summarize``.

    ``length`` and ``tone`` are free-form: unknown values flow into the
    prompt verbatim instead of being rejected.
    """

    model_config = ConfigDict(populate_by_name=True)

    thread_url: Optional[str] = Field(default=None, alias="threadUrl", max_length=2048)
    raw_text: Optional[str] = Field(default=None, alias="rawText", max_length=MAX_RAW_TEXT_LEN)
    length: str = Field(default="3 sentences", max_length=MAX_OPTION_LEN)
    tone: str = Field(default="simple", max_length=MAX_OPTION_LEN)

    @property
    def has_input(self) -> bool:
        return bool((self.thread_url or "").strip() or (self.raw_text or "").strip())


class ExplainRequest(BaseModel):
    """Body of ``POST /crypto-explain``."""

    term: str = Field(default="", max_length=MAX_TERM_LEN)


# ── Content analysis ───────────────────────────────────────────────────────


@dataclass
class ContentAnalysis:
    """Advisory summary of input text, fed into the prompt builder."""

    content_type: str = "general"
    complexity: str = "low"
    names: list[str] = field(default_factory=list)
    numbers: list[str] = field(default_factory=list)
    technical_terms: list[str] = field(default_factory=list)
    main_points: list[str] = field(default_factory=list)

    @property
    def has_details(self) -> bool:
        """True when there is anything worth telling the model to preserve."""
        return bool(self.names or self.numbers or self.technical_terms)


# ── Analytics events ───────────────────────────────────────────────────────


def _now() -> datetime:
    return datetime.now(timezone.utc)


class AnalyticsEvent(BaseModel):
    """Base for append-only usage events; ``date`` is the aggregation key."""

    timestamp: datetime = Field(default_factory=_now)

    @property
    def date(self) -> str:
        return self.timestamp.date().isoformat()


class ToneUsageEvent(AnalyticsEvent):
    tone: str


class SiteVisitEvent(AnalyticsEvent):
    hashed_ip: str
    browser: str
    device_type: str
    user_agent: str = ""


class SummarizationEvent(AnalyticsEvent):
    tone: str
    length: str
    content_type: str
    success: bool = True

    @property
    def status(self) -> str:
        return "Success" if self.success else "Failed"
