"""
Best-effort usage analytics.

Events are always appended to an in-memory store; when a Google Sheets
service account is configured they are also appended to a spreadsheet on a
background thread. Nothing in this module ever raises into a request handler.

Worksheets
──────────
ToneUsage          Date | Tone | Count | Last Updated
SiteVisits         Timestamp | Date | Hashed IP | Browser | Device Type | User Agent
DailySummary       Date | Total Visits | Last Updated
SummarizationLogs  Timestamp | Date | Tone | Length | Content Type | Status
"""

from __future__ import annotations

import hashlib
import logging
import re
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from core.models import (
    AnalyticsEvent,
    SiteVisitEvent,
    SummarizationEvent,
    ToneUsageEvent,
)

if TYPE_CHECKING:
    from config.settings import Settings

logger = logging.getLogger(__name__)

SHEET_HEADERS: dict[str, list[str]] = {
    "ToneUsage": ["Date", "Tone", "Count", "Last Updated"],
    "SiteVisits": ["Timestamp", "Date", "Hashed IP", "Browser", "Device Type", "User Agent"],
    "DailySummary": ["Date", "Total Visits", "Last Updated"],
    "SummarizationLogs": ["Timestamp", "Date", "Tone", "Length", "Content Type", "Status"],
}

#: Recent visits and summarisation logs kept in memory; totals are unbounded.
RECENT_EVENT_LIMIT = 1000

_MOBILE_RE = re.compile(r"Mobile|Android|iPhone|iPad", re.IGNORECASE)

#: Checked in order; Edge and Opera UAs also contain "Chrome".
_BROWSERS: list[tuple[str, re.Pattern[str]]] = [
    ("Edge", re.compile(r"Edg(?:e|A|iOS)?/", re.IGNORECASE)),
    ("Opera", re.compile(r"OPR/|Opera", re.IGNORECASE)),
    ("Chrome", re.compile(r"Chrome|CriOS", re.IGNORECASE)),
    ("Firefox", re.compile(r"Firefox|FxiOS", re.IGNORECASE)),
    ("Safari", re.compile(r"Safari", re.IGNORECASE)),
]


# ── Request helpers ────────────────────────────────────────────────────────────


def extract_browser(user_agent: str) -> str:
    for name, pattern in _BROWSERS:
        if pattern.search(user_agent or ""):
            return name
    return "Other"


def device_type(user_agent: str) -> str:
    return "Mobile" if _MOBILE_RE.search(user_agent or "") else "Desktop"


def hash_ip(ip: str) -> str:
    """One-way hash of a client IP; raw addresses are never stored."""
    if not ip:
        return "0"
    return hashlib.sha256(ip.encode("utf-8")).hexdigest()[:16]


def client_ip(headers: dict) -> str:
    """Pick the originating client IP from proxy headers."""
    forwarded = headers.get("X-Forwarded-For") or headers.get("x-forwarded-for") or ""
    if forwarded:
        return forwarded.split(",")[0].strip()
    return headers.get("X-Real-IP") or headers.get("x-real-ip") or ""


def site_visit_from_headers(headers: dict) -> SiteVisitEvent:
    user_agent = headers.get("User-Agent") or headers.get("user-agent") or ""
    return SiteVisitEvent(
        hashed_ip=hash_ip(client_ip(headers)),
        browser=extract_browser(user_agent),
        device_type=device_type(user_agent),
        user_agent=user_agent[:200],
    )


# ── In-memory store ────────────────────────────────────────────────────────────


class MemoryStore:
    """Process-local fallback store; lives as long as the app context.

    Request threads write while read routes aggregate, so every access goes
    through ``_lock``. Only the most recent ``recent_limit`` visits and logs
    are kept; totals are running counters.
    """

    def __init__(self, recent_limit: int = RECENT_EVENT_LIMIT) -> None:
        self._lock = threading.Lock()
        self.tone_usage: dict[str, dict[str, int]] = {}
        self.site_visits: deque[SiteVisitEvent] = deque(maxlen=recent_limit)
        self.daily_visits: dict[str, int] = {}
        self.summarization_logs: deque[SummarizationEvent] = deque(maxlen=recent_limit)
        self.total_summarizations = 0
        self.successful_summarizations = 0

    def add(self, event: AnalyticsEvent) -> None:
        with self._lock:
            if isinstance(event, ToneUsageEvent):
                per_day = self.tone_usage.setdefault(event.date, {})
                per_day[event.tone] = per_day.get(event.tone, 0) + 1
            elif isinstance(event, SiteVisitEvent):
                self.site_visits.append(event)
                self.daily_visits[event.date] = self.daily_visits.get(event.date, 0) + 1
            elif isinstance(event, SummarizationEvent):
                self.summarization_logs.append(event)
                self.total_summarizations += 1
                self.successful_summarizations += int(event.success)
            else:
                raise TypeError(f"Unsupported analytics event: {type(event).__name__}")

    def _tone_usage_snapshot(self) -> dict[str, dict[str, int]]:
        with self._lock:
            return {day: dict(tones) for day, tones in self.tone_usage.items()}

    @staticmethod
    def _totals(tone_usage: dict[str, dict[str, int]]) -> dict[str, int]:
        totals: dict[str, int] = {}
        for per_day in tone_usage.values():
            for tone, count in per_day.items():
                totals[tone] = totals.get(tone, 0) + count
        return dict(sorted(totals.items(), key=lambda kv: (-kv[1], kv[0])))

    def tone_totals(self) -> dict[str, int]:
        """Tone usage summed across all dates, most used first."""
        return self._totals(self._tone_usage_snapshot())

    def summary(self) -> dict:
        with self._lock:
            tone_usage = {day: dict(tones) for day, tones in self.tone_usage.items()}
            daily_visits = dict(self.daily_visits)
            total = self.total_summarizations
            successful = self.successful_summarizations
        return {
            "toneUsage": tone_usage,
            "toneTotals": self._totals(tone_usage),
            "totalVisits": sum(daily_visits.values()),
            "dailyVisits": daily_visits,
            "totalSummarizations": total,
            "successfulSummarizations": successful,
            "successRate": round(successful / total * 100) if total else 0,
            "lastUpdated": datetime.now(timezone.utc).isoformat(),
        }


# ── Google Sheets backend ──────────────────────────────────────────────────────


def event_rows(event: AnalyticsEvent, daily_visits: int = 0) -> list[tuple[str, list]]:
    """Map an event to ``(worksheet, row)`` pairs."""
    timestamp = event.timestamp.isoformat()
    if isinstance(event, ToneUsageEvent):
        return [("ToneUsage", [event.date, event.tone, 1, timestamp])]
    if isinstance(event, SiteVisitEvent):
        return [
            ("SiteVisits", [
                timestamp, event.date, event.hashed_ip, event.browser,
                event.device_type, event.user_agent,
            ]),
            ("DailySummary", [event.date, daily_visits, timestamp]),
        ]
    if isinstance(event, SummarizationEvent):
        return [
            ("SummarizationLogs", [
                timestamp, event.date, event.tone, event.length,
                event.content_type, event.status,
            ]),
        ]
    return []


class SheetsBackend:
    """Appends analytics rows to a Google spreadsheet via ``gspread``.

    The gspread client is lazy-initialised on first use.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._spreadsheet: object = None

    @property
    def spreadsheet(self):
        if self._spreadsheet is None:
            import gspread
            client = gspread.service_account_from_dict(self.settings.service_account_info())
            self._spreadsheet = client.open_by_key(self.settings.google_spreadsheet_id)
        return self._spreadsheet

    def worksheet(self, name: str, create: bool = False):
        import gspread
        try:
            return self.spreadsheet.worksheet(name)
        except gspread.exceptions.WorksheetNotFound:
            if not create:
                raise
            return self.spreadsheet.add_worksheet(
                title=name, rows=1000, cols=len(SHEET_HEADERS[name])
            )

    def append_row(self, sheet: str, values: list) -> None:
        self.worksheet(sheet).append_row(values, value_input_option="RAW")

    def ensure_headers(self) -> list[str]:
        """Create missing worksheets and header rows.

        Returns:
            Names of the worksheets whose header row was written.
        """
        written: list[str] = []
        for name, headers in SHEET_HEADERS.items():
            ws = self.worksheet(name, create=True)
            if ws.row_values(1) != headers:
                ws.update(range_name="A1", values=[headers])
                written.append(name)
        return written


# ── Sink ───────────────────────────────────────────────────────────────────────


class AnalyticsSink:
    """Fire-and-forget recording of usage events."""

    def __init__(
        self,
        store: Optional[MemoryStore] = None,
        backend: Optional[SheetsBackend] = None,
        executor: Optional[ThreadPoolExecutor] = None,
    ) -> None:
        self.store = store or MemoryStore()
        self.backend = backend
        self._executor = executor
        if backend is not None and executor is None:
            self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="analytics")

    @classmethod
    def from_settings(cls, settings: Settings) -> "AnalyticsSink":
        backend = SheetsBackend(settings) if settings.sheets_configured else None
        if backend is None:
            logger.info("Google Sheets not configured; analytics kept in memory only")
        return cls(backend=backend)

    def record(self, event: AnalyticsEvent) -> None:
        """Record *event*; failures are logged and swallowed."""
        try:
            self.store.add(event)
            if self.backend is None or self._executor is None:
                return
            rows = event_rows(event, self.store.daily_visits.get(event.date, 0))
            self._executor.submit(self._write_remote, rows)
        except Exception:
            logger.exception("Failed to record analytics event %s", type(event).__name__)

    def _write_remote(self, rows: list[tuple[str, list]]) -> None:
        for sheet, values in rows:
            try:
                self.backend.append_row(sheet, values)
            except Exception:
                logger.warning("Google Sheets logging failed for %s; kept in memory", sheet, exc_info=True)

    def summary(self) -> dict:
        return self.store.summary()

    def init_sheets(self) -> list[str]:
        """Ensure worksheet headers exist.

        Raises:
            RuntimeError: When no sheet backend is configured.
        """
        if self.backend is None:
            raise RuntimeError("Google Sheets is not configured")
        return self.backend.ensure_headers()

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
