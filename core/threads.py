"""Thread fetching from the X/Twitter v2 read API.

Flow
────
1. extract_status_id(url)      → numeric status id, or FetchError
2. GET /2/tweets/{id}          → root post text (short timeout)
3. GET /2/tweets/search/recent → other posts in the same conversation,
                                 oldest first, rendered "1. …", "2. …"
4. If step 3 fails or finds nothing, the root post text alone is returned.

Timeouts are deliberately short: the whole request, including the LLM call,
has to finish well inside a serverless execution ceiling.
"""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Optional

import requests

logger = logging.getLogger(__name__)

API_BASE = "https://api.twitter.com/2"

_STATUS_ID_RE = re.compile(
    r"https?://(?:www\.)?(?:twitter|x)\.com/[^/\s]+/status/(\d+)"
)


class FetchErrorReason(str, Enum):
    INVALID_URL_FORMAT = "invalid_url_format"
    AUTH_FAILED = "auth_failed"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    UNCONFIGURED = "unconfigured"
    UNKNOWN = "unknown"


_REASON_MESSAGES: dict[FetchErrorReason, str] = {
    FetchErrorReason.INVALID_URL_FORMAT: "Invalid thread URL format.",
    FetchErrorReason.AUTH_FAILED: "Twitter API authentication failed. Please check your API credentials.",
    FetchErrorReason.FORBIDDEN: "Tweet is private, protected, or access is forbidden.",
    FetchErrorReason.NOT_FOUND: "Tweet not found or has been deleted.",
    FetchErrorReason.RATE_LIMITED: "Twitter API rate limit exceeded. Please try again later.",
    FetchErrorReason.TIMEOUT: "Twitter API took too long to respond.",
    FetchErrorReason.UNCONFIGURED: "Thread fetching is not configured on this server.",
    FetchErrorReason.UNKNOWN: "Unable to fetch the thread. The link may be private, deleted, or require authentication.",
}

_STATUS_REASONS: dict[int, FetchErrorReason] = {
    401: FetchErrorReason.AUTH_FAILED,
    403: FetchErrorReason.FORBIDDEN,
    404: FetchErrorReason.NOT_FOUND,
    429: FetchErrorReason.RATE_LIMITED,
}


class FetchError(Exception):
    """Raised when a thread cannot be fetched."""

    def __init__(
        self,
        reason: FetchErrorReason,
        message: Optional[str] = None,
        status: Optional[int] = None,
    ) -> None:
        self.reason = reason
        self.status = status
        self.message = message or _REASON_MESSAGES[reason]
        super().__init__(self.message)


# ── Helpers ────────────────────────────────────────────────────────────────────


def extract_status_id(url: str) -> str:
    """Return the numeric status id embedded in a thread URL.

    Raises:
        FetchError: ``INVALID_URL_FORMAT`` when no numeric id is present.

    Examples:
        >>> extract_status_id("https://x.com/jack/status/20")
        '20'
    """
    match = _STATUS_ID_RE.search((url or "").strip())
    if not match:
        raise FetchError(FetchErrorReason.INVALID_URL_FORMAT)
    return match.group(1)


def truncate_text(text: str, limit: int) -> str:
    """Cut *text* to *limit* characters, marking the cut with ``...``."""
    if limit and len(text) > limit:
        return text[:limit] + "..."
    return text


def render_conversation(tweets: list[dict]) -> str:
    """Render posts oldest-first as a numbered, blank-line separated list."""
    ordered = sorted(tweets, key=lambda t: t.get("created_at") or "")
    return "\n\n".join(
        f"{i}. {t.get('text', '')}" for i, t in enumerate(ordered, start=1)
    )


# ── Fetcher ────────────────────────────────────────────────────────────────────


class ThreadFetcher:
    """Reads threads from the X API with a bearer token.

    The ``requests.Session`` is injectable so tests can substitute a mock.
    """

    def __init__(
        self,
        bearer_token: str,
        session: Optional[requests.Session] = None,
        root_timeout: float = 3.0,
        conversation_timeout: float = 2.0,
    ) -> None:
        self.bearer_token = bearer_token
        self.session = session or requests.Session()
        self.root_timeout = root_timeout
        self.conversation_timeout = conversation_timeout

    def _headers(self) -> dict[str, str]:
        if not self.bearer_token:
            raise FetchError(FetchErrorReason.UNCONFIGURED)
        return {"Authorization": f"Bearer {self.bearer_token}"}

    def _fetch_root(self, status_id: str) -> dict:
        try:
            resp = self.session.get(
                f"{API_BASE}/tweets/{status_id}",
                headers=self._headers(),
                params={
                    "tweet.fields": "text,created_at,conversation_id,author_id",
                    "expansions": "author_id",
                },
                timeout=self.root_timeout,
            )
        except requests.Timeout as exc:
            logger.warning("Root tweet %s timed out: %s", status_id, exc)
            raise FetchError(FetchErrorReason.TIMEOUT) from exc
        except requests.RequestException as exc:
            logger.warning("Root tweet %s request error: %s", status_id, exc)
            raise FetchError(FetchErrorReason.UNKNOWN) from exc

        if resp.status_code != 200:
            logger.warning(
                "Root tweet %s non-200: %s %s",
                status_id, resp.status_code, resp.text[:200],
            )
            reason = _STATUS_REASONS.get(resp.status_code, FetchErrorReason.UNKNOWN)
            message = None
            if reason is FetchErrorReason.UNKNOWN:
                message = (
                    f"Twitter API error ({resp.status_code}). The link may be "
                    "private, deleted, or require authentication."
                )
            raise FetchError(reason, message, status=resp.status_code)

        try:
            data = resp.json().get("data") or {}
        except ValueError as exc:
            raise FetchError(FetchErrorReason.UNKNOWN) from exc

        if not data.get("text"):
            raise FetchError(FetchErrorReason.NOT_FOUND)
        return data

    def _fetch_conversation(self, conversation_id: str) -> list[dict]:
        resp = self.session.get(
            f"{API_BASE}/tweets/search/recent",
            headers=self._headers(),
            params={
                "query": f"conversation_id:{conversation_id}",
                "tweet.fields": "text,created_at,author_id",
                "max_results": 100,
            },
            timeout=self.conversation_timeout,
        )
        resp.raise_for_status()
        return resp.json().get("data") or []

    def fetch_thread(self, url: str) -> str:
        """Fetch the text of the thread at *url*.

        Args:
            url: A ``twitter.com`` or ``x.com`` status URL.

        Returns:
            The numbered conversation, or just the root post when the
            conversation lookup fails or is empty.

        Raises:
            FetchError: When the id cannot be parsed, no token is configured,
                or the root post cannot be read.
        """
        status_id = extract_status_id(url)
        self._headers()  # fail fast when unconfigured

        root = self._fetch_root(status_id)
        conversation_id = root.get("conversation_id") or status_id

        try:
            tweets = self._fetch_conversation(conversation_id)
        except (requests.RequestException, ValueError) as exc:
            logger.info("Thread search failed for %s, using root post only: %s", status_id, exc)
            return root["text"]

        if not tweets:
            return root["text"]
        return render_conversation(tweets)

    def fetch_many(self, urls: list[str], max_count: int = 3) -> str:
        """Fetch up to *max_count* threads and label each one.

        Raises:
            FetchError: Only when every attempted URL failed.
        """
        contents: list[str] = []
        errors: list[str] = []

        for url in urls[:max_count]:
            try:
                text = self.fetch_thread(url)
            except FetchError as exc:
                logger.warning("Failed to fetch content from %s: %s", url, exc)
                errors.append(f"{url}: {exc.message}")
                continue
            contents.append(f"--- Content from {url} ---\n{text}")

        if not contents:
            raise FetchError(
                FetchErrorReason.UNKNOWN,
                "Could not fetch content from any of the provided thread URLs. "
                f"Errors: {'; '.join(errors)}",
            )

        if errors:
            contents.append("--- Errors fetching some URLs ---\n" + "\n".join(errors))
        return "\n\n".join(contents)
