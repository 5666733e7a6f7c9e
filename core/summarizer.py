"""LLM calls with bounded retries using the Claude API.

``call_with_retry()`` wraps a single ``messages.create`` call:

- each attempt gets its own HTTP timeout (shrinking on later attempts), so a
  slow attempt is aborted rather than left running in the background;
- an overall deadline caps the sum of attempts and back-off sleeps;
- only server errors (5xx), timeouts and connection errors are retried;
- 429 / 402 and quota-style bodies fail immediately with a deliberately
  vague "maintenance" message for end users.

``Summarizer`` is the facade used by the web layer. The Anthropic client is
lazy-initialised so the class can be built in tests without a live API key.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import TYPE_CHECKING, Optional, Sequence

import anthropic

if TYPE_CHECKING:
    from config.settings import Settings

logger = logging.getLogger(__name__)

MAINTENANCE_MESSAGE = "Site under maintenance, bear with us and try again later"

DEFAULT_TIMEOUTS: tuple[float, ...] = (8.0, 6.0, 4.0)

#: Body fragments that indicate quota / billing trouble regardless of status.
_QUOTA_MARKERS: tuple[str, ...] = (
    "rate limit", "quota", "insufficient", "credit", "can only afford",
)


# ── Errors ─────────────────────────────────────────────────────────────────────


class UpstreamErrorKind(str, Enum):
    TIMEOUT = "timeout"
    SERVER_ERROR = "server_error"
    CLIENT_ERROR = "client_error"
    NETWORK_ERROR = "network_error"
    MALFORMED_RESPONSE = "malformed_response"


_PUBLIC_MESSAGES: dict[UpstreamErrorKind, str] = {
    UpstreamErrorKind.TIMEOUT: (
        "The AI service is taking longer than usual. We tried multiple times but "
        "it's still timing out. Try again in a moment or use shorter text."
    ),
    UpstreamErrorKind.NETWORK_ERROR: (
        "Network error - unable to connect to AI service. Please try again."
    ),
    UpstreamErrorKind.MALFORMED_RESPONSE: (
        "AI service returned an invalid response. Please try again."
    ),
}


class UpstreamError(Exception):
    """Raised when the LLM call fails after all eligible attempts."""

    def __init__(
        self,
        kind: UpstreamErrorKind,
        detail: str = "",
        status: Optional[int] = None,
        rate_limited: bool = False,
        attempts: int = 0,
    ) -> None:
        self.kind = kind
        self.detail = detail
        self.status = status
        self.rate_limited = rate_limited
        self.attempts = attempts
        super().__init__(f"{kind.value}: {detail}" if detail else kind.value)

    @property
    def public_message(self) -> str:
        """Message safe to show to end users."""
        if self.rate_limited:
            return MAINTENANCE_MESSAGE
        if self.kind in _PUBLIC_MESSAGES:
            return _PUBLIC_MESSAGES[self.kind]
        suffix = f" ({self.status})" if self.status else ""
        return f"AI service error{suffix}. Please try again."


def _is_quota_error(status: int, body: str) -> bool:
    if status in (402, 429):
        return True
    lowered = body.lower()
    return any(marker in lowered for marker in _QUOTA_MARKERS)


def _response_text(response: object) -> str:
    blocks = getattr(response, "content", None) or []
    return "".join(
        getattr(block, "text", "") or ""
        for block in blocks
        if getattr(block, "type", None) == "text"
    ).strip()


# ── Retry loop ─────────────────────────────────────────────────────────────────


def call_with_retry(
    client: anthropic.Anthropic,
    prompt: str,
    *,
    model: str,
    max_tokens: int,
    temperature: float,
    max_attempts: int = 3,
    timeouts: Sequence[float] = DEFAULT_TIMEOUTS,
    deadline: float = 20.0,
    server_backoff: float = 0.5,
    network_delay: float = 0.3,
) -> str:
    """Send *prompt* to the model, retrying transient failures.

    Args:
        client: An ``anthropic.Anthropic`` client built with ``max_retries=0``.
        prompt: The complete user prompt.
        model: Model id.
        max_tokens: Output token cap.
        temperature: Sampling temperature.
        max_attempts: Upper bound on attempts.
        timeouts: Per-attempt HTTP timeouts; the last one is reused. An empty
            sequence means ``DEFAULT_TIMEOUTS``.
        deadline: Wall-clock budget for all attempts and sleeps.
        server_backoff: 5xx retries sleep ``server_backoff * attempt ** 2``.
        network_delay: Fixed sleep before retrying a timeout/connection error.

    Returns:
        The response text.

    Raises:
        UpstreamError: On a non-retryable failure or once attempts/deadline
            are exhausted.
    """
    timeouts = tuple(timeouts) or DEFAULT_TIMEOUTS
    started = time.monotonic()
    last_error: Optional[UpstreamError] = None

    for attempt in range(1, max_attempts + 1):
        remaining = deadline - (time.monotonic() - started)
        if remaining <= 0:
            logger.warning("LLM deadline exhausted before attempt %d", attempt)
            break

        timeout = min(timeouts[min(attempt - 1, len(timeouts) - 1)], remaining)
        logger.info("LLM call attempt %d/%d (timeout=%.1fs)", attempt, max_attempts, timeout)

        delay = 0.0
        try:
            response = client.messages.create(
                model=model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=[{"role": "user", "content": prompt}],
                timeout=timeout,
            )
        except anthropic.APITimeoutError as exc:
            last_error = UpstreamError(UpstreamErrorKind.TIMEOUT, str(exc), attempts=attempt)
            delay = network_delay
        except anthropic.APIConnectionError as exc:
            last_error = UpstreamError(UpstreamErrorKind.NETWORK_ERROR, str(exc), attempts=attempt)
            delay = network_delay
        except anthropic.APIStatusError as exc:
            status = exc.status_code
            body = str(exc.body or exc.message or "")
            logger.error("LLM API error (attempt %d): %s %s", attempt, status, body[:300])
            if status >= 500:
                last_error = UpstreamError(
                    UpstreamErrorKind.SERVER_ERROR, body, status=status, attempts=attempt
                )
                delay = server_backoff * attempt * attempt
            else:
                raise UpstreamError(
                    UpstreamErrorKind.CLIENT_ERROR,
                    body,
                    status=status,
                    rate_limited=_is_quota_error(status, body),
                    attempts=attempt,
                ) from exc
        else:
            text = _response_text(response)
            if not text:
                raise UpstreamError(
                    UpstreamErrorKind.MALFORMED_RESPONSE,
                    "empty completion",
                    attempts=attempt,
                )
            return text

        logger.warning("Attempt %d failed: %s", attempt, last_error)
        if attempt == max_attempts:
            break
        if time.monotonic() - started + delay >= deadline:
            logger.warning("Not retrying: back-off would exceed the %.1fs deadline", deadline)
            break
        logger.info("Retrying in %.2fs...", delay)
        time.sleep(delay)

    if last_error is None:
        last_error = UpstreamError(UpstreamErrorKind.TIMEOUT, "deadline exhausted")
    raise last_error


# ── Summariser ─────────────────────────────────────────────────────────────────


class Summarizer:
    """Generates summaries and term explanations using the Claude API."""

    def __init__(self, settings: Settings) -> None:
        """Initialise the summariser.

        Args:
            settings: Application configuration.
        """
        self.settings = settings
        self._client: Optional[anthropic.Anthropic] = None

    @property
    def client(self) -> anthropic.Anthropic:
        """Lazy-initialise and return the Anthropic SDK client."""
        if self._client is None:
            # Retries are handled by call_with_retry, not the SDK.
            self._client = anthropic.Anthropic(
                api_key=self.settings.anthropic_api_key,
                max_retries=0,
            )
        return self._client

    def _call(self, prompt: str, *, model: str, max_tokens: int,
              temperature: float, max_attempts: int) -> str:
        s = self.settings
        return call_with_retry(
            self.client,
            prompt,
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            max_attempts=max_attempts,
            timeouts=s.llm_timeouts,
            deadline=s.llm_deadline,
            server_backoff=s.server_backoff,
            network_delay=s.network_retry_delay,
        )

    def summarize(self, prompt: str) -> str:
        """Return the raw model summary for a prompt built by ``build_prompt``."""
        s = self.settings
        return self._call(
            prompt,
            model=s.summary_model,
            max_tokens=s.summary_max_tokens,
            temperature=s.summary_temperature,
            max_attempts=s.summary_attempts,
        )

    def explain(self, prompt: str) -> str:
        """Return the raw model explanation for a prompt from ``build_explain_prompt``."""
        s = self.settings
        return self._call(
            prompt,
            model=s.explain_model,
            max_tokens=s.explain_max_tokens,
            temperature=s.explain_temperature,
            max_attempts=s.explain_attempts,
        )
