"""Tests for core/summarizer.py — the bounded retry loop around the Claude API."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, call, patch

import anthropic
import httpx
import pytest

from core.summarizer import (
    MAINTENANCE_MESSAGE,
    Summarizer,
    UpstreamError,
    UpstreamErrorKind,
    call_with_retry,
)


# ── Fixtures ───────────────────────────────────────────────────────────────────

_REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


def status_error(status: int, body=None):
    """Build the SDK exception the client raises for *status*."""
    response = httpx.Response(status, request=_REQUEST)
    cls = {
        400: anthropic.BadRequestError,
        402: anthropic.APIStatusError,
        429: anthropic.RateLimitError,
        500: anthropic.InternalServerError,
        529: anthropic.InternalServerError,
    }.get(status, anthropic.APIStatusError)
    return cls(f"status {status}", response=response, body=body)


def reply(text: str):
    return SimpleNamespace(content=[SimpleNamespace(type="text", text=text)])


def make_client(*side_effect):
    client = MagicMock()
    client.messages.create.side_effect = list(side_effect)
    return client


def run(client, **overrides):
    kwargs = dict(model="claude-haiku-4-5", max_tokens=400, temperature=0.7)
    kwargs.update(overrides)
    return call_with_retry(client, "prompt", **kwargs)


def make_settings(**overrides):
    """Return a minimal Settings-like object for testing."""
    settings = MagicMock()
    settings.anthropic_api_key = "test-key"
    settings.summary_model = "claude-haiku-4-5"
    settings.explain_model = "claude-haiku-4-5"
    settings.summary_max_tokens = 400
    settings.explain_max_tokens = 300
    settings.summary_temperature = 0.7
    settings.explain_temperature = 0.8
    settings.summary_attempts = 3
    settings.explain_attempts = 2
    settings.llm_timeouts = (8.0, 6.0, 4.0)
    settings.llm_deadline = 20.0
    settings.server_backoff = 0.5
    settings.network_retry_delay = 0.3
    for k, v in overrides.items():
        setattr(settings, k, v)
    return settings


# ── call_with_retry ────────────────────────────────────────────────────────────


@patch("core.summarizer.time.sleep")
class TestCallWithRetry:
    def test_success_first_attempt(self, sleep):
        client = make_client(reply("  AI is getting better fast.  "))
        assert run(client) == "AI is getting better fast."
        assert client.messages.create.call_count == 1
        sleep.assert_not_called()

    def test_passes_prompt_and_model(self, sleep):
        client = make_client(reply("ok"))
        run(client)
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["model"] == "claude-haiku-4-5"
        assert kwargs["max_tokens"] == 400
        assert kwargs["messages"] == [{"role": "user", "content": "prompt"}]
        assert kwargs["timeout"] == 8.0

    def test_server_errors_then_success_uses_exactly_n_attempts(self, sleep):
        client = make_client(status_error(500), status_error(500), reply("done"))
        assert run(client, max_attempts=3) == "done"
        assert client.messages.create.call_count == 3
        # Quadratic back-off between attempts
        assert sleep.call_args_list == [call(0.5), call(2.0)]

    def test_per_attempt_timeouts_shrink(self, sleep):
        client = make_client(status_error(500), status_error(500), reply("done"))
        run(client, max_attempts=3)
        timeouts = [c.kwargs["timeout"] for c in client.messages.create.call_args_list]
        assert timeouts == [8.0, 6.0, 4.0]

    def test_last_timeout_reused_for_extra_attempts(self, sleep):
        client = make_client(*([status_error(500)] * 3), reply("done"))
        run(client, max_attempts=4, timeouts=(5.0, 2.0), server_backoff=0.0)
        timeouts = [c.kwargs["timeout"] for c in client.messages.create.call_args_list]
        assert timeouts == [5.0, 2.0, 2.0, 2.0]

    def test_empty_timeouts_use_defaults(self, sleep):
        client = make_client(reply("done"))
        assert run(client, timeouts=()) == "done"
        assert client.messages.create.call_args.kwargs["timeout"] == 8.0

    def test_server_errors_exhaust_attempts(self, sleep):
        client = make_client(*([status_error(529)] * 3))
        with pytest.raises(UpstreamError) as exc_info:
            run(client, max_attempts=3)
        err = exc_info.value
        assert err.kind is UpstreamErrorKind.SERVER_ERROR
        assert err.status == 529
        assert err.attempts == 3
        assert client.messages.create.call_count == 3

    def test_rate_limit_fails_after_single_attempt(self, sleep):
        client = make_client(status_error(429), reply("never"))
        with pytest.raises(UpstreamError) as exc_info:
            run(client, max_attempts=3)
        err = exc_info.value
        assert err.kind is UpstreamErrorKind.CLIENT_ERROR
        assert err.rate_limited is True
        assert err.public_message == MAINTENANCE_MESSAGE
        assert client.messages.create.call_count == 1
        sleep.assert_not_called()

    def test_payment_required_is_rate_limited(self, sleep):
        client = make_client(status_error(402))
        with pytest.raises(UpstreamError) as exc_info:
            run(client)
        assert exc_info.value.rate_limited is True

    def test_quota_body_marks_rate_limited(self, sleep):
        body = {"error": {"message": "Your credit balance is too low"}}
        client = make_client(status_error(400, body=body))
        with pytest.raises(UpstreamError) as exc_info:
            run(client)
        assert exc_info.value.rate_limited is True
        assert exc_info.value.public_message == MAINTENANCE_MESSAGE

    def test_plain_client_error_not_retried(self, sleep):
        client = make_client(status_error(400, body={"error": {"message": "bad prompt"}}))
        with pytest.raises(UpstreamError) as exc_info:
            run(client)
        err = exc_info.value
        assert err.kind is UpstreamErrorKind.CLIENT_ERROR
        assert err.rate_limited is False
        assert err.status == 400
        assert "400" in err.public_message
        assert client.messages.create.call_count == 1

    def test_timeout_is_retried(self, sleep):
        client = make_client(anthropic.APITimeoutError(request=_REQUEST), reply("late"))
        assert run(client) == "late"
        assert client.messages.create.call_count == 2
        sleep.assert_called_once_with(0.3)

    def test_repeated_timeouts_raise_timeout(self, sleep):
        client = make_client(*[anthropic.APITimeoutError(request=_REQUEST)] * 2)
        with pytest.raises(UpstreamError) as exc_info:
            run(client, max_attempts=2)
        assert exc_info.value.kind is UpstreamErrorKind.TIMEOUT

    def test_connection_error_is_retried(self, sleep):
        client = make_client(anthropic.APIConnectionError(request=_REQUEST), reply("back"))
        assert run(client) == "back"
        assert client.messages.create.call_count == 2

    def test_repeated_connection_errors_raise_network_error(self, sleep):
        client = make_client(*[anthropic.APIConnectionError(request=_REQUEST)] * 2)
        with pytest.raises(UpstreamError) as exc_info:
            run(client, max_attempts=2)
        assert exc_info.value.kind is UpstreamErrorKind.NETWORK_ERROR

    def test_empty_completion_is_malformed(self, sleep):
        client = make_client(SimpleNamespace(content=[]))
        with pytest.raises(UpstreamError) as exc_info:
            run(client)
        assert exc_info.value.kind is UpstreamErrorKind.MALFORMED_RESPONSE
        assert client.messages.create.call_count == 1

    def test_non_text_blocks_ignored(self, sleep):
        response = SimpleNamespace(content=[
            SimpleNamespace(type="thinking", text="hmm"),
            SimpleNamespace(type="text", text="Answer."),
        ])
        assert run(make_client(response)) == "Answer."

    def test_exhausted_deadline_makes_no_call(self, sleep):
        client = make_client(reply("never"))
        with pytest.raises(UpstreamError) as exc_info:
            run(client, deadline=0)
        assert exc_info.value.kind is UpstreamErrorKind.TIMEOUT
        client.messages.create.assert_not_called()

    def test_backoff_past_deadline_stops_retrying(self, sleep):
        client = make_client(status_error(500), reply("never"))
        with pytest.raises(UpstreamError):
            run(client, deadline=1.0, server_backoff=5.0)
        assert client.messages.create.call_count == 1
        sleep.assert_not_called()


# ── UpstreamError ──────────────────────────────────────────────────────────────


class TestUpstreamError:
    def test_timeout_message(self):
        assert "timing out" in UpstreamError(UpstreamErrorKind.TIMEOUT).public_message

    def test_server_error_message_includes_status(self):
        err = UpstreamError(UpstreamErrorKind.SERVER_ERROR, "boom", status=503)
        assert err.public_message == "AI service error (503). Please try again."

    def test_detail_not_in_public_message(self):
        err = UpstreamError(UpstreamErrorKind.SERVER_ERROR, "secret stack trace", status=500)
        assert "secret" not in err.public_message
        assert "secret" in str(err)


# ── Summarizer facade ──────────────────────────────────────────────────────────


class TestSummarizer:
    def test_client_is_lazy(self):
        s = Summarizer(make_settings())
        assert s._client is None

    @patch("core.summarizer.anthropic.Anthropic")
    def test_client_built_without_sdk_retries(self, mock_cls):
        s = Summarizer(make_settings())
        assert s.client is mock_cls.return_value
        mock_cls.assert_called_once_with(api_key="test-key", max_retries=0)
        # Cached on second access
        assert s.client is mock_cls.return_value
        assert mock_cls.call_count == 1

    def test_summarize_uses_summary_settings(self):
        s = Summarizer(make_settings(summary_model="model-a"))
        s._client = make_client(reply("Summary text."))
        assert s.summarize("p") == "Summary text."
        kwargs = s._client.messages.create.call_args.kwargs
        assert kwargs["model"] == "model-a"
        assert kwargs["max_tokens"] == 400
        assert kwargs["temperature"] == 0.7

    @patch("core.summarizer.time.sleep")
    def test_explain_uses_explain_attempts(self, sleep):
        s = Summarizer(make_settings(explain_model="model-b"))
        s._client = make_client(status_error(500), status_error(500), reply("late"))
        with pytest.raises(UpstreamError):
            s.explain("p")
        assert s._client.messages.create.call_count == 2
        assert s._client.messages.create.call_args.kwargs["model"] == "model-b"
