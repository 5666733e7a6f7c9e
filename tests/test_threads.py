"""Tests for core/threads.py — X API thread fetching."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from core.threads import (
    FetchError,
    FetchErrorReason,
    ThreadFetcher,
    extract_status_id,
    render_conversation,
    truncate_text,
)


# ── Fixtures ───────────────────────────────────────────────────────────────────


def make_response(status: int = 200, payload=None, text: str = ""):
    resp = MagicMock()
    resp.status_code = status
    resp.text = text
    resp.json.return_value = payload if payload is not None else {}
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status} error")
    else:
        resp.raise_for_status.return_value = None
    return resp


def root_payload(text: str = "Root post", conversation_id: str = "123"):
    return {"data": {"id": "123", "text": text, "conversation_id": conversation_id}}


def make_fetcher(*responses, token: str = "bearer-token"):
    session = MagicMock()
    session.get.side_effect = list(responses)
    return ThreadFetcher(token, session=session), session


URL = "https://x.com/alice/status/123"


# ── Helpers ────────────────────────────────────────────────────────────────────


class TestExtractStatusId:
    def test_x_url(self):
        assert extract_status_id(URL) == "123"

    def test_twitter_url_with_query(self):
        assert extract_status_id("https://twitter.com/bob/status/987?s=20") == "987"

    def test_non_numeric_id_rejected(self):
        with pytest.raises(FetchError) as exc_info:
            extract_status_id("https://x.com/u/status/notanumber")
        assert exc_info.value.reason is FetchErrorReason.INVALID_URL_FORMAT

    def test_other_host_rejected(self):
        with pytest.raises(FetchError):
            extract_status_id("https://example.com/u/status/1")


class TestTruncateText:
    def test_short_text_unchanged(self):
        assert truncate_text("abc", 10) == "abc"

    def test_long_text_cut_with_marker(self):
        assert truncate_text("abcdef", 3) == "abc..."


class TestRenderConversation:
    def test_sorted_oldest_first_and_numbered(self):
        tweets = [
            {"text": "second", "created_at": "2024-01-01T00:00:02Z"},
            {"text": "first", "created_at": "2024-01-01T00:00:01Z"},
        ]
        assert render_conversation(tweets) == "1. first\n\n2. second"


# ── ThreadFetcher.fetch_thread ─────────────────────────────────────────────────


class TestFetchThread:
    def test_returns_rendered_conversation(self):
        conversation = {"data": [
            {"text": "part two", "created_at": "2024-01-01T00:00:02Z"},
            {"text": "part one", "created_at": "2024-01-01T00:00:01Z"},
        ]}
        fetcher, session = make_fetcher(
            make_response(payload=root_payload()),
            make_response(payload=conversation),
        )
        assert fetcher.fetch_thread(URL) == "1. part one\n\n2. part two"

        root_call, search_call = session.get.call_args_list
        assert root_call.args[0].endswith("/tweets/123")
        assert root_call.kwargs["headers"] == {"Authorization": "Bearer bearer-token"}
        assert search_call.kwargs["params"]["query"] == "conversation_id:123"
        assert search_call.kwargs["timeout"] == 2.0

    def test_empty_conversation_falls_back_to_root(self):
        fetcher, _ = make_fetcher(
            make_response(payload=root_payload("Only the root")),
            make_response(payload={"meta": {"result_count": 0}}),
        )
        assert fetcher.fetch_thread(URL) == "Only the root"

    def test_search_failure_falls_back_to_root(self):
        fetcher, _ = make_fetcher(
            make_response(payload=root_payload("Only the root")),
            make_response(status=500),
        )
        assert fetcher.fetch_thread(URL) == "Only the root"

    def test_search_timeout_falls_back_to_root(self):
        fetcher, _ = make_fetcher(
            make_response(payload=root_payload("Only the root")),
            requests.Timeout("slow"),
        )
        assert fetcher.fetch_thread(URL) == "Only the root"

    @pytest.mark.parametrize("status,reason", [
        (401, FetchErrorReason.AUTH_FAILED),
        (403, FetchErrorReason.FORBIDDEN),
        (404, FetchErrorReason.NOT_FOUND),
        (429, FetchErrorReason.RATE_LIMITED),
        (503, FetchErrorReason.UNKNOWN),
    ])
    def test_root_status_mapping(self, status, reason):
        fetcher, _ = make_fetcher(make_response(status=status))
        with pytest.raises(FetchError) as exc_info:
            fetcher.fetch_thread(URL)
        assert exc_info.value.reason is reason
        assert exc_info.value.status == status

    def test_unknown_status_message_names_code(self):
        fetcher, _ = make_fetcher(make_response(status=418))
        with pytest.raises(FetchError) as exc_info:
            fetcher.fetch_thread(URL)
        assert "418" in exc_info.value.message

    def test_root_timeout(self):
        fetcher, _ = make_fetcher(requests.Timeout("slow"))
        with pytest.raises(FetchError) as exc_info:
            fetcher.fetch_thread(URL)
        assert exc_info.value.reason is FetchErrorReason.TIMEOUT

    def test_root_connection_error(self):
        fetcher, _ = make_fetcher(requests.ConnectionError("down"))
        with pytest.raises(FetchError) as exc_info:
            fetcher.fetch_thread(URL)
        assert exc_info.value.reason is FetchErrorReason.UNKNOWN

    def test_root_without_text_is_not_found(self):
        fetcher, _ = make_fetcher(make_response(payload={"errors": [{"title": "Not Found"}]}))
        with pytest.raises(FetchError) as exc_info:
            fetcher.fetch_thread(URL)
        assert exc_info.value.reason is FetchErrorReason.NOT_FOUND

    def test_missing_token_makes_no_request(self):
        fetcher, session = make_fetcher(token="")
        with pytest.raises(FetchError) as exc_info:
            fetcher.fetch_thread(URL)
        assert exc_info.value.reason is FetchErrorReason.UNCONFIGURED
        session.get.assert_not_called()

    def test_invalid_url_makes_no_request(self):
        fetcher, session = make_fetcher()
        with pytest.raises(FetchError):
            fetcher.fetch_thread("https://x.com/u/status/notanumber")
        session.get.assert_not_called()


# ── ThreadFetcher.fetch_many ───────────────────────────────────────────────────


class TestFetchMany:
    def test_labels_each_thread(self):
        fetcher = ThreadFetcher("t", session=MagicMock())
        fetcher.fetch_thread = MagicMock(side_effect=["one", "two"])
        out = fetcher.fetch_many(["https://x.com/a/status/1", "https://x.com/b/status/2"])
        assert out == (
            "--- Content from https://x.com/a/status/1 ---\none\n\n"
            "--- Content from https://x.com/b/status/2 ---\ntwo"
        )

    def test_respects_max_count(self):
        fetcher = ThreadFetcher("t", session=MagicMock())
        fetcher.fetch_thread = MagicMock(return_value="text")
        urls = [f"https://x.com/a/status/{i}" for i in range(5)]
        fetcher.fetch_many(urls, max_count=3)
        assert fetcher.fetch_thread.call_count == 3

    def test_partial_failure_lists_errors(self):
        fetcher = ThreadFetcher("t", session=MagicMock())
        fetcher.fetch_thread = MagicMock(side_effect=[
            "good", FetchError(FetchErrorReason.NOT_FOUND),
        ])
        out = fetcher.fetch_many(["https://x.com/a/status/1", "https://x.com/b/status/2"])
        assert "--- Content from https://x.com/a/status/1 ---\ngood" in out
        assert "--- Errors fetching some URLs ---" in out
        assert "https://x.com/b/status/2: Tweet not found" in out

    def test_all_failures_raise(self):
        fetcher = ThreadFetcher("t", session=MagicMock())
        fetcher.fetch_thread = MagicMock(side_effect=FetchError(FetchErrorReason.FORBIDDEN))
        with pytest.raises(FetchError) as exc_info:
            fetcher.fetch_many(["https://x.com/a/status/1"])
        assert exc_info.value.reason is FetchErrorReason.UNKNOWN
        assert "private" in exc_info.value.message
