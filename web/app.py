"""
Flask web server for Thread Summarizer.

Routes
──────
POST /summarize                           Summarise a thread URL or pasted text
POST /crypto-explain                      Explain a (crypto) term
POST /.netlify/functions/crypto-explain   Alias kept for the existing front end
GET|POST /track-visit                     Record a site visit (always 200)
GET  /analytics                           Aggregate usage counts (JSON)
GET  /analytics-dashboard                 Aggregate usage counts (HTML)
GET  /init-sheets                         Ensure analytics worksheet headers
GET  /health                              Liveness check

Every route answers OPTIONS preflight with 200 and an empty body, and every
response carries CORS headers.
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from dotenv import load_dotenv
from flask import Flask, current_app, jsonify, render_template, request
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException

# Allow running as `python web/app.py` from the project root
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from config.settings import Settings
from core.analytics import AnalyticsSink, site_visit_from_headers
from core.categorizer import analyze_content, extract_thread_urls, is_thread_like
from core.models import (
    ExplainRequest,
    SummarizationEvent,
    SummarizeRequest,
    ToneUsageEvent,
)
from core.postprocess import (
    SUMMARY_FALLBACK_TEXT,
    clean,
    ensure_complete_sentence,
    is_structured,
)
from core.prompts import build_explain_prompt, build_prompt
from core.summarizer import Summarizer, UpstreamError, UpstreamErrorKind
from core.threads import FetchError, ThreadFetcher, extract_status_id, truncate_text

logger = logging.getLogger(__name__)

PASTE_HINT = "You can copy and paste the thread content directly into the text area instead."
NO_INPUT_MESSAGE = "No thread link or text provided."
MIN_SUMMARY_LENGTH = 10


# ── Application context ────────────────────────────────────────────────────


@dataclass
class AppContext:
    """Everything a request handler needs, built once per process."""

    settings: Settings
    fetcher: ThreadFetcher
    summarizer: Summarizer
    analytics: AnalyticsSink = field(default_factory=AnalyticsSink)

    @classmethod
    def from_settings(cls, settings: Settings) -> "AppContext":
        return cls(
            settings=settings,
            fetcher=ThreadFetcher(
                settings.twitter_bearer_token,
                root_timeout=settings.fetch_timeout,
                conversation_timeout=settings.conversation_timeout,
            ),
            summarizer=Summarizer(settings),
            analytics=AnalyticsSink.from_settings(settings),
        )

    def close(self) -> None:
        self.analytics.close()


def _ctx() -> AppContext:
    return current_app.extensions["thread_summarizer"]


def _error(message: str, status: int):
    return jsonify({"error": message}), status


def _upstream_error_response(exc: UpstreamError):
    """Map an upstream failure to (body, status) without leaking details."""
    if exc.rate_limited:
        status = 503
    elif exc.kind is UpstreamErrorKind.TIMEOUT:
        status = 504
    elif exc.kind is UpstreamErrorKind.NETWORK_ERROR:
        status = 503
    else:
        status = 502
    return _error(exc.public_message, status)


def _record(event) -> None:
    # AnalyticsSink.record already swallows; this guards a broken sink object.
    try:
        _ctx().analytics.record(event)
    except Exception:
        logger.exception("Analytics sink raised")


# ── Input resolution ───────────────────────────────────────────────────────


class InputError(Exception):
    """Client input that cannot be turned into content to summarise."""


def resolve_content(req: SummarizeRequest, ctx: AppContext) -> tuple[str, bool, str]:
    """Turn a request into ``(content, is_thread_content, content_type)``.

    Raises:
        InputError: When there is nothing usable to summarise.
    """
    raw_text = (req.raw_text or "").strip()
    thread_url = (req.thread_url or "").strip()

    if thread_url:
        try:
            extract_status_id(thread_url)
            return ctx.fetcher.fetch_thread(thread_url), True, "twitter_url"
        except FetchError as exc:
            if raw_text:
                logger.info("Thread fetch failed (%s); falling back to raw text", exc.reason.value)
                return raw_text, True, "twitter_text"
            raise InputError(f"{exc.message} {PASTE_HINT}") from exc

    if not raw_text:
        raise InputError(NO_INPUT_MESSAGE)

    urls = extract_thread_urls(raw_text)
    if urls:
        try:
            fetched = ctx.fetcher.fetch_many(urls, max_count=ctx.settings.max_fetch_urls)
        except FetchError as exc:
            logger.info("Failed to fetch thread URLs from text, using raw text: %s", exc)
            return raw_text, True, "twitter_text"
        return f"{raw_text}\n\n--- FETCHED THREAD CONTENT ---\n{fetched}", True, "twitter_text"

    thread_like = is_thread_like(raw_text)
    return raw_text, thread_like, "twitter_text" if thread_like else "text"


# ── App factory ────────────────────────────────────────────────────────────


def create_app(context: Optional[AppContext] = None) -> Flask:
    """Build the Flask app around an injected ``AppContext``."""
    app = Flask(__name__)
    if context is None:
        context = AppContext.from_settings(Settings())
    app.extensions["thread_summarizer"] = context

    @app.after_request
    def add_cors_headers(response):
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type"
        return response

    @app.before_request
    def handle_preflight():
        if request.method == "OPTIONS":
            return "", 200
        return None

    @app.errorhandler(405)
    def method_not_allowed(_e):
        return _error("Method not allowed", 405)

    @app.errorhandler(Exception)
    def unhandled(exc):
        if isinstance(exc, HTTPException):
            return exc
        logger.exception("Unhandled error")
        return _error("Internal server error", 500)

    # ── Summaries ──────────────────────────────────────────────────────────

    @app.route("/summarize", methods=["POST", "OPTIONS"])
    def summarize():
        """Summarise a thread URL or pasted text in the requested tone."""
        ctx = _ctx()
        body = request.get_json(silent=True)
        if not isinstance(body, dict):
            return _error(NO_INPUT_MESSAGE, 400)
        try:
            req = SummarizeRequest.model_validate(body)
        except ValidationError as exc:
            return _error(f"Invalid request: {exc.errors()[0]['msg']}", 400)
        if not req.has_input:
            return _error(NO_INPUT_MESSAGE, 400)

        try:
            content, is_thread, content_type = resolve_content(req, ctx)
        except InputError as exc:
            return _error(str(exc), 400)

        content = truncate_text(content, ctx.settings.max_thread_chars)
        logger.info("Processing %s: %r", content_type, content[:100])

        prompt = build_prompt(
            req.tone, req.length, content,
            is_thread_content=is_thread,
            analysis=analyze_content(content),
        )
        _record(ToneUsageEvent(tone=req.tone))

        try:
            raw = ctx.summarizer.summarize(prompt)
        except UpstreamError as exc:
            logger.error("Summarisation failed after %d attempt(s): %s", exc.attempts, exc)
            _record(SummarizationEvent(
                tone=req.tone, length=req.length, content_type=content_type, success=False,
            ))
            return _upstream_error_response(exc)

        summary = clean(
            raw, req.tone, min_length=MIN_SUMMARY_LENGTH, length=req.length,
            fallback=SUMMARY_FALLBACK_TEXT,
        )
        if not is_structured(summary, req.tone, req.length):
            summary = ensure_complete_sentence(summary)

        _record(SummarizationEvent(
            tone=req.tone, length=req.length, content_type=content_type, success=True,
        ))
        return jsonify({"summary": summary})

    # ── Term explanations ──────────────────────────────────────────────────

    @app.route("/crypto-explain", methods=["POST", "OPTIONS"])
    @app.route("/.netlify/functions/crypto-explain", methods=["POST", "OPTIONS"])
    def crypto_explain():
        """Explain a term, crypto meaning first."""
        ctx = _ctx()
        body = request.get_json(silent=True)
        try:
            req = ExplainRequest.model_validate(body if isinstance(body, dict) else {})
        except ValidationError as exc:
            return _error(f"Invalid request: {exc.errors()[0]['msg']}", 400)

        term = req.term.strip()
        if not term:
            return _error("No crypto term provided.", 400)

        logger.info("Explaining crypto term: %r", term)
        try:
            raw = ctx.summarizer.explain(build_explain_prompt(term))
        except UpstreamError as exc:
            logger.error("Explanation failed for %r: %s", term, exc)
            _record(SummarizationEvent(
                tone="explain", length="-", content_type="crypto_term", success=False,
            ))
            return _upstream_error_response(exc)

        explanation = ensure_complete_sentence(clean(raw))
        _record(SummarizationEvent(
            tone="explain", length="-", content_type="crypto_term", success=True,
        ))
        return jsonify({"explanation": explanation})

    # ── Analytics ──────────────────────────────────────────────────────────

    @app.route("/track-visit", methods=["GET", "POST", "OPTIONS"])
    def track_visit():
        """Record a site visit; never fails the front end."""
        try:
            _ctx().analytics.record(site_visit_from_headers(request.headers))
        except Exception:
            logger.exception("Error tracking visit")
            return jsonify({"success": False})
        return jsonify({"success": True})

    @app.route("/analytics", methods=["GET", "OPTIONS"])
    def analytics_summary():
        return jsonify(_ctx().analytics.summary())

    @app.route("/analytics-dashboard", methods=["GET", "OPTIONS"])
    def analytics_dashboard():
        summary = _ctx().analytics.summary()
        return render_template("dashboard.html", summary=summary)

    @app.route("/init-sheets", methods=["GET", "OPTIONS"])
    def init_sheets():
        sink = _ctx().analytics
        if sink.backend is None:
            return jsonify({
                "success": False,
                "message": "Google Sheets is not configured; analytics are kept in memory.",
            })
        try:
            written = sink.init_sheets()
        except Exception as exc:
            logger.exception("Error initializing sheets")
            return _error(f"Failed to initialize sheets: {type(exc).__name__}", 500)
        return jsonify({
            "success": True,
            "message": "Sheets initialized successfully",
            "updated": written,
        })

    # ── Health ─────────────────────────────────────────────────────────────

    @app.route("/health", methods=["GET", "OPTIONS"])
    def health():
        return jsonify({
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })

    return app


# ── Entry point ────────────────────────────────────────────────────────────


def main() -> None:
    load_dotenv()
    logging.basicConfig(level=logging.INFO)

    settings = Settings()
    missing = settings.missing_required()
    if missing:
        logger.error("Missing required environment variables:")
        for name in missing:
            logger.error("   - %s", name)
        logger.error("Please check your .env file; see .env.example for reference.")
        sys.exit(1)

    context = AppContext.from_settings(settings)
    app = create_app(context)
    try:
        app.run(debug=settings.debug, host="0.0.0.0", port=settings.port)
    finally:
        context.close()


if __name__ == "__main__":
    main()
