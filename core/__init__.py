"""
thread-summarizer core package.

Modules
───────
models       — Pydantic request/event models and the ContentAnalysis dataclass
categorizer  — thread-likeness heuristic, thread URL extraction, content analysis
threads      — X/Twitter v2 thread fetching with graceful fallbacks
prompts      — tone/length-specific prompt templates
summarizer   — Claude calls with bounded retries and a deadline
postprocess  — artefact stripping and sentence completion for model output
analytics    — in-memory + Google Sheets usage analytics
"""
