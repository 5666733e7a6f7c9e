"""Content classification for pasted text.

Two jobs, both pure regex/keyword heuristics with no I/O:

1. **Thread detection** — ``is_thread_like()`` decides whether text "looks
   like" an X/Twitter thread by counting numbering markers, @mentions,
   #hashtags, the 🧵 emoji and literal "thread" markers.
   ``extract_thread_urls()`` pulls status URLs out of free text.

2. **Content analysis** — ``analyze_content()`` builds an advisory
   ``ContentAnalysis`` (content type, complexity, names, numbers, technical
   terms, main points) that the prompt builder uses to tell the model which
   details to keep.
"""

from __future__ import annotations

import logging
import re
from enum import Enum

from core.models import ContentAnalysis

logger = logging.getLogger(__name__)


# ── Thread detection ───────────────────────────────────────────────────────────

#: Matches a full status URL on twitter.com or x.com.
THREAD_URL_RE = re.compile(
    r"https?://(?:www\.)?(?:twitter|x)\.com/[^/\s]+/status/\d+"
)

#: Patterns where every match counts towards the score.
_COUNTED_INDICATORS: list[re.Pattern[str]] = [
    re.compile(r"\d+/\d+"),   # "1/5" post numbering
    re.compile(r"@\w+"),      # mentions
    re.compile(r"#\w+"),      # hashtags
    re.compile("\U0001F9F5"),  # 🧵
]

#: Patterns that add at most one point each.
_PRESENCE_INDICATORS: list[re.Pattern[str]] = [
    re.compile(r"thread:", re.IGNORECASE),
    re.compile(r"thread", re.IGNORECASE),
]

#: Text is thread-like when the score is strictly above this.
THREAD_SCORE_THRESHOLD = 2


def thread_indicator_score(text: str) -> int:
    """Return the summed indicator count for *text*.

    Examples:
        >>> thread_indicator_score("#a #b")
        2
        >>> thread_indicator_score("Thread: 1/3")
        3
    """
    if not text:
        return 0
    score = sum(len(p.findall(text)) for p in _COUNTED_INDICATORS)
    score += sum(1 for p in _PRESENCE_INDICATORS if p.search(text))
    return score


def is_thread_like(text: str) -> bool:
    """Heuristically decide whether *text* is social-thread content.

    Args:
        text: Arbitrary pasted text.

    Returns:
        ``True`` when more than ``THREAD_SCORE_THRESHOLD`` indicators match.
    """
    return thread_indicator_score(text) > THREAD_SCORE_THRESHOLD


def extract_thread_urls(text: str) -> list[str]:
    """Return every thread status URL in *text*, in order of appearance.

    Duplicates are preserved; query strings and fragments are not part of
    the match.
    """
    if not text:
        return []
    return THREAD_URL_RE.findall(text)


# ── Content analysis ───────────────────────────────────────────────────────────


class ContentType(str, Enum):
    """Broad genre of a piece of input text."""

    GENERAL = "general"
    SOCIAL_MEDIA = "social_media"
    ACADEMIC = "academic"
    BUSINESS = "business"
    TECHNICAL = "technical"
    NEWS = "news"


class Complexity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


_ACADEMIC_SIGNALS: frozenset[str] = frozenset([
    "study", "studies", "research", "paper", "journal", "hypothesis",
    "methodology", "findings", "peer-reviewed", "experiment", "abstract",
    "citation", "professor", "university",
])
_BUSINESS_SIGNALS: frozenset[str] = frozenset([
    "revenue", "market", "startup", "funding", "valuation", "investor",
    "profit", "quarter", "acquisition", "ipo", "customers", "growth",
    "raised", "ceo", "earnings",
])
_TECHNICAL_SIGNALS: frozenset[str] = frozenset([
    "api", "algorithm", "protocol", "blockchain", "database", "server",
    "deploy", "framework", "latency", "model", "neural", "smart contract",
    "open source", "github", "compiler",
])
_NEWS_SIGNALS: frozenset[str] = frozenset([
    "breaking", "announced", "reported", "according to", "officials",
    "statement", "yesterday", "today", "press release", "confirmed",
])

_SIGNALS: dict[ContentType, frozenset[str]] = {
    ContentType.ACADEMIC: _ACADEMIC_SIGNALS,
    ContentType.BUSINESS: _BUSINESS_SIGNALS,
    ContentType.TECHNICAL: _TECHNICAL_SIGNALS,
    ContentType.NEWS: _NEWS_SIGNALS,
}

#: Lower-cased vocabulary always treated as a technical term.
TECH_VOCABULARY: frozenset[str] = frozenset([
    "ai", "llm", "gpu", "api", "blockchain", "defi", "nft", "dao", "layer 2",
    "rollup", "zk", "evm", "staking", "tokenomics", "liquidity", "airdrop",
    "machine learning", "neural network", "transformer", "inference",
    "smart contract", "stablecoin", "validator", "mainnet", "testnet",
    "open source", "kubernetes", "python", "javascript", "rust",
])

_ACRONYM_RE = re.compile(r"\b[A-Z][A-Z0-9]{1,5}\b")
_NUMBER_RE = re.compile(
    r"[$€£]?\d[\d,]*(?:\.\d+)?(?:\s?%|[kKmMbB]\b|x\b)?"
)
_NAME_RE = re.compile(r"\b[A-Z][a-zA-Z]+(?:\s+[A-Z][a-zA-Z]+)*\b")
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+|\n+")

#: Capitalised words that are almost never names on their own.
_NAME_STOPWORDS: frozenset[str] = frozenset([
    "The", "This", "That", "These", "Those", "It", "Its", "We", "You", "I",
    "He", "She", "They", "A", "An", "And", "But", "Or", "So", "If", "In",
    "On", "At", "For", "To", "Of", "With", "What", "When", "Why", "How",
    "Here", "There", "Thread", "Just", "My", "Our", "Your", "Check",
])

_MAX_ITEMS = 10
_MAX_MAIN_POINTS = 3


def _dedupe(items: list[str], limit: int = _MAX_ITEMS) -> list[str]:
    return list(dict.fromkeys(items))[:limit]


def _sentences(text: str) -> list[str]:
    return [s.strip() for s in _SENTENCE_SPLIT_RE.split(text) if s and s.strip()]


def extract_names(text: str) -> list[str]:
    """Return capitalised word runs that look like people, orgs or products."""
    names = []
    for match in _NAME_RE.findall(text):
        words = [w for w in match.split() if w not in _NAME_STOPWORDS]
        if not words:
            continue
        candidate = " ".join(words)
        # All-caps tokens are reported as technical terms instead.
        if candidate.isupper():
            continue
        names.append(candidate)
    return _dedupe(names)


def extract_numbers(text: str) -> list[str]:
    """Return numeric tokens such as ``$1.5``, ``20%``, ``10k`` or ``3x``."""
    return _dedupe([m.strip().rstrip(",") for m in _NUMBER_RE.findall(text)])


def extract_technical_terms(text: str) -> list[str]:
    """Return known vocabulary terms plus short all-caps acronyms."""
    lowered = text.lower()
    terms = [
        term for term in sorted(TECH_VOCABULARY)
        if re.search(rf"\b{re.escape(term)}\b", lowered)
    ]
    terms += _ACRONYM_RE.findall(text)
    # Vocabulary hits are lower-case, acronyms upper-case; fold duplicates.
    seen: set[str] = set()
    out: list[str] = []
    for term in terms:
        key = term.lower()
        if key not in seen:
            seen.add(key)
            out.append(term)
    return out[:_MAX_ITEMS]


def detect_content_type(text: str) -> ContentType:
    """Pick the genre with the most keyword hits; thread-like text wins."""
    if is_thread_like(text):
        return ContentType.SOCIAL_MEDIA

    lowered = text.lower()
    scores = {
        ctype: sum(1 for sig in signals if sig in lowered)
        for ctype, signals in _SIGNALS.items()
    }
    if not any(scores.values()):
        return ContentType.GENERAL
    return max(scores, key=lambda k: scores[k])


def estimate_complexity(text: str, technical_terms: list[str]) -> Complexity:
    """Rate reading difficulty from sentence length and jargon density."""
    sentences = _sentences(text)
    if not sentences:
        return Complexity.LOW
    avg_words = sum(len(s.split()) for s in sentences) / len(sentences)

    if avg_words > 25 or len(technical_terms) >= 5:
        return Complexity.HIGH
    if avg_words > 15 or len(technical_terms) >= 2:
        return Complexity.MEDIUM
    return Complexity.LOW


def pick_main_points(text: str, limit: int = _MAX_MAIN_POINTS) -> list[str]:
    """Return up to *limit* detail-dense sentences, in their original order."""
    sentences = [s for s in _sentences(text) if len(s.split()) >= 4]
    if not sentences:
        return []

    def density(sentence: str) -> int:
        return (
            2 * len(_NUMBER_RE.findall(sentence))
            + len(extract_names(sentence))
            + len(_ACRONYM_RE.findall(sentence))
        )

    ranked = sorted(range(len(sentences)), key=lambda i: (-density(sentences[i]), i))
    chosen = sorted(ranked[:limit])
    return [sentences[i] for i in chosen]


def analyze_content(text: str) -> ContentAnalysis:
    """Build an advisory ``ContentAnalysis`` for *text*.

    Args:
        text: The (already truncated) content about to be summarised.

    Returns:
        A ``ContentAnalysis``; empty lists when nothing was detected.
    """
    text = text or ""
    technical_terms = extract_technical_terms(text)
    analysis = ContentAnalysis(
        content_type=detect_content_type(text).value,
        complexity=estimate_complexity(text, technical_terms).value,
        names=extract_names(text),
        numbers=extract_numbers(text),
        technical_terms=technical_terms,
        main_points=pick_main_points(text),
    )
    logger.debug(
        "Content analysis: type=%s complexity=%s names=%d numbers=%d terms=%d",
        analysis.content_type,
        analysis.complexity,
        len(analysis.names),
        len(analysis.numbers),
        len(analysis.technical_terms),
    )
    return analysis
