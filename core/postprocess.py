"""Post-processing of model output.

``clean()`` strips the usual LLM artefacts (lead-ins, hedges, filler) and
normalises spacing; ``ensure_complete_sentence()`` repairs output that was
cut off mid-sentence by the token cap.

These are keyword heuristics for conversational English, not a grammar:
the subject/verb check in particular is a coarse word-list match.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

logger = logging.getLogger(__name__)

FALLBACK_TEXT = (
    "I couldn't generate a clear explanation for that. "
    "Could you try asking about it in a different way?"
)
SUMMARY_FALLBACK_TEXT = (
    "The summary came out too short to be useful. "
    "Please try again, or pick a longer length."
)

#: Tones whose output is laid out in lines/bullets rather than prose.
STRUCTURED_TONES: frozenset[str] = frozenset(["infographics"])
STRUCTURED_LENGTHS: frozenset[str] = frozenset(["bullet list"])


# ── clean() ────────────────────────────────────────────────────────────────────

_LEAD_IN_PATTERNS: list[re.Pattern[str]] = [
    re.compile(
        r"^(?:here's|here is)\s+(?:a|an|the|your)?\s*(?:quick|short|brief|simple)?\s*"
        r"(?:summary|explanation|breakdown|version|take)\b[^:\n]*:\s*",
        re.IGNORECASE,
    ),
    re.compile(
        r"^(?:here's|here is|this is|the following is|let me explain|i'll explain|so,|well,)\s+",
        re.IGNORECASE,
    ),
]

_ARTIFACT_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"\b(?:I think|I believe|It seems|It appears|Perhaps|Maybe|Possibly)\b,?", re.IGNORECASE),
    re.compile(r"\b(very|really|quite) \1\b", re.IGNORECASE),
    re.compile(r"\b(?:um|uh|er|ah)\b,?", re.IGNORECASE),
    re.compile(r"(?:\.\.\.|…)\s*$"),
]

#: Only applied to prose, where a leading bullet or trailing emoji is noise.
_PROSE_BOUNDARY_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"^[^\w\"'(]+"),
    re.compile(r"[^\w\s.,!?;:'\"()\-]+$"),
]

# Two lower-case-initial words glued together, e.g. "marketsThe".
_CAMEL_JOIN_RE = re.compile(r"\b([a-z]{4,})([A-Z][a-z]+)\b")
_GLUED_SENTENCE_RE = re.compile(r"([a-z][.!?])(?!(?:com|org|net|io|xyz|ai)\b)([a-z])")
_HSPACE_RE = re.compile(r"[ \t\f\v]+")
_BLANK_LINES_RE = re.compile(r"\n\s*\n\s*\n+")

#: Plain-language replacements used for the "simple" tone.
SIMPLE_SUBSTITUTIONS: dict[str, str] = {
    "utilize": "use",
    "utilizes": "uses",
    "facilitate": "help",
    "facilitates": "helps",
    "approximately": "about",
    "commence": "start",
    "commences": "starts",
    "demonstrate": "show",
    "demonstrates": "shows",
    "subsequently": "later",
    "additionally": "also",
    "nevertheless": "still",
    "numerous": "many",
    "purchase": "buy",
    "sufficient": "enough",
    "terminate": "end",
    "endeavor": "try",
    "obtain": "get",
    "leverage": "use",
    "methodology": "method",
}

TONE_SUBSTITUTIONS: dict[str, dict[str, str]] = {
    "simple": SIMPLE_SUBSTITUTIONS,
}


def _match_case(replacement: str, original: str) -> str:
    if original.isupper() and len(original) > 1:
        return replacement.upper()
    if original[:1].isupper():
        return replacement[:1].upper() + replacement[1:]
    return replacement


def apply_substitutions(text: str, substitutions: dict[str, str]) -> str:
    """Replace whole words from *substitutions*, preserving capitalisation."""
    if not substitutions:
        return text
    pattern = re.compile(
        r"\b(" + "|".join(re.escape(w) for w in sorted(substitutions, key=len, reverse=True)) + r")\b",
        re.IGNORECASE,
    )
    return pattern.sub(
        lambda m: _match_case(substitutions[m.group(0).lower()], m.group(0)), text
    )


def is_structured(text: str, tone: Optional[str] = None, length: Optional[str] = None) -> bool:
    """True for list/infographic output whose line layout must survive."""
    return (
        (tone or "").lower() in STRUCTURED_TONES
        or (length or "").lower() in STRUCTURED_LENGTHS
        or "\n" in text.strip()
    )


def _normalise_spacing(text: str) -> str:
    lines = [_HSPACE_RE.sub(" ", line).strip() for line in text.split("\n")]
    return _BLANK_LINES_RE.sub("\n\n", "\n".join(lines)).strip()


def clean(
    raw_text: str,
    tone: Optional[str] = None,
    min_length: int = 20,
    length: Optional[str] = None,
    fallback: str = FALLBACK_TEXT,
) -> str:
    """Strip model artefacts from *raw_text* and normalise it.

    Args:
        raw_text: Text returned by the model.
        tone: Request tone; selects lexical substitutions and whether the
            output is treated as structured.
        min_length: Results shorter than this are replaced by *fallback*.
        length: Request length; ``"bullet list"`` marks structured output.
        fallback: Text returned when the cleaned result is unusable.

    Returns:
        The cleaned text, or *fallback*.
    """
    text = (raw_text or "").strip()
    structured = is_structured(text, tone, length)

    for pattern in _LEAD_IN_PATTERNS:
        text, stripped = pattern.subn("", text, count=1)
        if stripped:
            break
    for pattern in _ARTIFACT_PATTERNS:
        text = pattern.sub(lambda m: m.group(1) if m.re.groups else "", text)

    if not structured:
        for pattern in _PROSE_BOUNDARY_PATTERNS:
            text = pattern.sub("", text)
        text = _CAMEL_JOIN_RE.sub(r"\1 \2", text)

    text = _GLUED_SENTENCE_RE.sub(lambda m: f"{m.group(1)} {m.group(2).upper()}", text)
    text = _normalise_spacing(text)
    text = apply_substitutions(text, TONE_SUBSTITUTIONS.get((tone or "").lower(), {}))

    if text:
        text = text[0].upper() + text[1:]

    if len(text) < min_length or not re.search(r"[A-Za-z]", text):
        logger.info("Cleaned output too short (%d chars); using fallback", len(text))
        return fallback
    return text


# ── ensure_complete_sentence() ─────────────────────────────────────────────────

MIN_SENTENCE_WORDS = 4
#: A first sentence this long is kept even without a subject/verb match.
LENIENT_FIRST_SENTENCE_WORDS = 8
SHORT_TEXT_WORDS = 5
MIN_TRIMMED_CHARS = 20

_TERMINAL_RE = re.compile(r"[.!?][\"')\]]*$")
_SENTENCE_RE = re.compile(r"[^.!?]+(?:[.!?]+[\"')\]]*|$)")

SUBJECT_WORDS: frozenset[str] = frozenset([
    "i", "you", "he", "she", "it", "we", "they", "this", "that", "these",
    "those", "there", "people", "everyone", "someone", "users", "it's",
    "they're", "you're", "we're", "that's", "there's", "here's", "one",
])

VERB_WORDS: frozenset[str] = frozenset([
    "is", "are", "was", "were", "be", "been", "being", "am", "has", "have",
    "had", "do", "does", "did", "can", "could", "will", "would", "should",
    "may", "might", "must", "means", "makes", "make", "lets", "let", "gets",
    "get", "works", "work", "uses", "use", "helps", "help", "allows", "allow",
    "gives", "give", "keeps", "keep", "shows", "show", "says", "said",
    "it's", "they're", "you're", "we're", "that's", "there's", "here's",
])

STOP_WORDS: frozenset[str] = frozenset([
    "and", "but", "or", "so", "because", "since", "while", "when", "where",
    "which", "that", "with", "for", "in", "on", "at", "by", "from", "to",
])

_PROPER_NOUN_RE = re.compile(r"^[A-Z][a-z]+$")


def _tokens(sentence: str) -> list[str]:
    return [t.strip(".,!?;:\"'()[]") for t in sentence.split()]


def _split_sentences(text: str) -> list[str]:
    return [s.strip() for s in _SENTENCE_RE.findall(text) if s.strip()]


def _has_subject(tokens: list[str]) -> bool:
    for i, token in enumerate(tokens):
        if token.lower() in SUBJECT_WORDS:
            return True
        # Capitalised words after the first are treated as proper nouns.
        if i > 0 and _PROPER_NOUN_RE.match(token):
            return True
    return False


def _has_verb(tokens: list[str]) -> bool:
    return any(t.lower() in VERB_WORDS for t in tokens)


def is_complete_sentence(sentence: str) -> bool:
    """Coarse check: enough words plus a subject-like and a verb-like token."""
    tokens = [t for t in _tokens(sentence) if t]
    return (
        len(tokens) >= MIN_SENTENCE_WORDS
        and _has_subject(tokens)
        and _has_verb(tokens)
    )


def _terminate(text: str) -> str:
    return text if _TERMINAL_RE.search(text) else text + "."


def _trim_fragment(text: str) -> str:
    if _TERMINAL_RE.search(text):
        return text

    words = text.split()
    if len(words) <= SHORT_TEXT_WORDS:
        return text + "."

    for i in range(len(words) - 1, max(0, len(words) - SHORT_TEXT_WORDS) - 1, -1):
        if i == 0 or words[i].lower().strip(",;:") not in STOP_WORDS:
            continue
        truncated = " ".join(words[:i]).rstrip(",;:-")
        if len(truncated) >= MIN_TRIMMED_CHARS:
            return _terminate(truncated)

    truncated = " ".join(words[:-2]).rstrip(",;:-")
    return _terminate(truncated if len(truncated) >= MIN_TRIMMED_CHARS else text)


def ensure_complete_sentence(text: str) -> str:
    """Make sure *text* ends on a finished sentence.

    Text that already ends in terminal punctuation with a final sentence of
    at least ``MIN_SENTENCE_WORDS`` words is returned unchanged. Otherwise
    only complete sentences are kept (plus a long first sentence); when none
    qualify the trailing fragment is trimmed at a conjunction or preposition.
    The function is idempotent.
    """
    if not text or not text.strip():
        return text
    text = text.strip()

    sentences = _split_sentences(text)
    if _TERMINAL_RE.search(text) and sentences and len(sentences[-1].split()) >= MIN_SENTENCE_WORDS:
        return text

    kept = [
        s for i, s in enumerate(sentences)
        if is_complete_sentence(s)
        or (i == 0 and len(s.split()) >= LENIENT_FIRST_SENTENCE_WORDS)
    ]
    if kept:
        return _terminate(" ".join(kept))

    return _trim_fragment(text)
