"""Prompt construction for summaries and term explanations.

Everything here is a pure function of its arguments: no I/O, no randomness.
Unknown tones are not rejected; the default template passes the tone string
through to the model as free-form guidance.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from core.models import ContentAnalysis


class Tone(str, Enum):
    """Tones with a dedicated template."""

    SIMPLE = "simple"
    PROFESSIONAL = "professional"
    CONVERSATIONAL = "conversational"
    SHITPOST = "shitpost"
    INFOGRAPHICS = "infographics"


#: Lengths offered by the UI; any other string is passed through verbatim.
KNOWN_LENGTHS: tuple[str, ...] = ("1 line", "3 sentences", "1 paragraph", "bullet list")

BASE_INSTRUCTION = (
    "Write like a real human who actually understands this stuff. No corporate "
    "speak, no robotic responses. Be conversational, relatable, and authentic. "
    "Use natural language, contractions, and explain things like you're talking "
    "to a friend. CRITICAL: Keep all important keywords, names, technical terms, "
    "numbers, and key details from the original - but explain them in human terms "
    "when needed. Never ask questions or request clarification. Provide only the "
    "summary without any introductory phrases or commentary about the summary itself."
)

THREAD_PREFACE = (
    "This is Twitter/X content. Pull out the main points and make them digestible. "
    "Keep all the important stuff - names, numbers, technical terms - but make it "
    "actually readable. "
)

_TONE_TEMPLATES: dict[Tone, str] = {
    Tone.SHITPOST: (
        "Turn this into a {length} shitpost that actually slaps. Use internet slang, "
        "memes, and make it funny as hell while still hitting the main points. Don't "
        "be cringe about it - make it genuinely entertaining. Keep all the important "
        "names, numbers, and technical stuff but make it memeable."
    ),
    Tone.INFOGRAPHICS: (
        "Make this into {length} that would work perfectly in an infographic. Think "
        "clean sections, bullet points, key stats, and visual structure. Use emojis "
        "naturally (not overdoing it). Keep all the important numbers, names, and "
        "technical details but organize them so they're easy to scan and understand."
    ),
    Tone.SIMPLE: (
        "Break this down into {length} that anyone can understand. Think \"explain it "
        "like I'm 5\" but not condescending. Use analogies, simple examples, and "
        "everyday language. Keep all the important names, numbers, and technical "
        "stuff but explain what they actually mean in real terms."
    ),
    Tone.PROFESSIONAL: (
        "Write this as {length} in a professional tone that doesn't sound like "
        "corporate BS. Be polished but still human - like how you'd explain it in a "
        "good meeting or email to colleagues. Keep all the technical terms, names, "
        "numbers, and key details but make it business-appropriate without being stuffy."
    ),
    Tone.CONVERSATIONAL: (
        "Explain this in {length} like you're talking to a friend over coffee. Be "
        "natural, use contractions, throw in some personality. Make it feel like a "
        "real conversation - not a presentation. Keep all the important names, "
        "numbers, and technical details but explain them in a way that feels genuine "
        "and relatable."
    ),
}

_DEFAULT_TEMPLATE = (
    "Write this as {length} with a {tone} tone that feels authentic and human. Don't "
    "sound like a robot or use corporate speak. Keep all the important keywords, "
    "names, technical terms, numbers, and key details from the original but make it "
    "actually engaging to read."
)


def _analysis_preface(analysis: Optional[ContentAnalysis]) -> str:
    if analysis is None or not analysis.has_details:
        return ""
    parts = []
    if analysis.names:
        parts.append(f"names: {', '.join(analysis.names)}")
    if analysis.numbers:
        parts.append(f"numbers: {', '.join(analysis.numbers)}")
    if analysis.technical_terms:
        parts.append(f"technical terms: {', '.join(analysis.technical_terms)}")
    return (
        f"Detected {analysis.content_type.replace('_', ' ')} content "
        f"({analysis.complexity} complexity). Make sure these details survive "
        f"in the output - {'; '.join(parts)}. "
    )


def tone_instruction(tone: str, length: str) -> str:
    """Return the tone-specific instruction with *length* interpolated."""
    try:
        template = _TONE_TEMPLATES[Tone(tone)]
    except ValueError:
        return _DEFAULT_TEMPLATE.format(length=length, tone=tone)
    return template.format(length=length)


def build_prompt(
    tone: str,
    length: str,
    content: str,
    is_thread_content: bool = False,
    analysis: Optional[ContentAnalysis] = None,
) -> str:
    """Build the single instruction string sent to the model.

    Args:
        tone: One of ``Tone`` or any free-form tone description.
        length: Desired output length, e.g. ``"1 line"``.
        content: The text to summarise; always appended last.
        is_thread_content: Prepend the social-thread preface.
        analysis: Optional content analysis; its names, numbers and
            technical terms are listed as must-keep details.

    Returns:
        The complete prompt.
    """
    preface = THREAD_PREFACE if is_thread_content else ""
    return (
        f"{preface}{_analysis_preface(analysis)}"
        f"{tone_instruction(tone, length)} {BASE_INSTRUCTION}\n\n{content}"
    )


def build_explain_prompt(term: str) -> str:
    """Build the crypto-first explanation prompt for *term*."""
    return (
        "You're the coolest crypto expert who explains things like you're talking to "
        f"a friend over coffee. Someone just asked you about \"{term}\" and you want "
        "to give them the most helpful, human explanation ever.\n\n"
        "CRITICAL: ALWAYS prioritize the crypto/blockchain/web3/DeFi meaning of any "
        "term FIRST. Even if the term has other meanings outside of crypto, focus on "
        "its crypto interpretation. If it's not a crypto term at all, then explain "
        "what it might relate to in the crypto space or how it could be relevant to "
        "crypto/blockchain.\n\n"
        "CRITICAL INSTRUCTIONS:\n"
        "- Write like you're genuinely excited to share knowledge with a friend\n"
        "- Use natural language, contractions, and be conversational\n"
        "- Explain it so clearly that anyone can understand, but don't be condescending\n"
        "- Include why it matters, how it works, and any real-world examples\n"
        "- Keep it concise but comprehensive\n"
        "- Use analogies and examples that actually make sense\n"
        "- If it's a complex topic, break it down into digestible pieces\n"
        "- Finish your last sentence; never stop mid-thought\n\n"
        "Don't start with \"Here's\" or \"This is\" - just dive right into explaining "
        "it naturally. Never ask questions or request clarification.\n\n"
        "Remember: CRYPTO MEANING FIRST - always interpret the term through a "
        "crypto/blockchain lens before anything else.\n\n"
        f"Explain: {term}"
    )
