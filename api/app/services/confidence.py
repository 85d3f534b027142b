from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Sequence

BASE_SCORE = 0.3
LENGTH_BONUS = 0.2
LENGTH_BONUS_MIN_CHARS = 20
ANY_SOURCE_BONUS = 0.3
MANY_SOURCES_BONUS = 0.2
MANY_SOURCES_MIN = 3
FACT_BONUS = 0.2

MIN_ANSWER_CHARS = 10
LOW_CONFIDENCE = 0.6

HEDGE_PHRASES = (
    "i don't know",
    "i don't have that information",
    "i don't have information",
    "i'm not sure",
    'i cannot find',
    "i don't have specific information",
    "i'm unable to find",
    'no information available',
    'cannot provide that information',
)

FACT_MARKER_RE = re.compile(
    r'\b(?:yes|no|prohibited|allowed|supported|available|usd|eur|gbp)\b|\d|[$€£¥%]',
    re.IGNORECASE,
)


@dataclass
class ConfidenceScore:
    total: float
    length_bonus: float
    source_bonus: float
    fact_bonus: float
    has_fact_marker: bool


def _normalize_quotes(text: str) -> str:
    return text.replace('’', "'").replace('‘', "'")


def has_fact_marker(text: str) -> bool:
    return bool(FACT_MARKER_RE.search(text or ''))


def find_hedge_phrase(text: str) -> str | None:
    lowered = _normalize_quotes(text or '').lower()
    for phrase in HEDGE_PHRASES:
        if phrase in lowered:
            return phrase
    return None


def estimate_confidence(text: str, sources: Sequence[object]) -> ConfidenceScore:
    text = text or ''
    length_bonus = LENGTH_BONUS if len(text) > LENGTH_BONUS_MIN_CHARS else 0.0
    source_bonus = 0.0
    if len(sources) >= 1:
        source_bonus += ANY_SOURCE_BONUS
    if len(sources) >= MANY_SOURCES_MIN:
        source_bonus += MANY_SOURCES_BONUS
    facts = has_fact_marker(text)
    fact_bonus = FACT_BONUS if facts else 0.0
    # Additive, not clamped: a fully supported answer scores 1.2.
    return ConfidenceScore(
        total=BASE_SCORE + length_bonus + source_bonus + fact_bonus,
        length_bonus=length_bonus,
        source_bonus=source_bonus,
        fact_bonus=fact_bonus,
        has_fact_marker=facts,
    )


def escalation_reason(text: str, score: ConfidenceScore) -> str | None:
    """Return why an answer must go to a human, or None when it can be released."""
    stripped = (text or '').strip()
    if not stripped:
        return 'empty'
    if len(stripped) < MIN_ANSWER_CHARS:
        return 'too_short'
    if find_hedge_phrase(stripped):
        return 'hedge_phrase'
    if score.total < LOW_CONFIDENCE and not score.has_fact_marker:
        return 'low_confidence'
    return None


def should_escalate(text: str, score: ConfidenceScore) -> bool:
    return escalation_reason(text, score) is not None
