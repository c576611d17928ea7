"""Fuzzy phrase matching between spoken action items and tracked tasks.

Two phrases are considered the same item when either:

- one normalized phrase contains the other (case-insensitive), or
- the overlap coefficient of their significant tokens,
  ``|A & B| / min(|A|, |B|)``, is at least ``OVERLAP_THRESHOLD``.

Significant tokens are alphanumeric words of three or more characters that
are not stop words. The overlap coefficient is used instead of Jaccard so a
terse task title still matches a wordier note about the same work.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

OVERLAP_THRESHOLD = 0.6
MIN_TOKEN_LENGTH = 3

STOP_WORDS: frozenset[str] = frozenset({
    "the", "and", "for", "with", "from", "that", "this", "into", "onto",
    "our", "their", "your", "his", "her", "its", "are", "was", "were",
    "will", "shall", "should", "would", "can", "could", "has", "have",
    "had", "not", "but", "all", "any", "out", "about", "over", "after",
    "before", "then", "than", "them", "they", "who", "what", "when",
    "where", "which", "how", "per", "via", "next", "week", "also",
})

_WORD_RE = re.compile(r"[a-z0-9]+")


def normalize(text: str) -> str:
    """Lower-case and collapse punctuation and whitespace to single spaces."""
    return " ".join(_WORD_RE.findall((text or "").lower()))


def significant_tokens(text: str) -> set[str]:
    return {
        token for token in _WORD_RE.findall((text or "").lower())
        if len(token) >= MIN_TOKEN_LENGTH and token not in STOP_WORDS
    }


def overlap_coefficient(a: set[str], b: set[str]) -> float:
    if not a or not b:
        return 0.0
    return len(a & b) / min(len(a), len(b))


def is_similar(a: str, b: str, threshold: float = OVERLAP_THRESHOLD) -> bool:
    """True if two phrases describe the same item under the rules above."""
    norm_a, norm_b = normalize(a), normalize(b)
    if not norm_a or not norm_b:
        return False
    if norm_a in norm_b or norm_b in norm_a:
        return True
    return overlap_coefficient(significant_tokens(a), significant_tokens(b)) >= threshold


def matches_any(phrase: str, candidates: Iterable[str], threshold: float = OVERLAP_THRESHOLD) -> bool:
    return any(is_similar(phrase, candidate, threshold) for candidate in candidates)
