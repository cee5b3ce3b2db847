"""Deterministic verification score [0..1] between recognized text and canonical corpus text.

Both texts are normalized first (markup, diacritics, vowel points and
cantillation, punctuation removed; restricted to one script; whitespace
collapsed). The score is 1.0 when the normalized input occurs literally in
the canonical text, otherwise the fraction of the input's character
trigrams that also occur in the canonical text.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Callable, Dict, List, Optional

_TAG_RE = re.compile(r"<[^>]+>")

DEFAULT_ACCEPTANCE_THRESHOLD = 0.3


def _is_hebrew_letter(ch: str) -> bool:
    return "א" <= ch <= "ת"


def _is_latin_letter(ch: str) -> bool:
    return "a" <= ch <= "z"


def _is_any_letter(ch: str) -> bool:
    return ch.isalnum()


_SCRIPTS: Dict[Optional[str], Callable[[str], bool]] = {
    "hebrew": _is_hebrew_letter,
    "latin": _is_latin_letter,
    None: _is_any_letter,
}


def normalize_text(text: str, script: Optional[str] = "hebrew") -> str:
    """Normalize text for comparison.

    Args:
        text: Raw text (may contain HTML markup)
        script: "hebrew", "latin" or None (keep any letter or digit)

    Returns:
        Lower-case letters of the script separated by single spaces
    """
    if script not in _SCRIPTS:
        raise ValueError(f"Unsupported script: {script}")
    if not text:
        return ""
    keep = _SCRIPTS[script]
    decomposed = unicodedata.normalize("NFKD", _TAG_RE.sub(" ", text)).lower()
    chars = []
    for ch in decomposed:
        if unicodedata.category(ch).startswith("M"):
            continue
        chars.append(ch if keep(ch) else " ")
    return " ".join("".join(chars).split())


def trigrams(text: str) -> List[str]:
    """Character trigrams of a normalized string, in order, with repeats."""
    return [text[i:i + 3] for i in range(len(text) - 2)]


def verification_score(input_text: str, canonical_text: str, script: Optional[str] = "hebrew") -> float:
    """Score how well recognized text matches a canonical corpus text.

    Returns:
        1.0 for a literal substring match after normalization, otherwise the
        fraction of input trigrams found in the canonical text; 0.0 when
        either side is empty after normalization
    """
    normalized_input = normalize_text(input_text, script)
    normalized_canonical = normalize_text(canonical_text, script)
    if not normalized_input or not normalized_canonical:
        return 0.0
    if normalized_input in normalized_canonical:
        return 1.0
    input_trigrams = trigrams(normalized_input)
    if not input_trigrams:
        return 0.0
    canonical_trigrams = set(trigrams(normalized_canonical))
    found = sum(1 for t in input_trigrams if t in canonical_trigrams)
    return found / len(input_trigrams)


def is_accepted(score: float, threshold: float = DEFAULT_ACCEPTANCE_THRESHOLD) -> bool:
    return score >= threshold
