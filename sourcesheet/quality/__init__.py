"""Candidate verification scoring."""

from .verification import (
    DEFAULT_ACCEPTANCE_THRESHOLD,
    is_accepted,
    normalize_text,
    trigrams,
    verification_score,
)

__all__ = [
    'DEFAULT_ACCEPTANCE_THRESHOLD',
    'is_accepted',
    'normalize_text',
    'trigrams',
    'verification_score',
]
