"""Identification output: candidate corpus matches and the pipeline result."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

STATUS_IDENTIFIED = "identified"
STATUS_UNIDENTIFIED = "unidentified"


@dataclass
class Candidate:
    """Unconfirmed corpus match for a region; never persisted.

    Attributes:
        display_name: Human-readable source name
        corpus_reference: Canonical corpus reference (e.g. "Berakhot 55a")
        preview_text: First words of the source
        strategy_source: Which strategy produced it (e.g. "gemini:gemini-1.5-flash", "search")
        score: Verification score 0.0-1.0
    """

    display_name: str
    corpus_reference: str
    preview_text: str = ""
    strategy_source: str = ""
    score: float = 0.0

    def __post_init__(self):
        if not 0.0 <= self.score <= 1.0:
            raise ValueError(f"score must be between 0.0 and 1.0, got {self.score}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "displayName": self.display_name,
            "corpusReference": self.corpus_reference,
            "previewText": self.preview_text,
            "strategySource": self.strategy_source,
            "score": round(self.score, 4),
        }


@dataclass
class IdentificationResult:
    """Result of one identification run.

    An unidentified result is a normal outcome, not a failure: it carries the
    recognized text so the caller can offer a manual search.
    """

    status: str
    candidates: List[Candidate] = field(default_factory=list)
    recognized_text: str = ""
    strategy: Optional[str] = None
    attempts: List[str] = field(default_factory=list)

    def __post_init__(self):
        if self.status not in (STATUS_IDENTIFIED, STATUS_UNIDENTIFIED):
            raise ValueError(f"Unknown identification status: {self.status}")
        if self.status == STATUS_IDENTIFIED and not self.candidates:
            raise ValueError("An identified result needs at least one candidate")

    @property
    def identified(self) -> bool:
        return self.status == STATUS_IDENTIFIED

    @classmethod
    def unidentified(cls, recognized_text: str, attempts: Optional[List[str]] = None) -> "IdentificationResult":
        return cls(
            status=STATUS_UNIDENTIFIED,
            recognized_text=recognized_text or "",
            attempts=list(attempts or []),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "candidates": [c.to_dict() for c in self.candidates],
            "recognizedText": self.recognized_text,
            "strategy": self.strategy,
            "attempts": list(self.attempts),
        }
