"""Schemas for untrusted detection and identification provider output."""

import logging
from typing import Any, List, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)


class RawCandidate(BaseModel):
    """One identification proposal, before verification."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    source_name: str = Field(
        "",
        validation_alias=AliasChoices("sourceName", "source_name", "name"),
        description="Human-readable source name",
    )
    corpus_reference: str = Field(
        "",
        validation_alias=AliasChoices("corpusReference", "sefariaRef", "reference", "ref"),
        description="Proposed corpus reference",
    )
    preview_text: str = Field(
        "",
        validation_alias=AliasChoices("previewText", "preview_text", "text"),
        description="First words of the source",
    )

    @field_validator("source_name", "corpus_reference", "preview_text", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return "" if value is None else str(value).strip()

    @property
    def display_name(self) -> str:
        return self.source_name or self.corpus_reference or "Unknown"


class ProposedBox(BaseModel):
    """Percent-convention box {x, y, width, height}."""
    model_config = ConfigDict(extra="ignore")

    x: float
    y: float
    width: float
    height: float


class ProposedRegion(BaseModel):
    """One detected source: either a percent box or a per-mille box_2d."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    box: Optional[ProposedBox] = None
    box_2d: Optional[List[float]] = Field(None, validation_alias=AliasChoices("box_2d", "box2d"))
    text: str = ""
    reference: Optional[str] = None
    confidence: Optional[float] = None

    @field_validator("text", mode="before")
    @classmethod
    def _text_none_to_empty(cls, value):
        return "" if value is None else str(value)

    @field_validator("reference", mode="before")
    @classmethod
    def _blank_reference(cls, value):
        if value is None:
            return None
        value = str(value).strip()
        return value or None


def _items(payload: Any, *keys: str) -> List[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in keys:
            value = payload.get(key)
            if isinstance(value, list):
                return value
    return []


def parse_candidates(payload: Any) -> List[RawCandidate]:
    """Validate the "candidates" list of a classify response item by item.

    Invalid items are dropped with a warning; a payload with no candidate
    list at all yields an empty list.
    """
    candidates = []
    for item in _items(payload, "candidates"):
        try:
            candidates.append(RawCandidate.model_validate(item))
        except ValidationError as e:
            logger.warning("Dropping malformed candidate %r: %s", item, e)
    return candidates


def parse_proposed_regions(payload: Any) -> Tuple[List[ProposedRegion], List[str]]:
    """Validate the "sources" (or "regions") list of a detection response.

    Returns:
        (valid regions, warnings for dropped items)
    """
    regions: List[ProposedRegion] = []
    warnings: List[str] = []
    for i, item in enumerate(_items(payload, "sources", "regions")):
        try:
            regions.append(ProposedRegion.model_validate(item))
        except ValidationError as e:
            warnings.append(f"region {i}: malformed proposal dropped ({e.error_count()} errors)")
    return regions, warnings
