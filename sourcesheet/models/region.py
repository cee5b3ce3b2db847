"""Region data model: one user- or AI-defined source on a page."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from .shapes import Box, Polygon, Shape, clamp, normalize_rotation

if TYPE_CHECKING:
    from PIL import Image

MIN_DISPLAY_SIZE = 25
MAX_DISPLAY_SIZE = 100


def new_region_id() -> str:
    return uuid.uuid4().hex


def clamp_display_size(value: float) -> int:
    return int(round(clamp(value, MIN_DISPLAY_SIZE, MAX_DISPLAY_SIZE)))


@dataclass
class Region:
    """A sub-area of a page that becomes one source on the sheet.

    Attributes:
        page_index: Index into the document's page list (0-based)
        shape: Box or Polygon in percentage coordinates
        name: Free-text label
        id: Opaque identifier, stable for the region's lifetime
        rotation: Degrees in (-180, 180], applied about the shape centre
        reference: Corpus reference, set by identification or manual entry
        clipped_image: Cached clip; None whenever the geometry changed
        clip_rotation: Rotation already baked into clipped_image
        base_image: Unrotated extract the clip was baked from
        base_rotation: Rotation contained in base_image (0 for page extracts)
        display_size: Rendered width in the final sheet, percent (25-100)
        recognized_text: OCR text proposed by detection, if any
        confidence: Detection confidence 0-1, if the service reported one
        is_manual: True for drawn/grid/split regions
    """

    page_index: int
    shape: Shape
    name: str
    id: str = field(default_factory=new_region_id)
    rotation: float = 0.0
    reference: Optional[str] = None
    clipped_image: Optional[Image.Image] = field(default=None, repr=False, compare=False)
    clip_rotation: float = 0.0
    base_image: Optional[Image.Image] = field(default=None, repr=False, compare=False)
    base_rotation: float = 0.0
    display_size: int = MAX_DISPLAY_SIZE
    recognized_text: str = ""
    confidence: Optional[float] = None
    is_manual: bool = False

    def __post_init__(self):
        if not isinstance(self.shape, (Box, Polygon)):
            raise ValueError(f"Region shape must be a Box or Polygon, got {type(self.shape).__name__}")
        if self.page_index < 0:
            raise ValueError(f"page_index must be >= 0, got {self.page_index}")
        self.rotation = normalize_rotation(self.rotation)
        self.display_size = clamp_display_size(self.display_size)

    @property
    def has_clip(self) -> bool:
        return self.clipped_image is not None

    def invalidate_clip(self) -> None:
        """Drop the cached clip and its base after a geometry change."""
        self.clipped_image = None
        self.clip_rotation = 0.0
        self.base_image = None
        self.base_rotation = 0.0

    def set_clip(
        self,
        image: Optional[Image.Image],
        rotation: float,
        base: Optional[Image.Image] = None,
        base_rotation: float = 0.0,
    ) -> None:
        """Cache a clip baked at ``rotation``.

        Without an explicit base the clip itself becomes the base, holding
        ``rotation`` already.
        """
        if image is None:
            self.invalidate_clip()
            return
        self.clipped_image = image
        self.clip_rotation = normalize_rotation(rotation)
        if base is None:
            self.base_image = image
            self.base_rotation = self.clip_rotation
        else:
            self.base_image = base
            self.base_rotation = normalize_rotation(base_rotation)

    @property
    def clip_is_current(self) -> bool:
        return self.clipped_image is not None and self.clip_rotation == self.rotation
