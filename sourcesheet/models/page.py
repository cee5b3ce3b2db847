"""Page data model representing one rasterized page of a source sheet."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from PIL import Image


@dataclass(frozen=True)
class Page:
    """A rasterized page, immutable once loaded.

    Attributes:
        page_index: Position in the document (starts at 0)
        image: Page raster
        width: Raster width in pixels
        height: Raster height in pixels
    """

    page_index: int
    image: Image.Image = field(repr=False, compare=False)
    width: int
    height: int

    def __post_init__(self):
        """Validate index and that dimensions match the raster."""
        if self.page_index < 0:
            raise ValueError(f"Page index must be >= 0, got {self.page_index}")
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Page dimensions must be positive: {self.width}x{self.height}")
        if self.image.size != (self.width, self.height):
            raise ValueError(
                f"Page size {self.width}x{self.height} does not match raster {self.image.size}"
            )

    @classmethod
    def from_image(cls, page_index: int, image: Image.Image) -> Page:
        return cls(page_index=page_index, image=image, width=image.width, height=image.height)
