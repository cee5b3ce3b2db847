"""Geometric clipping: extract a rotation-corrected raster for a region.

Every clip is produced in two steps: the shape is cut out of the page
unrotated (polygons masked to transparent outside the path), then
bake_rotation turns it about its centre onto a canvas large enough to hold
all four corners. Regions keep that unrotated extract, and when their page
is no longer loaded bake_rotation re-applies the full rotation to it, so
both paths give identical pixels for any angle.

Key Functions:
    - clip_region(): Clip a Region from its Page
    - clip_shape(): Clip an explicit shape + rotation
    - extract_region(): Unrotated extract a clip is baked from
    - bake_rotation(): Rotate an existing clip
"""

from __future__ import annotations

import logging
import math
from functools import singledispatch
from typing import Any, Optional, Tuple

from PIL import Image, ImageChops, ImageDraw

from ..models.page import Page
from ..models.region import Region
from ..models.shapes import Box, Polygon, Shape, normalize_rotation
from .geometry import Affine, centre_rotation, polygon_area

logger = logging.getLogger(__name__)

TRANSPARENT = (0, 0, 0, 0)


def percent_to_pixels(page: Page) -> Affine:
    """Transform mapping percentage coordinates onto the page raster."""
    return Affine.scale(page.width / 100.0, page.height / 100.0)


def box_pixel_rect(page: Page, box: Box) -> Tuple[int, int, int, int]:
    """Pixel (left, top, right, bottom) of a percentage box, clamped to the page."""
    to_px = percent_to_pixels(page)
    left, top = to_px.apply(box.x, box.y)
    right, bottom = to_px.apply(box.right, box.bottom)
    return (
        max(0, min(page.width, int(round(left)))),
        max(0, min(page.height, int(round(top)))),
        max(0, min(page.width, int(round(right)))),
        max(0, min(page.height, int(round(bottom)))),
    )


@singledispatch
def extract_shape(shape: Any, page: Page) -> Optional[Image.Image]:
    """Cut a shape out of the page without rotation (RGBA), or None if degenerate."""
    raise TypeError(f"Unsupported shape type: {type(shape).__name__}")


@extract_shape.register
def _(shape: Box, page: Page) -> Optional[Image.Image]:
    left, top, right, bottom = box_pixel_rect(page, shape)
    if right - left < 1 or bottom - top < 1:
        return None
    return page.image.crop((left, top, right, bottom)).convert("RGBA")


@extract_shape.register
def _(shape: Polygon, page: Page) -> Optional[Image.Image]:
    points = percent_to_pixels(page).apply_all((p.x, p.y) for p in shape.points)
    if polygon_area(points) < 1.0:
        return None

    left = max(0, int(math.floor(min(x for x, _ in points))))
    top = max(0, int(math.floor(min(y for _, y in points))))
    right = min(page.width, int(math.ceil(max(x for x, _ in points))))
    bottom = min(page.height, int(math.ceil(max(y for _, y in points))))
    if right - left < 1 or bottom - top < 1:
        return None

    crop = page.image.crop((left, top, right, bottom)).convert("RGBA")
    local = Affine.translate(-left, -top).apply_all(points)
    mask = Image.new("L", crop.size, 0)
    ImageDraw.Draw(mask).polygon(local, fill=255)
    crop.putalpha(ImageChops.multiply(crop.getchannel("A"), mask))
    return crop


def bake_rotation(image: Image.Image, degrees: float) -> Image.Image:
    """Rotate a clipped raster about its centre, expanding the canvas.

    Right angles use lossless transposes; other angles resample through the
    inverse of the centre-rotation transform. Uncovered canvas is transparent.

    Args:
        image: Clip to rotate (not modified)
        degrees: Clockwise angle in degrees

    Returns:
        New RGBA image
    """
    source = image if image.mode == "RGBA" else image.convert("RGBA")
    angle = normalize_rotation(degrees)

    if angle == 0.0:
        return source.copy()
    if angle == 90.0:
        return source.transpose(Image.Transpose.ROTATE_270)
    if angle == 180.0:
        return source.transpose(Image.Transpose.ROTATE_180)
    if angle == -90.0:
        return source.transpose(Image.Transpose.ROTATE_90)

    forward, canvas = centre_rotation(source.width, source.height, angle)
    return source.transform(
        canvas,
        Image.Transform.AFFINE,
        forward.inverse().coefficients,
        resample=Image.Resampling.BICUBIC,
        fillcolor=TRANSPARENT,
    )


def clip_shape(page: Optional[Page], shape: Shape, rotation: float = 0.0) -> Optional[Image.Image]:
    """Clip a shape from a page and apply its rotation.

    Pure and deterministic for a given (page, shape, rotation).

    Returns:
        RGBA clip, or None if the page is unavailable or the shape degenerate
    """
    if page is None:
        return None
    extracted = extract_shape(shape, page)
    if extracted is None:
        logger.debug("Degenerate shape on page %s: %s", page.page_index, shape)
        return None
    return bake_rotation(extracted, rotation)


def extract_region(page: Optional[Page], region: Region) -> Optional[Image.Image]:
    """Unrotated RGBA extract of a region (None if the page is missing, foreign or the shape degenerate)."""
    if page is None:
        return None
    if page.page_index != region.page_index:
        logger.warning(
            "Region %s belongs to page %s, not page %s", region.id, region.page_index, page.page_index
        )
        return None
    extracted = extract_shape(region.shape, page)
    if extracted is None:
        logger.debug("Degenerate shape on page %s: %s", page.page_index, region.shape)
    return extracted


def clip_region(page: Optional[Page], region: Region) -> Optional[Image.Image]:
    """Clip a region from its page (None if the page is missing or not the region's page)."""
    extracted = extract_region(page, region)
    if extracted is None:
        return None
    return bake_rotation(extracted, region.rotation)
