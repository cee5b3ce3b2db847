"""In-memory Region Store and the editing operations applied to it.

The store is the single source of truth for the regions of the open
document. Every operation runs to completion synchronously; there is one
writer. Geometry edits drop the region's cached clip, and clips are only
recomputed on demand (ensure_clip / materialize_clips) from a loaded page,
or from the cached unrotated base when the page is gone.

Coordinate problems are corrected by clamping rather than raised. Asking a
box-only operation to edit a polygon is a caller error and raises
UnsupportedShapeOperation.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Dict, Iterable, Iterator, List, Optional, Sequence, Union

from ..config.profile_loader import ProfileConfig, get_default_profile
from ..models.candidate import Candidate
from ..models.page import Page
from ..models.region import Region, clamp_display_size
from ..models.shapes import (
    Box,
    Point,
    Polygon,
    clamp,
    clamp_box,
    clamp_point,
    distinct_points,
    normalize_rotation,
    to_point,
)
from ..pipeline.clipping import bake_rotation, clip_region, extract_region

if TYPE_CHECKING:
    from PIL import Image

    from ..models.sheet import SheetDocument
    from ..pipeline.detection import DetectedRegion

logger = logging.getLogger(__name__)


class UnsupportedShapeOperation(ValueError):
    """Raised when a box-only operation targets a polygon region."""
    pass


class ResizeHandle(str, Enum):
    """Corner handles; each moves the two edges that meet at it."""
    NW = "nw"
    NE = "ne"
    SW = "sw"
    SE = "se"


class RegionStore:
    """Ordered regions of the active document plus its loaded pages."""

    def __init__(self, page_count: int, profile: Optional[ProfileConfig] = None):
        """Initialize an empty store.

        Args:
            page_count: Number of pages in the document
            profile: Thresholds (editor section); default profile if None
        """
        if page_count < 0:
            raise ValueError(f"page_count must be >= 0, got {page_count}")
        self.page_count = page_count
        editor = (profile or get_default_profile()).editor
        self.min_draw_size = float(editor['min_draw_size'])
        self.min_box_size = float(editor['min_box_size'])
        self.grid_margin = float(editor['grid_margin'])
        self.default_display_size = clamp_display_size(editor['default_display_size'])
        self._regions: List[Region] = []
        self._pages: Dict[int, Page] = {}

    # ------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------

    def load_page(self, page: Page) -> None:
        self._check_page_index(page.page_index)
        self._pages[page.page_index] = page

    def unload_page(self, page_index: int) -> None:
        self._pages.pop(page_index, None)

    def page(self, page_index: int) -> Optional[Page]:
        return self._pages.get(page_index)

    def _check_page_index(self, page_index: int) -> None:
        if not 0 <= page_index < self.page_count:
            raise ValueError(f"Page index {page_index} out of range (document has {self.page_count} pages)")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._regions)

    def __iter__(self) -> Iterator[Region]:
        return iter(list(self._regions))

    @property
    def regions(self) -> List[Region]:
        return list(self._regions)

    def regions_on_page(self, page_index: int) -> List[Region]:
        return [r for r in self._regions if r.page_index == page_index]

    def get(self, region_id: str) -> Region:
        """Get region by id.

        Raises:
            KeyError: If no region has this id
        """
        for region in self._regions:
            if region.id == region_id:
                return region
        raise KeyError(f"Unknown region: {region_id}")

    def _index_of(self, region_id: str) -> int:
        for i, region in enumerate(self._regions):
            if region.id == region_id:
                return i
        raise KeyError(f"Unknown region: {region_id}")

    def _insertion_index(self, page_index: int) -> int:
        # Regions stay grouped by page: insert before the first region of a later page
        for i, region in enumerate(self._regions):
            if region.page_index > page_index:
                return i
        return len(self._regions)

    def _box_region(self, region_id: str) -> Region:
        region = self.get(region_id)
        if not isinstance(region.shape, Box):
            raise UnsupportedShapeOperation(f"Region {region_id} is a polygon; operation needs a box")
        return region

    def _placeholder_name(self) -> str:
        return f"Source {len(self._regions) + 1}"

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def _insert(self, region: Region) -> Region:
        self._regions.insert(self._insertion_index(region.page_index), region)
        return region

    def add_box(self, page_index: int, box: Box, name: Optional[str] = None) -> Optional[Region]:
        """Add a drawn box.

        Boxes no larger than min_draw_size on either axis are treated as stray
        clicks and ignored.

        Returns:
            The new Region, or None if the box was too small
        """
        self._check_page_index(page_index)
        if box.width <= self.min_draw_size or box.height <= self.min_draw_size:
            logger.debug("Ignoring box below %.1f%%: %s", self.min_draw_size, box)
            return None
        region = Region(
            page_index=page_index,
            shape=clamp_box(box, min_size=self.min_draw_size),
            name=name or self._placeholder_name(),
            display_size=self.default_display_size,
            is_manual=True,
        )
        return self._insert(region)

    def add_box_from_drag(
        self,
        page_index: int,
        start: Union[Point, Sequence[float], dict],
        end: Union[Point, Sequence[float], dict],
        name: Optional[str] = None,
    ) -> Optional[Region]:
        """Add a box drawn by dragging from start to end, in either direction.

        A plain click (start == end) or any drag no larger than min_draw_size
        on either axis is ignored.

        Returns:
            The new Region, or None if the drag was too small
        """
        self._check_page_index(page_index)
        a, b = to_point(start), to_point(end)
        width, height = abs(b.x - a.x), abs(b.y - a.y)
        if width <= self.min_draw_size or height <= self.min_draw_size:
            logger.debug("Ignoring drag %.1f x %.1f below %.1f%%", width, height, self.min_draw_size)
            return None
        box = Box(x=min(a.x, b.x), y=min(a.y, b.y), width=width, height=height)
        return self.add_box(page_index, box, name=name)

    def add_polygon(
        self,
        page_index: int,
        points: Sequence[Union[Point, Sequence[float], dict]],
        name: Optional[str] = None,
    ) -> Optional[Region]:
        """Add a drawn polygon (closed path).

        Returns:
            The new Region, or None if fewer than 3 distinct points remain
        """
        self._check_page_index(page_index)
        if len(points) < 3:
            logger.debug("Ignoring polygon with %d points", len(points))
            return None
        polygon = Polygon.from_points(points)
        clamped = tuple(clamp_point(p) for p in polygon.points)
        if distinct_points(clamped) < 3:
            logger.debug("Ignoring polygon with fewer than 3 distinct points")
            return None
        region = Region(
            page_index=page_index,
            shape=Polygon(points=clamped),
            name=name or self._placeholder_name(),
            display_size=self.default_display_size,
            is_manual=True,
        )
        return self._insert(region)

    def add_detected(self, page_index: int, detections: Iterable[DetectedRegion]) -> List[Region]:
        """Seed regions proposed by the detection adapter, keeping their order."""
        self._check_page_index(page_index)
        index = self._insertion_index(page_index)
        created = []
        for detection in detections:
            region = Region(
                page_index=page_index,
                shape=detection.box,
                name=self._placeholder_name(),
                reference=detection.reference,
                display_size=self.default_display_size,
                recognized_text=detection.text or "",
                confidence=detection.confidence,
            )
            self._regions.insert(index, region)
            index += 1
            created.append(region)
        return created

    # ------------------------------------------------------------------
    # Geometry edits
    # ------------------------------------------------------------------

    def drag(self, region_id: str, dx: float, dy: float) -> Region:
        """Translate a box, keeping it inside the page."""
        region = self._box_region(region_id)
        box = region.shape
        x = clamp(box.x + dx, 0.0, 100.0 - box.width)
        y = clamp(box.y + dy, 0.0, 100.0 - box.height)
        region.shape = Box(x=x, y=y, width=box.width, height=box.height)
        region.invalidate_clip()
        return region

    def resize(self, region_id: str, handle: Union[ResizeHandle, str], dx: float, dy: float) -> Region:
        """Move the two edges adjacent to a corner handle.

        Edges stay inside [0, 100] and never get closer than min_box_size.
        """
        handle = ResizeHandle(handle)
        region = self._box_region(region_id)
        box = region.shape
        left, top, right, bottom = box.x, box.y, box.right, box.bottom
        floor = self.min_box_size

        if handle in (ResizeHandle.NW, ResizeHandle.SW):
            left = clamp(left + dx, 0.0, max(0.0, right - floor))
        else:
            right = clamp(right + dx, min(100.0, left + floor), 100.0)
        if handle in (ResizeHandle.NW, ResizeHandle.NE):
            top = clamp(top + dy, 0.0, max(0.0, bottom - floor))
        else:
            bottom = clamp(bottom + dy, min(100.0, top + floor), 100.0)

        region.shape = Box.from_edges(left, top, right, bottom)
        region.invalidate_clip()
        return region

    def rotate(self, region_id: str, angle: float) -> Region:
        """Set a region's rotation.

        With the page loaded the clip is dropped and re-derived later. Without
        it the existing clip and its unrotated base are kept; the full
        rotation is baked into the base when the clip is next needed.
        """
        region = self.get(region_id)
        region.rotation = normalize_rotation(angle)
        if region.page_index in self._pages:
            region.invalidate_clip()
        return region

    def split(self, region_id: str) -> List[Region]:
        """Halve a box along its height; the halves replace it in place."""
        region = self._box_region(region_id)
        index = self._index_of(region_id)
        box = region.shape
        half = box.height / 2.0
        upper = Region(
            page_index=region.page_index,
            shape=Box(x=box.x, y=box.y, width=box.width, height=half),
            name=region.name,
            rotation=region.rotation,
            reference=region.reference,
            display_size=region.display_size,
            recognized_text=region.recognized_text,
            confidence=region.confidence,
            is_manual=True,
        )
        lower = Region(
            page_index=region.page_index,
            shape=Box(x=box.x, y=box.y + half, width=box.width, height=box.bottom - (box.y + half)),
            name=f"{region.name} (2)",
            rotation=region.rotation,
            display_size=region.display_size,
            is_manual=True,
        )
        self._regions[index:index + 1] = [upper, lower]
        return [upper, lower]

    def apply_grid(self, page_index: int, rows: int, cols: int = 1) -> List[Region]:
        """Replace every region on a page with a rows x cols grid inside the margin."""
        self._check_page_index(page_index)
        if rows < 1 or cols < 1:
            raise ValueError(f"Grid needs at least one row and column, got {rows}x{cols}")
        self.clear_page(page_index)

        span = 100.0 - 2 * self.grid_margin
        cell_height = span / rows
        cell_width = span / cols
        index = self._insertion_index(page_index)
        created = []
        for r in range(rows):
            for c in range(cols):
                region = Region(
                    page_index=page_index,
                    shape=Box(
                        x=self.grid_margin + c * cell_width,
                        y=self.grid_margin + r * cell_height,
                        width=cell_width,
                        height=cell_height,
                    ),
                    name=self._placeholder_name(),
                    display_size=self.default_display_size,
                    is_manual=True,
                )
                self._regions.insert(index, region)
                index += 1
                created.append(region)
        return created

    # ------------------------------------------------------------------
    # Removal and metadata
    # ------------------------------------------------------------------

    def delete(self, region_id: str) -> Region:
        return self._regions.pop(self._index_of(region_id))

    def clear_page(self, page_index: int) -> int:
        """Remove all regions on a page; returns how many were removed."""
        before = len(self._regions)
        self._regions = [r for r in self._regions if r.page_index != page_index]
        return before - len(self._regions)

    def rename(self, region_id: str, name: str) -> Region:
        region = self.get(region_id)
        region.name = name.strip() or region.name
        return region

    def set_reference(self, region_id: str, reference: Optional[str]) -> Region:
        region = self.get(region_id)
        region.reference = (reference or "").strip() or None
        return region

    def set_display_size(self, region_id: str, size: float) -> Region:
        region = self.get(region_id)
        region.display_size = clamp_display_size(size)
        return region

    def accept_candidate(self, region_id: str, candidate: Candidate) -> Region:
        """Write an accepted candidate's name and reference onto a region."""
        region = self.get(region_id)
        region.name = candidate.display_name or candidate.corpus_reference
        region.reference = candidate.corpus_reference
        return region

    # ------------------------------------------------------------------
    # Clips
    # ------------------------------------------------------------------

    def current_clip(self, region_id: str) -> Optional[Image.Image]:
        """Clip for the region's current shape and rotation, without caching it.

        A loaded page is clipped live. Otherwise the cached unrotated base is
        rotated by the full difference between the region's rotation and the
        rotation the base already holds.

        Returns:
            The clip, or None if neither the page nor a cached base is available
        """
        region = self.get(region_id)
        if region.clip_is_current:
            return region.clipped_image
        page = self._pages.get(region.page_index)
        if page is not None:
            return clip_region(page, region)
        if region.base_image is not None:
            return bake_rotation(region.base_image, region.rotation - region.base_rotation)
        return None

    def ensure_clip(self, region_id: str) -> Optional[Image.Image]:
        """Return the region's clip, computing and caching it if missing or stale.

        Returns:
            The clip, or None if there is none and the page is not loaded
        """
        region = self.get(region_id)
        if region.clip_is_current:
            return region.clipped_image

        page = self._pages.get(region.page_index)
        if page is not None:
            base = extract_region(page, region)
            if base is None:
                return None
            region.set_clip(bake_rotation(base, region.rotation), region.rotation, base=base)
        elif region.base_image is not None:
            logger.debug("Re-baking region %s from its cached base", region.id)
            region.set_clip(
                bake_rotation(region.base_image, region.rotation - region.base_rotation),
                region.rotation,
                base=region.base_image,
                base_rotation=region.base_rotation,
            )
        return region.clipped_image

    def materialize_clips(self, page_index: Optional[int] = None) -> int:
        """Clip every region lacking a current clip (optionally on one page); returns how many were made."""
        made = 0
        for region in self._regions:
            if page_index is not None and region.page_index != page_index:
                continue
            if not region.clip_is_current and self.ensure_clip(region.id) is not None:
                made += 1
        return made

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    @classmethod
    def from_sheet(
        cls,
        document: SheetDocument,
        page_count: Optional[int] = None,
        profile: Optional[ProfileConfig] = None,
    ) -> RegionStore:
        """Rebuild a store from a saved sheet; each entry's image becomes the clip.

        Entries without stored geometry get a full-page box; entries without a
        page are placed on page 0.
        """
        known_pages = [e.page_index for e in document.entries if e.page_index is not None]
        count = page_count if page_count is not None else max(known_pages, default=0) + 1
        store = cls(page_count=max(count, 1), profile=profile)
        for entry in document.entries:
            region = Region(
                page_index=entry.page_index or 0,
                shape=entry.shape or Box(x=0.0, y=0.0, width=100.0, height=100.0),
                name=entry.name,
                id=entry.id,
                rotation=entry.rotation,
                reference=entry.reference,
                display_size=entry.display_size,
            )
            if entry.image is not None:
                region.set_clip(entry.image, entry.rotation)
            store._regions.append(region)
        return store
