"""Detection adapter: turn a page raster into draft regions via a vision provider.

Provider output is untrusted. Each provider declares one coordinate
convention and proposals are normalized against that convention only; a
proposal carrying the other convention's key is skipped with a warning
instead of being reinterpreted. Out-of-range numbers are clamped (and
warned) rather than rejected.

A failed, timed-out or unparseable call yields an empty result. The caller
treats that as "annotate manually", not as an error.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from ..ai.providers import CoordinateConvention, ProviderError, VisionProvider
from ..ai.schemas import ProposedRegion, parse_proposed_regions
from ..config.profile_loader import ProfileConfig, get_default_profile
from ..models.page import Page
from ..models.shapes import Box, clamp

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


@dataclass
class DetectedRegion:
    """One normalized detection: a percent box plus optional OCR text, reference and confidence."""
    box: Box
    text: str = ""
    reference: Optional[str] = None
    confidence: Optional[float] = None


@dataclass
class DetectionResult:
    """Detections for one page, in provider order."""
    page_index: int
    regions: List[DetectedRegion] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.regions)

    @property
    def empty(self) -> bool:
        return not self.regions


class DetectionAdapter:
    """Normalize one provider's detection output into DetectedRegions."""

    def __init__(self, provider: Optional[VisionProvider], profile: Optional[ProfileConfig] = None):
        """Initialize adapter.

        Args:
            provider: Vision provider to call, or None to always return empty results
            profile: Profile supplying the minimum box size (default profile if None)
        """
        self.provider = provider
        settings = (profile or get_default_profile()).detection
        self.min_box_size = float(settings.get('min_box_size', 1.0))

    @property
    def convention(self) -> Optional[CoordinateConvention]:
        return self.provider.coordinate_convention if self.provider else None

    def detect(self, page: Page) -> DetectionResult:
        """Propose regions for one page.

        Never raises for provider problems; failures produce an empty result
        with the reason in warnings.
        """
        result = DetectionResult(page_index=page.page_index)
        if self.provider is None:
            logger.debug("No detection provider configured, page %d left for manual annotation", page.page_index)
            return result

        try:
            payload = self.provider.detect_sources(page.image)
        except ProviderError as e:
            logger.warning("Detection failed on page %d via %s: %s", page.page_index, self.provider.label, e)
            result.warnings.append(f"detection failed: {e}")
            return result
        except ValueError as e:
            logger.warning("Page %d could not be sent for detection: %s", page.page_index, e)
            result.warnings.append(f"page image rejected: {e}")
            return result

        proposals, warnings = parse_proposed_regions(payload)
        result.warnings.extend(warnings)
        for i, proposal in enumerate(proposals):
            detected = self._normalize(i, proposal, result.warnings)
            if detected is not None:
                result.regions.append(detected)

        for warning in result.warnings:
            logger.warning("Page %d: %s", page.page_index, warning)
        if result.empty:
            logger.info("No regions detected on page %d", page.page_index)
        else:
            logger.info("Detected %d regions on page %d", len(result.regions), page.page_index)
        return result

    def detect_document(
        self, pages: Sequence[Page], progress: Optional[ProgressCallback] = None
    ) -> List[DetectionResult]:
        """Detect page by page, in order, reporting (done, total) after each page."""
        results = []
        total = len(pages)
        for done, page in enumerate(pages, start=1):
            results.append(self.detect(page))
            if progress is not None:
                progress(done, total)
        return results

    # ------------------------------------------------------------------
    # Normalization
    # ------------------------------------------------------------------

    def _normalize(self, index: int, proposal: ProposedRegion, warnings: List[str]) -> Optional[DetectedRegion]:
        if self.convention == CoordinateConvention.BOX_2D_PERMILLE:
            raw = self._from_box_2d(index, proposal, warnings)
        else:
            raw = self._from_box(index, proposal, warnings)
        if raw is None:
            return None

        box = self._clamp_box(index, *raw, warnings=warnings)
        confidence = proposal.confidence
        if confidence is not None and not 0.0 <= confidence <= 1.0:
            warnings.append(f"region {index}: confidence {confidence} clamped to [0, 1]")
            confidence = clamp(confidence, 0.0, 1.0)
        return DetectedRegion(
            box=box,
            text=proposal.text.strip(),
            reference=proposal.reference,
            confidence=confidence,
        )

    @staticmethod
    def _from_box(index: int, proposal: ProposedRegion, warnings: List[str]):
        if proposal.box is None:
            if proposal.box_2d is not None:
                warnings.append(f"region {index}: got box_2d but provider declares percent boxes, skipped")
            else:
                warnings.append(f"region {index}: no box, skipped")
            return None
        b = proposal.box
        return b.x, b.y, b.width, b.height

    @staticmethod
    def _from_box_2d(index: int, proposal: ProposedRegion, warnings: List[str]):
        if proposal.box_2d is None:
            if proposal.box is not None:
                warnings.append(f"region {index}: got percent box but provider declares box_2d, skipped")
            else:
                warnings.append(f"region {index}: no box_2d, skipped")
            return None
        if len(proposal.box_2d) != 4:
            warnings.append(f"region {index}: box_2d needs 4 values, got {len(proposal.box_2d)}, skipped")
            return None
        ymin, xmin, ymax, xmax = (v / 10.0 for v in proposal.box_2d)
        return xmin, ymin, xmax - xmin, ymax - ymin

    def _clamp_box(self, index: int, x: float, y: float, width: float, height: float, warnings: List[str]) -> Box:
        lo = self.min_box_size
        cx = clamp(x, 0.0, 100.0 - lo)
        cy = clamp(y, 0.0, 100.0 - lo)
        cw = clamp(width, lo, 100.0 - cx)
        ch = clamp(height, lo, 100.0 - cy)
        if (cx, cy, cw, ch) != (x, y, width, height):
            warnings.append(
                f"region {index}: box ({x:g}, {y:g}, {width:g}, {height:g}) clamped to "
                f"({cx:g}, {cy:g}, {cw:g}, {ch:g})"
            )
        return Box(x=cx, y=cy, width=cw, height=ch)
