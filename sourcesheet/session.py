"""Editing session: upload, seed, edit, identify and save one source sheet.

The session owns the Region Store of the open document and wires the
collaborators together. Detection and identification only ever propose;
changes reach the store through explicit calls (accept, editing methods on
``session.store``).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Union

from PIL import Image

from .ai.identification import IdentificationPipeline
from .ai.providers import build_provider_chain
from .config import ProfileConfig, get_ai_timeout, get_default_profile, get_provider_specs
from .editor.region_store import RegionStore
from .export.sheet_composer import (
    SheetSink,
    compose_sheet,
    load_sheet,
    render_composite_preview,
    save_sheet,
)
from .models.candidate import Candidate, IdentificationResult
from .models.page import Page
from .models.region import Region
from .models.sheet import SheetDocument
from .pipeline.detection import DetectionAdapter, ProgressCallback
from .pipeline.pdf_renderer import PageRasterizeError, rasterize_file

logger = logging.getLogger(__name__)


class NoDocumentError(RuntimeError):
    """Raised when an operation needs an open document and none is loaded."""
    pass


class SourceSheetSession:
    """One user's editing session over a single document."""

    def __init__(
        self,
        detector: Optional[DetectionAdapter] = None,
        identifier: Optional[IdentificationPipeline] = None,
        profile: Optional[ProfileConfig] = None,
    ):
        self.detector = detector
        self.identifier = identifier
        self.profile = profile or get_default_profile()
        self.store: Optional[RegionStore] = None
        self.pages: List[Page] = []
        self.source_path: Optional[Path] = None

    @classmethod
    def from_config(cls, profile: Optional[ProfileConfig] = None) -> SourceSheetSession:
        """Build a session from environment/saved AI config.

        Detection uses the first usable provider of the chain; identification
        walks the whole chain.
        """
        profile = profile or get_default_profile()
        providers = build_provider_chain(get_provider_specs(), timeout=get_ai_timeout())
        detector = DetectionAdapter(providers[0] if providers else None, profile=profile)
        identifier = IdentificationPipeline.from_config(profile=profile, providers=providers)
        return cls(detector=detector, identifier=identifier, profile=profile)

    # ------------------------------------------------------------------
    # Document lifecycle
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Return to the empty upload state."""
        self.store = None
        self.pages = []
        self.source_path = None

    def require_store(self) -> RegionStore:
        if self.store is None:
            raise NoDocumentError("No document loaded")
        return self.store

    def load_document(
        self, path: Union[str, Path], progress: Optional[ProgressCallback] = None
    ) -> RegionStore:
        """Rasterize a document and seed regions from detection, page by page.

        Detection failures leave pages empty for manual annotation.

        Raises:
            PageRasterizeError: Unreadable input; the session is reset first
        """
        self.reset()
        try:
            pages = rasterize_file(path)
        except PageRasterizeError:
            logger.error("Could not rasterize %s", path)
            self.reset()
            raise

        store = RegionStore(page_count=len(pages), profile=self.profile)
        for page in pages:
            store.load_page(page)

        if self.detector is not None:
            for result in self.detector.detect_document(pages, progress=progress):
                store.add_detected(result.page_index, result.regions)
        elif progress is not None:
            for done in range(1, len(pages) + 1):
                progress(done, len(pages))

        clipped = store.materialize_clips()
        logger.info("Loaded %s: %d pages, %d regions, %d clips", Path(path).name, len(pages), len(store), clipped)

        self.pages = pages
        self.store = store
        self.source_path = Path(path)
        return store

    def open_sheet(self, data) -> RegionStore:
        """Re-open a saved sheet for editing; stored images become the clips."""
        self.reset()
        self.store = RegionStore.from_sheet(load_sheet(data), profile=self.profile)
        return self.store

    # ------------------------------------------------------------------
    # Identification
    # ------------------------------------------------------------------

    def identify(self, region_id: str) -> IdentificationResult:
        """Run identification for one region without modifying it."""
        store = self.require_store()
        region: Region = store.get(region_id)
        image = store.ensure_clip(region_id)
        if self.identifier is None:
            logger.info("No identification pipeline configured")
            return IdentificationResult.unidentified(region.recognized_text)
        return self.identifier.identify(image, region.recognized_text or None)

    def accept(self, region_id: str, candidate: Candidate) -> Region:
        """Apply the user's chosen candidate to a region."""
        return self.require_store().accept_candidate(region_id, candidate)

    def search(self, query: str) -> List[Candidate]:
        if self.identifier is None:
            return []
        return self.identifier.search(query)

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def compose(self) -> SheetDocument:
        return compose_sheet(self.require_store())

    def save(self, sink: SheetSink) -> SheetDocument:
        """Compose and save the sheet.

        Raises:
            SheetSaveError: Sink failure; the store is unchanged and save can be retried
        """
        document = self.compose()
        save_sheet(document, sink)
        return document

    def preview(self, width: Optional[int] = None) -> Image.Image:
        width = width or int(self.profile.export['preview_width'])
        return render_composite_preview(self.compose(), width=width)
