"""Identification pipeline: classify a clipped source against the reference corpus.

Strategies run in order and stop at the first one that yields verified
candidates:

1. Vision providers, tried one (credential, model) pair at a time. Rate
   limits, rejected credentials, unknown models and other provider failures
   skip to the next pair; the first pair returning a non-empty parseable
   candidate list ends this strategy.
2. Every proposed reference is verified against its canonical corpus text
   and discarded below the acceptance threshold.
3. Full-text corpus search over windows of the recognized text, hits
   deduplicated by reference and verified the same way.
4. Otherwise an explicit "unidentified" result carrying the recognized text.

The pipeline holds no per-call state and never touches the Region Store.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, Tuple

from ..config import get_ai_timeout, get_corpus_endpoint, get_default_profile, get_provider_specs
from ..models.candidate import STATUS_IDENTIFIED, Candidate, IdentificationResult
from ..quality.verification import DEFAULT_ACCEPTANCE_THRESHOLD, normalize_text, verification_score
from .client import CorpusClient, CorpusClientError, CorpusText, SearchHit
from .providers import (
    ProviderAuthError,
    ProviderError,
    ProviderNotFoundError,
    ProviderRateLimitError,
    VisionProvider,
    build_provider_chain,
)

if TYPE_CHECKING:
    from PIL import Image
    from ..config import ProfileConfig

logger = logging.getLogger(__name__)

SEARCH_STRATEGY = "search"
MANUAL_SEARCH_STRATEGY = "manual-search"
PREVIEW_CHARS = 120

# (display name, reference, preview text)
Proposal = Tuple[str, str, str]


def search_windows(text: str, size: int) -> List[str]:
    """Leading, middle and trailing windows of text (distinct, at least 3 chars)."""
    if len(text) <= size:
        windows = [text]
    else:
        middle = (len(text) - size) // 2
        windows = [text[:size], text[middle:middle + size], text[-size:]]
    result = []
    for window in (w.strip() for w in windows):
        if len(window) >= 3 and window not in result:
            result.append(window)
    return result


class IdentificationPipeline:
    """Ranked, verified identification of clipped sources."""

    def __init__(
        self,
        providers: Sequence[VisionProvider],
        corpus: CorpusClient,
        acceptance_threshold: float = DEFAULT_ACCEPTANCE_THRESHOLD,
        script: Optional[str] = "hebrew",
        search_window: int = 40,
        search_size: int = 5,
    ):
        """Initialize pipeline.

        Args:
            providers: Ordered providers, one per (credential, model) pair
            corpus: Corpus client for verification and search
            acceptance_threshold: Minimum verification score to surface a candidate
            script: Script that normalization restricts text to
            search_window: Characters per full-text search query
            search_size: Hits requested per search query
        """
        if not 0.0 <= acceptance_threshold <= 1.0:
            raise ValueError(f"acceptance_threshold must be within [0, 1], got {acceptance_threshold}")
        self.providers = list(providers)
        self.corpus = corpus
        self.acceptance_threshold = acceptance_threshold
        self.script = script
        self.search_window = search_window
        self.search_size = search_size

    @classmethod
    def from_config(
        cls,
        profile: Optional[ProfileConfig] = None,
        corpus: Optional[CorpusClient] = None,
        providers: Optional[Sequence[VisionProvider]] = None,
    ) -> IdentificationPipeline:
        """Build a pipeline from environment/saved AI config and a profile.

        Args:
            profile: Profile supplying thresholds and search settings
            corpus: Corpus client (one for the configured endpoint if None)
            providers: Ready provider chain (built from the AI config if None)
        """
        settings = (profile or get_default_profile()).identification
        timeout = get_ai_timeout()
        if providers is None:
            providers = build_provider_chain(get_provider_specs(), timeout=timeout)
        return cls(
            providers=providers,
            corpus=corpus or CorpusClient(get_corpus_endpoint(), timeout=timeout),
            acceptance_threshold=float(settings['acceptance_threshold']),
            script=settings['script'],
            search_window=int(settings['search_window']),
            search_size=int(settings['search_size']),
        )

    def identify(self, image: Optional[Image.Image], recognized_text: Optional[str] = None) -> IdentificationResult:
        """Identify one clipped source.

        Args:
            image: Clipped raster (provider strategy is skipped when None)
            recognized_text: OCR text for the region, if known

        Returns:
            IdentificationResult; "unidentified" when nothing survives verification
        """
        text = (recognized_text or "").strip()
        attempts: List[str] = []

        proposals, label = self._run_providers(image, text, attempts)
        if proposals:
            accepted = self._verify(proposals, label, text, attempts)
            if accepted:
                logger.info("Identified via %s: %s", label, [c.corpus_reference for c in accepted])
                return IdentificationResult(
                    status=STATUS_IDENTIFIED, candidates=accepted, recognized_text=text,
                    strategy=label, attempts=attempts,
                )

        hits = self._run_search(text, attempts)
        if hits:
            proposals = [(hit.reference, hit.reference, hit.snippet) for hit in hits]
            accepted = self._verify(proposals, SEARCH_STRATEGY, text, attempts)
            if accepted:
                logger.info("Identified via corpus search: %s", [c.corpus_reference for c in accepted])
                return IdentificationResult(
                    status=STATUS_IDENTIFIED, candidates=accepted, recognized_text=text,
                    strategy=SEARCH_STRATEGY, attempts=attempts,
                )

        logger.info("Source unidentified after %d attempts", len(attempts))
        return IdentificationResult.unidentified(text, attempts)

    def search(self, query: str) -> List[Candidate]:
        """Manual corpus search; hits are returned unfiltered, scored against the query."""
        try:
            hits = self.corpus.search(query, size=self.search_size)
        except CorpusClientError as e:
            logger.warning("Manual search failed: %s", e)
            return []
        return [
            Candidate(
                display_name=hit.reference,
                corpus_reference=hit.reference,
                preview_text=hit.snippet[:PREVIEW_CHARS],
                strategy_source=MANUAL_SEARCH_STRATEGY,
                score=verification_score(query, hit.snippet, self.script),
            )
            for hit in _dedupe_hits(hits)
        ]

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    def _run_providers(
        self, image: Optional[Image.Image], text: str, attempts: List[str]
    ) -> Tuple[List[Proposal], Optional[str]]:
        if image is None:
            attempts.append("providers: skipped, no clipped image")
            return [], None
        if not self.providers:
            attempts.append("providers: none configured")
            return [], None

        for provider in self.providers:
            label = provider.label
            try:
                raw = provider.identify_source(image, text or None)
            except (ProviderRateLimitError, ProviderAuthError, ProviderNotFoundError) as e:
                logger.info("%s unavailable (%s), trying next", label, type(e).__name__)
                attempts.append(f"{label}: {type(e).__name__}")
                continue
            except ProviderError as e:
                logger.warning("%s failed: %s", label, e)
                attempts.append(f"{label}: {type(e).__name__}: {e}")
                continue
            except ValueError as e:
                logger.warning("%s could not send image: %s", label, e)
                attempts.append(f"{label}: image rejected: {e}")
                continue

            if not raw:
                attempts.append(f"{label}: no candidates")
                continue
            attempts.append(f"{label}: {len(raw)} candidates")
            return [(c.display_name, c.corpus_reference, c.preview_text) for c in raw], label

        return [], None

    def _run_search(self, text: str, attempts: List[str]) -> List[SearchHit]:
        normalized = normalize_text(text, self.script)
        if not normalized:
            attempts.append("search: skipped, no recognized text")
            return []
        for window in search_windows(normalized, self.search_window):
            try:
                hits = self.corpus.search(window, size=self.search_size)
            except CorpusClientError as e:
                logger.warning("Corpus search failed for %r: %s", window, e)
                attempts.append(f"search {window!r}: {type(e).__name__}")
                continue
            attempts.append(f"search {window!r}: {len(hits)} hits")
            if hits:
                return _dedupe_hits(hits)
        return []

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def _verify(
        self, proposals: List[Proposal], source: Optional[str], text: str, attempts: List[str]
    ) -> List[Candidate]:
        accepted: List[Candidate] = []
        canonical_cache: Dict[str, Optional[CorpusText]] = {}
        seen = set()
        for display_name, reference, preview in proposals:
            reference = (reference or "").strip()
            if not reference:
                logger.info("Discarding %r from %s: no corpus reference", display_name, source)
                continue
            if reference in seen:
                continue
            seen.add(reference)

            if reference not in canonical_cache:
                canonical_cache[reference] = self._lookup(reference, attempts)
            canonical = canonical_cache[reference]
            if canonical is None:
                logger.info("Discarding %r from %s: reference not found in corpus", reference, source)
                continue

            compared = text or preview
            score = verification_score(compared, canonical.canonical_text, self.script)
            if score < self.acceptance_threshold:
                logger.info(
                    "Discarding %r from %s: verification score %.2f below %.2f",
                    reference, source, score, self.acceptance_threshold,
                )
                attempts.append(f"verify {reference}: rejected ({score:.2f})")
                continue

            attempts.append(f"verify {reference}: accepted ({score:.2f})")
            accepted.append(Candidate(
                display_name=display_name or canonical.ref,
                corpus_reference=canonical.ref or reference,
                preview_text=(preview or canonical.canonical_text)[:PREVIEW_CHARS],
                strategy_source=source or "",
                score=score,
            ))
        return accepted

    def _lookup(self, reference: str, attempts: List[str]) -> Optional[CorpusText]:
        try:
            return self.corpus.get_text(reference)
        except CorpusClientError as e:
            logger.warning("Corpus lookup failed for %r: %s", reference, e)
            attempts.append(f"lookup {reference}: {type(e).__name__}")
            return None


def _dedupe_hits(hits: List[SearchHit]) -> List[SearchHit]:
    seen = set()
    unique = []
    for hit in hits:
        if hit.reference in seen:
            continue
        seen.add(hit.reference)
        unique.append(hit)
    return unique
