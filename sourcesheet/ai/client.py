"""HTTP client for the reference corpus service (text lookup and full-text search)."""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, List, Optional
from urllib.parse import quote, urljoin

import requests

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<[^>]+>")


class CorpusClientError(Exception):
    """Base exception for corpus client errors."""
    pass


class CorpusConnectionError(CorpusClientError):
    """Raised when connection to the corpus service fails or times out."""
    pass


class CorpusAPIError(CorpusClientError):
    """Raised when the corpus service returns an error."""
    pass


@dataclass
class CorpusText:
    """Canonical text of one corpus reference."""
    ref: str
    text: str = ""
    he: str = ""
    he_ref: str = ""
    book: str = ""
    categories: List[str] = field(default_factory=list)

    @property
    def canonical_text(self) -> str:
        """Original-language text when present, otherwise the translation."""
        return self.he or self.text


@dataclass
class SearchHit:
    """One full-text search result."""
    reference: str
    snippet: str = ""
    he_ref: str = ""
    score: float = 0.0


def flatten_text(value: Any) -> str:
    """Flatten nested text arrays into one string and strip HTML markup."""
    if not value:
        return ""
    if isinstance(value, str):
        return _TAG_RE.sub("", value).strip()
    if isinstance(value, list):
        return " ".join(part for part in (flatten_text(item) for item in value) if part)
    return ""


class CorpusClient:
    """Client for a Sefaria-compatible corpus API."""

    def __init__(
        self,
        endpoint: str = "https://www.sefaria.org/api/",
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        """Initialize corpus client.

        Args:
            endpoint: Base URL of the API (e.g., "https://www.sefaria.org/api/")
            timeout: Request timeout in seconds
            session: Optional preconfigured requests session
        """
        self.endpoint = endpoint.rstrip('/') + '/'
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({'Accept': 'application/json'})

    def _get(self, path: str, params: Optional[dict] = None) -> requests.Response:
        url = urljoin(self.endpoint, path)
        try:
            return self.session.get(url, params=params, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise CorpusConnectionError(f"Request to {url} timed out after {self.timeout}s") from e
        except requests.exceptions.ConnectionError as e:
            raise CorpusConnectionError(f"Failed to connect to {url}: {e}") from e
        except requests.exceptions.RequestException as e:
            raise CorpusClientError(f"Unexpected error: {e}") from e

    @staticmethod
    def _json(response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise CorpusAPIError(f"Invalid JSON from corpus service: {response.text[:200]}") from e

    def get_text(self, ref: str) -> Optional[CorpusText]:
        """Look up the canonical text of a reference.

        Returns:
            CorpusText, or None if the reference does not exist

        Raises:
            CorpusConnectionError: If connection fails
            CorpusAPIError: If the service returns an error
        """
        response = self._get(f"texts/{quote(ref, safe='')}", params={"context": 0, "pad": 0})
        if response.status_code in (400, 404):
            return None
        if response.status_code != 200:
            raise CorpusAPIError(f"API error: {response.status_code} - {response.text[:200]}")
        data = self._json(response)
        if not isinstance(data, dict) or data.get("error"):
            logger.debug("Corpus has no text for %r: %s", ref, data.get("error") if isinstance(data, dict) else data)
            return None
        return CorpusText(
            ref=data.get("ref") or ref,
            text=flatten_text(data.get("text")),
            he=flatten_text(data.get("he")),
            he_ref=data.get("heRef") or "",
            book=data.get("book") or "",
            categories=list(data.get("categories") or []),
        )

    def search(self, query: str, size: int = 5) -> List[SearchHit]:
        """Full-text search; queries shorter than 3 characters return no hits.

        Raises:
            CorpusConnectionError: If connection fails
            CorpusAPIError: If the service returns an error
        """
        query = (query or "").strip()
        if len(query) < 3:
            return []
        response = self._get(f"search-wrapper/{quote(query, safe='')}", params={"size": size, "type": "text"})
        if response.status_code != 200:
            raise CorpusAPIError(f"API error: {response.status_code} - {response.text[:200]}")
        data = self._json(response)
        hits = ((data or {}).get("hits") or {}).get("hits") or []
        results = []
        for hit in hits:
            source = hit.get("_source") or {}
            if not source.get("ref"):
                continue
            results.append(SearchHit(
                reference=source["ref"],
                snippet=flatten_text(source.get("exact") or source.get("naive_lemmatizer") or ""),
                he_ref=source.get("heRef") or "",
                score=float(hit.get("_score") or 0.0),
            ))
        return results

    def health_check(self) -> bool:
        """Check if the corpus service is available."""
        try:
            response = self.session.get(urljoin(self.endpoint, 'texts/Genesis.1.1'), timeout=5)
        except requests.exceptions.RequestException:
            return False
        return response.status_code == 200
