"""Vision provider abstraction for OpenAI, Claude and Gemini.

Each provider instance is one (credential, model) pair. Providers send one
image per request (PNG/JPEG, max 4096 px longest side, 20 MB) and return
parsed JSON; callers decide what to do with failures, which are raised as
ProviderError subclasses so a chain can skip to the next pair.
"""

from __future__ import annotations

import base64
import io
import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

import requests

try:
    from openai import OpenAI
except ImportError:
    OpenAI = None

try:
    from anthropic import Anthropic
except ImportError:
    Anthropic = None

from PIL import Image

from .schemas import RawCandidate, parse_candidates

logger = logging.getLogger(__name__)

VISION_MAX_PIXELS_LONGEST_SIDE = 4096
VISION_MAX_FILE_BYTES = 20 * 1024 * 1024  # 20 MB
GEMINI_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta/"


class CoordinateConvention(str, Enum):
    """How a provider reports detection boxes."""
    BOX_PERCENT = "box_percent"          # {"box": {x, y, width, height}} in 0-100
    BOX_2D_PERMILLE = "box_2d_permille"  # {"box_2d": [ymin, xmin, ymax, xmax]} in 0-1000


IDENTIFY_PROMPT = """Identify this Hebrew/Aramaic Torah source. Return ONLY JSON:
{"candidates":[{"sourceName":"Name","sefariaRef":"Ref like Berakhot 55a","previewText":"First words"}]}

Examples: "Berakhot 55a", "Rashi on Genesis 1:1", "Shulchan Arukh, Orach Chayim 1:1"
"""

_DETECT_RULES = """Detection rules:
- Each numbered section (1, 2, 3 or א, ב, ג or circled numbers) is a SEPARATE source
- Include headers/titles with their associated text as ONE source
- Skip page numbers, decorative elements, and watermarks
- Sources may be in Hebrew, Aramaic, or English
"""

DETECT_PROMPT_PERMILLE = """Analyze this Torah/Jewish source sheet image. Find all distinct text sources on the page.

For EACH source you find, return:
1. box_2d: Bounding box as [ymin, xmin, ymax, xmax] where values are 0-1000 (normalized coordinates)
2. text: The Hebrew/Aramaic text content (OCR it)
3. reference: The source reference if you can identify it (e.g., "Bereishit 1:1", "Rashi on Shemot 3:14")

""" + _DETECT_RULES + """
Return ONLY a JSON object in this exact format, no other text:
{"sources":[{"box_2d":[ymin,xmin,ymax,xmax],"text":"...","reference":"..."}]}"""

DETECT_PROMPT_PERCENT = """Analyze this Torah/Jewish source sheet image. Find all distinct text sources on the page.

For EACH source you find, return:
1. box: {"x", "y", "width", "height"} as percentages (0-100) of the page width/height, top-left origin
2. text: The Hebrew/Aramaic text content (OCR it)
3. reference: The source reference if you can identify it (e.g., "Bereishit 1:1", "Rashi on Shemot 3:14")

""" + _DETECT_RULES + """
Return ONLY a JSON object in this exact format, no other text:
{"sources":[{"box":{"x":0,"y":0,"width":0,"height":0},"text":"...","reference":"..."}]}"""


class ProviderError(Exception):
    """Base exception for provider failures."""
    pass


class ProviderRateLimitError(ProviderError):
    """Raised on HTTP 429 / quota exhaustion."""
    pass


class ProviderAuthError(ProviderError):
    """Raised when the credential is rejected (401/403)."""
    pass


class ProviderNotFoundError(ProviderError):
    """Raised when the model does not exist (404)."""
    pass


class ProviderTimeoutError(ProviderError):
    """Raised when the request times out."""
    pass


class ProviderResponseError(ProviderError):
    """Raised when the response cannot be parsed."""
    pass


def classify_status_error(status: Optional[int], message: str = "") -> ProviderError:
    """Map an HTTP status to the matching ProviderError subclass."""
    detail = f"HTTP {status}: {message}" if status else message
    if status == 429:
        return ProviderRateLimitError(detail)
    if status in (401, 403):
        return ProviderAuthError(detail)
    if status == 404:
        return ProviderNotFoundError(detail)
    return ProviderError(detail)


def _translate_sdk_error(error: Exception) -> ProviderError:
    # openai and anthropic SDK errors both carry status_code on APIStatusError
    status = getattr(error, "status_code", None)
    if status is not None:
        return classify_status_error(status, str(error))
    if "timeout" in type(error).__name__.lower():
        return ProviderTimeoutError(str(error))
    return ProviderError(f"{type(error).__name__}: {error}")


def prepare_vision_image(image: Image.Image) -> Tuple[bytes, str]:
    """Prepare image for a vision API: PNG, max 4096 px longest side, 20 MB.

    Scales down if the longest side exceeds the limit and falls back to JPEG
    at decreasing quality when the PNG is too large.

    Returns:
        (image_bytes, mime_type) e.g. (b'...', 'image/png')
    """
    img = image.convert("RGB")
    w, h = img.size
    longest = max(w, h)
    if longest > VISION_MAX_PIXELS_LONGEST_SIDE:
        scale = VISION_MAX_PIXELS_LONGEST_SIDE / longest
        img = img.resize((max(1, round(w * scale)), max(1, round(h * scale))), Image.Resampling.LANCZOS)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    out = buf.getvalue()
    if len(out) <= VISION_MAX_FILE_BYTES:
        return (out, "image/png")
    for q in [85, 70, 50]:
        buf = io.BytesIO()
        img.save(buf, format="JPEG", quality=q, optimize=True)
        if len(buf.getvalue()) <= VISION_MAX_FILE_BYTES:
            return (buf.getvalue(), "image/jpeg")
    raise ValueError(f"Image exceeds {VISION_MAX_FILE_BYTES // (1024 * 1024)} MB after scaling")


_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
_BARE_OBJECT = re.compile(r"\{[\s\S]*\}")
_BARE_ARRAY = re.compile(r"\[[\s\S]*\]")


def extract_json_payload(text: str) -> Any:
    """Parse the JSON a model returned, tolerating markdown fences and chatter.

    Raises:
        ProviderResponseError: If no JSON can be parsed
    """
    content = (text or "").strip()
    attempts = []
    fenced = _FENCED_JSON.search(content)
    if fenced:
        attempts.append(fenced.group(1))
    attempts.append(content)
    for pattern in (_BARE_OBJECT, _BARE_ARRAY):
        match = pattern.search(content)
        if match:
            attempts.append(match.group(0))
    for candidate in attempts:
        try:
            return json.loads(candidate)
        except ValueError:
            continue
    raise ProviderResponseError(f"No JSON in response: {content[:100]!r}")


def build_identify_prompt(recognized_text: Optional[str] = None) -> str:
    prompt = IDENTIFY_PROMPT
    if recognized_text:
        prompt += f"\nOCR text of the source (may contain errors):\n{recognized_text[:2000]}\n"
    return prompt


@dataclass(frozen=True)
class ProviderSpec:
    """One (provider, credential, model) entry of the identification chain."""
    provider: str
    api_key: str = field(repr=False)
    model: str


class VisionProvider(ABC):
    """Abstract base class for multimodal providers."""

    name = "base"
    coordinate_convention = CoordinateConvention.BOX_PERCENT

    def __init__(self, model: str):
        self.model = model

    @property
    def label(self) -> str:
        """Short identifier used in logs and as candidate strategy source."""
        return f"{self.name}:{self.model}"

    @property
    def detect_prompt(self) -> str:
        if self.coordinate_convention == CoordinateConvention.BOX_2D_PERMILLE:
            return DETECT_PROMPT_PERMILLE
        return DETECT_PROMPT_PERCENT

    @abstractmethod
    def _generate(self, prompt: str, image_bytes: bytes, mime: str, max_tokens: int) -> str:
        """Send one prompt + image and return the model's text.

        Raises:
            ProviderError: On any transport or API failure
        """
        pass

    def _call(self, prompt: str, image: Image.Image, max_tokens: int) -> str:
        image_bytes, mime = prepare_vision_image(image)
        return self._generate(prompt, image_bytes, mime, max_tokens)

    def identify_source(self, image: Image.Image, recognized_text: Optional[str] = None) -> List[RawCandidate]:
        """Ask the model which corpus source the clipped image shows.

        Raises:
            ProviderError: On failure, including unparseable output
        """
        text = self._call(build_identify_prompt(recognized_text), image, max_tokens=1024)
        return parse_candidates(extract_json_payload(text))

    def detect_sources(self, image: Image.Image) -> Any:
        """Ask the model for source regions on a page; returns the parsed JSON payload.

        Raises:
            ProviderError: On failure, including unparseable output
        """
        text = self._call(self.detect_prompt, image, max_tokens=8192)
        return extract_json_payload(text)


class OpenAIProvider(VisionProvider):
    """OpenAI provider using chat completions with an image_url data URL."""

    name = "openai"
    coordinate_convention = CoordinateConvention.BOX_PERCENT

    def __init__(self, api_key: str, model: str = "gpt-4o", timeout: float = 10.0):
        if OpenAI is None:
            raise ImportError("openai library is required. Install with: pip install openai")
        super().__init__(model)
        self.client = OpenAI(api_key=api_key, timeout=timeout, max_retries=0)

    def _generate(self, prompt: str, image_bytes: bytes, mime: str, max_tokens: int) -> str:
        url = f"data:{mime};base64,{base64.b64encode(image_bytes).decode('ascii')}"
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": "You identify Torah sources on scanned source sheets. Answer with JSON only."},
                    {"role": "user", "content": [
                        {"type": "text", "text": prompt},
                        {"type": "image_url", "image_url": {"url": url}},
                    ]},
                ],
                max_tokens=max_tokens,
                temperature=0.1,
            )
        except Exception as e:
            raise _translate_sdk_error(e) from e
        return (response.choices[0].message.content or "").strip()


class ClaudeProvider(VisionProvider):
    """Claude provider using the Anthropic messages API with a base64 image block."""

    name = "claude"
    coordinate_convention = CoordinateConvention.BOX_PERCENT

    def __init__(self, api_key: str, model: str = "claude-3-5-sonnet-20241022", timeout: float = 10.0):
        if Anthropic is None:
            raise ImportError("anthropic library is required. Install with: pip install anthropic")
        super().__init__(model)
        self.client = Anthropic(api_key=api_key, timeout=timeout, max_retries=0)

    def _generate(self, prompt: str, image_bytes: bytes, mime: str, max_tokens: int) -> str:
        b64 = base64.b64encode(image_bytes).decode("ascii")
        try:
            response = self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=0.1,
                messages=[{"role": "user", "content": [
                    {"type": "image", "source": {"type": "base64", "media_type": mime, "data": b64}},
                    {"type": "text", "text": prompt},
                ]}],
            )
        except Exception as e:
            raise _translate_sdk_error(e) from e
        return "".join(
            getattr(block, "text", "") for block in response.content if getattr(block, "type", "") == "text"
        ).strip()


class GeminiProvider(VisionProvider):
    """Gemini provider calling the generateContent REST endpoint."""

    name = "gemini"
    coordinate_convention = CoordinateConvention.BOX_2D_PERMILLE

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-1.5-flash",
        timeout: float = 10.0,
        endpoint: str = GEMINI_ENDPOINT,
        session: Optional[requests.Session] = None,
    ):
        super().__init__(model)
        self.api_key = api_key
        self.timeout = timeout
        self.endpoint = endpoint.rstrip('/') + '/'
        self.session = session or requests.Session()
        self.session.headers.update({'Content-Type': 'application/json'})

    def _generate(self, prompt: str, image_bytes: bytes, mime: str, max_tokens: int) -> str:
        url = f"{self.endpoint}models/{self.model}:generateContent"
        body: Dict[str, Any] = {
            "contents": [{"parts": [
                {"text": prompt},
                {"inlineData": {"mimeType": mime, "data": base64.b64encode(image_bytes).decode("ascii")}},
            ]}],
            "generationConfig": {"temperature": 0.1, "maxOutputTokens": max_tokens},
        }
        try:
            response = self.session.post(url, params={"key": self.api_key}, json=body, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise ProviderTimeoutError(f"{self.label} timed out after {self.timeout}s") from e
        except requests.exceptions.RequestException as e:
            raise ProviderError(f"{self.label} request failed: {e}") from e

        if response.status_code != 200:
            raise classify_status_error(response.status_code, response.text[:200])

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderResponseError(f"{self.label} returned non-JSON body") from e
        if not isinstance(data, dict):
            raise ProviderResponseError(f"{self.label} returned {type(data).__name__}, expected an object")
        try:
            parts = (((data.get("candidates") or [{}])[0].get("content") or {}).get("parts") or [{}])
            text = parts[0].get("text") or ""
        except (AttributeError, IndexError, TypeError) as e:
            raise ProviderResponseError(f"{self.label} returned an unexpected body: {e}") from e
        if not text:
            raise ProviderResponseError(f"{self.label} returned no text")
        return text


_PROVIDER_CLASSES = {
    "openai": OpenAIProvider,
    "claude": ClaudeProvider,
    "gemini": GeminiProvider,
}


def create_provider(spec: ProviderSpec, timeout: float = 10.0) -> VisionProvider:
    """Create a provider for one chain entry.

    Raises:
        ValueError: Unknown provider name
        ImportError: Provider SDK not installed
    """
    cls = _PROVIDER_CLASSES.get(spec.provider.lower())
    if cls is None:
        raise ValueError(f"Unknown AI provider: {spec.provider}")
    return cls(api_key=spec.api_key, model=spec.model, timeout=timeout)


def build_provider_chain(specs: Sequence[ProviderSpec], timeout: float = 10.0) -> List[VisionProvider]:
    """Create providers for every usable spec, in order."""
    chain = []
    for spec in specs:
        try:
            chain.append(create_provider(spec, timeout=timeout))
        except ImportError as e:
            logger.warning("AI provider library not installed: %s", e)
        except ValueError as e:
            logger.warning("Skipping provider %s: %s", spec.provider, e)
    if not chain:
        logger.debug("No AI providers configured, identification will use corpus search only")
    return chain
