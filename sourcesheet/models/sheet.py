"""Sheet Document: the persisted, ordered list of clipped sources."""

from __future__ import annotations

import base64
import binascii
import io
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from PIL import Image, UnidentifiedImageError

from .region import MAX_DISPLAY_SIZE, clamp_display_size
from .shapes import Shape, shape_from_dict, shape_to_dict

DATA_URL_PREFIX = "data:image/png;base64,"


def encode_image(image: Image.Image) -> str:
    """Encode a raster as a self-contained PNG data URL."""
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return DATA_URL_PREFIX + base64.b64encode(buf.getvalue()).decode("ascii")


def decode_image(data_url: str) -> Image.Image:
    """Decode a data URL (or bare base64 string) into a loaded PIL image.

    Raises:
        ValueError: If the payload is not a decodable image
    """
    payload = data_url.split(",", 1)[1] if data_url.startswith("data:") else data_url
    try:
        raw = base64.b64decode(payload, validate=True)
        image = Image.open(io.BytesIO(raw))
        image.load()
    except (binascii.Error, UnidentifiedImageError, OSError) as e:
        raise ValueError(f"Invalid sheet image payload: {e}") from e
    return image


@dataclass
class SheetEntry:
    """One persisted source.

    Attributes:
        id: Region id
        name: Display name
        image: Clip with rotation baked in (None if it could not be produced)
        reference: Corpus reference or None
        display_size: Rendered width percent (25-100)
        rotation: Always 0 once baked; kept for consumers that re-apply it
        page_index: Page the region came from, if known
        shape: Region geometry, if known
    """

    id: str
    name: str
    image: Optional[Image.Image] = field(default=None, repr=False, compare=False)
    reference: Optional[str] = None
    display_size: int = MAX_DISPLAY_SIZE
    rotation: float = 0.0
    page_index: Optional[int] = None
    shape: Optional[Shape] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "image": encode_image(self.image) if self.image is not None else None,
            "rotation": self.rotation,
            "reference": self.reference,
            "displaySize": self.display_size,
        }
        if self.page_index is not None:
            data["page"] = self.page_index
        if self.shape is not None:
            data.update(shape_to_dict(self.shape))
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> SheetEntry:
        image = data.get("image")
        shape = None
        if data.get("box") is not None or data.get("polygon") is not None:
            shape = shape_from_dict(data)
        page = data.get("page")
        if page is None and isinstance(data.get("box"), dict):
            page = data["box"].get("page")
        return cls(
            id=str(data["id"]),
            name=data.get("name") or "",
            image=decode_image(image) if image else None,
            reference=data.get("reference") or None,
            display_size=clamp_display_size(data.get("displaySize") or MAX_DISPLAY_SIZE),
            rotation=float(data.get("rotation") or 0.0),
            page_index=int(page) if page is not None else None,
            shape=shape,
        )


@dataclass
class SheetDocument:
    """Ordered sheet entries; the only durable artifact of an editing session."""

    entries: List[SheetEntry] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    def to_list(self) -> List[Dict[str, Any]]:
        return [entry.to_dict() for entry in self.entries]

    def to_json(self) -> str:
        return json.dumps(self.to_list(), ensure_ascii=False)

    @classmethod
    def from_list(cls, items: List[Dict[str, Any]]) -> SheetDocument:
        return cls(entries=[SheetEntry.from_dict(item) for item in items])

    @classmethod
    def from_json(cls, text: str) -> SheetDocument:
        """Parse a stored sheet.

        Stored sheets are sometimes JSON strings wrapping the JSON array, so
        one extra level of string decoding is accepted.
        """
        parsed = json.loads(text)
        if isinstance(parsed, str):
            parsed = json.loads(parsed)
        if not isinstance(parsed, list):
            raise ValueError("Sheet document must be a JSON array")
        return cls.from_list(parsed)
