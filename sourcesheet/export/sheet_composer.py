"""Sheet composer: serialize the Region Store into a Sheet Document and back.

Each entry carries a self-contained PNG clip with the region's rotation
already baked in, so entries are written with rotation 0 and a reloaded
sheet renders identically without the original pages. Saving goes through a
caller-supplied sink; a failing sink surfaces as SheetSaveError and leaves
the store untouched so the save can be retried.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, List, Union

from PIL import Image, ImageDraw, ImageFont

from ..editor.region_store import RegionStore
from ..models.sheet import SheetDocument, SheetEntry, decode_image, encode_image

logger = logging.getLogger(__name__)

SheetSink = Callable[[str], Any]

PREVIEW_MARGIN = 16
PREVIEW_LABEL_HEIGHT = 24
PREVIEW_BACKGROUND = (255, 255, 255)
PREVIEW_LABEL_COLOR = (60, 60, 60)

__all__ = [
    'SheetSaveError',
    'SheetSink',
    'compose_sheet',
    'decode_image',
    'encode_image',
    'load_sheet',
    'read_sheet_file',
    'render_composite_preview',
    'save_sheet',
    'write_sheet_file',
]


class SheetSaveError(Exception):
    """Raised when the storage sink rejects a sheet; carries the sink's message verbatim."""
    pass


def compose_sheet(store: RegionStore) -> SheetDocument:
    """Build the Sheet Document for every region, in store order.

    Regions whose clip cannot be produced (page unloaded and nothing cached)
    are kept with image None and logged.
    """
    entries: List[SheetEntry] = []
    for region in store:
        image = store.current_clip(region.id)
        if image is None:
            logger.warning("No clip available for region %s (%s); saving without image", region.id, region.name)
        entries.append(SheetEntry(
            id=region.id,
            name=region.name,
            image=image,
            reference=region.reference,
            display_size=region.display_size,
            rotation=0.0,
            page_index=region.page_index,
            shape=region.shape,
        ))
    logger.info("Composed sheet with %d entries", len(entries))
    return SheetDocument(entries=entries)


def load_sheet(data: Union[str, bytes, list, SheetDocument]) -> SheetDocument:
    """Parse a stored sheet (JSON text, parsed list, or an existing document).

    Raises:
        ValueError: If the data is not a valid sheet
    """
    if isinstance(data, SheetDocument):
        return data
    if isinstance(data, bytes):
        data = data.decode('utf-8')
    if isinstance(data, str):
        return SheetDocument.from_json(data)
    if isinstance(data, list):
        return SheetDocument.from_list(data)
    raise ValueError(f"Unsupported sheet data type: {type(data).__name__}")


def read_sheet_file(path: Union[str, Path]) -> SheetDocument:
    return load_sheet(Path(path).read_text(encoding='utf-8'))


def save_sheet(document: SheetDocument, sink: SheetSink) -> str:
    """Serialize a document and hand it to the sink.

    Returns:
        The JSON text that was saved

    Raises:
        SheetSaveError: If the sink fails (message preserved verbatim)
    """
    text = document.to_json()
    try:
        sink(text)
    except Exception as e:
        logger.error("Saving sheet failed: %s", e)
        raise SheetSaveError(str(e)) from e
    logger.info("Saved sheet with %d entries (%d bytes)", len(document), len(text))
    return text


def write_sheet_file(path: Union[str, Path]) -> SheetSink:
    """Sink that writes the sheet JSON to a UTF-8 file."""
    target = Path(path)

    def sink(text: str) -> None:
        target.write_text(text, encoding='utf-8')

    return sink


def render_composite_preview(document: SheetDocument, width: int = 800) -> Image.Image:
    """Stack the entries' clips into one tall numbered RGB preview.

    Each clip is scaled to display_size percent of the preview width
    (never upscaled beyond it). Entries without an image are skipped.

    Raises:
        ValueError: If no entry has an image
    """
    rendered = [(i, entry) for i, entry in enumerate(document.entries, start=1) if entry.image is not None]
    if not rendered:
        raise ValueError("No entries with images to preview")

    inner = max(1, width - 2 * PREVIEW_MARGIN)
    tiles = []
    for number, entry in rendered:
        target_width = max(1, round(inner * entry.display_size / 100))
        scale = target_width / entry.image.width
        target_height = max(1, round(entry.image.height * scale))
        tile = entry.image.convert("RGBA").resize((target_width, target_height), Image.Resampling.LANCZOS)
        tiles.append((number, tile))

    total_height = PREVIEW_MARGIN + sum(PREVIEW_LABEL_HEIGHT + t.height + PREVIEW_MARGIN for _, t in tiles)
    composite = Image.new("RGB", (width, total_height), PREVIEW_BACKGROUND)
    draw = ImageDraw.Draw(composite)
    font = ImageFont.load_default()

    y_offset = PREVIEW_MARGIN
    for number, tile in tiles:
        draw.text((PREVIEW_MARGIN, y_offset + 4), f"{number}.", fill=PREVIEW_LABEL_COLOR, font=font)
        y_offset += PREVIEW_LABEL_HEIGHT
        composite.paste(tile, (PREVIEW_MARGIN, y_offset), tile)
        y_offset += tile.height + PREVIEW_MARGIN

    return composite
