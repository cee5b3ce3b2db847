"""Rasterize an uploaded document (PDF or single image) into Pages.

PDF pages are rendered at 2x their natural size, which keeps small Hebrew
print legible for clipping and vision calls.
"""

import logging
from pathlib import Path
from typing import List, Union

from PIL import Image, UnidentifiedImageError

try:
    import fitz  # pymupdf
except ImportError:
    fitz = None

from ..models.page import Page

logger = logging.getLogger(__name__)

DEFAULT_SCALE = 2.0
IMAGE_SUFFIXES = {'.png', '.jpg', '.jpeg', '.gif', '.bmp', '.tif', '.tiff', '.webp'}


class PageRasterizeError(Exception):
    """Raised when a document cannot be turned into page images."""
    pass


def rasterize_pdf(path: Path, scale: float = DEFAULT_SCALE) -> List[Page]:
    """Render every PDF page to an RGB Page.

    Raises:
        PageRasterizeError: If the PDF cannot be opened or has no pages
        ImportError: If pymupdf (fitz) is not installed
    """
    if fitz is None:
        raise ImportError(
            "pymupdf (fitz) is required for PDF rendering. "
            "Install with: pip install pymupdf"
        )
    try:
        pdf_doc = fitz.open(str(path))
    except Exception as e:
        raise PageRasterizeError(f"Failed to open PDF {path.name}: {e}") from e

    try:
        if pdf_doc.page_count == 0:
            raise PageRasterizeError(f"PDF {path.name} has no pages")
        matrix = fitz.Matrix(scale, scale)
        pages = []
        for index, fitz_page in enumerate(pdf_doc):
            try:
                pix = fitz_page.get_pixmap(matrix=matrix, alpha=False)
            except Exception as e:
                raise PageRasterizeError(f"Failed to render page {index + 1} of {path.name}: {e}") from e
            image = Image.frombytes("RGB", (pix.width, pix.height), pix.samples)
            pages.append(Page.from_image(index, image))
        return pages
    finally:
        pdf_doc.close()


def rasterize_image(path: Path) -> List[Page]:
    """Load a single image file as a one-page document.

    Raises:
        PageRasterizeError: If the file is not a readable image
    """
    try:
        with Image.open(path) as img:
            img.load()
            image = img.convert("RGB")
    except (UnidentifiedImageError, OSError) as e:
        raise PageRasterizeError(f"Failed to read image {path.name}: {e}") from e
    return [Page.from_image(0, image)]


def rasterize_file(path: Union[str, Path], scale: float = DEFAULT_SCALE) -> List[Page]:
    """Rasterize a PDF or image file into Pages (page_index starting at 0).

    Args:
        path: Document path
        scale: PDF render scale relative to 72 dpi

    Returns:
        Non-empty list of Pages

    Raises:
        PageRasterizeError: Missing, unsupported or corrupt input
    """
    path = Path(path)
    if not path.is_file():
        raise PageRasterizeError(f"File not found: {path}")

    suffix = path.suffix.lower()
    if suffix == '.pdf':
        pages = rasterize_pdf(path, scale=scale)
    elif suffix in IMAGE_SUFFIXES:
        pages = rasterize_image(path)
    else:
        raise PageRasterizeError(f"Unsupported file type: {path.suffix or path.name}")

    logger.info("Rasterized %s into %d page(s)", path.name, len(pages))
    return pages
