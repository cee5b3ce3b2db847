"""Clipping, detection and rasterization stages."""

from .clipping import bake_rotation, clip_region, clip_shape, extract_region
from .detection import DetectedRegion, DetectionAdapter, DetectionResult
from .pdf_renderer import PageRasterizeError, rasterize_file

__all__ = [
    "bake_rotation",
    "clip_region",
    "clip_shape",
    "extract_region",
    "DetectedRegion",
    "DetectionAdapter",
    "DetectionResult",
    "PageRasterizeError",
    "rasterize_file",
]
