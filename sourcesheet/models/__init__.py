"""Data models for pages, regions, candidates and sheet documents."""

from .shapes import Box, Point, Polygon, Shape, normalize_rotation
from .region import Region
from .page import Page
from .candidate import Candidate, IdentificationResult
from .sheet import SheetDocument, SheetEntry

__all__ = [
    'Box',
    'Point',
    'Polygon',
    'Shape',
    'normalize_rotation',
    'Region',
    'Page',
    'Candidate',
    'IdentificationResult',
    'SheetDocument',
    'SheetEntry',
]
