"""Region editing."""

from .region_store import RegionStore, ResizeHandle, UnsupportedShapeOperation

__all__ = ['RegionStore', 'ResizeHandle', 'UnsupportedShapeOperation']
