"""Source sheet clipping and identification."""

__version__ = "0.1.0"
