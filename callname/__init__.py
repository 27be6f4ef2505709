"""Template-driven filename generation for call recordings."""

__version__ = "0.1.0"
