"""Local print bridge for the browser-based POS."""

__version__ = "1.0.0"
