"""Video sharing backend with live gallery updates."""

__version__ = "0.1.0"
