"""Local HTTP API for the ArcStore engine."""

__version__ = "0.1.0"
