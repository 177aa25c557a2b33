"""Shared paths, settings, logging and error types for ArcStore."""
