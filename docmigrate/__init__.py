"""Versioned MongoDB migration runner for the travel content store."""

__version__ = "1.0.0"
