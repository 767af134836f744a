"""Versioned directory snapshots for LLM context."""

__version__ = "0.2.0"
