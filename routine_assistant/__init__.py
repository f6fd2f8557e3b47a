"""Routine scheduling core: background notification scheduler and foreground routine queue."""

__version__ = "0.1.0"
