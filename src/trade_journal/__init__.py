"""Position lifecycle and trading analytics engine for a personal journal."""

__version__ = "0.1.0"
