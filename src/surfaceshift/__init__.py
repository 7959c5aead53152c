"""surfaceshift - cross-version API compatibility and migration planning."""

__version__ = "0.1.0"
