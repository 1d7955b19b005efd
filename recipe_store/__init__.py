"""Offline-first recipe and template store backed by SQLite."""

__version__ = "0.1.0"
