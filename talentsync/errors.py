"""Exceptions raised by a talent synchronization run."""

from __future__ import annotations


class ConfigError(ValueError):
    """Malformed roster or content configuration. Raised before any fetch."""


class StoreError(RuntimeError):
    """The talent loadout file could not be read, parsed or written."""


class SyncCancelled(RuntimeError):
    """The run was cancelled before the store was written."""
