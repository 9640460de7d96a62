"""Error taxonomy for the storage layer."""

from __future__ import annotations


class StorageError(RuntimeError):
    """Base class for storage failures that callers are expected to handle."""


class StorageConfigError(StorageError):
    """Raised when the storage tool's own configuration is invalid."""


class SettingsParseError(StorageError):
    """Raised when a settings file exists but does not hold a JSON object."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__("invalid settings file {0}: {1}".format(path, reason))
        self.path = path
        self.reason = reason


class VerificationError(StorageError):
    """Raised when a read-back check fails before a destructive rewrite."""
