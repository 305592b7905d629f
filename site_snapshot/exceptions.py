"""
Exception types raised by the snapshot pipeline.

Transient fetch and render problems are logged and skipped by the stages;
only configuration errors and corrupt documents reach the caller.
"""


class SnapshotError(Exception):
    """Base class for all pipeline errors."""


class ConfigError(SnapshotError):
    """Raised when the settings cannot describe a runnable pipeline."""


class FetchError(SnapshotError):
    """Raised by the HTTP fetcher on a non-2xx status or transport failure."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"{reason} for {url}")
        self.url = url
        self.reason = reason


class CorruptDocumentError(SnapshotError):
    """Raised when an exported document cannot be decoded or parsed."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Corrupt document {path}: {reason}")
        self.path = path
        self.reason = reason
