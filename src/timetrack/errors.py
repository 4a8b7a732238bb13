from __future__ import annotations


class TimeTrackError(Exception):
    """Base class for errors that end an ingestion run."""


class ConfigError(TimeTrackError):
    pass


class ConnectivityError(TimeTrackError):
    pass


class StoreError(TimeTrackError):
    """A read or write against the store failed; the batch was rolled back."""


class SourceError(TimeTrackError):
    """Raised when an external source cannot be retrieved."""

    def __init__(self, source: str, detail: str = "") -> None:
        self.source = source
        self.detail = detail
        super().__init__(f"{source}: {detail}")


class SourceFormatError(SourceError):
    """Raised when a source payload is not in the shape we expect."""
