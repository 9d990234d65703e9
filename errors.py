"""Exceptions raised by the record store and the ingestion pipeline."""


class InventoryStoreError(Exception):
    """Base class for record store failures."""


class StorageUnavailableError(InventoryStoreError):
    """The master file exists but could not be read or written."""

    def __init__(self, target: str, cause: Exception | None = None):
        self.target = target
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"Storage unavailable ({target}){detail}")


class MalformedInputError(InventoryStoreError):
    """Uploaded content could not be decoded as delimited text."""
