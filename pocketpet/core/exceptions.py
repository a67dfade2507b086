# pocketpet/core/exceptions.py
"""Exception hierarchy for pocketpet.

The simulation itself never raises: rejected actions are no-ops and death is
a state. These cover the edges where input cannot be repaired.
"""


class PetError(Exception):
    """Base exception for all pocketpet errors."""


class PetImportError(PetError):
    """Import payload is not shaped like ``{"version": ..., "pet": {...}}``."""


class StorageError(PetError):
    """A storage backend failed to read or write a key."""

    def __init__(self, message: str, *, key: str = "") -> None:
        self.key = key
        super().__init__(message)


class StorageConfigError(StorageError):
    """Invalid or unknown storage backend configuration."""
