"""Domain exceptions."""

from typing import Any


class DomainException(Exception):
    """Base exception for all mediashelf exceptions."""

    # Hey future me, message is stored as an attribute so callers can inspect it without
    # parsing str(exception). Never raise this directly - use a specific subclass.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class EntityNotFoundException(DomainException):
    """Raised when an entity is not found."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(f"{entity_type} with id {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class ValidationException(DomainException):
    """Raised when entity validation fails (empty playlist name, unknown kind...)."""

    pass


class ScanError(DomainException):
    """Raised when a full library scan fails.

    Root-level I/O errors never raise this (a failed root contributes zero
    entries). It wraps failures of the persistence step of a scan.
    """

    pass


class ScanCancelledError(DomainException):
    """Raised inside a traversal when its CancelToken has been triggered."""

    def __init__(self, message: str = "Scan cancelled") -> None:
        super().__init__(message)


class PersistenceError(DomainException):
    """Base class for store failures surfaced to callers."""

    pass


class MigrationError(PersistenceError):
    """Raised when a forward schema migration step fails."""

    def __init__(self, version: int, message: str) -> None:
        super().__init__(f"Migration to schema v{version} failed: {message}")
        self.version = version


class CacheWriteError(PersistenceError):
    """Raised when a batched replace_all write fails.

    The live media table is untouched when this is raised.
    """

    def __init__(self, message: str, batch_index: int | None = None) -> None:
        super().__init__(message)
        self.batch_index = batch_index


__all__ = [
    "CacheWriteError",
    "DomainException",
    "EntityNotFoundException",
    "MigrationError",
    "PersistenceError",
    "ScanCancelledError",
    "ScanError",
    "ValidationException",
]
