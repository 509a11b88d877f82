"""
Domain errors for the auction subsystem.

Every workflow failure surfaces as one of these types. The API layer maps them
onto HTTP status codes; services never return ad-hoc error strings.
"""

from __future__ import annotations


class AuctionError(Exception):
    """Base class for all auction subsystem errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(AuctionError, ValueError):
    """Missing or malformed input (bad time format, past date, invalid JSON payload...)."""


class NotFoundError(AuctionError):
    """Referenced auction or registration does not exist."""


class ConflictError(AuctionError):
    """Duplicate registration/interest, closed registration window, or a lost write race."""


class ConcurrentModificationError(ConflictError):
    """The auction document changed between read and write (lost compare-and-set)."""


class StorageError(AuctionError):
    """The persistent store rejected or failed a read/write."""


class DependencyError(AuctionError):
    """An external collaborator (email transport, file store) failed."""


__all__ = [
    "AuctionError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "ConcurrentModificationError",
    "StorageError",
    "DependencyError",
]
