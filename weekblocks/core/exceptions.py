# weekblocks/core/exceptions.py
"""
Domain-specific exceptions for the week block store.

These exceptions provide clear, business-focused error messages that
collaborators can catch and translate for their own surfaces.
"""

from typing import Any, Dict, Optional


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Serializable error payload for callers."""
        return {
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }


class ValidationException(DomainException):
    """Raised when caller input fails validation."""


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""


class ServiceException(DomainException):
    """Raised when a service operation fails."""


# Block store exceptions


class StoreAccessFailure(ServiceException):
    """Raised when a read/write against the block store or index fails."""

    def __init__(
        self,
        message: str,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, code="STORE_ACCESS_FAILURE", details=details or {})


class DuplicateBlockException(ConflictException):
    """Raised when a block with the same (scope, year, week) key already exists."""

    def __init__(self, scope_id: str, year: int, week: int, *, start_row: Optional[int] = None):
        super().__init__(
            message=f"Week block {year}-W{week:02d} already exists for scope {scope_id}",
            code="DUPLICATE_WEEK_BLOCK",
            details={
                "scope_id": scope_id,
                "year": year,
                "week": week,
                "start_row": start_row,
            },
        )


class BlockLockTimeoutException(ServiceException):
    """Raised when a scope lock could not be acquired within the wait timeout."""

    def __init__(self, lock_key: str, waited_s: float):
        super().__init__(
            message=f"Timed out after {waited_s:.2f}s waiting for lock {lock_key}",
            code="BLOCK_LOCK_TIMEOUT",
            details={"lock_key": lock_key, "waited_s": waited_s},
        )


class PartialAvailabilityWriteException(StoreAccessFailure):
    """Raised when an availability delta was only partly applied."""

    def __init__(
        self,
        message: str,
        *,
        cells_requested: int,
        cells_modified: int,
        invalid_cells: int,
    ):
        super().__init__(
            message,
            details={
                "cells_requested": cells_requested,
                "cells_modified": cells_modified,
                "invalid_cells": invalid_cells,
            },
        )
        self.code = "PARTIAL_AVAILABILITY_WRITE"
        self.cells_requested = cells_requested
        self.cells_modified = cells_modified
        self.invalid_cells = invalid_cells


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """
