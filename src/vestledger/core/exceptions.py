"""
Vesting ledger exception hierarchy.

Typed exceptions for grant, schedule, exercise and transfer operations so
callers can map each failure kind to their own boundary (API response,
exit code) without parsing messages.
"""

from __future__ import annotations
from typing import Optional, Any, Dict


class VestingLedgerError(Exception):
    """Base exception for all ledger errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
        recoverable: Whether the operation can be retried
    """

    recoverable: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        recoverable: Optional[bool] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if recoverable is not None:
            self.recoverable = recoverable


class ConfigurationError(VestingLedgerError):
    """Raised when required configuration is missing or invalid."""
    pass


# ==================== Authorization Errors ====================


class AuthorizationError(VestingLedgerError):
    """Raised when a non-principal invokes a principal-only operation."""
    pass


class ReentrancyError(VestingLedgerError):
    """Raised when a guarded operation is entered while one is in flight."""
    pass


# ==================== Validation Errors ====================


class ValidationError(VestingLedgerError):
    """Raised when operation arguments fail validation."""
    pass


class InvalidBeneficiaryError(ValidationError):
    """Raised for an empty, zero or otherwise unusable identity."""
    pass


class InvalidAmountError(ValidationError):
    """Raised when an amount or duration is not a valid unsigned integer."""
    pass


# ==================== Grant State Errors ====================


class GrantStateError(VestingLedgerError):
    """Raised when the grant state does not allow the operation."""
    pass


class InsufficientPoolError(GrantStateError):
    """Raised when a grant exceeds the remaining option pool."""
    pass


class GrantNotFoundError(GrantStateError):
    """Raised when the beneficiary has no grant."""
    pass


class GrantAlreadyExistsError(GrantStateError):
    """Raised when re-granting over an existing record is not allowed."""
    pass


class ScheduleAlreadySetError(GrantStateError):
    """Raised when a vesting schedule is assigned twice."""
    pass


class AlreadyExercisedError(GrantStateError):
    """Raised on a second exercise attempt in single-exercise mode."""
    pass


class InsufficientVestedError(GrantStateError):
    """Raised when the exercise amount exceeds the available vested balance."""

    def __init__(
        self,
        message: str,
        requested: int = 0,
        available: int = 0,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.requested = requested
        self.available = available


# ==================== Token Transfer Errors ====================


class TokenError(VestingLedgerError):
    """Raised when the external token collaborator cannot complete a call."""
    pass


class InsufficientBalanceError(TokenError):
    """Raised when a transfer exceeds the value held by the ledger."""
    pass


class TokenPortUnavailableError(TokenError):
    """Raised when a token operation is called on a ledger without a token port."""
    pass


class TokenTransferError(TokenError):
    """Raised when the token port rejects or fails a transfer."""
    recoverable = True  # Caller may retry; ledger state was rolled back
