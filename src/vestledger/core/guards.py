"""
Authorization and reentrancy guards for the grant ledger.

AccessGuard pins the single principal allowed to grant, schedule, sweep
and transfer. MutationGuard is the latch around exercise-class operations
that rejects a nested call arriving through the token transfer callback.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from .exceptions import AuthorizationError, InvalidBeneficiaryError, ReentrancyError

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x" + "0" * 40


def normalize_identity(identity: str) -> str:
    """Normalize identity to lowercase."""
    return identity.strip().lower()


def validate_identity(identity: object, field: str = "beneficiary") -> str:
    """
    Validate and normalize an identity.

    Raises:
        InvalidBeneficiaryError: If identity is missing, not a string, empty
            or the zero address
    """
    if not isinstance(identity, str):
        raise InvalidBeneficiaryError(f"{field} must be a string identity", details={"field": field})
    normalized = normalize_identity(identity)
    if not normalized or normalized == ZERO_ADDRESS:
        raise InvalidBeneficiaryError(f"{field} is empty or zero address", details={"field": field})
    return normalized


class AccessGuard:
    """Immutable principal with a per-call identity check."""

    __slots__ = ("_principal",)

    def __init__(self, principal: str):
        object.__setattr__(self, "_principal", validate_identity(principal, "principal"))

    def __setattr__(self, name, value):
        raise AttributeError("AccessGuard principal is immutable")

    @property
    def principal(self) -> str:
        return self._principal

    def is_principal(self, caller: object) -> bool:
        if not isinstance(caller, str):
            return False
        return normalize_identity(caller) == self._principal

    def require_principal(self, caller: object, operation: str) -> None:
        """
        Require caller is the principal.

        Raises:
            AuthorizationError: If caller is anyone else
        """
        if not self.is_principal(caller):
            logger.warning(
                "SECURITY: unauthorized call to principal-only operation",
                extra={
                    "event": "guard.unauthorized",
                    "operation": operation,
                    "caller": str(caller)[:10],
                    "security_event": True,
                },
            )
            raise AuthorizationError(
                f"{operation}: caller is not the principal",
                details={"operation": operation},
            )


class MutationGuard:
    """
    Reentrancy latch.

    Entered at the start of an exercise-class operation and released on
    every exit path. Holding the ledger lock does not stop a same-thread
    callback from re-entering; this latch does.
    """

    def __init__(self) -> None:
        self._locked = False
        self._holder: str | None = None

    @property
    def locked(self) -> bool:
        return self._locked

    def _require_not_locked(self, operation: str) -> None:
        if self._locked:
            logger.warning(
                "SECURITY: reentrant call rejected",
                extra={
                    "event": "guard.reentrancy",
                    "operation": operation,
                    "in_flight": self._holder,
                    "security_event": True,
                },
            )
            raise ReentrancyError(
                f"{operation}: reentrant call while {self._holder} is in flight",
                details={"operation": operation, "in_flight": self._holder},
            )

    @contextmanager
    def hold(self, operation: str) -> Iterator[None]:
        self._require_not_locked(operation)

        try:
            self._locked = True
            self._holder = operation
            yield
        finally:
            self._locked = False
            self._holder = None
