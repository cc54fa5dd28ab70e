"""
External token collaborator.

The ledger never keeps balances itself. In the token variant it delivers
exercised value and treasury transfers through this port; in the
identity-badge variant no port is configured at all.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class TokenTransferPort(Protocol):
    """Narrow view of a fungible or unique token ledger."""

    def balance_of(self, holder: str) -> int:
        """Return the value currently held by ``holder``."""
        ...

    def transfer(self, to: str, amount: int) -> bool:
        """Move ``amount`` from the ledger's holdings to ``to``; False on failure."""
        ...
