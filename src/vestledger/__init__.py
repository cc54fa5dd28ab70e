"""
vestledger - Employee Option Vesting Ledger

Tracks a company's option pool, per-employee grants with cliff and linear
vesting schedules, and one-time exercise of vested options.

Main Components:
- GrantLedger: pool, grant records and all mutating operations
- Vesting: pure cliff/linear vesting calculation
- Guards: principal authorization and reentrancy protection
- Events: notifications for grants, vesting, exercises and transfers
"""

__version__ = "0.1.0"

__all__ = []
