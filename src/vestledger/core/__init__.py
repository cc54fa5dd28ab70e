"""
vestledger Core Module.

This module provides the grant ledger and its collaborators:
- GrantLedger: the aggregate root owning the pool and grant records
- VestingCalculator: cliff + linear vesting with floor semantics
- AccessGuard / MutationGuard: principal check and reentrancy latch
- Clocks: system time, block height and manual clocks
- TokenTransferPort: interface to an external token ledger
"""

from .clock import BlockClock, Clock, ManualClock, SystemClock
from .config import ClockType, ExerciseMode, LedgerConfig
from .events import (
    EventLog,
    LedgerEvent,
    OptionsExercised,
    OptionsGranted,
    OptionsVested,
    TokensTransferred,
)
from .exceptions import (
    AlreadyExercisedError,
    AuthorizationError,
    ConfigurationError,
    GrantAlreadyExistsError,
    GrantNotFoundError,
    InsufficientBalanceError,
    InsufficientPoolError,
    InsufficientVestedError,
    InvalidAmountError,
    InvalidBeneficiaryError,
    ReentrancyError,
    ScheduleAlreadySetError,
    TokenPortUnavailableError,
    TokenTransferError,
    VestingLedgerError,
)
from .grant_ledger import GrantLedger
from .guards import AccessGuard, MutationGuard
from .metrics import LedgerMetrics
from .models import BeneficiaryRegistry, GrantRecord, OptionPool
from .token_port import TokenTransferPort
from .vesting import VestingCalculator, calculate_vested_amount

__all__ = [
    # Ledger
    "GrantLedger",
    "OptionPool",
    "GrantRecord",
    "BeneficiaryRegistry",
    # Vesting
    "VestingCalculator",
    "calculate_vested_amount",
    # Guards
    "AccessGuard",
    "MutationGuard",
    # Clocks
    "Clock",
    "SystemClock",
    "BlockClock",
    "ManualClock",
    # Collaborators
    "TokenTransferPort",
    "LedgerMetrics",
    # Config
    "LedgerConfig",
    "ExerciseMode",
    "ClockType",
    # Events
    "EventLog",
    "LedgerEvent",
    "OptionsGranted",
    "OptionsVested",
    "OptionsExercised",
    "TokensTransferred",
    # Exceptions
    "VestingLedgerError",
    "ConfigurationError",
    "AuthorizationError",
    "ReentrancyError",
    "InvalidBeneficiaryError",
    "InvalidAmountError",
    "InsufficientPoolError",
    "GrantNotFoundError",
    "GrantAlreadyExistsError",
    "ScheduleAlreadySetError",
    "AlreadyExercisedError",
    "InsufficientVestedError",
    "InsufficientBalanceError",
    "TokenPortUnavailableError",
    "TokenTransferError",
]
