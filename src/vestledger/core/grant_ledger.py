"""
Option Grant Ledger.

The aggregate root for employee option grants: it owns the option pool,
one grant record per beneficiary and the ordered beneficiary registry, and
it is the only code that mutates them.

Operations:
- grant_options / set_vesting_schedule / vest_options / transfer_tokens
  (principal only)
- exercise_options (beneficiary self-service)
- calculate_vested_options and the status queries (read-only, no auth)

Security features:
- Every principal-only operation re-checks the caller against the
  immutable principal
- Exercise-class operations hold a reentrancy latch across the token
  transfer callback
- A single lock serializes all mutations against the whole ledger
- Each mutation is all-or-nothing: on any failure the pool, registry and
  every grant record it touched are restored, and notifications are only
  published once the outermost operation commits
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Iterator, List

from .clock import BlockClock, Clock, SystemClock
from .config import ClockType, DEFAULT_LEDGER_ADDRESS, ExerciseMode, LedgerConfig
from .events import (
    EventLog,
    LedgerEvent,
    OptionsExercised,
    OptionsGranted,
    OptionsVested,
    Subscriber,
    TokensTransferred,
)
from .exceptions import (
    AlreadyExercisedError,
    GrantAlreadyExistsError,
    GrantNotFoundError,
    InsufficientBalanceError,
    InsufficientPoolError,
    InsufficientVestedError,
    InvalidAmountError,
    ScheduleAlreadySetError,
    TokenPortUnavailableError,
    TokenTransferError,
    VestingLedgerError,
)
from .guards import AccessGuard, MutationGuard, validate_identity
from .logging_config import get_logger
from .metrics import LedgerMetrics
from .models import BeneficiaryRegistry, GrantRecord, OptionPool
from .token_port import TokenTransferPort
from .vesting import VestingCalculator

logger = logging.getLogger(__name__)

UINT256_MAX = 2**256 - 1


@dataclass
class _Transaction:
    """
    Work buffered until an operation commits, plus what is needed to undo it.

    ``saved_grants`` holds the pre-image of every grant record the operation
    touched (None for records it created).
    """

    pool: OptionPool
    registry_length: int
    saved_grants: Dict[str, GrantRecord | None] = field(default_factory=dict)
    events: List[LedgerEvent] = field(default_factory=list)
    on_commit: List[Callable[[], None]] = field(default_factory=list)

    def absorb(self, nested: "_Transaction") -> None:
        """Fold a committed nested transaction into this one."""
        for key, saved in nested.saved_grants.items():
            self.saved_grants.setdefault(key, saved)
        self.events.extend(nested.events)
        self.on_commit.extend(nested.on_commit)


class GrantLedger:
    """
    Vesting ledger for a single company's option pool.

    Usage:
        ledger = GrantLedger(principal="company", initial_pool=1000, clock=clock)
        ledger.grant_options("company", "alice", 100)
        ledger.set_vesting_schedule("company", "alice", vesting_period=1000, cliff_period=100)
        ledger.exercise_options("alice", 50)
    """

    def __init__(
        self,
        principal: str,
        initial_pool: int,
        *,
        clock: Clock | None = None,
        token_port: TokenTransferPort | None = None,
        address: str = DEFAULT_LEDGER_ADDRESS,
        allow_regrant: bool = False,
        exercise_mode: ExerciseMode = ExerciseMode.SINGLE,
        metrics: LedgerMetrics | None = None,
        event_log: EventLog | None = None,
    ):
        self._validate_amount(initial_pool, "initial_pool")

        self._access = AccessGuard(principal)
        self._mutation = MutationGuard()
        self._calculator = VestingCalculator()
        self._lock = threading.RLock()

        self.address = validate_identity(address, "ledger address")
        self.clock = clock or SystemClock()
        self.token_port = token_port
        self.allow_regrant = allow_regrant
        self.exercise_mode = ExerciseMode(exercise_mode)
        self.metrics = metrics or LedgerMetrics()
        self.event_log = event_log or EventLog()

        self._pool = OptionPool(total_options=initial_pool)
        self._grants: Dict[str, GrantRecord] = {}
        self._registry = BeneficiaryRegistry()
        self._open_transactions: List[_Transaction] = []

        self.metrics.update_pool(initial_pool, 0, 0)
        logger.info(
            "Grant ledger initialized",
            extra={
                "event": "grant_ledger.init",
                "principal": self._access.principal[:10],
                "initial_pool": initial_pool,
                "exercise_mode": self.exercise_mode.value,
                "token_port": token_port is not None,
            },
        )

    @classmethod
    def from_config(
        cls,
        config: LedgerConfig,
        token_port: TokenTransferPort | None = None,
        clock: Clock | None = None,
        metrics: LedgerMetrics | None = None,
    ) -> "GrantLedger":
        """Build a ledger from a LedgerConfig, configuring package logging."""
        get_logger("vestledger", log_file=config.log_file, level=config.log_level)

        if clock is None:
            clock = BlockClock() if config.clock is ClockType.BLOCK else SystemClock()

        return cls(
            principal=config.principal,
            initial_pool=config.initial_pool,
            clock=clock,
            token_port=token_port,
            address=config.ledger_address,
            allow_regrant=config.allow_regrant,
            exercise_mode=config.exercise_mode,
            metrics=metrics,
        )

    # ==================== View Functions ====================

    @property
    def principal(self) -> str:
        return self._access.principal

    @property
    def option_pool(self) -> OptionPool:
        """Copy of the pool counters."""
        with self._lock:
            return replace(self._pool)

    @property
    def events(self) -> List[LedgerEvent]:
        return self.event_log.events

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        return self.event_log.subscribe(callback)

    def beneficiaries(self) -> List[str]:
        """Registry contents in grant order, duplicates included."""
        with self._lock:
            return list(self._registry.entries)

    def get_grant(self, beneficiary: str) -> GrantRecord | None:
        """Copy of the beneficiary's grant record, or None."""
        beneficiary_norm = validate_identity(beneficiary)
        with self._lock:
            grant = self._grants.get(beneficiary_norm)
            return replace(grant) if grant is not None else None

    def calculate_vested_options(self, beneficiary: str, now: int | None = None) -> int:
        """
        Options vested for a beneficiary at ``now`` (default: clock time).

        Returns 0 when the beneficiary has no grant or no schedule.
        """
        beneficiary_norm = validate_identity(beneficiary)
        with self._lock:
            grant = self._grants.get(beneficiary_norm)
            if grant is None:
                return 0
            return self._calculator.vested_amount(grant, self._now() if now is None else now)

    def get_grant_status(self, beneficiary: str, now: int | None = None) -> Dict[str, Any] | None:
        """
        Summarize a grant at ``now``.

        Returns:
            Dict with granted, vested and exercised figures, or None if the
            beneficiary has no grant
        """
        beneficiary_norm = validate_identity(beneficiary)
        with self._lock:
            grant = self._grants.get(beneficiary_norm)
            if grant is None:
                return None
            at = self._now() if now is None else now
            vested_now = self._calculator.vested_amount(grant, at)
            return {
                "beneficiary": grant.beneficiary,
                "as_of": at,
                "options_granted": grant.options_granted,
                "vested_now": vested_now,
                "vested_recorded": grant.vested_options,
                "unvested": self._calculator.unvested_amount(grant, at),
                "exercised_options": grant.exercised_options,
                "exercised": grant.exercised,
                "available_to_exercise": self._available(grant, vested_now),
                "start_time": grant.start_time,
                "cliff_end": grant.cliff_end,
                "vesting_end": grant.vesting_end,
            }

    # ==================== Principal Operations ====================

    def grant_options(self, caller: str, beneficiary: str, amount: int) -> None:
        """
        Grant options from the pool to a beneficiary (principal only).

        Raises:
            AuthorizationError: Caller is not the principal
            InvalidBeneficiaryError: Beneficiary is empty or zero address
            InvalidAmountError: Amount is not an unsigned integer
            InsufficientPoolError: Amount exceeds the remaining pool
            GrantAlreadyExistsError: Beneficiary already holds a grant and
                re-granting is disabled
        """
        with self._transaction("grant_options") as txn:
            self._access.require_principal(caller, "grant_options")
            beneficiary_norm = validate_identity(beneficiary)
            self._validate_amount(amount, "amount")

            if amount > self._pool.total_options:
                raise InsufficientPoolError(
                    f"grant_options: amount exceeds remaining pool "
                    f"({amount} > {self._pool.total_options})",
                    details={"requested": amount, "remaining": self._pool.total_options},
                )

            previous = self._grants.get(beneficiary_norm)
            if previous is not None and not self.allow_regrant:
                raise GrantAlreadyExistsError(
                    "grant_options: beneficiary already holds a grant",
                    details={"beneficiary": beneficiary_norm},
                )

            self._touch(txn, beneficiary_norm)
            self._pool.total_options -= amount
            self._grants[beneficiary_norm] = GrantRecord(
                beneficiary=beneficiary_norm,
                options_granted=amount,
            )
            self._registry.append(beneficiary_norm)

            txn.events.append(
                OptionsGranted(timestamp=self._now(), beneficiary=beneficiary_norm, amount=amount)
            )
            txn.on_commit.append(lambda: self.metrics.options_granted.inc(amount))

            if previous is not None:
                logger.warning(
                    "Existing grant overwritten",
                    extra={
                        "event": "grant_ledger.regrant",
                        "beneficiary": beneficiary_norm[:10],
                        "discarded_options": previous.options_granted,
                    },
                )
            logger.info(
                "Options granted",
                extra={
                    "event": "grant_ledger.grant",
                    "beneficiary": beneficiary_norm[:10],
                    "amount": amount,
                    "pool_remaining": self._pool.total_options,
                },
            )

    def set_vesting_schedule(
        self,
        caller: str,
        beneficiary: str,
        vesting_period: int,
        cliff_period: int,
    ) -> None:
        """
        Start a beneficiary's vesting schedule at the current clock time.

        Raises:
            AuthorizationError: Caller is not the principal
            InvalidBeneficiaryError: Beneficiary is empty or zero address
            InvalidAmountError: A period is not an unsigned integer
            GrantNotFoundError: Beneficiary has no non-empty grant
            ScheduleAlreadySetError: Schedule was already assigned
        """
        with self._transaction("set_vesting_schedule") as txn:
            self._access.require_principal(caller, "set_vesting_schedule")
            beneficiary_norm = validate_identity(beneficiary)
            self._validate_amount(vesting_period, "vesting_period")
            self._validate_amount(cliff_period, "cliff_period")

            grant = self._require_grant(beneficiary_norm, "set_vesting_schedule")
            if grant.has_schedule:
                raise ScheduleAlreadySetError(
                    "set_vesting_schedule: schedule already set",
                    details={"beneficiary": beneficiary_norm, "start_time": grant.start_time},
                )

            now = self._now()
            self._touch(txn, beneficiary_norm)
            grant.vesting_period = vesting_period
            grant.cliff_period = cliff_period
            grant.start_time = now

            txn.events.append(
                OptionsVested(timestamp=now, beneficiary=beneficiary_norm, delta=0, new_total=0)
            )

            logger.info(
                "Vesting schedule set",
                extra={
                    "event": "grant_ledger.schedule",
                    "beneficiary": beneficiary_norm[:10],
                    "start_time": now,
                    "cliff_period": cliff_period,
                    "vesting_period": vesting_period,
                },
            )

    def vest_options(self, caller: str) -> int:
        """
        Record newly vested options for every beneficiary (principal only).

        Walks the registry once in grant order. Beneficiaries with nothing
        new to vest are skipped without an event.

        Returns:
            Total options vested by this sweep
        """
        with self._transaction("vest_options") as txn:
            self._access.require_principal(caller, "vest_options")

            started = time.perf_counter()
            now = self._now()
            total = 0

            for beneficiary in self._registry:
                grant = self._grants.get(beneficiary)
                if grant is None or grant.options_granted == 0:
                    continue
                if self.exercise_mode is ExerciseMode.SINGLE and grant.exercised:
                    continue

                delta = self._calculator.vested_amount(grant, now) - grant.vested_options
                if delta <= 0:
                    continue

                self._touch(txn, beneficiary)
                grant.vested_options += delta
                total += delta
                txn.events.append(
                    OptionsVested(
                        timestamp=now,
                        beneficiary=beneficiary,
                        delta=delta,
                        new_total=grant.vested_options,
                    )
                )

            self._pool.total_vested += total

            elapsed = time.perf_counter() - started
            txn.on_commit.append(lambda: self.metrics.options_vested.inc(total))
            txn.on_commit.append(lambda: self.metrics.sweep_duration.observe(elapsed))

            logger.info(
                "Vesting sweep completed",
                extra={
                    "event": "grant_ledger.vest",
                    "vested": total,
                    "beneficiaries_vested": len(txn.events),
                    "total_vested": self._pool.total_vested,
                },
            )
            return total

    def transfer_tokens(self, caller: str, recipient: str, amount: int) -> None:
        """
        Move value held by the ledger to a recipient (principal only).

        Raises:
            AuthorizationError: Caller is not the principal
            ReentrancyError: Another guarded operation is in flight
            InvalidBeneficiaryError: Recipient is empty or zero address
            TokenPortUnavailableError: Ledger has no token port
            InsufficientBalanceError: Amount exceeds the ledger's holdings
            TokenTransferError: The port rejected the transfer
        """
        with self._transaction("transfer_tokens") as txn, self._mutation.hold("transfer_tokens"):
            self._access.require_principal(caller, "transfer_tokens")
            recipient_norm = validate_identity(recipient, "recipient")
            self._validate_amount(amount, "amount")

            port = self._require_port("transfer_tokens")
            balance = port.balance_of(self.address)
            if amount > balance:
                raise InsufficientBalanceError(
                    f"transfer_tokens: amount exceeds balance ({amount} > {balance})",
                    details={"requested": amount, "balance": balance},
                )

            self._deliver(recipient_norm, amount, "transfer_tokens")

            txn.events.append(
                TokensTransferred(
                    timestamp=self._now(),
                    from_address=self.address,
                    to_address=recipient_norm,
                    amount=amount,
                )
            )
            txn.on_commit.append(lambda: self.metrics.tokens_transferred.inc(amount))

            logger.info(
                "Tokens transferred",
                extra={
                    "event": "grant_ledger.transfer",
                    "to": recipient_norm[:10],
                    "amount": amount,
                },
            )

    # ==================== Beneficiary Operations ====================

    def exercise_options(self, caller: str, amount: int) -> None:
        """
        Exercise vested options; the caller is the beneficiary.

        In single-exercise mode the first successful call latches the grant
        and every later call fails, whatever vests afterwards.

        Raises:
            ReentrancyError: Another guarded operation is in flight
            InvalidAmountError: Amount is not a positive integer
            GrantNotFoundError: Caller has no non-empty grant
            AlreadyExercisedError: Grant was already exercised (single mode)
            InsufficientVestedError: Amount exceeds the available balance
            TokenTransferError: The port failed to deliver
        """
        with self._transaction("exercise_options") as txn, self._mutation.hold("exercise_options"):
            beneficiary = validate_identity(caller, "caller")
            self._validate_amount(amount, "amount")
            if amount == 0:
                raise InvalidAmountError("exercise_options: amount must be positive")

            grant = self._require_grant(beneficiary, "exercise_options")
            single = self.exercise_mode is ExerciseMode.SINGLE
            if single and grant.exercised:
                raise AlreadyExercisedError(
                    "exercise_options: options already exercised",
                    details={"beneficiary": beneficiary},
                )

            now = self._now()
            available = self._available(grant, self._calculator.vested_amount(grant, now))
            if amount > available:
                raise InsufficientVestedError(
                    f"exercise_options: amount exceeds available vested options "
                    f"({amount} > {available})",
                    requested=amount,
                    available=available,
                    details={"beneficiary": beneficiary},
                )

            self._touch(txn, beneficiary)
            grant.exercised = True
            if single:
                grant.vested_options += amount
            grant.exercised_options += amount

            self._deliver(beneficiary, amount, "exercise_options")

            txn.events.append(OptionsExercised(timestamp=now, beneficiary=beneficiary, amount=amount))
            txn.on_commit.append(lambda: self.metrics.options_exercised.inc(amount))

            logger.info(
                "Options exercised",
                extra={
                    "event": "grant_ledger.exercise",
                    "beneficiary": beneficiary[:10],
                    "amount": amount,
                    "exercised_total": grant.exercised_options,
                },
            )

    # ==================== Serialization ====================

    def to_dict(self) -> Dict[str, Any]:
        """Serialize ledger state (pool, grant table, registry)."""
        with self._lock:
            return {
                "address": self.address,
                "principal": self._access.principal,
                "allow_regrant": self.allow_regrant,
                "exercise_mode": self.exercise_mode.value,
                "option_pool": self._pool.to_dict(),
                "grants": [grant.to_dict() for grant in self._grants.values()],
                "registry": list(self._registry.entries),
            }

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        clock: Clock | None = None,
        token_port: TokenTransferPort | None = None,
        metrics: LedgerMetrics | None = None,
    ) -> "GrantLedger":
        """Rebuild a ledger from ``to_dict`` output."""
        pool = OptionPool.from_dict(data["option_pool"])
        ledger = cls(
            principal=data["principal"],
            initial_pool=pool.total_options,
            clock=clock,
            token_port=token_port,
            address=data.get("address", DEFAULT_LEDGER_ADDRESS),
            allow_regrant=data.get("allow_regrant", False),
            exercise_mode=ExerciseMode(data.get("exercise_mode", ExerciseMode.SINGLE.value)),
            metrics=metrics,
        )
        ledger._pool = pool
        for entry in data.get("grants", []):
            grant = GrantRecord.from_dict(entry)
            ledger._grants[grant.beneficiary] = grant
        ledger._registry = BeneficiaryRegistry(entries=list(data.get("registry", [])))
        ledger._refresh_gauges()
        return ledger

    # ==================== Helpers ====================

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[_Transaction]:
        """
        Run an operation atomically under the ledger lock.

        An operation started from inside another one (a token port callback
        re-entering the ledger on the same thread) commits into the
        enclosing transaction: its events, metrics and undo records are only
        published or discarded together with the outermost operation.
        """
        with self._lock:
            enclosing = self._open_transactions[-1] if self._open_transactions else None
            txn = _Transaction(pool=replace(self._pool), registry_length=len(self._registry))
            self._open_transactions.append(txn)
            try:
                yield txn
            except VestingLedgerError as exc:
                self._rollback(txn)
                self.metrics.record_failure(operation, exc)
                logger.warning(
                    "Ledger operation rejected",
                    extra={
                        "event": f"grant_ledger.{operation}_failed",
                        "error_type": type(exc).__name__,
                        "reason": exc.message,
                    },
                )
                raise
            except Exception as exc:
                self._rollback(txn)
                self.metrics.record_failure(operation, exc)
                logger.error(
                    "Ledger operation failed unexpectedly, state rolled back",
                    extra={"event": f"grant_ledger.{operation}_error", "error_type": type(exc).__name__},
                    exc_info=True,
                )
                raise
            finally:
                self._open_transactions.pop()

            txn.on_commit.append(lambda: self.metrics.record_success(operation))
            if enclosing is not None:
                enclosing.absorb(txn)
                return

            for callback in txn.on_commit:
                callback()
            self._refresh_gauges()
            self.event_log.publish(txn.events)

    def _touch(self, txn: _Transaction, beneficiary: str) -> None:
        """Record a grant's pre-image before the first write in ``txn``."""
        if beneficiary not in txn.saved_grants:
            grant = self._grants.get(beneficiary)
            txn.saved_grants[beneficiary] = replace(grant) if grant is not None else None

    def _rollback(self, txn: _Transaction) -> None:
        self._pool = txn.pool
        self._registry.truncate(txn.registry_length)
        for beneficiary, saved in txn.saved_grants.items():
            if saved is None:
                self._grants.pop(beneficiary, None)
            else:
                self._grants[beneficiary] = saved

    def _refresh_gauges(self) -> None:
        self.metrics.update_pool(
            self._pool.total_options,
            self._pool.total_vested,
            len(self._grants),
        )

    def _now(self) -> int:
        return int(self.clock.now())

    def _available(self, grant: GrantRecord, vested_now: int) -> int:
        if self.exercise_mode is ExerciseMode.SINGLE:
            if grant.exercised:
                return 0
            return max(0, vested_now - grant.vested_options)
        return max(0, vested_now - grant.exercised_options)

    def _require_grant(self, beneficiary: str, operation: str) -> GrantRecord:
        grant = self._grants.get(beneficiary)
        if grant is None or grant.options_granted == 0:
            raise GrantNotFoundError(
                f"{operation}: no grant for beneficiary",
                details={"beneficiary": beneficiary},
            )
        return grant

    def _require_port(self, operation: str) -> TokenTransferPort:
        if self.token_port is None:
            raise TokenPortUnavailableError(f"{operation}: ledger has no token port configured")
        return self.token_port

    def _deliver(self, to: str, amount: int, operation: str) -> None:
        """Deliver value through the token port, if one is configured."""
        if self.token_port is None:
            return

        try:
            delivered = self.token_port.transfer(to, amount)
        except VestingLedgerError:
            raise
        except Exception as exc:
            raise TokenTransferError(
                f"{operation}: token transfer raised {type(exc).__name__}",
                details={"to": to, "amount": amount},
            ) from exc

        if not delivered:
            raise TokenTransferError(
                f"{operation}: token transfer rejected",
                details={"to": to, "amount": amount},
            )

    @staticmethod
    def _validate_amount(amount: object, field: str) -> None:
        """Validate amount is an unsigned 256-bit integer."""
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise InvalidAmountError(f"{field} must be an integer", details={"field": field})
        if amount < 0:
            raise InvalidAmountError(f"{field} cannot be negative", details={"field": field})
        if amount > UINT256_MAX:
            raise InvalidAmountError(f"{field} exceeds uint256", details={"field": field})
