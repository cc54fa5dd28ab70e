"""
Unit tests for exercise_options.

Coverage targets:
- One-shot exercise latch in single mode
- Token delivery through the port and rollback when it fails
- Reentrancy through the transfer callback
- Operations started from the transfer callback commit or roll back with
  the exercise
- Partial-exercise mode with separate exercised counter
"""

import pytest

from vestledger.core.config import ExerciseMode
from vestledger.core.events import OptionsExercised, OptionsGranted
from vestledger.core.exceptions import (
    AlreadyExercisedError,
    GrantNotFoundError,
    InsufficientPoolError,
    InsufficientVestedError,
    InvalidAmountError,
    ReentrancyError,
    TokenTransferError,
)
from vestledger.core.grant_ledger import GrantLedger

COMPANY = "company"
T0 = 1_000


def _schedule(ledger, beneficiary="employee", amount=100, vesting_period=1000, cliff_period=100):
    ledger.grant_options(COMPANY, beneficiary, amount)
    ledger.set_vesting_schedule(COMPANY, beneficiary, vesting_period=vesting_period, cliff_period=cliff_period)


class TestSingleExercise:
    def test_exercise_latches_and_records_amount(self, scheduled_ledger, clock):
        clock.set(T0 + 600)

        scheduled_ledger.exercise_options("employee", 30)

        grant = scheduled_ledger.get_grant("employee")
        assert grant.exercised is True
        assert grant.vested_options == 30
        assert grant.exercised_options == 30
        exercised = scheduled_ledger.event_log.of_type(OptionsExercised)
        assert [(e.beneficiary, e.amount, e.timestamp) for e in exercised] == [("employee", 30, T0 + 600)]

    def test_second_exercise_fails_even_after_more_vests(self, scheduled_ledger, clock):
        clock.set(T0 + 600)
        scheduled_ledger.exercise_options("employee", 10)

        clock.set(T0 + 2000)
        with pytest.raises(AlreadyExercisedError):
            scheduled_ledger.exercise_options("employee", 1)

        assert scheduled_ledger.get_grant("employee").exercised_options == 10

    def test_exercise_inside_cliff_fails(self, scheduled_ledger, clock):
        clock.set(T0 + 50)

        with pytest.raises(InsufficientVestedError):
            scheduled_ledger.exercise_options("employee", 1)

        assert scheduled_ledger.get_grant("employee").exercised is False

    def test_exercise_without_schedule_fails(self, ledger):
        ledger.grant_options(COMPANY, "employee", 100)
        with pytest.raises(InsufficientVestedError):
            ledger.exercise_options("employee", 1)

    def test_exercise_without_grant_fails(self, ledger):
        with pytest.raises(GrantNotFoundError):
            ledger.exercise_options("stranger", 1)

    @pytest.mark.parametrize("amount", [0, -5, 2.5])
    def test_exercise_requires_positive_integer(self, scheduled_ledger, clock, amount):
        clock.set(T0 + 600)
        with pytest.raises(InvalidAmountError):
            scheduled_ledger.exercise_options("employee", amount)
        assert scheduled_ledger.get_grant("employee").exercised is False

    def test_sweep_before_exercise_consumes_availability(self, scheduled_ledger, clock):
        """vested_options doubles as the exercised counter in single mode."""
        clock.set(T0 + 600)
        scheduled_ledger.vest_options(COMPANY)

        assert scheduled_ledger.get_grant_status("employee")["available_to_exercise"] == 0
        with pytest.raises(InsufficientVestedError):
            scheduled_ledger.exercise_options("employee", 1)

        clock.set(T0 + 1100)
        scheduled_ledger.exercise_options("employee", 50)
        assert scheduled_ledger.get_grant("employee").vested_options == 100

    def test_failed_exercise_emits_nothing(self, scheduled_ledger, clock):
        clock.set(T0 + 600)
        before = len(scheduled_ledger.events)

        with pytest.raises(InsufficientVestedError):
            scheduled_ledger.exercise_options("employee", 60)

        assert len(scheduled_ledger.events) == before


class TestTokenDelivery:
    def test_exercise_transfers_tokens(self, token_ledger, token_port, clock):
        _schedule(token_ledger)
        clock.set(T0 + 600)

        token_ledger.exercise_options("employee", 50)

        assert token_port.transfers == [("employee", 50)]
        assert token_port.balance_of("employee") == 50

    def test_rejected_transfer_rolls_back(self, clock, make_token_port):
        port = make_token_port(balance=10_000, fail=True)
        ledger = GrantLedger(principal=COMPANY, initial_pool=1000, clock=clock, token_port=port)
        _schedule(ledger)
        clock.set(T0 + 600)
        before = ledger.to_dict()
        events_before = len(ledger.events)

        with pytest.raises(TokenTransferError):
            ledger.exercise_options("employee", 50)

        assert ledger.to_dict() == before
        assert len(ledger.events) == events_before
        # Nothing was committed, so the beneficiary may retry
        port.fail = False
        ledger.exercise_options("employee", 50)
        assert ledger.get_grant("employee").exercised is True

    def test_raising_port_is_wrapped_and_rolled_back(self, clock, make_token_port):
        port = make_token_port(balance=10_000, error=ConnectionError("token ledger unreachable"))
        ledger = GrantLedger(principal=COMPANY, initial_pool=1000, clock=clock, token_port=port)
        _schedule(ledger)
        clock.set(T0 + 600)

        with pytest.raises(TokenTransferError) as exc_info:
            ledger.exercise_options("employee", 50)

        assert isinstance(exc_info.value.__cause__, ConnectionError)
        assert exc_info.value.recoverable is True
        assert ledger.get_grant("employee").exercised is False

    def test_reentrant_exercise_from_transfer_callback_is_blocked(self, token_ledger, token_port, clock):
        _schedule(token_ledger)
        clock.set(T0 + 600)
        nested_errors = []

        def reenter(to, amount):
            try:
                token_ledger.exercise_options(to, amount)
            except ReentrancyError as exc:
                nested_errors.append(exc)

        token_port.on_transfer = reenter
        token_ledger.exercise_options("employee", 50)

        assert len(nested_errors) == 1
        assert token_port.transfers == [("employee", 50)]
        grant = token_ledger.get_grant("employee")
        assert grant.exercised_options == 50
        assert len(token_ledger.event_log.of_type(OptionsExercised)) == 1

    def test_reentrancy_propagating_aborts_outer_exercise(self, token_ledger, token_port, clock):
        _schedule(token_ledger)
        clock.set(T0 + 600)
        token_port.on_transfer = lambda to, amount: token_ledger.exercise_options(to, amount)

        with pytest.raises(ReentrancyError):
            token_ledger.exercise_options("employee", 50)

        assert token_ledger.get_grant("employee").exercised is False
        assert token_port.transfers == []

    def test_guard_released_after_failure(self, token_ledger, token_port, clock):
        _schedule(token_ledger)
        clock.set(T0 + 600)
        token_port.fail = True

        with pytest.raises(TokenTransferError):
            token_ledger.exercise_options("employee", 50)

        token_port.fail = False
        token_ledger.exercise_options("employee", 50)
        assert token_port.transfers == [("employee", 50)]

    def test_grant_from_callback_discarded_when_exercise_fails(self, token_ledger, token_port, clock, metrics):
        _schedule(token_ledger)
        clock.set(T0 + 600)
        before = token_ledger.to_dict()
        events_before = len(token_ledger.events)
        token_port.fail = True
        token_port.on_transfer = lambda to, amount: token_ledger.grant_options(COMPANY, "bonus", 7)

        with pytest.raises(TokenTransferError):
            token_ledger.exercise_options("employee", 10)

        assert token_ledger.get_grant("bonus") is None
        assert token_ledger.to_dict() == before
        assert len(token_ledger.events) == events_before
        assert metrics.sample("vestledger_options_granted_total") == 100.0
        assert metrics.sample(
            "vestledger_operations_total", {"operation": "grant_options", "outcome": "success"}
        ) == 1.0
        assert metrics.sample("vestledger_pool_remaining_options") == 900.0

    def test_grant_from_callback_published_with_exercise(self, token_ledger, token_port, clock, metrics):
        _schedule(token_ledger)
        clock.set(T0 + 600)
        events_before = len(token_ledger.events)
        seen_in_flight = []

        def grant_bonus(to, amount):
            token_ledger.grant_options(COMPANY, "bonus", 7)
            seen_in_flight.append(len(token_ledger.events))

        token_port.on_transfer = grant_bonus
        token_ledger.exercise_options("employee", 10)

        assert seen_in_flight == [events_before]
        new_events = token_ledger.events[events_before:]
        assert [type(event) for event in new_events] == [OptionsGranted, OptionsExercised]
        assert token_ledger.get_grant("bonus").options_granted == 7
        assert token_ledger.option_pool.total_options == 893
        assert metrics.sample("vestledger_options_granted_total") == 107.0
        assert metrics.sample("vestledger_pool_remaining_options") == 893.0

    def test_failed_grant_inside_callback_keeps_outer_exercise(self, token_ledger, token_port, clock):
        _schedule(token_ledger)
        clock.set(T0 + 600)
        nested_errors = []

        def grant_too_much(to, amount):
            try:
                token_ledger.grant_options(COMPANY, "bonus", 10_000)
            except InsufficientPoolError as exc:
                nested_errors.append(exc)

        token_port.on_transfer = grant_too_much
        token_ledger.exercise_options("employee", 10)

        assert len(nested_errors) == 1
        assert token_ledger.get_grant("bonus") is None
        assert token_ledger.get_grant("employee").exercised_options == 10
        assert token_ledger.beneficiaries() == ["employee"]


class TestPartialExercise:
    @pytest.fixture
    def partial_ledger(self, clock):
        ledger = GrantLedger(
            principal=COMPANY,
            initial_pool=1000,
            clock=clock,
            exercise_mode=ExerciseMode.PARTIAL,
        )
        _schedule(ledger)
        return ledger

    def test_multiple_exercises_up_to_vested(self, partial_ledger, clock):
        clock.set(T0 + 600)
        partial_ledger.exercise_options("employee", 20)
        partial_ledger.exercise_options("employee", 30)

        with pytest.raises(InsufficientVestedError):
            partial_ledger.exercise_options("employee", 1)

        clock.set(T0 + 1100)
        partial_ledger.exercise_options("employee", 50)

        grant = partial_ledger.get_grant("employee")
        assert grant.exercised_options == 100
        assert grant.exercised is True

    def test_sweep_does_not_consume_exercisable_balance(self, partial_ledger, clock):
        clock.set(T0 + 600)
        partial_ledger.vest_options(COMPANY)

        partial_ledger.exercise_options("employee", 50)

        grant = partial_ledger.get_grant("employee")
        assert grant.vested_options == 50
        assert grant.exercised_options == 50

    def test_sweep_continues_after_exercise(self, partial_ledger, clock):
        clock.set(T0 + 600)
        partial_ledger.exercise_options("employee", 10)

        clock.set(T0 + 1100)
        assert partial_ledger.vest_options(COMPANY) == 100
        assert partial_ledger.get_grant("employee").vested_options == 100
