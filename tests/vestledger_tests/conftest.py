"""
Shared fixtures for grant ledger tests.

Ledgers are built on a ManualClock so schedules can be evaluated at exact
times, and on a stub token port that records every transfer.
"""

import pytest

from vestledger.core.clock import ManualClock
from vestledger.core.grant_ledger import GrantLedger
from vestledger.core.metrics import LedgerMetrics

COMPANY = "company"
LEDGER_ADDRESS = "vestledger"
T0 = 1_000


class StubTokenPort:
    """In-memory stand-in for the external token ledger."""

    def __init__(self, holder=LEDGER_ADDRESS, balance=0, fail=False, error=None):
        self.holder = holder
        self.balances = {holder: balance}
        self.fail = fail
        self.error = error
        self.transfers = []
        self.on_transfer = None

    def balance_of(self, holder):
        return self.balances.get(holder, 0)

    def transfer(self, to, amount):
        if self.on_transfer is not None:
            self.on_transfer(to, amount)
        if self.error is not None:
            raise self.error
        if self.fail or self.balances.get(self.holder, 0) < amount:
            return False
        self.balances[self.holder] -= amount
        self.balances[to] = self.balances.get(to, 0) + amount
        self.transfers.append((to, amount))
        return True


@pytest.fixture
def clock():
    return ManualClock(T0)


@pytest.fixture
def metrics():
    return LedgerMetrics()


@pytest.fixture
def ledger(clock, metrics):
    """Identity-badge ledger (no token port) with a 1000-option pool."""
    return GrantLedger(principal=COMPANY, initial_pool=1000, clock=clock, metrics=metrics)


@pytest.fixture
def token_port():
    return StubTokenPort(balance=10_000)


@pytest.fixture
def token_ledger(clock, metrics, token_port):
    """Token-variant ledger delivering exercises through the stub port."""
    return GrantLedger(
        principal=COMPANY,
        initial_pool=1000,
        clock=clock,
        token_port=token_port,
        address=LEDGER_ADDRESS,
        metrics=metrics,
    )


@pytest.fixture
def scheduled_ledger(ledger):
    """Scenario ledger: 100 options to 'employee', vesting 1000 after a 100 cliff from T0."""
    ledger.grant_options(COMPANY, "employee", 100)
    ledger.set_vesting_schedule(COMPANY, "employee", vesting_period=1000, cliff_period=100)
    return ledger


@pytest.fixture
def make_token_port():
    """Factory for stub ports with custom balance or failure behavior."""
    return StubTokenPort
