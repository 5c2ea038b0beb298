"""Global test fixtures for the KYA test suite."""

from __future__ import annotations

import os
from datetime import timedelta

import pytest

from kya.core.auth import AccessControl, Role
from kya.core.clock import ManualClock
from kya.core.config import clear_config_cache
from kya.core.custody import InMemoryCustody
from kya.core.events import EventBus
from kya.core.registry import InMemoryIdentityRegistry
from kya.ledger.config import LedgerConfig
from kya.ledger.ledger import KYALedger

ADMIN = "admin"
PROVER = "oracle"
ADJUDICATOR = "judge"
ALICE = "0xalice"
BOB = "0xbob"
CAROL = "0xcarol"

STARTING_BALANCE = 100_000


# ============================================================================
# Environment fixtures
# ============================================================================


@pytest.fixture
def clean_env(monkeypatch):
    """Remove all KYA_ environment variables and reset the config cache."""
    for key in list(os.environ.keys()):
        if key.startswith("KYA_"):
            monkeypatch.delenv(key, raising=False)
    clear_config_cache()
    yield
    clear_config_cache()


# ============================================================================
# Ledger fixtures
# ============================================================================


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def registry(clock) -> InMemoryIdentityRegistry:
    """Registry with Alice as identity 1 and Bob as identity 2."""
    reg = InMemoryIdentityRegistry()
    reg.register(ALICE, created_at=clock.now())
    reg.register(BOB, created_at=clock.now())
    return reg


@pytest.fixture
def custody() -> InMemoryCustody:
    """Custody with funded owner and claimant wallets."""
    return InMemoryCustody({ALICE: STARTING_BALANCE, BOB: STARTING_BALANCE, CAROL: STARTING_BALANCE})


@pytest.fixture
def access() -> AccessControl:
    return AccessControl(
        {
            Role.ADMIN: [ADMIN],
            Role.PROVER: [PROVER],
            Role.ADJUDICATOR: [ADJUDICATOR],
        }
    )


@pytest.fixture
def config() -> LedgerConfig:
    """Default parameters: minimum stake 1000, 7 day cooldown, 3 day window, 5% fee."""
    return LedgerConfig(
        minimum_stake=1_000,
        cooldown_period=timedelta(days=7),
        challenge_period=timedelta(days=3),
        fee_bps=500,
    )


@pytest.fixture
def events() -> EventBus:
    return EventBus()


@pytest.fixture
def ledger(config, registry, custody, access, clock, events) -> KYALedger:
    return KYALedger(config, registry, custody, access=access, clock=clock, events=events)


@pytest.fixture
def staked_ledger(ledger) -> KYALedger:
    """Ledger where Alice's identity 1 holds a verified stake of 1000."""
    ledger.stake(ALICE, 1, 1_000)
    return ledger
