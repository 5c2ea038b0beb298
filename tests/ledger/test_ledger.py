"""Tests for the KYALedger facade: atomicity, reentrancy, admin and snapshots."""

from __future__ import annotations

import logging
import threading
from datetime import timedelta

import pytest

from kya.core.auth import Role
from kya.core.custody import InMemoryCustody
from kya.core.events import EventKind
from kya.core.exceptions import (
    ConfigException,
    CustodyError,
    IdentityNotFound,
    InsufficientFunds,
    KYAException,
    ReconciliationError,
    Unauthorized,
)
from kya.ledger.claims import ClaimStatus
from kya.ledger.ledger import KYALedger

ADMIN = "admin"
PROVER = "oracle"
JUDGE = "judge"
ALICE = "0xalice"
BOB = "0xbob"
VAULT = "kya:vault"
FEE_SINK = "kya:fee-sink"


class FailingCustody(InMemoryCustody):
    """Custody that refuses transfers to selected destinations."""

    def __init__(self, balances, fail_to=()):
        super().__init__(balances)
        self.fail_to = set(fail_to)

    def transfer(self, source, destination, amount):
        if destination in self.fail_to:
            raise CustodyError(f"transfer to {destination} refused")
        super().transfer(source, destination, amount)


class HookedCustody(InMemoryCustody):
    """Custody that calls back into the caller on every transfer."""

    def __init__(self, balances, fail_to=()):
        super().__init__(balances)
        self.hook = None
        self.fail_to = set(fail_to)

    def transfer(self, source, destination, amount):
        if destination in self.fail_to:
            raise CustodyError(f"transfer to {destination} refused")
        super().transfer(source, destination, amount)
        if self.hook is not None:
            self.hook(source, destination, amount)


class RunOnceHandler(logging.Handler):
    """Logging handler that runs an action on the first record it sees."""

    def __init__(self, action):
        super().__init__()
        self.action = action
        self.fired = False

    def emit(self, record):
        if not self.fired:
            self.fired = True
            self.action()


# ============================================================================
# Atomicity
# ============================================================================


class TestRollback:
    """A failed custody transfer undoes the whole operation."""

    def test_first_stake_rolled_back(self, ledger, events):
        with pytest.raises(InsufficientFunds):
            ledger.stake(ALICE, 1, 200_000)

        assert ledger.get_stake(1) is None
        assert ledger.stats().total_staked == 0
        assert events.history() == []
        ledger.reconcile()

    def test_top_up_rolled_back(self, staked_ledger, clock):
        before = staked_ledger.get_stake(1)
        clock.advance(60)
        with pytest.raises(InsufficientFunds):
            staked_ledger.stake(ALICE, 1, 100_000)

        after = staked_ledger.get_stake(1)
        assert after == before
        assert staked_ledger.stats().verified_identities == 1

    def test_claim_payout_rolled_back(self, config, registry, access, clock):
        """A refused fee transfer reverses the claimant payout already made."""
        custody = FailingCustody({ALICE: 10_000, BOB: 10_000}, fail_to=[FEE_SINK])
        ledger = KYALedger(config, registry, custody, access=access, clock=clock)
        ledger.stake(ALICE, 1, 1_000)
        claim = ledger.submit_claim(BOB, 1, 500)
        clock.advance(timedelta(days=3))

        with pytest.raises(CustodyError):
            ledger.resolve_claim(JUDGE, claim.id, approved=True)

        assert ledger.get_claim(claim.id).status == ClaimStatus.PENDING
        assert ledger.balance_of(1) == 1_000
        assert custody.balance_of(BOB) == 10_000
        stats = ledger.stats()
        assert stats.total_slashed == 0
        assert stats.total_fees == 0
        assert stats.open_claims == 1
        ledger.reconcile()

        custody.fail_to.clear()
        resolved = ledger.resolve_claim(JUDGE, claim.id, approved=True)
        assert resolved.payout == 475


# ============================================================================
# Reentrancy
# ============================================================================


class TestReentrancy:
    """Custody callbacks observe committed state and may call back in."""

    def test_custody_sees_updated_balance(self, config, registry, access, clock):
        custody = HookedCustody({ALICE: 10_000})
        ledger = KYALedger(config, registry, custody, access=access, clock=clock)
        observed = []
        custody.hook = lambda src, dst, amount: observed.append(ledger.balance_of(1))

        ledger.stake(ALICE, 1, 1_000)

        assert observed == [1_000]

    def test_reentrant_operation_on_same_identity(self, config, registry, access, clock):
        custody = HookedCustody({ALICE: 10_000})
        ledger = KYALedger(config, registry, custody, access=access, clock=clock)

        def on_transfer(src, dst, amount):
            custody.hook = None
            ledger.apply_proof(PROVER, 1, "wallet_age", b"reentrant")

        custody.hook = on_transfer
        ledger.stake(ALICE, 1, 1_000)

        assert ledger.get_reputation(1).score == 25
        assert ledger.balance_of(1) == 1_000

    def test_reentrant_unstake_cannot_double_withdraw(self, config, registry, access, clock):
        """A nested unstake sees the already-debited balance."""
        custody = HookedCustody({ALICE: 10_000})
        ledger = KYALedger(config, registry, custody, access=access, clock=clock)
        ledger.stake(ALICE, 1, 500)
        errors = []

        def on_transfer(src, dst, amount):
            custody.hook = None
            try:
                ledger.unstake(ALICE, 1, 500)
            except Exception as e:
                errors.append(type(e).__name__)

        custody.hook = on_transfer
        ledger.unstake(ALICE, 1, 500)

        assert errors == ["InsufficientBalance"]
        assert custody.balance_of(ALICE) == 10_000
        ledger.reconcile()

    def test_failed_outer_operation_undoes_nested_stake(self, config, registry, access, clock):
        """A stake made from a payout callback is reversed with the resolution it ran inside."""
        custody = HookedCustody({ALICE: 10_000, BOB: 10_000}, fail_to=[FEE_SINK])
        ledger = KYALedger(config, registry, custody, access=access, clock=clock)
        ledger.stake(ALICE, 1, 1_000)
        claim = ledger.submit_claim(BOB, 1, 500)
        clock.advance(timedelta(days=3))
        published = len(ledger.events.history())

        def on_payout(src, dst, amount):
            if dst == BOB:
                custody.hook = None
                ledger.stake(ALICE, 1, 100)

        custody.hook = on_payout
        with pytest.raises(CustodyError):
            ledger.resolve_claim(JUDGE, claim.id, approved=True)

        assert ledger.balance_of(1) == 1_000
        assert ledger.get_claim(claim.id).status == ClaimStatus.PENDING
        assert custody.balance_of(ALICE) == 9_000
        assert custody.balance_of(BOB) == 10_000
        assert custody.balance_of(VAULT) == 1_000
        assert ledger.stats().total_staked == 1_000
        assert len(ledger.events.history()) == published
        ledger.reconcile()

    def test_nested_events_follow_outer_events(self, config, registry, access, clock):
        custody = HookedCustody({ALICE: 10_000})
        ledger = KYALedger(config, registry, custody, access=access, clock=clock)
        kinds_at_nested_commit = []

        def on_transfer(src, dst, amount):
            custody.hook = None
            ledger.apply_proof(PROVER, 1, "wallet_age", b"nested")
            kinds_at_nested_commit.extend(e.kind for e in ledger.events.history())

        custody.hook = on_transfer
        ledger.stake(ALICE, 1, 1_000)

        kinds = [e.kind for e in ledger.events.history()]
        assert kinds_at_nested_commit == []
        assert kinds[0] == EventKind.STAKED
        assert EventKind.PROOF_VERIFIED in kinds

    def test_reconcile_inside_operation_is_refused(self, config, registry, access, clock):
        custody = HookedCustody({ALICE: 10_000})
        ledger = KYALedger(config, registry, custody, access=access, clock=clock)
        errors = []

        def on_transfer(src, dst, amount):
            custody.hook = None
            try:
                ledger.reconcile()
            except KYAException as e:
                errors.append(e.message)

        custody.hook = on_transfer
        ledger.stake(ALICE, 1, 1_000)

        assert len(errors) == 1
        ledger.reconcile()


# ============================================================================
# Events
# ============================================================================


class TestEvents:
    """Events are published after commit."""

    def test_subscriber_observes_committed_state(self, ledger, events):
        seen = []
        events.subscribe(lambda e: seen.append(ledger.balance_of(e.identity_id)), EventKind.STAKED)
        ledger.stake(ALICE, 1, 700)
        assert seen == [700]

    def test_failed_operation_publishes_nothing(self, staked_ledger, events):
        count = len(events.history())
        with pytest.raises(Unauthorized):
            staked_ledger.unstake(BOB, 1, 1)
        assert len(events.history()) == count


# ============================================================================
# Concurrency
# ============================================================================


class TestConcurrency:
    """Parallel operations keep the ledger consistent."""

    def test_parallel_stakes(self, ledger):
        def worker(owner, identity_id):
            for _ in range(50):
                ledger.stake(owner, identity_id, 10)

        threads = [threading.Thread(target=worker, args=(ALICE, 1)) for _ in range(4)]
        threads += [threading.Thread(target=worker, args=(BOB, 2)) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert ledger.balance_of(1) == 2_000
        assert ledger.balance_of(2) == 2_000
        assert ledger.stats().verified_identities == 2
        ledger.reconcile()

    def test_config_swap_holds_off_first_stake(self, staked_ledger):
        """A first stake arriving while verified flags are re-derived waits for the new config."""
        errors = []

        def stake_bob():
            try:
                staked_ledger.stake(BOB, 2, 1_500)
            except Exception as e:
                errors.append(e)

        worker = threading.Thread(target=stake_bob)

        def start_worker():
            worker.start()
            worker.join(timeout=0.2)

        stake_logger = logging.getLogger("kya.ledger.stake")
        handler = RunOnceHandler(start_worker)
        previous_level = stake_logger.level
        stake_logger.addHandler(handler)
        stake_logger.setLevel(logging.INFO)
        try:
            staked_ledger.update_config(ADMIN, minimum_stake=2_000)
        finally:
            stake_logger.removeHandler(handler)
            stake_logger.setLevel(previous_level)
        worker.join()

        assert handler.fired
        assert errors == []
        assert staked_ledger.balance_of(2) == 1_500
        assert not staked_ledger.is_verified(2)
        assert staked_ledger.stats().verified_identities == 0
        staked_ledger.reconcile()

    def test_parallel_replays_apply_once(self, ledger):
        results = []

        def worker():
            try:
                ledger.apply_proof(PROVER, 1, "uniswap_volume", b"tx:race")
                results.append("ok")
            except Exception as e:
                results.append(type(e).__name__)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count("ok") == 1
        assert results.count("ProofAlreadyVerified") == 7
        assert ledger.get_reputation(1).score == 100


class TestLockTable:
    """Per-identity locks exist only for registered identities."""

    def test_reads_of_unknown_identities_leave_no_lock(self, ledger):
        assert ledger.balance_of(999_999) == 0
        assert ledger.get_stake(999_999) is None
        assert ledger.get_reputation(424_242).score == 0
        assert 999_999 not in ledger._locks
        assert 424_242 not in ledger._locks

    def test_failed_mutation_on_unknown_identity_leaves_no_lock(self, ledger):
        with pytest.raises(IdentityNotFound):
            ledger.stake(ALICE, 77, 100)
        assert 77 not in ledger._locks

    def test_registered_identities_are_locked(self, ledger):
        ledger.stake(ALICE, 1, 100)
        assert 1 in ledger._locks


# ============================================================================
# Administration
# ============================================================================


class TestAdministration:
    """Roles and configuration changes."""

    def test_resolver_holds_slasher_role(self, ledger, access):
        assert access.has_role(Role.SLASHER, ledger.claims.address)

    def test_grant_and_revoke_roles(self, ledger):
        assert ledger.grant_role(ADMIN, Role.PROVER, "oracle-2")
        ledger.apply_proof("oracle-2", 1, "wallet_age", b"p")
        assert ledger.revoke_role(ADMIN, Role.PROVER, "oracle-2")
        with pytest.raises(Unauthorized):
            ledger.apply_proof("oracle-2", 1, "wallet_age", b"q")

    def test_non_admin_cannot_grant(self, ledger):
        with pytest.raises(Unauthorized):
            ledger.grant_role(ALICE, Role.ADJUDICATOR, ALICE)

    def test_update_fee(self, ledger):
        config = ledger.update_config(ADMIN, fee_bps=1_000)
        assert config.fee_bps == 1_000
        assert ledger.config.fee_bps == 1_000
        assert ledger.claims.config.fee_bps == 1_000

    def test_update_rejects_fee_above_cap(self, ledger):
        with pytest.raises(ConfigException):
            ledger.update_config(ADMIN, fee_bps=1_001)
        assert ledger.config.fee_bps == 500

    def test_update_requires_admin(self, ledger):
        with pytest.raises(Unauthorized):
            ledger.update_config(ALICE, fee_bps=0)

    def test_vault_cannot_move(self, ledger):
        with pytest.raises(ConfigException):
            ledger.update_config(ADMIN, vault_address="kya:other-vault")

    def test_update_rejects_unknown_field(self, ledger):
        with pytest.raises(ConfigException):
            ledger.update_config(ADMIN, fee_percent=5)
        assert ledger.config.fee_bps == 500

    def test_minimum_stake_change_rederives_verified(self, staked_ledger):
        staked_ledger.update_config(ADMIN, minimum_stake=2_000)

        assert not staked_ledger.is_verified(1)
        assert staked_ledger.stats().verified_identities == 0

        staked_ledger.update_config(ADMIN, minimum_stake=500)
        assert staked_ledger.is_verified(1)
        assert staked_ledger.stats().verified_identities == 1


# ============================================================================
# Reconciliation and snapshots
# ============================================================================


class TestReconcile:
    """Vault balance, total staked and stake records must agree."""

    def test_consistent_ledger(self, staked_ledger):
        assert staked_ledger.reconcile().total_staked == 1_000

    def test_detects_out_of_band_vault_transfer(self, staked_ledger, custody):
        custody.transfer(VAULT, BOB, 1)
        with pytest.raises(ReconciliationError) as exc_info:
            staked_ledger.reconcile()
        assert exc_info.value.details["vault_balance"] == 999


class TestSnapshot:
    """Ledger state survives a dict round trip."""

    def test_round_trip(self, staked_ledger, registry, custody, access, clock):
        staked_ledger.apply_proof(PROVER, 1, "uniswap_volume", b"tx:01")
        claim = staked_ledger.submit_claim(BOB, 1, 300)
        staked_ledger.request_unstake(ALICE, 1)

        data = staked_ledger.to_dict()
        restored = KYALedger.from_dict(data, registry, custody, access=access, clock=clock)

        assert restored.to_dict() == data
        assert restored.get_claim(claim.id).amount_requested == 300
        assert restored.is_proof_applied(1, "uniswap_volume", b"tx:01")
        restored.reconcile()

        clock.advance(timedelta(days=3))
        assert restored.resolve_claim(JUDGE, claim.id, approved=True).slashed_amount == 300

    def test_restored_claim_ids_stay_unique(self, staked_ledger, registry, custody, access, clock):
        first = staked_ledger.submit_claim(BOB, 1, 100)
        restored = KYALedger.from_dict(staked_ledger.to_dict(), registry, custody, access=access, clock=clock)
        second = restored.submit_claim(BOB, 1, 100)
        assert first.id != second.id

    def test_unknown_version(self, ledger, registry, custody):
        data = ledger.to_dict()
        data["version"] = 99
        with pytest.raises(ConfigException):
            KYALedger.from_dict(data, registry, custody)
