"""Single-writer facade over the stake, claim and reputation ledgers.

Every mutating call follows the same path:

1. enter the ledger-wide gate (shared) and take the reentrant lock of each
   identity it touches (ascending order)
2. read the clock once
3. run the component operation against a fresh Journal (checks, then writes)
4. execute the queued collateral transfers against custody
5. release the locks and publish the queued events

A failure in steps 3 or 4 rolls the journal back, reverses any transfer
that already went through and re-raises, so no partial mutation is ever
observable. Because transfers run only after the writes, a custody
callback that re-enters the ledger sees the updated state.
"""

from __future__ import annotations

import copy
import logging
import threading
import time
from collections.abc import Callable, Iterable, Iterator
from contextlib import ExitStack, contextmanager
from datetime import datetime
from typing import Any, TypeVar

from ..core.auth import AccessControl, Role
from ..core.clock import Clock, SystemClock
from ..core.custody import Custody
from ..core.events import EventBus
from ..core.exceptions import ConfigException, CustodyError, ReconciliationError
from ..core.logging import OperationLogger, correlation_context, operation_logger
from ..core.registry import IdentityRegistry
from .claims import Claim, ClaimResolver
from .config import LedgerConfig
from .gate import OperationGate
from .journal import Journal
from .proofs import ProofLedger
from .reputation import ProofResult, ReputationLedger, ReputationRecord, ReputationUpdate, Tier
from .stake import StakeLedger, StakeRecord
from .stats import ProtocolStats, StatsSnapshot

logger = logging.getLogger(__name__)

T = TypeVar("T")

SNAPSHOT_VERSION = 1


class KYALedger:
    """Economic security and reputation ledger.

    Args:
        config: Immutable ledger parameters.
        registry: Identity registry collaborator.
        custody: Collateral custody collaborator.
        access: Role table; the claim resolver is granted the slasher role.
        clock: Time source for cooldowns and challenge windows.
        events: Bus receiving events after each committed operation.
        op_logger: Operation logger (defaults to the module-level one).
    """

    def __init__(
        self,
        config: LedgerConfig,
        registry: IdentityRegistry,
        custody: Custody,
        access: AccessControl | None = None,
        clock: Clock | None = None,
        events: EventBus | None = None,
        op_logger: OperationLogger | None = None,
    ) -> None:
        self._config = config
        self.registry = registry
        self.custody = custody
        self.access = access or AccessControl()
        self.clock = clock or SystemClock()
        self.events = events or EventBus()
        self._op_logger = op_logger or operation_logger

        self._stats = ProtocolStats()
        self.stakes = StakeLedger(config, registry, self.access, self._stats)
        self.reputation = ReputationLedger(config, registry, self.access, ProofLedger(), self._stats)
        self.claims = ClaimResolver(config, registry, self.access, self.stakes, self._stats)
        self.access.grant(Role.SLASHER, self.claims.address)

        self._locks: dict[int, threading.RLock] = {}
        self._locks_guard = threading.Lock()
        self._gate = OperationGate()
        # Per thread: journal of the operation in progress and the locks it holds
        self._local = threading.local()

    @property
    def config(self) -> LedgerConfig:
        return self._config

    # ------------------------------------------------------------------
    # Operation plumbing
    # ------------------------------------------------------------------

    def _lock_for(self, identity_id: int) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get(identity_id)
            if lock is None:
                lock = self._locks[identity_id] = threading.RLock()
            return lock

    def _take_locks(self, identities: Iterable[int]) -> ExitStack:
        """Acquire the locks of the registered identities, in ascending order.

        Unregistered identities get no lock entry. If one of them is
        registered while the others are being acquired, everything is
        released and taken again so the order stays ascending.
        """
        wanted = sorted(set(identities))
        while True:
            known = [i for i in wanted if self.registry.exists(i)]
            stack = ExitStack()
            for identity_id in known:
                stack.enter_context(self._lock_for(identity_id))
            if known == [i for i in wanted if self.registry.exists(i)]:
                return stack
            stack.close()

    @contextmanager
    def _locked(self, identities: Iterable[int]) -> Iterator[None]:
        with self._take_locks(identities):
            yield

    def _execute(self, journal: Journal) -> None:
        """Issue queued transfers, recording each one that went through."""
        for transfer in journal.transfers:
            self.custody.transfer(transfer.source, transfer.destination, transfer.amount)
            journal.executed.append(transfer)

    def _reverse(self, journal: Journal) -> None:
        for transfer in reversed(journal.executed):
            try:
                self.custody.transfer(transfer.destination, transfer.source, transfer.amount)
            except CustodyError:
                logger.exception("Could not reverse transfer %s", transfer)

    def _run(self, journal: Journal, identities: Iterable[int], fn: Callable[[Journal, datetime], T]) -> T:
        # Locks go on the outermost operation's stack and stay held until it finishes
        self._local.held.enter_context(self._take_locks(identities))
        previous = getattr(self._local, "journal", None)
        self._local.journal = journal
        try:
            result = fn(journal, self.clock.now())
            self._execute(journal)
        except Exception:
            self._reverse(journal)
            journal.rollback()
            raise
        finally:
            self._local.journal = previous
        return result

    def _operation(
        self,
        name: str,
        identities: Iterable[int],
        fn: Callable[[Journal, datetime], T],
        **arguments: Any,
    ) -> T:
        """Run one mutation as a unit.

        An operation started from inside another one on the same thread (a
        custody callback calling back into the ledger) joins the outer
        operation: its writes and transfers are undone if the outer
        operation later fails, and its events are published with the
        outer operation's.
        """
        self._op_logger.log_call(name, arguments)
        start = time.perf_counter()
        outer = getattr(self._local, "journal", None)
        journal = Journal()
        with correlation_context():
            try:
                if outer is None:
                    with self._gate.shared(), ExitStack() as held:
                        self._local.held = held
                        try:
                            result = self._run(journal, identities, fn)
                        finally:
                            self._local.held = None
                else:
                    result = self._run(journal, identities, fn)
                    outer.merge(journal)
            except Exception as e:
                self._op_logger.log_result(
                    name, False, (time.perf_counter() - start) * 1000, type(e).__name__, level=logging.INFO
                )
                raise
            if outer is None:
                for event in journal.events:
                    self.events.publish(event)
            self._op_logger.log_result(name, True, (time.perf_counter() - start) * 1000)
        return result

    # ------------------------------------------------------------------
    # Stake
    # ------------------------------------------------------------------

    def stake(self, caller: str, identity_id: int, amount: int) -> StakeRecord:
        """Post collateral for an identity; returns the updated record."""
        record = self._operation(
            "stake",
            [identity_id],
            lambda j, now: self.stakes.stake(j, caller, identity_id, amount, now),
            caller=caller,
            identity_id=identity_id,
            amount=amount,
        )
        return copy.copy(record)

    def request_unstake(self, caller: str, identity_id: int) -> StakeRecord | None:
        record = self._operation(
            "request_unstake",
            [identity_id],
            lambda j, now: self.stakes.request_unstake(j, caller, identity_id, now),
            caller=caller,
            identity_id=identity_id,
        )
        return copy.copy(record)

    def unstake(self, caller: str, identity_id: int, amount: int) -> StakeRecord:
        record = self._operation(
            "unstake",
            [identity_id],
            lambda j, now: self.stakes.unstake(j, caller, identity_id, amount, now),
            caller=caller,
            identity_id=identity_id,
            amount=amount,
        )
        return copy.copy(record)

    def get_stake(self, identity_id: int) -> StakeRecord | None:
        with self._locked([identity_id]):
            return copy.copy(self.stakes.get(identity_id))

    def balance_of(self, identity_id: int) -> int:
        with self._locked([identity_id]):
            return self.stakes.balance_of(identity_id)

    def is_verified(self, identity_id: int) -> bool:
        with self._locked([identity_id]):
            return self.stakes.is_verified(identity_id)

    def cooldown_ends_at(self, identity_id: int) -> datetime | None:
        with self._locked([identity_id]):
            return self.stakes.cooldown_ends_at(identity_id)

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------

    def _claim_targets(self, claim_id: str) -> list[int]:
        claim = self.claims.find(claim_id)
        return [claim.target_identity] if claim else []

    def submit_claim(self, caller: str, target_identity: int, amount: int, reason: str = "") -> Claim:
        """File a claim; returns it with its generated ID and deadline."""
        claim = self._operation(
            "submit_claim",
            [target_identity],
            lambda j, now: self.claims.submit_claim(j, caller, target_identity, amount, reason, now),
            caller=caller,
            target_identity=target_identity,
            amount=amount,
            reason=reason,
        )
        return copy.copy(claim)

    def challenge_claim(self, caller: str, claim_id: str) -> Claim:
        claim = self._operation(
            "challenge_claim",
            self._claim_targets(claim_id),
            lambda j, now: self.claims.challenge_claim(j, caller, claim_id, now),
            caller=caller,
            claim_id=claim_id,
        )
        return copy.copy(claim)

    def resolve_claim(
        self,
        caller: str,
        claim_id: str,
        approved: bool,
        waive_challenge_period: bool = False,
    ) -> Claim:
        """Approve or reject a claim; approval slashes and pays out."""
        claim = self._operation(
            "resolve_claim",
            self._claim_targets(claim_id),
            lambda j, now: self.claims.resolve_claim(j, caller, claim_id, approved, now, waive_challenge_period),
            caller=caller,
            claim_id=claim_id,
            approved=approved,
            waive_challenge_period=waive_challenge_period,
        )
        return copy.copy(claim)

    def get_claim(self, claim_id: str) -> Claim:
        return copy.copy(self.claims.get(claim_id))

    def claims_for(self, identity_id: int) -> list[Claim]:
        return [copy.copy(c) for c in self.claims.claims_for(identity_id)]

    def open_claims(self) -> list[Claim]:
        return [copy.copy(c) for c in self.claims.open_claims()]

    def all_claims(self) -> list[Claim]:
        return [copy.copy(c) for c in sorted(self.claims.all_claims(), key=lambda c: c.submitted_at)]

    # ------------------------------------------------------------------
    # Reputation
    # ------------------------------------------------------------------

    def apply_proof(
        self,
        caller: str,
        identity_id: int,
        proof_type: str,
        proof_payload: bytes | str,
        metadata: str = "",
    ) -> ProofResult:
        """Apply a prover-supplied attestation to an identity's reputation."""
        return self._operation(
            "apply_proof",
            [identity_id],
            lambda j, now: self.reputation.apply_proof(j, caller, identity_id, proof_type, proof_payload, metadata, now),
            caller=caller,
            identity_id=identity_id,
            proof_type=proof_type,
            proof_payload=proof_payload,
            metadata=metadata,
        )

    def get_reputation(self, identity_id: int) -> ReputationRecord:
        """Reputation of an identity; a zero record if it has none yet."""
        with self._locked([identity_id]):
            record = self.reputation.get(identity_id)
            return copy.deepcopy(record) if record else ReputationRecord(identity_id=identity_id)

    def get_tier(self, identity_id: int) -> Tier:
        return self.get_reputation(identity_id).tier

    def get_badges(self, identity_id: int) -> list[str]:
        return sorted(self.get_reputation(identity_id).badges)

    def has_badge(self, identity_id: int, badge: str) -> bool:
        return badge in self.get_reputation(identity_id).badges

    def history(self, identity_id: int) -> list[ReputationUpdate]:
        """Reputation updates of an identity, oldest first."""
        return self.get_reputation(identity_id).history

    def is_proof_applied(self, identity_id: int, proof_type: str, proof_payload: bytes | str) -> bool:
        with self._locked([identity_id]):
            return self.reputation.is_proof_applied(identity_id, proof_type, proof_payload)

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def grant_role(self, caller: str, role: Role, address: str) -> bool:
        self.access.require(Role.ADMIN, caller)
        return self.access.grant(Role(role), address)

    def revoke_role(self, caller: str, role: Role, address: str) -> bool:
        self.access.require(Role.ADMIN, caller)
        return self.access.revoke(Role(role), address)

    def update_config(self, caller: str, **changes: Any) -> LedgerConfig:
        """Replace ledger parameters (admin only).

        The new config is validated before anything changes. The vault
        address cannot change while the ledger holds collateral. Verified
        flags are re-derived if the minimum stake moved. No other operation
        runs while the config is swapped.
        """
        self.access.require(Role.ADMIN, caller)

        def apply(journal: Journal, now: datetime) -> LedgerConfig:
            old = self._config
            self._set_config(new_config)
            journal.on_rollback(lambda: self._set_config(old))
            if new_config.minimum_stake != old.minimum_stake:
                self.stakes.rederive_verified(journal, now)
            return new_config

        with self._gate.exclusive():
            new_config = self._config.with_changes(**changes)
            if new_config.vault_address != self._config.vault_address:
                raise ConfigException("vault_address cannot change on a live ledger", "vault_address")
            result = self._operation(
                "update_config", self._known_identities(), apply, caller=caller, changes=changes
            )
        logger.info("Ledger config updated by %s: %s", caller, sorted(changes))
        return result

    def _known_identities(self) -> list[int]:
        with self._locks_guard:
            known = set(self._locks)
        known.update(r.identity_id for r in self.stakes.records())
        return sorted(known)

    def _set_config(self, config: LedgerConfig) -> None:
        self._config = config
        self.stakes.config = config
        self.reputation.config = config
        self.claims.config = config

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    def stats(self) -> StatsSnapshot:
        return self._stats.snapshot()

    def reconcile(self) -> StatsSnapshot:
        """Check custody, aggregate and per-identity balances agree.

        Raises:
            ReconciliationError: any of the three totals differ
            KYAException: called from inside another ledger operation
        """
        with self._gate.exclusive(), self._locked(self._known_identities()):
            snapshot = self._stats.snapshot()
            record_total = sum(r.amount for r in self.stakes.records())
            vault_balance = self.custody.balance_of(self._config.vault_address)
        if not (snapshot.total_staked == record_total == vault_balance):
            raise ReconciliationError(
                "Collateral totals disagree",
                {
                    "total_staked": snapshot.total_staked,
                    "sum_of_records": record_total,
                    "vault_balance": vault_balance,
                },
            )
        return snapshot

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": SNAPSHOT_VERSION,
            "config": self._config.to_dict(),
            "stakes": self.stakes.to_dict(),
            "reputation": self.reputation.to_dict(),
            "claims": self.claims.to_dict(),
            "stats": self._stats.to_dict(),
        }

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        registry: IdentityRegistry,
        custody: Custody,
        access: AccessControl | None = None,
        clock: Clock | None = None,
        events: EventBus | None = None,
    ) -> KYALedger:
        version = data.get("version", SNAPSHOT_VERSION)
        if version != SNAPSHOT_VERSION:
            raise ConfigException(f"Unsupported snapshot version: {version}", "version")
        ledger = cls(LedgerConfig.from_dict(data["config"]), registry, custody, access, clock, events)
        ledger.stakes.load(data.get("stakes", {}))
        ledger.reputation.load(data.get("reputation", {}))
        ledger.claims.load(data.get("claims", {}))
        ledger._stats.load(data.get("stats", {}))
        return ledger
