"""Tests for kya.ledger.store - the JSON state file."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest

from kya.core.auth import Role
from kya.core.exceptions import ConfigException
from kya.ledger.ledger import KYALedger
from kya.ledger.store import load_snapshot, save_snapshot

ALICE = "0xalice"
BOB = "0xbob"
PROVER = "oracle"


class TestSaveSnapshot:
    def test_writes_versioned_document(self, staked_ledger, tmp_path):
        path = save_snapshot(tmp_path / "state.json", staked_ledger)

        document = json.loads(path.read_text())
        assert document["version"] == 1
        assert set(document) == {"version", "ledger", "registry", "custody", "access"}
        assert document["custody"]["balances"]["kya:vault"] == 1_000

    def test_creates_parent_directories(self, ledger, tmp_path):
        path = save_snapshot(tmp_path / "nested" / "dir" / "state.json", ledger)
        assert path.exists()
        assert list(path.parent.iterdir()) == [path]

    def test_rejects_external_collaborators(self, config, access, clock, tmp_path):
        ledger = KYALedger(config, MagicMock(), MagicMock(), access=access, clock=clock)
        with pytest.raises(ConfigException):
            save_snapshot(tmp_path / "state.json", ledger)


class TestLoadSnapshot:
    def test_round_trip(self, staked_ledger, clock, tmp_path):
        staked_ledger.apply_proof(PROVER, 1, "aave_repayment", b"loan-7")
        claim = staked_ledger.submit_claim(BOB, 1, 250)
        path = save_snapshot(tmp_path / "state.json", staked_ledger)

        state = load_snapshot(path, clock=clock)

        assert state.ledger.to_dict() == staked_ledger.to_dict()
        assert state.registry.owner_wallet(1) == ALICE
        assert state.custody.balance_of(ALICE) == 99_000
        assert state.access.has_role(Role.PROVER, PROVER)
        assert state.ledger.get_claim(claim.id).amount_requested == 250
        state.ledger.reconcile()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_snapshot(tmp_path / "missing.json")

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("{not json")
        with pytest.raises(ConfigException):
            load_snapshot(path)

    def test_unknown_version(self, ledger, tmp_path):
        path = save_snapshot(tmp_path / "state.json", ledger)
        document = json.loads(path.read_text())
        document["version"] = 2
        path.write_text(json.dumps(document))
        with pytest.raises(ConfigException):
            load_snapshot(path)
