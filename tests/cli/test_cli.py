"""Tests for the kya command line interface."""

from __future__ import annotations

import json

import pytest

from kya.cli import main as cli_main
from kya.cli.main import app, main
from kya.cli.output import format_text


@pytest.fixture
def state_file(tmp_path, clean_env, monkeypatch):
    """Path of a fresh state file; logging configuration is left to pytest."""
    monkeypatch.setattr(cli_main, "configure_logging", lambda *a, **kw: None)
    return str(tmp_path / "kya-state.json")


@pytest.fixture
def kya(state_file, capsys):
    """Run the CLI against the state file and return (exit code, parsed JSON or text)."""

    def run(*argv: str, caller: str | None = None, as_json: bool = True):
        args = ["--state", state_file]
        if caller:
            args += ["--as", caller]
        if as_json:
            args.append("--json")
        capsys.readouterr()
        code = main([*args, *argv])
        out = capsys.readouterr()
        if code == 0 and as_json:
            return code, json.loads(out.out)
        return code, out.out + out.err

    return run


@pytest.fixture
def initialized(kya):
    """State with Alice's identity 1 funded, staked at 1000, and prover/adjudicator roles."""
    assert kya("init", "--admin", "admin")[0] == 0
    assert kya("identity", "register", "0xalice")[0] == 0
    assert kya("mint", "0xalice", "5000", caller="admin")[0] == 0
    assert kya("stake", "1", "1000", caller="0xalice")[0] == 0
    assert kya("role", "grant", "prover", "oracle", caller="admin")[0] == 0
    assert kya("role", "grant", "adjudicator", "judge", caller="admin")[0] == 0
    return kya


class TestParser:
    """Test command registration."""

    def test_global_flags(self):
        args = app().parse_args(["--as", "0xalice", "--json", "stake", "1", "100"])
        assert args.caller == "0xalice"
        assert args.output == "json"
        assert args.identity_id == 1
        assert args.amount == 100

    def test_default_output_is_text(self):
        args = app().parse_args(["claim", "list", "--open"])
        assert args.output == "text"
        assert args.open_only

    def test_resolve_requires_decision(self):
        with pytest.raises(SystemExit):
            app().parse_args(["claim", "resolve", "abc"])

    def test_role_choices(self):
        with pytest.raises(SystemExit):
            app().parse_args(["role", "grant", "emperor", "x"])


class TestInit:
    def test_init_and_refuse_overwrite(self, kya):
        code, result = kya("init", "--admin", "admin")
        assert code == 0
        assert result["admin"] == "admin"
        assert result["config"]["fee_bps"] == 500

        code, output = kya("init", "--admin", "admin")
        assert code == 1
        assert "already exists" in output

        assert kya("init", "--admin", "admin", "--force")[0] == 0

    def test_init_needs_admin(self, kya):
        code, output = kya("init")
        assert code == 1
        assert "admin" in output

    def test_commands_need_state(self, kya):
        code, output = kya("stats")
        assert code == 1
        assert "kya init" in output


class TestWorkflow:
    """End-to-end flows through the state file."""

    def test_stake_shows_verified(self, initialized):
        code, result = initialized("identity", "show", "1")
        assert code == 0
        assert result["owner"] == "0xalice"
        assert result["stake"] == 1_000
        assert result["verified"] is True
        assert result["tier"] == "NONE"

    def test_unstake_before_cooldown_fails(self, initialized):
        code, output = initialized("unstake", "1", "1", caller="0xalice")
        assert code == 1
        assert "cooldown" in output.lower()

        _, result = initialized("stats")
        assert result["total_staked"] == 1_000

    def test_proof_and_reputation(self, initialized):
        code, result = initialized("prove", "1", "uniswap_volume", "tx:01", caller="oracle")
        assert code == 0
        assert result["new_score"] == 100
        assert result["tier"] == "BRONZE"
        assert result["badge_awarded"] == "defi_trader"

        code, output = initialized("prove", "1", "uniswap_volume", "tx:01", caller="oracle")
        assert code == 1
        assert "already applied" in output

        _, rep = initialized("reputation", "1", "--history")
        assert rep["score"] == 100
        assert len(rep["history"]) == 1

        _, tier = initialized("tier", "1")
        assert tier == {"identity_id": 1, "score": 100, "tier": "BRONZE"}

    def test_hex_payload(self, initialized):
        code, _ = initialized("prove", "1", "wallet_age", "0a0b", "--hex", caller="oracle")
        assert code == 0
        code, output = initialized("prove", "1", "wallet_age", "zz", "--hex", caller="oracle")
        assert code == 1
        assert "hex" in output

    def test_claim_lifecycle(self, initialized):
        assert initialized("mint", "0xbob", "1", caller="admin")[0] == 0
        code, claim = initialized("claim", "submit", "1", "300", "--reason", "late", caller="0xbob")
        assert code == 0
        assert claim["status"] == "pending"

        code, output = initialized("claim", "resolve", claim["id"], "--approve", caller="judge")
        assert code == 1
        assert "Challenge period" in output

        code, resolved = initialized(
            "claim", "resolve", claim["id"], "--approve", "--waive-challenge-period", caller="judge"
        )
        assert code == 0
        assert resolved["status"] == "approved"
        assert resolved["slashed_amount"] == 300
        assert resolved["fee"] == 15
        assert resolved["payout"] == 285

        _, balance = initialized("balance", "0xbob")
        assert balance["balance"] == 286

        _, listing = initialized("claim", "list", "--identity", "1")
        assert listing["count"] == 1
        _, open_listing = initialized("claim", "list", "--open")
        assert open_listing["count"] == 0

        code, stats = initialized("stats", "--reconcile")
        assert code == 0
        assert stats["total_staked"] == 700
        assert stats["vault_balance"] == 700
        assert stats["reconciled"] is True

    def test_challenge_by_owner(self, initialized):
        _, claim = initialized("claim", "submit", "1", "300", caller="0xbob")
        code, challenged = initialized("claim", "challenge", claim["id"], caller="0xalice")
        assert code == 0
        assert challenged["status"] == "challenged"

        _, shown = initialized("claim", "show", claim["id"])
        assert shown["challenged_at"] is not None


class TestErrors:
    def test_missing_caller(self, initialized):
        code, output = initialized("stake", "1", "100")
        assert code == 1
        assert "--as" in output

    def test_unauthorized_mint(self, initialized):
        code, output = initialized("mint", "0xalice", "10", caller="0xalice")
        assert code == 1
        assert "not authorized" in output

    def test_rejected_operation_leaves_state(self, initialized, state_file):
        with open(state_file) as f:
            before = f.read()
        assert initialized("unstake", "1", "5000", caller="0xalice")[0] == 1
        with open(state_file) as f:
            assert f.read() == before

    def test_tier_needs_one_argument(self, initialized):
        assert initialized("tier")[0] == 1
        code, result = initialized("tier", "--score", "500")
        assert code == 0
        assert result["tier"] == "SILVER"


class TestTextOutput:
    def test_format_text(self):
        text = format_text({"id": 1, "badges": ["a", "b"], "resolver": None})
        assert text.splitlines() == ["id:       1", "badges:   a, b", "resolver: -"]

    def test_text_mode(self, initialized):
        code, output = initialized("stats", as_json=False)
        assert code == 0
        assert "total_staked:" in output
