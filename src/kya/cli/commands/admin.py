# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Administrative commands: state setup, identities, roles, tokens, stats.

Commands:
    kya init --admin ADDR                 Create a fresh state file
    kya identity register OWNER           Register an identity for a wallet
    kya identity show ID                  Identity, stake and reputation summary
    kya role grant ROLE ADDR              Grant a role (admin)
    kya role revoke ROLE ADDR             Revoke a role (admin)
    kya mint ADDR AMOUNT                  Credit test tokens to a wallet (admin)
    kya balance ADDR                      Custody balance of a wallet
    kya stats [--reconcile]               Protocol-wide totals
"""

from __future__ import annotations

import argparse
import logging

from ...core.auth import AccessControl, Role
from ...core.clock import SystemClock
from ...core.config import get_config
from ...core.custody import InMemoryCustody
from ...core.exceptions import ConfigException, KYAException
from ...core.registry import InMemoryIdentityRegistry
from ...ledger.config import LedgerConfig
from ...ledger.ledger import KYALedger
from ...ledger.store import save_snapshot
from ..output import output_error, output_result
from ..state import open_state, require_caller, state_path

logger = logging.getLogger(__name__)


def register(subparsers: argparse._SubParsersAction) -> None:
    """Register the administrative commands."""
    init_p = subparsers.add_parser("init", help="Create a fresh ledger state file")
    init_p.add_argument("--admin", help="Address granted the admin role (default: --as)")
    init_p.add_argument("--force", action="store_true", help="Overwrite an existing state file")
    init_p.set_defaults(func=cmd_init)

    # --- identity ---
    identity_p = subparsers.add_parser("identity", help="Manage registered identities")
    identity_sub = identity_p.add_subparsers(dest="identity_command", required=True)

    reg_p = identity_sub.add_parser("register", help="Register an identity")
    reg_p.add_argument("owner", help="Wallet address controlling the identity")
    reg_p.set_defaults(func=cmd_identity_register)

    show_p = identity_sub.add_parser("show", help="Show an identity")
    show_p.add_argument("identity_id", type=int, help="Identity ID")
    show_p.set_defaults(func=cmd_identity_show)

    # --- role ---
    role_p = subparsers.add_parser("role", help="Grant or revoke roles")
    role_sub = role_p.add_subparsers(dest="role_command", required=True)
    for action, handler in (("grant", cmd_role_grant), ("revoke", cmd_role_revoke)):
        p = role_sub.add_parser(action, help=f"{action.capitalize()} a role")
        p.add_argument("role", choices=[r.value for r in Role], help="Role name")
        p.add_argument("address", help="Address")
        p.set_defaults(func=handler)

    # --- tokens ---
    mint_p = subparsers.add_parser("mint", help="Credit tokens to a wallet (admin)")
    mint_p.add_argument("address", help="Wallet address")
    mint_p.add_argument("amount", type=int, help="Token units")
    mint_p.set_defaults(func=cmd_mint)

    balance_p = subparsers.add_parser("balance", help="Show the custody balance of a wallet")
    balance_p.add_argument("address", help="Wallet address")
    balance_p.set_defaults(func=cmd_balance)

    # --- stats ---
    stats_p = subparsers.add_parser("stats", help="Show protocol statistics")
    stats_p.add_argument(
        "--reconcile",
        action="store_true",
        help="Also check vault balance, total staked and stake records agree",
    )
    stats_p.set_defaults(func=cmd_stats)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def cmd_init(args: argparse.Namespace) -> int:
    """Create a state file with an empty ledger."""
    path = state_path(args)
    admin = args.admin or args.caller
    if not admin:
        output_error("init needs an admin address; pass --admin or --as")
        return 1
    if path.exists() and not args.force:
        output_error(f"{path} already exists (use --force to overwrite)")
        return 1

    try:
        config = LedgerConfig.from_settings(get_config())
        access = AccessControl({Role.ADMIN: [admin]})
        ledger = KYALedger(config, InMemoryIdentityRegistry(), InMemoryCustody(), access, SystemClock())
        save_snapshot(path, ledger)
    except KYAException as e:
        output_error(e.message)
        return 1

    logger.info("Initialized ledger state at %s", path)
    output_result({"state": str(path), "admin": admin, "config": config.to_dict()}, args.output)
    return 0


def cmd_identity_register(args: argparse.Namespace) -> int:
    """Register a new identity."""
    try:
        with open_state(args) as state:
            identity_id = state.registry.register(args.owner, created_at=state.ledger.clock.now())
            info = state.registry.get(identity_id)
        output_result(info.to_dict(), args.output)
        return 0
    except KYAException as e:
        output_error(e.message)
        return 1


def cmd_identity_show(args: argparse.Namespace) -> int:
    """Show an identity with its stake and reputation."""
    try:
        with open_state(args, write=False) as state:
            info = state.registry.get(args.identity_id)
            ledger = state.ledger
            stake = ledger.get_stake(args.identity_id)
            cooldown = ledger.cooldown_ends_at(args.identity_id)
            reputation = ledger.get_reputation(args.identity_id)
        result = info.to_dict()
        result["stake"] = stake.amount if stake else 0
        result["verified"] = bool(stake and stake.verified)
        result["unstake_requested_at"] = (
            stake.unstake_requested_at.isoformat() if stake and stake.unstake_requested_at else None
        )
        result["cooldown_ends_at"] = cooldown.isoformat() if cooldown else None
        result.update(reputation.to_dict(include_history=False))
        output_result(result, args.output)
        return 0
    except KYAException as e:
        output_error(e.message)
        return 1


def _change_role(args: argparse.Namespace, grant: bool) -> int:
    try:
        caller = require_caller(args)
        with open_state(args) as state:
            if grant:
                changed = state.ledger.grant_role(caller, Role(args.role), args.address)
            else:
                changed = state.ledger.revoke_role(caller, Role(args.role), args.address)
            members = sorted(state.access.members(Role(args.role)))
        output_result({"role": args.role, "address": args.address, "changed": changed, "members": members}, args.output)
        return 0
    except KYAException as e:
        output_error(e.message)
        return 1


def cmd_role_grant(args: argparse.Namespace) -> int:
    """Grant a role to an address."""
    return _change_role(args, grant=True)


def cmd_role_revoke(args: argparse.Namespace) -> int:
    """Revoke a role from an address."""
    return _change_role(args, grant=False)


def cmd_mint(args: argparse.Namespace) -> int:
    """Credit tokens to a wallet."""
    try:
        caller = require_caller(args)
        with open_state(args) as state:
            state.access.require(Role.ADMIN, caller)
            if args.address == state.ledger.config.vault_address:
                raise ConfigException("Minting into the vault would break reconciliation", "address")
            balance = state.custody.mint(args.address, args.amount)
        output_result({"address": args.address, "minted": args.amount, "balance": balance}, args.output)
        return 0
    except KYAException as e:
        output_error(e.message)
        return 1


def cmd_balance(args: argparse.Namespace) -> int:
    """Show the custody balance of a wallet."""
    try:
        with open_state(args, write=False) as state:
            balance = state.custody.balance_of(args.address)
        output_result({"address": args.address, "balance": balance}, args.output)
        return 0
    except KYAException as e:
        output_error(e.message)
        return 1


def cmd_stats(args: argparse.Namespace) -> int:
    """Show protocol statistics."""
    try:
        with open_state(args, write=False) as state:
            ledger = state.ledger
            snapshot = ledger.reconcile() if args.reconcile else ledger.stats()
            vault_balance = state.custody.balance_of(ledger.config.vault_address)
        result = snapshot.to_dict()
        result["vault_balance"] = vault_balance
        if args.reconcile:
            result["reconciled"] = True
        output_result(result, args.output)
        return 0
    except KYAException as e:
        output_error(e.message)
        return 1
