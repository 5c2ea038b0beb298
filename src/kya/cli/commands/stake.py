"""Stake commands.

Commands:
    kya --as OWNER stake ID AMOUNT            Post collateral for an identity
    kya --as OWNER request-unstake ID         Start the unstake cooldown
    kya --as OWNER unstake ID AMOUNT          Withdraw collateral
"""

from __future__ import annotations

import argparse

from ...core.exceptions import KYAException
from ...ledger.stake import StakeRecord
from ..output import output_error, output_result
from ..state import open_state, require_caller


def register(subparsers: argparse._SubParsersAction) -> None:
    """Register the stake commands."""
    stake_p = subparsers.add_parser("stake", help="Post collateral for an identity")
    stake_p.add_argument("identity_id", type=int, help="Identity ID")
    stake_p.add_argument("amount", type=int, help="Token units to stake")
    stake_p.set_defaults(func=cmd_stake)

    request_p = subparsers.add_parser("request-unstake", help="Start the unstake cooldown")
    request_p.add_argument("identity_id", type=int, help="Identity ID")
    request_p.set_defaults(func=cmd_request_unstake)

    unstake_p = subparsers.add_parser("unstake", help="Withdraw collateral to the owner wallet")
    unstake_p.add_argument("identity_id", type=int, help="Identity ID")
    unstake_p.add_argument("amount", type=int, help="Token units to withdraw")
    unstake_p.set_defaults(func=cmd_unstake)


def _stake_result(identity_id: int, record: StakeRecord | None, cooldown_ends_at) -> dict:
    if record is None:
        return {"identity_id": identity_id, "amount": 0, "verified": False}
    result = record.to_dict()
    result["cooldown_ends_at"] = cooldown_ends_at.isoformat() if cooldown_ends_at else None
    return result


def cmd_stake(args: argparse.Namespace) -> int:
    """Stake tokens for an identity."""
    try:
        caller = require_caller(args)
        with open_state(args) as state:
            record = state.ledger.stake(caller, args.identity_id, args.amount)
            cooldown = state.ledger.cooldown_ends_at(args.identity_id)
        output_result(_stake_result(args.identity_id, record, cooldown), args.output)
        return 0
    except KYAException as e:
        output_error(e.message)
        return 1


def cmd_request_unstake(args: argparse.Namespace) -> int:
    """Request to unstake."""
    try:
        caller = require_caller(args)
        with open_state(args) as state:
            record = state.ledger.request_unstake(caller, args.identity_id)
            cooldown = state.ledger.cooldown_ends_at(args.identity_id)
        output_result(_stake_result(args.identity_id, record, cooldown), args.output)
        return 0
    except KYAException as e:
        output_error(e.message)
        return 1


def cmd_unstake(args: argparse.Namespace) -> int:
    """Withdraw staked tokens."""
    try:
        caller = require_caller(args)
        with open_state(args) as state:
            record = state.ledger.unstake(caller, args.identity_id, args.amount)
            cooldown = state.ledger.cooldown_ends_at(args.identity_id)
        output_result(_stake_result(args.identity_id, record, cooldown), args.output)
        return 0
    except KYAException as e:
        output_error(e.message)
        return 1
