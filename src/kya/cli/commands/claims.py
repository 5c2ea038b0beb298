# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Claim commands.

Commands:
    kya --as ADDR claim submit TARGET AMOUNT [--reason TEXT]
    kya --as OWNER claim challenge CLAIM_ID
    kya --as ADJUDICATOR claim resolve CLAIM_ID (--approve | --reject) [--waive-challenge-period]
    kya claim show CLAIM_ID
    kya claim list [--identity ID] [--open]
"""

from __future__ import annotations

import argparse

from ...core.exceptions import KYAException
from ..output import output_error, output_result
from ..state import open_state, require_caller


def register(subparsers: argparse._SubParsersAction) -> None:
    """Register the claim sub-command group."""
    claim_p = subparsers.add_parser("claim", help="Submit, challenge and resolve claims")
    claim_sub = claim_p.add_subparsers(dest="claim_command", required=True)

    # --- submit ---
    submit_p = claim_sub.add_parser("submit", help="File a claim against a staked identity")
    submit_p.add_argument("target", type=int, help="Target identity ID")
    submit_p.add_argument("amount", type=int, help="Token units requested")
    submit_p.add_argument("--reason", default="", help="Free-form reason")
    submit_p.set_defaults(func=cmd_claim_submit)

    # --- challenge ---
    challenge_p = claim_sub.add_parser("challenge", help="Contest a pending claim (target owner)")
    challenge_p.add_argument("claim_id", help="Claim ID")
    challenge_p.set_defaults(func=cmd_claim_challenge)

    # --- resolve ---
    resolve_p = claim_sub.add_parser("resolve", help="Approve or reject a claim (adjudicator)")
    resolve_p.add_argument("claim_id", help="Claim ID")
    decision = resolve_p.add_mutually_exclusive_group(required=True)
    decision.add_argument("--approve", dest="approved", action="store_true", help="Approve and slash")
    decision.add_argument("--reject", dest="approved", action="store_false", help="Reject")
    resolve_p.add_argument(
        "--waive-challenge-period",
        action="store_true",
        help="Resolve before the challenge window has elapsed",
    )
    resolve_p.set_defaults(func=cmd_claim_resolve)

    # --- show ---
    show_p = claim_sub.add_parser("show", help="Show a claim")
    show_p.add_argument("claim_id", help="Claim ID")
    show_p.set_defaults(func=cmd_claim_show)

    # --- list ---
    list_p = claim_sub.add_parser("list", help="List claims")
    list_p.add_argument("--identity", type=int, help="Only claims against this identity")
    list_p.add_argument("--open", dest="open_only", action="store_true", help="Only unresolved claims")
    list_p.set_defaults(func=cmd_claim_list)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def cmd_claim_submit(args: argparse.Namespace) -> int:
    """Submit a claim."""
    try:
        caller = require_caller(args)
        with open_state(args) as state:
            claim = state.ledger.submit_claim(caller, args.target, args.amount, args.reason)
        output_result(claim.to_dict(), args.output)
        return 0
    except KYAException as e:
        output_error(e.message)
        return 1


def cmd_claim_challenge(args: argparse.Namespace) -> int:
    """Challenge a claim."""
    try:
        caller = require_caller(args)
        with open_state(args) as state:
            claim = state.ledger.challenge_claim(caller, args.claim_id)
        output_result(claim.to_dict(), args.output)
        return 0
    except KYAException as e:
        output_error(e.message)
        return 1


def cmd_claim_resolve(args: argparse.Namespace) -> int:
    """Resolve a claim."""
    try:
        caller = require_caller(args)
        with open_state(args) as state:
            claim = state.ledger.resolve_claim(
                caller,
                args.claim_id,
                args.approved,
                waive_challenge_period=args.waive_challenge_period,
            )
        output_result(claim.to_dict(), args.output)
        return 0
    except KYAException as e:
        output_error(e.message)
        return 1


def cmd_claim_show(args: argparse.Namespace) -> int:
    """Show one claim."""
    try:
        with open_state(args, write=False) as state:
            claim = state.ledger.get_claim(args.claim_id)
        output_result(claim.to_dict(), args.output)
        return 0
    except KYAException as e:
        output_error(e.message)
        return 1


def cmd_claim_list(args: argparse.Namespace) -> int:
    """List claims, optionally filtered."""
    try:
        with open_state(args, write=False) as state:
            ledger = state.ledger
            if args.identity is not None:
                claims = ledger.claims_for(args.identity)
            else:
                claims = ledger.all_claims()
        if args.open_only:
            claims = [c for c in claims if not c.status.is_terminal]
        output_result({"count": len(claims), "claims": [c.to_dict() for c in claims]}, args.output)
        return 0
    except KYAException as e:
        output_error(e.message)
        return 1
