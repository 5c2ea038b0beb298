"""Reputation commands.

Commands:
    kya --as PROVER prove ID PROOF_TYPE PAYLOAD [--hex] [--metadata TEXT]
    kya reputation ID [--history]
    kya tier (ID | --score N)
"""

from __future__ import annotations

import argparse

from ...core.exceptions import KYAException, ValidationException
from ...ledger.reputation import get_tier
from ..output import output_error, output_result
from ..state import open_state, require_caller


def register(subparsers: argparse._SubParsersAction) -> None:
    """Register the reputation commands."""
    prove_p = subparsers.add_parser("prove", help="Apply a verified proof to an identity (prover)")
    prove_p.add_argument("identity_id", type=int, help="Identity ID")
    prove_p.add_argument("proof_type", help="Proof type, e.g. uniswap_volume")
    prove_p.add_argument("payload", help="Proof payload (text, or hex with --hex)")
    prove_p.add_argument("--hex", action="store_true", help="Payload is hex-encoded bytes")
    prove_p.add_argument("--metadata", default="", help="Free-form metadata kept in history")
    prove_p.set_defaults(func=cmd_prove)

    rep_p = subparsers.add_parser("reputation", help="Show an identity's reputation")
    rep_p.add_argument("identity_id", type=int, help="Identity ID")
    rep_p.add_argument("--history", action="store_true", help="Include score history")
    rep_p.set_defaults(func=cmd_reputation)

    tier_p = subparsers.add_parser("tier", help="Show the tier of an identity or a score")
    tier_p.add_argument("identity_id", type=int, nargs="?", help="Identity ID")
    tier_p.add_argument("--score", type=int, help="Map a raw score to its tier instead")
    tier_p.set_defaults(func=cmd_tier)


def cmd_prove(args: argparse.Namespace) -> int:
    """Apply a proof."""
    try:
        caller = require_caller(args)
        if args.hex:
            try:
                payload: bytes | str = bytes.fromhex(args.payload)
            except ValueError as e:
                raise ValidationException(f"payload is not valid hex: {e}", "payload") from e
        else:
            payload = args.payload
        with open_state(args) as state:
            result = state.ledger.apply_proof(caller, args.identity_id, args.proof_type, payload, args.metadata)
        output_result(result.to_dict(), args.output)
        return 0
    except KYAException as e:
        output_error(e.message)
        return 1


def cmd_reputation(args: argparse.Namespace) -> int:
    """Show reputation."""
    try:
        with open_state(args, write=False) as state:
            record = state.ledger.get_reputation(args.identity_id)
        output_result(record.to_dict(include_history=args.history), args.output)
        return 0
    except KYAException as e:
        output_error(e.message)
        return 1


def cmd_tier(args: argparse.Namespace) -> int:
    """Show a tier."""
    if (args.identity_id is None) == (args.score is None):
        output_error("pass either an identity ID or --score")
        return 1
    try:
        with open_state(args, write=False) as state:
            if args.score is not None:
                tier = get_tier(args.score, state.ledger.config.tier_thresholds)
                result = {"score": args.score, "tier": tier.name}
            else:
                record = state.ledger.get_reputation(args.identity_id)
                result = {"identity_id": args.identity_id, "score": record.score, "tier": record.tier.name}
        output_result(result, args.output)
        return 0
    except KYAException as e:
        output_error(e.message)
        return 1
