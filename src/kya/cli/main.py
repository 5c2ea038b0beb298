#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""
KYA CLI - stake, claims and reputation for agent identities.

Commands:
  kya init --admin ADDR          Create a fresh state file
  kya identity register|show     Manage identities
  kya role grant|revoke          Manage roles
  kya mint / balance             Test tokens
  kya stake / request-unstake / unstake
  kya claim submit|challenge|resolve|show|list
  kya prove / reputation / tier
  kya stats [--reconcile]
"""

from __future__ import annotations

import argparse
import logging
import sys

from ..core.logging import configure_logging
from .commands import COMMAND_MODULES

logger = logging.getLogger(__name__)


def app() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="kya",
        description="Economic security and reputation ledger for agent identities",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  kya init --admin admin                         Create kya-state.json
  kya identity register 0xalice                  Register identity 1
  kya --as admin mint 0xalice 5000               Fund a wallet
  kya --as 0xalice stake 1 1000                  Stake (verified at the minimum)
  kya --as admin role grant prover oracle        Allow oracle to apply proofs
  kya --as oracle prove 1 uniswap_volume tx:01   Apply a proof
  kya --as 0xbob claim submit 1 300              File a claim
  kya --as admin claim resolve <id> --approve    Resolve after the window
        """,
    )
    parser.add_argument("--state", help="Ledger state file (default: KYA_STATE_PATH or kya-state.json)")
    parser.add_argument("--as", dest="caller", metavar="ADDRESS", help="Address making the call")
    parser.add_argument(
        "--json",
        dest="output",
        action="store_const",
        const="json",
        default="text",
        help="Print results as JSON",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)
    for module in COMMAND_MODULES:
        module.register(subparsers)
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = app()
    args = parser.parse_args(argv)
    configure_logging("DEBUG" if args.verbose else "INFO")
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
