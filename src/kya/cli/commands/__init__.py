"""CLI command modules for KYA.

Each module exposes a ``register(subparsers)`` function that wires up
its argparse sub-commands and sets ``parser.set_defaults(func=handler)``.
"""

from . import (
    admin,
    claims,
    reputation,
    stake,
)
from .admin import (
    cmd_balance,
    cmd_identity_register,
    cmd_identity_show,
    cmd_init,
    cmd_mint,
    cmd_role_grant,
    cmd_role_revoke,
    cmd_stats,
)
from .claims import (
    cmd_claim_challenge,
    cmd_claim_list,
    cmd_claim_resolve,
    cmd_claim_show,
    cmd_claim_submit,
)
from .reputation import cmd_prove, cmd_reputation, cmd_tier
from .stake import cmd_request_unstake, cmd_stake, cmd_unstake

# All command modules with register() functions, in registration order.
COMMAND_MODULES = [
    admin,
    stake,
    claims,
    reputation,
]

__all__ = [
    "COMMAND_MODULES",
    # Admin
    "cmd_balance",
    "cmd_identity_register",
    "cmd_identity_show",
    "cmd_init",
    "cmd_mint",
    "cmd_role_grant",
    "cmd_role_revoke",
    "cmd_stats",
    # Stake
    "cmd_request_unstake",
    "cmd_stake",
    "cmd_unstake",
    # Claims
    "cmd_claim_challenge",
    "cmd_claim_list",
    "cmd_claim_resolve",
    "cmd_claim_show",
    "cmd_claim_submit",
    # Reputation
    "cmd_prove",
    "cmd_reputation",
    "cmd_tier",
]
