# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""KYA - economic security and reputation ledger for agent identities.

Agents registered in an identity registry post collateral (stake), build
reputation from externally verified proofs, and can be held accountable
through claims that slash their stake.

Architecture:
  Identity registry (external, read-only here)
    → Stake ledger (collateral, verified status, unstake cooldown)
    → Claim resolver (submit, challenge, resolve; slashing with a protocol fee)
    → Reputation ledger (scores, tiers, badges, replay-safe proofs)

Every mutation runs as one unit of work: checks, journaled writes, then
collateral transfers. Any failure rolls the whole operation back.

CLI entry point: ``kya``
"""

__version__ = "1.0.0"

from . import (
    core as core,
)
from . import (
    ledger as ledger,
)
