"""Immutable ledger configuration.

LedgerConfig is built once (usually from CoreSettings) and handed to the
ledger at construction. Validation happens here, so a fee above the 10%
cap can never reach the fee computation.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from datetime import timedelta
from enum import StrEnum
from types import MappingProxyType
from typing import Any, Mapping

from ..core.config import CoreSettings, DEFAULT_PROOF_BADGES, DEFAULT_PROOF_SCORES, DEFAULT_TIER_THRESHOLDS
from ..core.exceptions import ConfigException

MAX_FEE_BPS = 1_000
BPS_DENOMINATOR = 10_000
TIER_COUNT = 5  # thresholds for Bronze..Whale; None starts at 0


class CooldownReference(StrEnum):
    STAKE = "stake"  # measured from the first stake
    REQUEST = "request"  # measured from the unstake request


@dataclass(frozen=True)
class ProofTypeRule:
    """Score increment and optional badge for one proof type."""

    score_increment: int
    badge: str | None = None


def _freeze_rules(rules: Mapping[str, ProofTypeRule]) -> Mapping[str, ProofTypeRule]:
    return MappingProxyType(dict(rules))


@dataclass(frozen=True)
class LedgerConfig:
    """Global ledger parameters."""

    minimum_stake: int = 1_000
    cooldown_period: timedelta = timedelta(days=7)
    cooldown_reference: CooldownReference = CooldownReference.STAKE
    challenge_period: timedelta = timedelta(days=3)
    fee_bps: int = 500
    fee_sink: str = "kya:fee-sink"
    vault_address: str = "kya:vault"
    tier_thresholds: tuple[int, ...] = tuple(DEFAULT_TIER_THRESHOLDS)
    proof_types: Mapping[str, ProofTypeRule] = field(
        default_factory=lambda: _freeze_rules(
            {
                name: ProofTypeRule(score, DEFAULT_PROOF_BADGES.get(name))
                for name, score in DEFAULT_PROOF_SCORES.items()
            }
        )
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "cooldown_reference", CooldownReference(self.cooldown_reference))
        object.__setattr__(self, "tier_thresholds", tuple(self.tier_thresholds))
        if not isinstance(self.proof_types, MappingProxyType):
            object.__setattr__(self, "proof_types", _freeze_rules(self.proof_types))
        self.validate()

    def validate(self) -> None:
        """Raise ConfigException on any out-of-range parameter."""
        if isinstance(self.fee_bps, bool) or not isinstance(self.fee_bps, int):
            raise ConfigException(f"fee_bps must be an integer, got {self.fee_bps!r}", "fee_bps")
        if not 0 <= self.fee_bps <= MAX_FEE_BPS:
            raise ConfigException(
                f"fee_bps must be between 0 and {MAX_FEE_BPS}, got {self.fee_bps}", "fee_bps"
            )
        if self.minimum_stake <= 0:
            raise ConfigException("minimum_stake must be positive", "minimum_stake")
        if self.cooldown_period < timedelta(0):
            raise ConfigException("cooldown_period must not be negative", "cooldown_period")
        if self.challenge_period < timedelta(0):
            raise ConfigException("challenge_period must not be negative", "challenge_period")
        if not self.fee_sink:
            raise ConfigException("fee_sink must be set", "fee_sink")
        if not self.vault_address or self.vault_address == self.fee_sink:
            raise ConfigException("vault_address must be set and differ from fee_sink", "vault_address")

        thresholds = self.tier_thresholds
        if len(thresholds) != TIER_COUNT:
            raise ConfigException(
                f"tier_thresholds needs {TIER_COUNT} values, got {len(thresholds)}", "tier_thresholds"
            )
        if thresholds[0] <= 0 or any(b <= a for a, b in zip(thresholds, thresholds[1:])):
            raise ConfigException("tier_thresholds must be positive and strictly ascending", "tier_thresholds")

        for name, rule in self.proof_types.items():
            if not name:
                raise ConfigException("proof type names must be non-empty", "proof_types")
            if rule.score_increment <= 0:
                raise ConfigException(
                    f"proof type {name} must have a positive score increment", "proof_types"
                )

    def fee_for(self, slash_amount: int) -> int:
        """Protocol fee on an actually-slashed amount (floor division)."""
        return slash_amount * self.fee_bps // BPS_DENOMINATOR

    def with_changes(self, **changes: Any) -> LedgerConfig:
        """Return a validated copy with some fields replaced."""
        unknown = set(changes) - {f.name for f in fields(self)}
        if unknown:
            raise ConfigException(f"Unknown config field(s): {', '.join(sorted(unknown))}", "changes")
        return replace(self, **changes)

    @classmethod
    def from_settings(cls, settings: CoreSettings) -> LedgerConfig:
        rules = {
            name: ProofTypeRule(score, settings.proof_badges.get(name))
            for name, score in settings.proof_scores.items()
        }
        return cls(
            minimum_stake=settings.minimum_stake,
            cooldown_period=timedelta(seconds=settings.cooldown_period_seconds),
            cooldown_reference=CooldownReference(settings.cooldown_reference),
            challenge_period=timedelta(seconds=settings.challenge_period_seconds),
            fee_bps=settings.fee_bps,
            fee_sink=settings.fee_sink,
            vault_address=settings.vault_address,
            tier_thresholds=tuple(settings.tier_thresholds),
            proof_types=rules,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "minimum_stake": self.minimum_stake,
            "cooldown_period_seconds": self.cooldown_period.total_seconds(),
            "cooldown_reference": self.cooldown_reference.value,
            "challenge_period_seconds": self.challenge_period.total_seconds(),
            "fee_bps": self.fee_bps,
            "fee_sink": self.fee_sink,
            "vault_address": self.vault_address,
            "tier_thresholds": list(self.tier_thresholds),
            "proof_types": {
                name: {"score_increment": rule.score_increment, "badge": rule.badge}
                for name, rule in self.proof_types.items()
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LedgerConfig:
        return cls(
            minimum_stake=int(data["minimum_stake"]),
            cooldown_period=timedelta(seconds=data["cooldown_period_seconds"]),
            cooldown_reference=CooldownReference(data.get("cooldown_reference", "stake")),
            challenge_period=timedelta(seconds=data["challenge_period_seconds"]),
            fee_bps=int(data["fee_bps"]),
            fee_sink=data["fee_sink"],
            vault_address=data["vault_address"],
            tier_thresholds=tuple(data["tier_thresholds"]),
            proof_types={
                name: ProofTypeRule(int(rule["score_increment"]), rule.get("badge"))
                for name, rule in data["proof_types"].items()
            },
        )
