"""Core configuration - centralized config for the kya package.

All environment-based configuration should flow through this module.
This provides a single source of truth and consistent defaults.

Usage:
    from kya.core.config import get_config
    config = get_config()

    # Access settings
    minimum_stake = config.minimum_stake
    log_level = config.log_level

Ledger parameters are read from here once and frozen into a
``kya.ledger.config.LedgerConfig`` at construction time; the running ledger
never consults these settings again.
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_TIER_THRESHOLDS = [100, 500, 2_000, 10_000, 50_000]

DEFAULT_PROOF_SCORES = {
    "uniswap_volume": 100,
    "aave_repayment": 150,
    "governance_vote": 75,
    "nft_holding": 50,
    "wallet_age": 25,
}

DEFAULT_PROOF_BADGES = {
    "uniswap_volume": "defi_trader",
    "aave_repayment": "reliable_borrower",
    "governance_vote": "governor",
}


class CoreSettings(BaseSettings):
    """Core configuration settings for the KYA ledger.

    Settings can be configured via environment variables with the KYA_
    prefix or a ``.env`` file. Dict and list settings are read as JSON.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ==========================================================================
    # STAKE SETTINGS
    # ==========================================================================

    minimum_stake: int = Field(
        default=1_000,
        description="Collateral required for verified status (token units)",
        validation_alias="KYA_MINIMUM_STAKE",
    )
    cooldown_period_seconds: int = Field(
        default=7 * 24 * 3600,
        description="Unstake cooldown for verified identities",
        validation_alias="KYA_COOLDOWN_PERIOD_SECONDS",
    )
    cooldown_reference: str = Field(
        default="stake",
        description="Cooldown reference point: 'stake' (first stake) or 'request' (unstake request)",
        validation_alias="KYA_COOLDOWN_REFERENCE",
    )

    # ==========================================================================
    # CLAIM SETTINGS
    # ==========================================================================

    challenge_period_seconds: int = Field(
        default=3 * 24 * 3600,
        description="Window after submission during which the target may challenge",
        validation_alias="KYA_CHALLENGE_PERIOD_SECONDS",
    )
    fee_bps: int = Field(
        default=500,
        description="Protocol fee on slashed amounts in basis points (max 1000)",
        validation_alias="KYA_FEE_BPS",
    )
    fee_sink: str = Field(
        default="kya:fee-sink",
        description="Address receiving protocol fees",
        validation_alias="KYA_FEE_SINK",
    )
    vault_address: str = Field(
        default="kya:vault",
        description="Custody address holding staked collateral",
        validation_alias="KYA_VAULT_ADDRESS",
    )

    # ==========================================================================
    # REPUTATION SETTINGS
    # ==========================================================================

    tier_thresholds: list[int] = Field(
        default_factory=lambda: list(DEFAULT_TIER_THRESHOLDS),
        description="Ascending score thresholds for Bronze, Silver, Gold, Platinum, Whale",
        validation_alias="KYA_TIER_THRESHOLDS",
    )
    proof_scores: dict[str, int] = Field(
        default_factory=lambda: dict(DEFAULT_PROOF_SCORES),
        description="Proof type -> score increment",
        validation_alias="KYA_PROOF_SCORES",
    )
    proof_badges: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_PROOF_BADGES),
        description="Proof type -> badge awarded on first verification",
        validation_alias="KYA_PROOF_BADGES",
    )

    # ==========================================================================
    # LOGGING SETTINGS
    # ==========================================================================

    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
        validation_alias="KYA_LOG_LEVEL",
    )
    log_format: str = Field(
        default="",
        description="Log format: 'json', 'text', or '' (auto-detect)",
        validation_alias="KYA_LOG_FORMAT",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (optional)",
        validation_alias="KYA_LOG_FILE",
    )

    # ==========================================================================
    # CLI SETTINGS
    # ==========================================================================

    state_path: str = Field(
        default="kya-state.json",
        description="JSON snapshot file used by the kya CLI",
        validation_alias="KYA_STATE_PATH",
    )
    event_history_size: int = Field(
        default=1000,
        description="Number of ledger events retained in memory",
        validation_alias="KYA_EVENT_HISTORY_SIZE",
    )


# ==========================================================================
# GLOBAL CONFIG INSTANCE (lazy loaded)
# ==========================================================================

_config: CoreSettings | None = None


def get_config() -> CoreSettings:
    """Get the global configuration instance.

    Returns:
        The singleton CoreSettings instance.
    """
    global _config
    if _config is None:
        _config = CoreSettings()
    return _config


def clear_config_cache() -> None:
    """Clear the config cache. Useful for testing."""
    global _config
    _config = None
