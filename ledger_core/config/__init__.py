"""Configuration package."""

from ledger_core.config.settings import (
    AppSettings,
    CommitSettings,
    LedgerSettings,
    RevertMatchPolicy,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "CommitSettings",
    "LedgerSettings",
    "RevertMatchPolicy",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
