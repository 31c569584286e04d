"""
Configuration Management for Ledger Core

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All tunable numbers of the engine live here.
The revert-match tolerance and policy in particular have no provably
correct value, so they are configuration rather than constants.
"""

from decimal import Decimal
from enum import Enum
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RevertMatchPolicy(str, Enum):
    """
    How the reconciler resolves several heuristic log candidates.

    FIRST_MATCH removes the first candidate in log order.
    UNIQUE_ONLY leaves the log untouched unless exactly one candidate exists.
    """
    FIRST_MATCH = "first_match"
    UNIQUE_ONLY = "unique_only"


class LedgerSettings(BaseSettings):
    """Posting and reconciliation engine configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        extra="ignore"
    )

    currency: str = Field(
        default="VND",
        min_length=3,
        max_length=3,
        description="ISO currency code of ledger amounts"
    )
    money_decimal_places: int = Field(
        default=2,
        ge=0,
        le=8,
        description="Decimal places kept for derived monetary amounts"
    )

    # Revert matching
    revert_match_tolerance: Decimal = Field(
        default=Decimal("1000"),
        ge=0,
        description="Absolute tolerance when matching a log entry by value"
    )
    revert_match_policy: RevertMatchPolicy = Field(
        default=RevertMatchPolicy.FIRST_MATCH,
        description="Resolution rule for multiple heuristic candidates"
    )

    # Credit cards
    minimum_payment_rate: Decimal = Field(
        default=Decimal("0.05"),
        ge=0,
        le=1,
        description="Share of the outstanding balance due as minimum payment"
    )
    utilization_warning_percent: Decimal = Field(
        default=Decimal("30"),
        ge=0,
        description="Utilization above which a card is flagged yellow"
    )
    utilization_danger_percent: Decimal = Field(
        default=Decimal("80"),
        ge=0,
        description="Utilization above which a card is flagged red"
    )

    default_equity_fund_name: str = Field(
        default="Spending Fund",
        description="Fund name suggested when a user has no Equity Fund yet"
    )

    @field_validator('currency')
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        return v.upper()


class CommitSettings(BaseSettings):
    """Retry policy for optimistic-concurrency conflicts on commit."""

    model_config = SettingsConfigDict(
        env_prefix="COMMIT_",
        extra="ignore"
    )

    max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts before a version conflict is surfaced"
    )
    retry_wait_min_seconds: float = Field(
        default=0.05,
        ge=0.0,
        description="Lower bound of the exponential backoff"
    )
    retry_wait_max_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Upper bound of the exponential backoff"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Minimum level of the structured log"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def commit(self) -> CommitSettings:
        return CommitSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("ledger", "commit", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
