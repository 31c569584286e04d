"""Action validation module."""

from ledger_core.validation.validator import ActionValidator, REQUIRED_FIELDS

__all__ = ["ActionValidator", "REQUIRED_FIELDS"]
