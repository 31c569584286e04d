"""Validation result models shared by the validator and the error hierarchy."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from ledger_core.models.account import utc_now


class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'not_allowed')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """
    Result of validating an action descriptor.

    Stage 1: Shape (required fields for the action type)
    Stage 2: State (accounts exist, are active, hold enough)
    """

    validated_at: datetime = Field(default_factory=utc_now)

    shape_valid: bool = Field(
        ...,
        description="Are all required fields present and well-formed?"
    )
    state_valid: bool = Field(
        ...,
        description="Is the action allowed against the current account state?"
    )

    issues: list[ValidationIssue] = Field(
        default_factory=list,
        description="All validation issues found"
    )

    @property
    def is_valid(self) -> bool:
        return self.shape_valid and self.state_valid and not self.has_errors

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def warnings(self) -> list[str]:
        return [issue.message for issue in self.issues if issue.severity == "warning"]
