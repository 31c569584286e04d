"""
Audit Models for Ledger Core

Every change to the ledger is logged for audit purposes:
postings, reverts, edits, account status changes, self-healing
fund links and every heuristic decision the reconciler makes.

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from ledger_core.models.account import utc_now


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every step of the compute-then-commit flow has its own event type.
    """
    # Validation
    ACTION_REJECTED = "action_rejected"

    # Posting
    TRANSACTION_POSTED = "transaction_posted"
    TRANSACTION_REVERTED = "transaction_reverted"
    TRANSACTION_EDITED = "transaction_edited"

    # Account lifecycle
    ACCOUNT_CLOSED = "account_closed"
    ACCOUNT_REOPENED = "account_reopened"
    FUND_LINK_REPAIRED = "fund_link_repaired"

    # Reconciliation
    REVERT_HEURISTIC_MATCH = "revert_heuristic_match"
    REVERT_MATCH_MISSED = "revert_match_missed"

    # Commit
    COMMIT_CONFLICT_RETRIED = "commit_conflict_retried"
    COMMIT_FAILED = "commit_failed"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    user_id: Optional[str] = Field(
        default=None,
        description="Owner of the ledger the event belongs to"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'account')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID shared by all events of one user action"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": self.user_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_posted(user_id, tx_id, ...)
        event = AuditEventBuilder.fund_link_repaired(user_id, account_id, ...)
    """

    @staticmethod
    def action_rejected(
        user_id: str,
        action: str,
        error_code: str,
        error_message: str,
        issues: list[dict],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACTION_REJECTED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="action",
            correlation_id=correlation_id,
            description=f"Action {action} rejected: {error_code}",
            details={
                "action": action,
                "issues": issues,
            },
            error_code=error_code,
            error_message=error_message,
            is_user_action=True,
        )

    @staticmethod
    def transaction_posted(
        user_id: str,
        transaction_id: str,
        transaction_type: str,
        amount: str,
        currency: str,
        leg_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_POSTED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction posted: {transaction_type} {amount} {currency}",
            details={
                "transaction_type": transaction_type,
                "amount": amount,
                "currency": currency,
                "leg_count": leg_count,
            },
            is_user_action=True,
        )

    @staticmethod
    def transaction_reverted(
        user_id: str,
        transaction_id: str,
        reverted_ids: list[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_REVERTED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction reverted with {len(reverted_ids)} record(s)",
            details={
                "reverted_transaction_ids": reverted_ids,
            },
            is_user_action=True,
        )

    @staticmethod
    def transaction_edited(
        user_id: str,
        old_transaction_id: str,
        new_transaction_id: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_EDITED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=new_transaction_id,
            correlation_id=correlation_id,
            description="Transaction replaced by edit",
            details={
                "old_transaction_id": old_transaction_id,
                "new_transaction_id": new_transaction_id,
            },
            is_user_action=True,
        )

    @staticmethod
    def account_status_changed(
        user_id: str,
        account_id: str,
        old_status: str,
        new_status: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        event_type = (
            AuditEventType.ACCOUNT_REOPENED
            if new_status == "ACTIVE"
            else AuditEventType.ACCOUNT_CLOSED
        )
        return AuditEvent(
            event_type=event_type,
            user_id=user_id,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Account status {old_status} -> {new_status}",
            details={
                "old_status": old_status,
                "new_status": new_status,
            },
        )

    @staticmethod
    def fund_link_repaired(
        user_id: str,
        account_id: str,
        fund_id: str,
        previous_fund_id: Optional[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.FUND_LINK_REPAIRED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description="Account linked to default Equity Fund",
            details={
                "fund_id": fund_id,
                "previous_fund_id": previous_fund_id,
            },
        )

    @staticmethod
    def revert_match(
        user_id: str,
        transaction_id: str,
        account_id: str,
        method: str,
        entry_id: Optional[str],
        candidates: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        if method == "heuristic":
            event_type = AuditEventType.REVERT_HEURISTIC_MATCH
            severity = AuditSeverity.INFO
            description = "Sub-ledger entry located by date and value"
        else:
            event_type = AuditEventType.REVERT_MATCH_MISSED
            severity = AuditSeverity.WARNING
            description = f"Sub-ledger entry not removed cleanly ({method})"
        return AuditEvent(
            event_type=event_type,
            severity=severity,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=description,
            details={
                "account_id": account_id,
                "method": method,
                "entry_id": entry_id,
                "candidates": candidates,
            },
        )

    @staticmethod
    def commit_conflict_retried(
        user_id: str,
        attempt: int,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.COMMIT_CONFLICT_RETRIED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Version conflict on commit, attempt {attempt}",
            details={"attempt": attempt},
            error_message=error_message,
        )

    @staticmethod
    def commit_failed(
        user_id: str,
        error_code: str,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.COMMIT_FAILED,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            correlation_id=correlation_id,
            description="Atomic commit failed, no write applied",
            error_code=error_code,
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
