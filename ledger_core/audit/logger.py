"""
Audit Logger

DESIGN DECISION: Every significant ledger event is logged.
This provides:
1. Complete traceability of postings, reverts and edits
2. Visibility of self-healing steps (fund-link repairs, heuristic matches)
3. Debugging capability for commit conflicts and failures

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (a failing audit store never undoes a commit)
- Supports correlation IDs so every event of one user action can be traced
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from ledger_core.config import get_settings
from ledger_core.models.audit import AuditEvent, AuditEventBuilder
from ledger_core.models.ledger import FundLinkRepair, RevertMatch
from ledger_core.models.transaction import Transaction
from ledger_core.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

# Level for every ledger_core.* logger
logging.getLogger("ledger_core").setLevel(get_settings().app.log_level)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (append-only, when configured)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("ledger_core.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value == "error":
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Audit is secondary to the ledger commit
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_action_rejected(
        self,
        user_id: str,
        action: str,
        error_code: str,
        error_message: str,
        issues: list[dict],
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.action_rejected(
            user_id=user_id,
            action=action,
            error_code=error_code,
            error_message=error_message,
            issues=issues,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_posted(
        self,
        user_id: str,
        transaction: Transaction,
        leg_count: int,
        correlation_id: UUID,
    ) -> None:
        """Log the primary transaction of a posted action."""
        event = AuditEventBuilder.transaction_posted(
            user_id=user_id,
            transaction_id=transaction.id,
            transaction_type=transaction.type.value,
            amount=str(transaction.amount),
            currency=get_settings().ledger.currency,
            leg_count=leg_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_reverted(
        self,
        user_id: str,
        transaction_id: str,
        reverted_ids: list[str],
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.transaction_reverted(
            user_id=user_id,
            transaction_id=transaction_id,
            reverted_ids=reverted_ids,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_edited(
        self,
        user_id: str,
        old_transaction_id: str,
        new_transaction_id: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.transaction_edited(
            user_id=user_id,
            old_transaction_id=old_transaction_id,
            new_transaction_id=new_transaction_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_status_changed(
        self,
        user_id: str,
        account_id: str,
        old_status: str,
        new_status: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.account_status_changed(
            user_id=user_id,
            account_id=account_id,
            old_status=old_status,
            new_status=new_status,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_fund_link_repaired(
        self,
        user_id: str,
        repair: FundLinkRepair,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.fund_link_repaired(
            user_id=user_id,
            account_id=repair.account_id,
            fund_id=repair.fund_id,
            previous_fund_id=repair.previous_fund_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_revert_match(
        self,
        user_id: str,
        match: RevertMatch,
        correlation_id: UUID,
    ) -> None:
        """Log a revert match that was not an exact id match."""
        event = AuditEventBuilder.revert_match(
            user_id=user_id,
            transaction_id=match.transaction_id,
            account_id=match.account_id,
            method=match.method,
            entry_id=match.entry_id,
            candidates=match.candidates,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_commit_conflict(
        self,
        user_id: str,
        attempt: int,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.commit_conflict_retried(
            user_id=user_id,
            attempt=attempt,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_commit_failed(
        self,
        user_id: str,
        error_code: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.commit_failed(
            user_id=user_id,
            error_code=error_code,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (post, delete, edit).
    Pass it through all subsequent operations.
    """
    return uuid4()
