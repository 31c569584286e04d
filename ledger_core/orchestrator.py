"""
Main Orchestrator for the Ledger Core

This module ties together all the components and defines the
end-to-end flows for:
1. Post (action → validate → snapshot → plan → commit → audit)
2. Delete (transaction → snapshot → revert plan → commit → audit)
3. Edit (revert plan + new posting on the working copy → ONE commit)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Every plan is computed from one consistent snapshot
- Every plan is written in one atomic commit with version checks
- A version conflict re-reads and recomputes; it never re-applies a stale plan
- Every step is audited

This is the "glue" that ensures the system works correctly
even when two actions race on the same account.
"""

from datetime import date
from decimal import Decimal
from typing import Callable, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, Field
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ledger_core.audit import AuditLogger, create_correlation_id
from ledger_core.calculators.credit import CreditStatus, credit_card_status
from ledger_core.calculators.settlement import (
    SettlementQuote,
    estimate_accrued_interest,
    settle,
)
from ledger_core.config import Settings, get_settings
from ledger_core.models.account import Account
from ledger_core.models.ledger import LedgerSnapshot, PostingPlan
from ledger_core.models.transaction import LedgerAction, Transaction
from ledger_core.posting.errors import (
    AccountStateError,
    ActionValidationError,
    LedgerError,
    UnknownAccountError,
)
from ledger_core.posting.poster import LedgerPoster
from ledger_core.posting.reconciler import BalanceReconciler
from ledger_core.services.storage import (
    CommitError,
    ConflictError,
    LedgerStoreInterface,
)
from ledger_core.validation import ActionValidator

logger = structlog.get_logger(__name__)


class LedgerResult(BaseModel):
    """Outcome of one committed user action."""

    correlation_id: UUID
    transaction: Optional[Transaction] = Field(
        default=None,
        description="Primary transaction written, if the action recorded one"
    )
    transactions: list[Transaction] = Field(default_factory=list)
    created_account_ids: list[str] = Field(default_factory=list)
    reverted_transaction_ids: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class LedgerService:
    """
    Orchestrates the post, delete and edit flows.

    Usage:
        service = LedgerService(store, audit_logger)
        result = await service.post(user_id, action)
        await service.delete_transaction(user_id, result.transaction.id)
    """

    def __init__(
        self,
        store: LedgerStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[Settings] = None,
        validator: Optional[ActionValidator] = None,
    ):
        self._store = store
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or get_settings()
        self._validator = validator or ActionValidator()

    # =========================================================================
    # WRITE FLOWS
    # =========================================================================

    async def post(
        self,
        user_id: str,
        action: LedgerAction,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerResult:
        """
        Validate, plan and commit one action.

        Raises:
            LedgerError: The action was rejected; nothing was written
            StorageError: The commit failed; nothing was written
        """
        correlation_id = correlation_id or create_correlation_id()
        ledger_settings = self._settings.ledger

        def compute(snapshot: LedgerSnapshot) -> PostingPlan:
            self._validator.validate_or_raise(action, snapshot)
            return LedgerPoster(snapshot, ledger_settings).post(action)

        snapshot, plan = await self._run(user_id, action.action.value, compute, correlation_id)

        primary = plan.primary_transaction
        if primary is not None:
            await self._audit.log_transaction_posted(
                user_id=user_id,
                transaction=primary,
                leg_count=len(plan.transactions),
                correlation_id=correlation_id,
            )
        await self._audit_plan(user_id, snapshot, plan, correlation_id)
        return self._result(plan, correlation_id)

    async def delete_transaction(
        self,
        user_id: str,
        transaction_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerResult:
        """Revert a transaction and its family in one commit."""
        correlation_id = correlation_id or create_correlation_id()
        ledger_settings = self._settings.ledger

        def compute(snapshot: LedgerSnapshot) -> PostingPlan:
            return BalanceReconciler(snapshot, ledger_settings).revert(transaction_id)

        snapshot, plan = await self._run(user_id, "DELETE", compute, correlation_id)

        await self._audit.log_transaction_reverted(
            user_id=user_id,
            transaction_id=transaction_id,
            reverted_ids=plan.deleted_transaction_ids,
            correlation_id=correlation_id,
        )
        await self._audit_plan(user_id, snapshot, plan, correlation_id)
        return self._result(plan, correlation_id)

    async def edit_transaction(
        self,
        user_id: str,
        transaction_id: str,
        action: LedgerAction,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerResult:
        """
        Replace a transaction by a new action.

        The revert is applied to working copies of the accounts, the new
        action is planned on those copies, and both plans are written in
        one commit. Either the edit happens completely or not at all.
        """
        correlation_id = correlation_id or create_correlation_id()
        ledger_settings = self._settings.ledger

        def compute(snapshot: LedgerSnapshot) -> PostingPlan:
            revert = BalanceReconciler(snapshot, ledger_settings).revert(transaction_id)
            working = snapshot.with_plan(revert)
            self._validator.validate_or_raise(action, working)
            return revert.extend(LedgerPoster(working, ledger_settings).post(action))

        snapshot, plan = await self._run(user_id, f"EDIT:{action.action.value}", compute, correlation_id)

        primary = plan.primary_transaction
        await self._audit.log_transaction_edited(
            user_id=user_id,
            old_transaction_id=transaction_id,
            new_transaction_id=primary.id if primary else "",
            correlation_id=correlation_id,
        )
        await self._audit_plan(user_id, snapshot, plan, correlation_id)
        return self._result(plan, correlation_id)

    async def _run(
        self,
        user_id: str,
        action_name: str,
        compute: Callable[[LedgerSnapshot], PostingPlan],
        correlation_id: UUID,
    ) -> tuple[LedgerSnapshot, PostingPlan]:
        """Compute and commit with rejection, conflict, failure and error auditing."""
        try:
            return await self._commit(user_id, compute, correlation_id)
        except LedgerError as e:
            issues = (
                [issue.model_dump() for issue in e.issues]
                if isinstance(e, ActionValidationError) else []
            )
            await self._audit.log_action_rejected(
                user_id=user_id,
                action=action_name,
                error_code=e.code,
                error_message=e.message,
                issues=issues,
                correlation_id=correlation_id,
            )
            raise
        except (ConflictError, CommitError) as e:
            await self._audit.log_commit_failed(
                user_id=user_id,
                error_code=type(e).__name__,
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise
        except Exception as e:
            await self._audit.log_error(
                error_type=type(e).__name__,
                error_message=str(e),
                details={"user_id": user_id, "action": action_name},
                correlation_id=correlation_id,
            )
            raise

    async def _commit(
        self,
        user_id: str,
        compute: Callable[[LedgerSnapshot], PostingPlan],
        correlation_id: UUID,
    ) -> tuple[LedgerSnapshot, PostingPlan]:
        """
        Read, compute and commit, retrying on version conflicts.

        Each attempt reads a fresh snapshot so the plan is recomputed
        against the state that won the race.
        """
        policy = self._settings.commit
        retrying = AsyncRetrying(
            stop=stop_after_attempt(policy.max_attempts),
            wait=wait_exponential(
                multiplier=policy.retry_wait_min_seconds,
                min=policy.retry_wait_min_seconds,
                max=policy.retry_wait_max_seconds,
            ),
            retry=retry_if_exception_type(ConflictError),
            reraise=True,
        )

        async for attempt in retrying:
            with attempt:
                snapshot = await self._store.read_snapshot(user_id)
                plan = compute(snapshot)
                try:
                    await self._store.commit_atomic(user_id, plan.to_writes())
                except ConflictError as e:
                    logger.warning(
                        "commit_conflict",
                        user_id=user_id,
                        attempt=attempt.retry_state.attempt_number,
                        account_id=e.account_id,
                    )
                    await self._audit.log_commit_conflict(
                        user_id=user_id,
                        attempt=attempt.retry_state.attempt_number,
                        error_message=str(e),
                        correlation_id=correlation_id,
                    )
                    raise

        return snapshot, plan

    async def _audit_plan(
        self,
        user_id: str,
        snapshot: LedgerSnapshot,
        plan: PostingPlan,
        correlation_id: UUID,
    ) -> None:
        """Audit the side effects of a committed plan."""
        for repair in plan.fund_link_repairs:
            await self._audit.log_fund_link_repaired(user_id, repair, correlation_id)

        for match in plan.revert_matches:
            if match.method != "exact":
                await self._audit.log_revert_match(user_id, match, correlation_id)

        for delta in plan.merged_deltas():
            new_status = delta.patch.get("status")
            before = snapshot.account(delta.account_id)
            if new_status is None or before is None or before.status.value == new_status:
                continue
            await self._audit.log_status_changed(
                user_id=user_id,
                account_id=delta.account_id,
                old_status=before.status.value,
                new_status=new_status,
                correlation_id=correlation_id,
            )

    def _result(self, plan: PostingPlan, correlation_id: UUID) -> LedgerResult:
        return LedgerResult(
            correlation_id=correlation_id,
            transaction=plan.primary_transaction,
            transactions=plan.transactions,
            created_account_ids=[a.id for a in plan.new_accounts],
            reverted_transaction_ids=plan.deleted_transaction_ids,
            warnings=plan.warnings,
        )

    # =========================================================================
    # READ HELPERS
    # =========================================================================

    async def _get_account(self, user_id: str, account_id: str) -> Account:
        account = await self._store.get_account(user_id, account_id)
        if account is None:
            raise UnknownAccountError(account_id)
        return account

    async def credit_status(
        self,
        user_id: str,
        account_id: str,
        today: Optional[date] = None,
    ) -> CreditStatus:
        account = await self._get_account(user_id, account_id)
        if account.credit_card is None:
            raise AccountStateError(account_id, f"Account '{account.name}' is not a credit card")
        return credit_card_status(account.current_balance, account.credit_card, today)

    async def settlement_quote(
        self,
        user_id: str,
        account_id: str,
        manual_fee: Optional[Decimal] = None,
        as_of: Optional[date] = None,
    ) -> SettlementQuote:
        """
        Quote the payoff of a liability.

        Uses the recorded accrued interest, or estimates simple interest
        since the start date when none is recorded.
        """
        account = await self._get_account(user_id, account_id)
        terms = account.liability
        if terms is None:
            raise AccountStateError(account_id, f"Account '{account.name}' is not a liability")

        accrued = account.accrued_interest
        if accrued <= 0 and terms.start_date is not None:
            accrued = estimate_accrued_interest(
                terms.principal_amount,
                terms.interest_rate,
                terms.interest_period,
                terms.start_date,
                as_of or date.today(),
            )
        return settle(terms.principal_amount, accrued, manual_fee)
