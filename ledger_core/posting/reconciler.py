"""
Balance Reconciler

Plans the exact inverse of a recorded transaction: balances and
sub-ledger quantities go back through the negated sign rule, and the
log entry, deposit or schedule the transaction created is removed.

DESIGN DECISION: A transaction is reverted together with its whole
family. Deleting a realized-P/L leg on its own would leave the sale
half-undone, so a child resolves to its root and the root takes every
descendant with it.

Sub-ledger entries are found by `related_detail_id` first. Records
without one fall back to a heuristic (same date, value within a
tolerance); every heuristic or missed match is reported on the plan
and logged as a warning, never applied silently.

Not reverted: fund-link repairs (the repaired link stays valid),
accrued_interest cleared by a settlement, and market prices moved by a
revaluation.
"""

from typing import Optional

import structlog

from ledger_core.calculators.cost_basis import unwind_average_cost
from ledger_core.config import LedgerSettings, RevertMatchPolicy, get_settings
from ledger_core.models.account import (
    Account,
    AccountLog,
    AccountStatus,
    DepositStatus,
)
from ledger_core.models.ledger import (
    AccountDelta,
    LedgerSnapshot,
    PostingPlan,
    RevertMatch,
)
from ledger_core.models.transaction import Transaction, TransactionType
from ledger_core.posting.errors import (
    RevertRejectedError,
    TransactionNotFoundError,
    UnknownAccountError,
)
from ledger_core.posting.rules import has_position, position_shortfall, transaction_deltas

logger = structlog.get_logger(__name__)

BUY_TYPES = {TransactionType.ASSET_BUY, TransactionType.INITIAL_BALANCE}


class BalanceReconciler:
    """
    Plans transaction reverts against one snapshot.

    Usage:
        reconciler = BalanceReconciler(snapshot)
        plan = reconciler.revert(transaction_id)
    """

    def __init__(
        self,
        snapshot: LedgerSnapshot,
        settings: Optional[LedgerSettings] = None,
    ):
        self._snapshot = snapshot
        self._settings = settings or get_settings().ledger
        self._working: dict[str, Account] = {}

    def revert(self, transaction_id: str) -> PostingPlan:
        """
        Plan the revert of a transaction and its family.

        Raises:
            TransactionNotFoundError: Unknown transaction id
            UnknownAccountError: A leg's account no longer exists
            RevertRejectedError: Units or principal would go negative
        """
        tx = self._snapshot.transactions.get(transaction_id)
        if tx is None:
            raise TransactionNotFoundError(transaction_id)

        self._working = dict(self._snapshot.accounts)
        plan = PostingPlan()
        family = self.family(self.root_of(tx))

        for member in family:
            self._revert_balances(plan, member)
            if member.parent_transaction_id is None:
                self._revert_sub_ledger(plan, member)
            plan.deleted_transaction_ids.append(member.id)

        self._reopen(plan)

        logger.info(
            "transaction_revert_planned",
            transaction_id=transaction_id,
            family_size=len(family),
            accounts=len(plan.merged_deltas()),
            warnings=len(plan.warnings),
        )
        return plan

    def root_of(self, tx: Transaction) -> Transaction:
        seen = {tx.id}
        while tx.parent_transaction_id is not None:
            parent = self._snapshot.transactions.get(tx.parent_transaction_id)
            if parent is None or parent.id in seen:
                break
            seen.add(parent.id)
            tx = parent
        return tx

    def family(self, root: Transaction) -> list[Transaction]:
        """Root first, then descendants breadth-first."""
        members = [root]
        index = 0
        while index < len(members):
            for child in self._snapshot.children_of(members[index].id):
                if child not in members:
                    members.append(child)
            index += 1
        return members

    # =========================================================================
    # BALANCES
    # =========================================================================

    def _account(self, account_id: str) -> Account:
        account = self._working.get(account_id)
        if account is None:
            raise UnknownAccountError(account_id)
        return account

    def _apply(self, plan: PostingPlan, delta: AccountDelta) -> None:
        account = self._working[delta.account_id]
        plan.touch(account)
        plan.add_delta(delta)
        self._working[delta.account_id] = delta.apply_to(account)

    def _revert_balances(self, plan: PostingPlan, tx: Transaction) -> None:
        debit = self._account(tx.debit_account_id)
        credit = self._account(tx.credit_account_id)

        for account, delta in zip((debit, credit), transaction_deltas(tx, debit, credit, direction=-1)):
            shortfall = position_shortfall(account, delta)
            if shortfall is not None:
                field, held, change = shortfall
                raise RevertRejectedError(
                    tx.id,
                    f"Reverting would leave '{account.name}' with {held + change} {field}; "
                    f"revert the later transactions first",
                )
            if account is debit:
                delta = self._restore_average_cost(tx, account, delta)
            self._apply(plan, delta)

    def _restore_average_cost(self, tx: Transaction, account: Account, delta: AccountDelta) -> AccountDelta:
        """Undo a buy's effect on the average cost from the transaction itself."""
        position = account.investment
        if position is None or not tx.units or tx.type not in BUY_TYPES:
            return delta
        previous = unwind_average_cost(position.total_units, position.avg_price, tx.units, tx.amount)
        return delta.merge(AccountDelta(
            account_id=account.id,
            patch={"details.avg_price": previous},
        ))

    def _reopen(self, plan: PostingPlan) -> None:
        for account_id in list(plan.expected_versions):
            account = self._working[account_id]
            if account.status != AccountStatus.ACTIVE and has_position(account):
                self._apply(plan, AccountDelta(
                    account_id=account_id,
                    patch={"status": AccountStatus.ACTIVE.value},
                ))

    # =========================================================================
    # SUB-LEDGER ENTRIES
    # =========================================================================

    def _record(
        self,
        plan: PostingPlan,
        tx: Transaction,
        account: Account,
        method: str,
        entry_id: Optional[str] = None,
        candidates: int = 0,
    ) -> None:
        plan.revert_matches.append(RevertMatch(
            transaction_id=tx.id,
            account_id=account.id,
            method=method,
            entry_id=entry_id,
            candidates=candidates,
        ))

    def _revert_sub_ledger(self, plan: PostingPlan, tx: Transaction) -> None:
        accounts = [self._account(tx.debit_account_id), self._account(tx.credit_account_id)]

        savings = [a for a in accounts if a.savings is not None]
        for account in savings:
            self._revert_deposit(plan, tx, account, is_debit=account.id == tx.debit_account_id)

        if savings:
            return

        if tx.related_detail_id:
            for account in accounts:
                entry = next((log for log in account.logs if log.id == tx.related_detail_id), None)
                if entry is not None:
                    self._remove_log(plan, account, entry)
                    self._record(plan, tx, account, "exact", entry.id, 1)
                    return
            self._record(plan, tx, accounts[0], "none")
            plan.warnings.append(
                f"Log entry {tx.related_detail_id} of transaction {tx.id} not found; balances reverted only"
            )
            logger.warning(
                "revert_log_entry_missing",
                transaction_id=tx.id,
                related_detail_id=tx.related_detail_id,
            )
            return

        for account in (a for a in accounts if a.logs):
            self._revert_log_heuristically(plan, tx, account)

    def _revert_log_heuristically(self, plan: PostingPlan, tx: Transaction, account: Account) -> None:
        tolerance = self._settings.revert_match_tolerance
        candidates = [
            log for log in account.logs
            if log.date == tx.date and abs(log.value - tx.amount) <= tolerance
        ]

        if not candidates:
            self._record(plan, tx, account, "none")
            plan.warnings.append(
                f"No log entry of '{account.name}' matches transaction {tx.id}; balances reverted only"
            )
            logger.warning("revert_match_missed", transaction_id=tx.id, account_id=account.id)
            return

        if len(candidates) == 1:
            self._remove_log(plan, account, candidates[0])
            self._record(plan, tx, account, "heuristic", candidates[0].id, 1)
            logger.warning(
                "revert_heuristic_match",
                transaction_id=tx.id,
                account_id=account.id,
                entry_id=candidates[0].id,
            )
            return

        if self._settings.revert_match_policy == RevertMatchPolicy.FIRST_MATCH:
            chosen = candidates[0]
            self._remove_log(plan, account, chosen)
            self._record(plan, tx, account, "ambiguous", chosen.id, len(candidates))
            plan.warnings.append(
                f"{len(candidates)} log entries of '{account.name}' match transaction {tx.id}; "
                f"removed the first ({chosen.id})"
            )
        else:
            self._record(plan, tx, account, "ambiguous", None, len(candidates))
            plan.warnings.append(
                f"{len(candidates)} log entries of '{account.name}' match transaction {tx.id}; "
                f"log left unchanged"
            )
        logger.warning(
            "revert_ambiguous_match",
            transaction_id=tx.id,
            account_id=account.id,
            candidates=len(candidates),
            policy=self._settings.revert_match_policy.value,
        )

    def _remove_log(self, plan: PostingPlan, account: Account, entry: AccountLog) -> None:
        current = self._working[account.id]
        remaining = [log for log in current.logs if log.id != entry.id]
        patch: dict = {"logs": remaining}

        events = [e for e in current.scheduled_events if e.source_id != entry.id]
        if len(events) != len(current.scheduled_events):
            patch["scheduled_events"] = events

        self._apply(plan, AccountDelta(account_id=account.id, patch=patch))

    def _revert_deposit(self, plan: PostingPlan, tx: Transaction, account: Account, is_debit: bool) -> None:
        """Deposits are matched by id only; a deposit amount alone is too ambiguous."""
        current = self._working[account.id]
        deposits = current.savings.deposits
        target = next((d for d in deposits if d.id == tx.related_detail_id), None)

        if target is None:
            self._record(plan, tx, account, "none")
            plan.warnings.append(
                f"No deposit of '{account.name}' is linked to transaction {tx.id}; balances reverted only"
            )
            logger.warning("revert_deposit_missing", transaction_id=tx.id, account_id=account.id)
            return

        if is_debit:
            patch = {
                "details.deposits": [d for d in deposits if d.id != target.id],
                "scheduled_events": [
                    e for e in current.scheduled_events if e.source_id != target.id
                ],
            }
        else:
            restored = target.model_copy(update={
                "status": DepositStatus.ACTIVE,
                "settled_date": None,
                "settled_interest": None,
            })
            patch = {
                "details.deposits": [restored if d.id == target.id else d for d in deposits],
            }
        self._apply(plan, AccountDelta(account_id=account.id, patch=patch))
        self._record(plan, tx, account, "exact", target.id, 1)


def revert_transaction(
    snapshot: LedgerSnapshot,
    transaction_id: str,
    settings: Optional[LedgerSettings] = None,
) -> PostingPlan:
    """Convenience wrapper: plan the revert of one transaction."""
    return BalanceReconciler(snapshot, settings).revert(transaction_id)
