"""
In-Memory Ledger Storage

Reference implementation of the storage contract, used by tests and by
embedding applications that keep the ledger in process.

DESIGN DECISION: A commit is applied to a deep copy of the user's
documents and swapped in only when every write succeeded. A failure at
any point leaves the stored ledger exactly as it was.
"""

import asyncio
import copy
from typing import Optional
from uuid import UUID

import structlog
from pydantic import ValidationError

from ledger_core.models.account import (
    Account,
    AccountCategory,
    AccountStatus,
    utc_now,
)
from ledger_core.models.audit import AuditEvent
from ledger_core.models.ledger import (
    LedgerSnapshot,
    LedgerWrite,
    WriteCollection,
    WriteOp,
    apply_payload,
)
from ledger_core.models.transaction import Transaction
from ledger_core.services.storage.interface import (
    AuditStorageInterface,
    CommitError,
    ConflictError,
    LedgerStoreInterface,
)

logger = structlog.get_logger(__name__)


class _UserLedger:
    def __init__(self):
        self.accounts: dict[str, dict] = {}
        self.transactions: dict[str, dict] = {}


class InMemoryLedgerStore(LedgerStoreInterface):
    """
    Process-local ledger store with atomic commits.

    Account documents carry a `version` that is bumped once per commit
    that touches them. Writes carrying `expected_version` are rejected
    with ConflictError when the stored version differs.
    """

    def __init__(self):
        self._ledgers: dict[str, _UserLedger] = {}
        self._lock = asyncio.Lock()

    def _ledger(self, user_id: str) -> _UserLedger:
        return self._ledgers.setdefault(user_id, _UserLedger())

    def seed(
        self,
        user_id: str,
        accounts: Optional[list[Account]] = None,
        transactions: Optional[list[Transaction]] = None,
    ) -> None:
        """Load existing documents without going through a commit."""
        ledger = self._ledger(user_id)
        for account in accounts or []:
            ledger.accounts[account.id] = account.model_dump()
        for tx in transactions or []:
            ledger.transactions[tx.id] = tx.model_dump()

    async def read_snapshot(
        self,
        user_id: str,
        account_ids: Optional[list[str]] = None,
    ) -> LedgerSnapshot:
        async with self._lock:
            ledger = self._ledger(user_id)
            wanted = ledger.accounts.keys() if account_ids is None else account_ids
            accounts = {
                account_id: Account.model_validate(copy.deepcopy(ledger.accounts[account_id]))
                for account_id in wanted
                if account_id in ledger.accounts
            }
            transactions = {
                tx_id: Transaction.model_validate(copy.deepcopy(doc))
                for tx_id, doc in ledger.transactions.items()
            }
        return LedgerSnapshot(user_id=user_id, accounts=accounts, transactions=transactions)

    async def commit_atomic(self, user_id: str, writes: list[LedgerWrite]) -> bool:
        async with self._lock:
            ledger = self._ledger(user_id)
            self._check_versions(ledger, writes)

            accounts = copy.deepcopy(ledger.accounts)
            transactions = copy.deepcopy(ledger.transactions)
            touched: list[str] = []
            try:
                for write in writes:
                    if write.target.collection == WriteCollection.ACCOUNTS:
                        self._apply_account_write(accounts, write)
                        if write.target.id not in touched:
                            touched.append(write.target.id)
                    else:
                        self._apply_transaction_write(transactions, write)

                now = utc_now()
                for account_id in touched:
                    if account_id not in accounts:
                        continue
                    document = accounts[account_id]
                    document["version"] = int(document.get("version") or 0) + 1
                    document["updated_at"] = now
                    accounts[account_id] = Account.model_validate(document).model_dump()
            except (KeyError, ValueError, ValidationError) as e:
                logger.error("commit_rejected", user_id=user_id, error=str(e))
                raise CommitError(f"Commit rejected, nothing written: {e}") from e

            ledger.accounts = accounts
            ledger.transactions = transactions

        logger.debug("commit_applied", user_id=user_id, writes=len(writes))
        return True

    def _check_versions(self, ledger: _UserLedger, writes: list[LedgerWrite]) -> None:
        for write in writes:
            if write.target.collection != WriteCollection.ACCOUNTS:
                continue
            if write.expected_version is None:
                continue
            document = ledger.accounts.get(write.target.id)
            if document is None:
                raise ConflictError(
                    f"Account {write.target.id} no longer exists",
                    account_id=write.target.id,
                )
            if document.get("version", 0) != write.expected_version:
                raise ConflictError(
                    f"Account {write.target.id} is at version {document.get('version')}, "
                    f"expected {write.expected_version}",
                    account_id=write.target.id,
                )

    def _apply_account_write(self, accounts: dict[str, dict], write: LedgerWrite) -> None:
        account_id = write.target.id
        document = accounts.get(account_id)

        if write.op == WriteOp.DELETE:
            accounts.pop(account_id, None)
        elif document is None:
            if write.op != WriteOp.SET or any("." in key for key in write.payload):
                raise KeyError(f"Account {account_id} does not exist")
            created = apply_payload({}, WriteOp.SET, write.payload)
            created["version"] = 0
            accounts[account_id] = created
        else:
            accounts[account_id] = apply_payload(document, write.op, write.payload)

    def _apply_transaction_write(self, transactions: dict[str, dict], write: LedgerWrite) -> None:
        tx_id = write.target.id
        if write.op == WriteOp.DELETE:
            if tx_id not in transactions:
                raise ConflictError(f"Transaction {tx_id} was already removed")
            del transactions[tx_id]
        elif write.op == WriteOp.SET:
            document = apply_payload(transactions.get(tx_id, {}), WriteOp.SET, write.payload)
            transactions[tx_id] = Transaction.model_validate(document).model_dump()
        else:
            raise ValueError("Transactions are immutable and cannot be incremented")

    async def list_accounts(
        self,
        user_id: str,
        category: Optional[AccountCategory] = None,
        status: Optional[AccountStatus] = None,
    ) -> list[Account]:
        snapshot = await self.read_snapshot(user_id)
        accounts = [
            a for a in snapshot.accounts.values()
            if (category is None or a.category == category)
            and (status is None or a.status == status)
        ]
        return sorted(accounts, key=lambda a: (a.created_at, a.id))

    async def list_transactions(
        self,
        user_id: str,
        account_id: Optional[str] = None,
    ) -> list[Transaction]:
        snapshot = await self.read_snapshot(user_id, account_ids=[])
        transactions = [
            tx for tx in snapshot.transactions.values()
            if account_id is None
            or account_id in (tx.debit_account_id, tx.credit_account_id)
        ]
        return sorted(transactions, key=lambda tx: (tx.date, tx.datetime))


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log kept in a list."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return [e for e in self._events if e.correlation_id == correlation_id]

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        return [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
