"""
Abstract Storage Interface

DESIGN DECISION: The ledger core owns no persistence. It needs exactly two
primitives from a store:
1. A consistent point-in-time read of a user's ledger
2. An all-or-nothing commit of a list of writes

Everything else here is a convenience built on those two, so a new
backend only has to get those two right.

Stores that allow concurrent writers must honour `expected_version` on
account writes (compare-and-swap). A version mismatch is a ConflictError;
the caller re-reads and recomputes.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from ledger_core.models.account import Account, AccountCategory, AccountStatus
from ledger_core.models.audit import AuditEvent
from ledger_core.models.ledger import LedgerSnapshot, LedgerWrite
from ledger_core.models.transaction import Transaction


class LedgerStoreInterface(ABC):
    """
    Abstract interface for ledger storage operations.

    Any storage implementation (in-memory, document store, SQL)
    must implement these methods.
    """

    @abstractmethod
    async def read_snapshot(
        self,
        user_id: str,
        account_ids: Optional[list[str]] = None,
    ) -> LedgerSnapshot:
        """
        Read a consistent snapshot of a user's ledger.

        Args:
            user_id: Owner of the ledger
            account_ids: Restrict accounts to these ids (all transactions
                         are always included)

        Returns:
            Snapshot whose accounts carry their current versions
        """
        pass

    @abstractmethod
    async def commit_atomic(self, user_id: str, writes: list[LedgerWrite]) -> bool:
        """
        Apply all writes or none of them.

        Args:
            user_id: Owner of the ledger
            writes: Writes in application order

        Returns:
            True if committed

        Raises:
            ConflictError: If an expected_version no longer matches
            CommitError: If any write cannot be applied
        """
        pass

    @abstractmethod
    async def list_accounts(
        self,
        user_id: str,
        category: Optional[AccountCategory] = None,
        status: Optional[AccountStatus] = None,
    ) -> list[Account]:
        """
        List accounts with optional filters.

        Returns:
            Accounts ordered by creation time, then id
        """
        pass

    @abstractmethod
    async def list_transactions(
        self,
        user_id: str,
        account_id: Optional[str] = None,
    ) -> list[Transaction]:
        """
        List transactions, optionally those touching one account.

        Returns:
            Transactions ordered by date, then datetime
        """
        pass

    async def get_account(self, user_id: str, account_id: str) -> Optional[Account]:
        snapshot = await self.read_snapshot(user_id, account_ids=[account_id])
        return snapshot.account(account_id)

    async def get_transaction(self, user_id: str, transaction_id: str) -> Optional[Transaction]:
        snapshot = await self.read_snapshot(user_id, account_ids=[])
        return snapshot.transactions.get(transaction_id)

    async def list_child_transactions(
        self,
        user_id: str,
        transaction_id: str,
    ) -> list[Transaction]:
        """Auxiliary legs whose parent is `transaction_id`."""
        snapshot = await self.read_snapshot(user_id, account_ids=[])
        return snapshot.children_of(transaction_id)

    async def default_equity_fund(self, user_id: str) -> Optional[Account]:
        """
        The Equity Fund used when an account has no linked fund.

        Selection rule: the ACTIVE Equity Fund created first (ties
        broken by id). This is the only place the rule is implemented.
        """
        funds = await self.list_accounts(
            user_id,
            category=AccountCategory.EQUITY_FUND,
            status=AccountStatus.ACTIVE,
        )
        return select_default_equity_fund(funds)


def select_default_equity_fund(accounts) -> Optional[Account]:
    """Apply the default-fund selection rule to any collection of accounts."""
    funds = [
        a for a in accounts
        if a.category == AccountCategory.EQUITY_FUND and a.status == AccountStatus.ACTIVE
    ]
    if not funds:
        return None
    return min(funds, key=lambda a: (a.created_at, a.id))


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Args:
            event: The audit event to log

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (one user action).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Args:
            entity_type: Type of entity (e.g., 'transaction', 'account')
            entity_id: The entity's ID

        Returns:
            List of events in chronological order
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConflictError(StorageError):
    """An account changed since the snapshot the writes were computed from."""

    def __init__(self, message: str, account_id: Optional[str] = None):
        super().__init__(message)
        self.account_id = account_id


class CommitError(StorageError):
    """A commit could not be applied. Nothing was written."""
    pass
