"""
Write Operations and Posting Plans

The poster and reconciler never touch storage. They produce a PostingPlan:
the complete set of account deltas, new accounts and transaction
records for one user action. The plan is turned into LedgerWrites and
handed to the store in a single atomic commit.

DESIGN DECISION: Balances and numeric sub-ledger fields are INCREMENTED,
never overwritten. Two merged plans (revert + repost on edit) then
compose by addition, and the store applies them against the version
the plan was computed from.
"""

import copy
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from ledger_core.models.account import Account
from ledger_core.models.transaction import Transaction


class WriteCollection(str, Enum):
    ACCOUNTS = "accounts"
    TRANSACTIONS = "transactions"


class WriteOp(str, Enum):
    """
    Persistence operations.

    SET assigns each dotted path in the payload (creating the document
    if it does not exist). INCREMENT adds each payload value to the
    numeric field at its dotted path. DELETE removes the document.
    """
    SET = "set"
    INCREMENT = "increment"
    DELETE = "delete"


class WriteTarget(BaseModel):
    collection: WriteCollection
    id: str


class LedgerWrite(BaseModel):
    """A single write of an atomic commit."""

    target: WriteTarget
    op: WriteOp
    payload: dict[str, Any] = Field(default_factory=dict)
    expected_version: Optional[int] = Field(
        default=None,
        description="Account version the write was computed from; None skips the check"
    )


# =============================================================================
# DOTTED-PATH PAYLOADS
# =============================================================================

def _plain(value: Any) -> Any:
    """Convert models nested in a payload to plain python data."""
    if isinstance(value, BaseModel):
        return value.model_dump()
    if isinstance(value, list):
        return [_plain(item) for item in value]
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    return value


def _parent_of(document: dict, path: str) -> tuple[dict, str]:
    parts = path.split(".")
    node = document
    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            raise KeyError(f"Path '{path}' does not resolve: '{part}' is not an object")
        node = child
    return node, parts[-1]


def apply_payload(document: dict, op: WriteOp, payload: dict[str, Any]) -> dict:
    """
    Apply a SET or INCREMENT payload to a copy of `document`.

    Raises:
        KeyError: If a dotted path crosses a missing or non-object field
        ValueError: If op is DELETE
    """
    if op == WriteOp.DELETE:
        raise ValueError("DELETE has no payload to apply")

    result = copy.deepcopy(document)
    for path, value in payload.items():
        parent, key = _parent_of(result, path)
        if op == WriteOp.SET:
            parent[key] = _plain(value)
        else:
            current = parent.get(key)
            parent[key] = Decimal(str(current or 0)) + Decimal(str(value))
    return result


# =============================================================================
# ACCOUNT DELTAS AND PLANS
# =============================================================================

class AccountDelta(BaseModel):
    """
    Change to one account.

    `increments` and `patch` are keyed by dotted path, for example
    "details.total_units" or "status".
    """

    account_id: str
    balance_delta: Decimal = Decimal("0")
    increments: dict[str, Decimal] = Field(default_factory=dict)
    patch: dict[str, Any] = Field(default_factory=dict)

    def merge(self, other: "AccountDelta") -> "AccountDelta":
        """Combine with a later delta: increments add, later patches win."""
        increments = dict(self.increments)
        for path, value in other.increments.items():
            increments[path] = increments.get(path, Decimal("0")) + value
        patch = dict(self.patch)
        patch.update(other.patch)
        return AccountDelta(
            account_id=self.account_id,
            balance_delta=self.balance_delta + other.balance_delta,
            increments=increments,
            patch=patch,
        )

    def all_increments(self) -> dict[str, Decimal]:
        increments = {k: v for k, v in self.increments.items() if v != 0}
        if self.balance_delta != 0:
            increments["current_balance"] = self.balance_delta
        return increments

    def apply_to(self, account: Account) -> Account:
        """Return the account as it would look after this delta."""
        document = account.model_dump()
        increments = self.all_increments()
        if increments:
            document = apply_payload(document, WriteOp.INCREMENT, increments)
        if self.patch:
            document = apply_payload(document, WriteOp.SET, self.patch)
        return Account.model_validate(document)


class FundLinkRepair(BaseModel):
    """Record of an account adopting the default Equity Fund."""

    account_id: str
    fund_id: str
    previous_fund_id: Optional[str] = None


class RevertMatch(BaseModel):
    """How the reconciler located the sub-ledger entry of a transaction."""

    transaction_id: str
    account_id: str
    method: str = Field(..., pattern="^(exact|heuristic|ambiguous|none)$")
    entry_id: Optional[str] = None
    candidates: int = 0


class PostingPlan(BaseModel):
    """
    Everything one user action writes.

    `expected_versions` holds the version of every pre-existing account
    the plan was computed from.
    """

    transactions: list[Transaction] = Field(default_factory=list)
    new_accounts: list[Account] = Field(default_factory=list)
    deltas: list[AccountDelta] = Field(default_factory=list)
    deleted_transaction_ids: list[str] = Field(default_factory=list)
    expected_versions: dict[str, int] = Field(default_factory=dict)

    fund_link_repairs: list[FundLinkRepair] = Field(default_factory=list)
    revert_matches: list[RevertMatch] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def primary_transaction(self) -> Optional[Transaction]:
        for tx in self.transactions:
            if tx.parent_transaction_id is None:
                return tx
        return self.transactions[0] if self.transactions else None

    def touch(self, account: Account) -> None:
        """Remember the version an existing account was read at."""
        if not any(a.id == account.id for a in self.new_accounts):
            self.expected_versions.setdefault(account.id, account.version)

    def add_delta(self, delta: AccountDelta) -> None:
        self.deltas.append(delta)

    def merged_deltas(self) -> list[AccountDelta]:
        """One delta per account, in first-touched order."""
        merged: dict[str, AccountDelta] = {}
        for delta in self.deltas:
            if delta.account_id in merged:
                merged[delta.account_id] = merged[delta.account_id].merge(delta)
            else:
                merged[delta.account_id] = delta
        return list(merged.values())

    def extend(self, other: "PostingPlan") -> "PostingPlan":
        """Return a plan applying `self` then `other` in one commit."""
        versions = dict(other.expected_versions)
        versions.update(self.expected_versions)
        created_here = {tx.id for tx in other.transactions}
        return PostingPlan(
            transactions=list(self.transactions) + list(other.transactions),
            new_accounts=list(self.new_accounts) + list(other.new_accounts),
            deltas=list(self.deltas) + list(other.deltas),
            deleted_transaction_ids=[
                tx_id for tx_id in self.deleted_transaction_ids + other.deleted_transaction_ids
                if tx_id not in created_here
            ],
            expected_versions=versions,
            fund_link_repairs=list(self.fund_link_repairs) + list(other.fund_link_repairs),
            revert_matches=list(self.revert_matches) + list(other.revert_matches),
            warnings=list(self.warnings) + list(other.warnings),
        )

    def to_writes(self) -> list[LedgerWrite]:
        """
        Flatten the plan into store writes.

        Deltas against accounts created by this plan are folded into
        the new account document, so each new account is one SET.
        """
        writes: list[LedgerWrite] = []
        deltas = {d.account_id: d for d in self.merged_deltas()}

        for account in self.new_accounts:
            delta = deltas.pop(account.id, None)
            if delta is not None:
                account = delta.apply_to(account)
            writes.append(LedgerWrite(
                target=WriteTarget(collection=WriteCollection.ACCOUNTS, id=account.id),
                op=WriteOp.SET,
                payload=account.model_dump(exclude={"version"}),
            ))

        for account_id, delta in deltas.items():
            version = self.expected_versions.get(account_id)
            target = WriteTarget(collection=WriteCollection.ACCOUNTS, id=account_id)
            increments = delta.all_increments()
            if increments:
                writes.append(LedgerWrite(
                    target=target,
                    op=WriteOp.INCREMENT,
                    payload=increments,
                    expected_version=version,
                ))
            if delta.patch:
                writes.append(LedgerWrite(
                    target=target,
                    op=WriteOp.SET,
                    payload=delta.patch,
                    expected_version=version,
                ))

        for tx in self.transactions:
            writes.append(LedgerWrite(
                target=WriteTarget(collection=WriteCollection.TRANSACTIONS, id=tx.id),
                op=WriteOp.SET,
                payload=tx.model_dump(),
            ))

        for tx_id in self.deleted_transaction_ids:
            writes.append(LedgerWrite(
                target=WriteTarget(collection=WriteCollection.TRANSACTIONS, id=tx_id),
                op=WriteOp.DELETE,
            ))
        return writes


class LedgerSnapshot(BaseModel):
    """
    Point-in-time view of one user's ledger.

    Every plan is computed against a snapshot and committed with the
    account versions it holds.
    """

    user_id: str
    accounts: dict[str, Account] = Field(default_factory=dict)
    transactions: dict[str, Transaction] = Field(default_factory=dict)

    def account(self, account_id: str) -> Optional[Account]:
        return self.accounts.get(account_id)

    def children_of(self, transaction_id: str) -> list[Transaction]:
        return [
            tx for tx in self.transactions.values()
            if tx.parent_transaction_id == transaction_id
        ]

    def with_plan(self, plan: PostingPlan) -> "LedgerSnapshot":
        """
        Working copy with `plan` applied in memory.

        Versions are left untouched so a follow-up plan computed on the
        copy still commits against the versions actually read.
        """
        accounts = dict(self.accounts)
        for account in plan.new_accounts:
            accounts[account.id] = account
        for delta in plan.merged_deltas():
            accounts[delta.account_id] = delta.apply_to(accounts[delta.account_id])

        transactions = {
            tx_id: tx for tx_id, tx in self.transactions.items()
            if tx_id not in plan.deleted_transaction_ids
        }
        for tx in plan.transactions:
            transactions[tx.id] = tx
        return LedgerSnapshot(
            user_id=self.user_id,
            accounts=accounts,
            transactions=transactions,
        )
