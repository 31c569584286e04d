"""
Data Models Package

This package contains all Pydantic models used by the ledger core.
All data flowing through the poster and reconciler must conform to these schemas.
"""

from ledger_core.models.account import (
    Account,
    AccountCategory,
    AccountGroup,
    AccountLog,
    AccountStatus,
    CashFlowDirection,
    CreditCardDetails,
    DepositStatus,
    InterestType,
    InvestmentDetails,
    LiabilityDetails,
    LogType,
    PaymentCycle,
    RatePeriod,
    RealEstateDetails,
    SavingsDeposit,
    SavingsDetails,
    ScheduledEvent,
    ValuationPoint,
)
from ledger_core.models.transaction import (
    ActionType,
    LedgerAction,
    Transaction,
    TransactionType,
)
from ledger_core.models.ledger import (
    AccountDelta,
    FundLinkRepair,
    LedgerSnapshot,
    LedgerWrite,
    PostingPlan,
    RevertMatch,
    WriteCollection,
    WriteOp,
    WriteTarget,
    apply_payload,
)
from ledger_core.models.validation import (
    ValidationIssue,
    ValidationResult,
)
from ledger_core.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Account models
    "Account",
    "AccountCategory",
    "AccountGroup",
    "AccountLog",
    "AccountStatus",
    "CashFlowDirection",
    "CreditCardDetails",
    "DepositStatus",
    "InterestType",
    "InvestmentDetails",
    "LiabilityDetails",
    "LogType",
    "PaymentCycle",
    "RatePeriod",
    "RealEstateDetails",
    "SavingsDeposit",
    "SavingsDetails",
    "ScheduledEvent",
    "ValuationPoint",
    # Transaction models
    "ActionType",
    "LedgerAction",
    "Transaction",
    "TransactionType",
    # Write models
    "AccountDelta",
    "FundLinkRepair",
    "LedgerSnapshot",
    "LedgerWrite",
    "PostingPlan",
    "RevertMatch",
    "WriteCollection",
    "WriteOp",
    "WriteTarget",
    "apply_payload",
    # Validation models
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
