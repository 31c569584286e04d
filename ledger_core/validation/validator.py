"""
Two-Stage Action Validation

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SHAPE VALIDATION:
- Required fields for the action type
- Positive amounts and units where the action moves money
- Field combinations (new account category, fees vs gross value)
- This catches malformed descriptors from forms and API callers

STAGE 2 - STATE VALIDATION:
- Referenced accounts exist and are open
- Sells and repayments stay within held units and principal
- Deposits being settled exist and are still active
- This needs a snapshot of the ledger

Stage 2 only runs when stage 1 passes.

IMPORTANT: Validation NEVER fixes an action. It reports issues; the poster
re-checks the same rules and raises if they are bypassed.
"""

from datetime import date
from typing import Optional

from ledger_core.models.account import (
    Account,
    AccountCategory,
    AccountStatus,
    DepositStatus,
)
from ledger_core.models.ledger import LedgerSnapshot
from ledger_core.models.transaction import ActionType, LedgerAction
from ledger_core.models.validation import ValidationIssue, ValidationResult
from ledger_core.posting.errors import ActionValidationError
from ledger_core.posting.rules import has_position

REQUIRED_FIELDS: dict[ActionType, tuple[str, ...]] = {
    ActionType.TRANSFER: ("debit_account_id", "credit_account_id", "transaction_type", "amount"),
    ActionType.OPEN_ACCOUNT: ("new_account",),
    ActionType.BUY_INVESTMENT: ("account_id", "counter_account_id", "units", "price"),
    ActionType.SELL_INVESTMENT: ("account_id", "counter_account_id", "units", "price"),
    ActionType.REVALUE_INVESTMENT: ("account_id", "price"),
    ActionType.INVEST_REAL_ESTATE: ("account_id", "counter_account_id", "amount"),
    ActionType.OPEN_LIABILITY: ("new_account",),
    ActionType.BORROW_MORE: ("account_id", "counter_account_id", "amount"),
    ActionType.REPAY_PRINCIPAL: ("account_id", "counter_account_id", "amount"),
    ActionType.PAY_INTEREST: ("account_id", "counter_account_id", "amount"),
    ActionType.EXTEND_LIABILITY: ("account_id", "new_end_date"),
    ActionType.SETTLE_LIABILITY: ("account_id", "counter_account_id"),
    ActionType.OPEN_SAVINGS: ("new_account", "counter_account_id"),
    ActionType.ADD_SAVINGS_DEPOSIT: ("account_id", "counter_account_id", "amount"),
    ActionType.SETTLE_SAVINGS_DEPOSIT: ("account_id", "counter_account_id", "deposit_id"),
}

# Fields that must be strictly positive when required
POSITIVE_FIELDS = ("amount", "units")

# Category the new account of an OPEN_* action must have
OPENING_CATEGORY: dict[ActionType, AccountCategory] = {
    ActionType.OPEN_LIABILITY: AccountCategory.LIABILITY,
    ActionType.OPEN_SAVINGS: AccountCategory.SAVINGS,
}

# Statuses the primary account may have besides ACTIVE
REOPENING_ACTIONS: dict[ActionType, AccountStatus] = {
    ActionType.BUY_INVESTMENT: AccountStatus.LIQUIDATED,
    ActionType.ADD_SAVINGS_DEPOSIT: AccountStatus.CLOSED,
}

ACCOUNT_FIELDS = ("account_id", "counter_account_id", "debit_account_id", "credit_account_id")


def _error(field: str, issue_type: str, message: str, suggested_fix: Optional[str] = None) -> ValidationIssue:
    return ValidationIssue(
        field=field,
        issue_type=issue_type,
        message=message,
        severity="error",
        suggested_fix=suggested_fix,
    )


class ActionValidator:
    """
    Validates action descriptors through a two-stage pipeline.

    Stage 1: Shape validation (needs only the action)
    Stage 2: State validation (needs a ledger snapshot)
    """

    def __init__(self, today: Optional[date] = None):
        """
        Args:
            today: Reference date for future-date warnings.
                   Defaults to the current date at validation time.
        """
        self._today = today

    def _validate_shape(self, action: LedgerAction) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: Shape validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []
        required = REQUIRED_FIELDS[action.action]

        for field in required:
            value = getattr(action, field)
            if value is None:
                issues.append(_error(
                    field, "missing",
                    f"{field} is required for {action.action.value}",
                ))
            elif field in POSITIVE_FIELDS and value <= 0:
                issues.append(_error(
                    field, "invalid_value",
                    f"{field} must be greater than zero",
                ))

        if (
            action.action == ActionType.TRANSFER
            and action.debit_account_id
            and action.debit_account_id == action.credit_account_id
        ):
            issues.append(_error(
                "credit_account_id", "invalid_value",
                "Debit and credit account must differ",
            ))

        if (
            action.action == ActionType.SELL_INVESTMENT
            and action.units is not None
            and action.price is not None
            and action.fee_amount > action.units * action.price
        ):
            issues.append(_error(
                "fees", "invalid_value",
                "Fees exceed the gross sale value",
            ))

        if action.new_account is not None:
            issues.extend(self._validate_new_account(action, action.new_account))

        today = self._today or date.today()
        if action.date > today:
            issues.append(ValidationIssue(
                field="date",
                issue_type="future_date",
                message=f"Action date ({action.date}) is in the future",
                severity="warning",
                suggested_fix="Please verify the date is correct",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def _validate_new_account(self, action: LedgerAction, account: Account) -> list[ValidationIssue]:
        issues = []

        expected = OPENING_CATEGORY.get(action.action)
        if expected is not None and account.category != expected:
            issues.append(_error(
                "new_account", "not_allowed",
                f"{action.action.value} opens a {expected.value} account, got {account.category.value}",
            ))

        if action.action == ActionType.OPEN_ACCOUNT:
            for category, dedicated in (
                (AccountCategory.LIABILITY, ActionType.OPEN_LIABILITY),
                (AccountCategory.SAVINGS, ActionType.OPEN_SAVINGS),
            ):
                if account.category == category and action.amount:
                    issues.append(_error(
                        "new_account", "not_allowed",
                        f"{category.value} accounts with a balance are opened with {dedicated.value}",
                        suggested_fix=f"Use {dedicated.value} so terms and schedules are recorded",
                    ))
            if account.is_equity_fund and action.amount and not action.counter_account_id:
                issues.append(_error(
                    "counter_account_id", "missing",
                    "An Equity Fund opening balance needs a counter account",
                ))

        if account.current_balance != 0:
            issues.append(_error(
                "new_account.current_balance", "not_allowed",
                "New accounts start at zero; pass the opening balance as the action amount",
            ))
        elif (
            action.action == ActionType.OPEN_ACCOUNT
            and (has_position(account) or account.logs)
        ):
            issues.append(_error(
                "new_account.details", "not_allowed",
                "New accounts start with an empty position; post units through the action",
            ))

        if action.action == ActionType.OPEN_LIABILITY and account.liability is not None:
            if not action.amount and account.liability.principal_amount <= 0:
                issues.append(_error(
                    "amount", "missing",
                    "A liability needs a borrowed amount",
                ))

        if action.action == ActionType.OPEN_SAVINGS and account.savings is not None:
            if not action.amount and account.savings.principal_amount <= 0:
                issues.append(_error(
                    "amount", "missing",
                    "A savings account needs a first deposit amount",
                ))

        return issues

    def _validate_state(
        self,
        action: LedgerAction,
        snapshot: LedgerSnapshot,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: State validation against a snapshot.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if action.new_account is not None and snapshot.account(action.new_account.id) is not None:
            issues.append(_error(
                "new_account", "duplicate",
                f"Account {action.new_account.id} already exists",
            ))

        for field in ACCOUNT_FIELDS:
            account_id = getattr(action, field)
            if not account_id:
                continue
            account = snapshot.account(account_id)
            if account is None:
                issues.append(_error(field, "not_found", f"Account {account_id} does not exist"))
                continue

            allowed = {AccountStatus.ACTIVE}
            if field == "account_id" and action.action in REOPENING_ACTIONS:
                allowed.add(REOPENING_ACTIONS[action.action])
            if account.status not in allowed:
                issues.append(_error(
                    field, "not_allowed",
                    f"Account '{account.name}' is {account.status.value}",
                ))

        if issues:
            return False, issues

        account = snapshot.account(action.account_id) if action.account_id else None
        if account is not None:
            issues.extend(self._validate_holdings(action, account))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def _validate_holdings(self, action: LedgerAction, account: Account) -> list[ValidationIssue]:
        issues = []

        if action.action in (
            ActionType.BUY_INVESTMENT,
            ActionType.SELL_INVESTMENT,
            ActionType.REVALUE_INVESTMENT,
        ) and account.investment is None:
            issues.append(_error("account_id", "not_allowed", f"'{account.name}' is not an investment"))
            return issues

        if action.action in (
            ActionType.BORROW_MORE,
            ActionType.REPAY_PRINCIPAL,
            ActionType.PAY_INTEREST,
            ActionType.EXTEND_LIABILITY,
            ActionType.SETTLE_LIABILITY,
        ) and account.liability is None:
            issues.append(_error("account_id", "not_allowed", f"'{account.name}' is not a liability"))
            return issues

        if action.action in (
            ActionType.ADD_SAVINGS_DEPOSIT,
            ActionType.SETTLE_SAVINGS_DEPOSIT,
        ) and account.savings is None:
            issues.append(_error("account_id", "not_allowed", f"'{account.name}' is not a savings account"))
            return issues

        if action.action == ActionType.INVEST_REAL_ESTATE and account.real_estate is None:
            issues.append(_error("account_id", "not_allowed", f"'{account.name}' is not real estate"))
            return issues

        if action.action == ActionType.SELL_INVESTMENT and action.units > account.investment.total_units:
            issues.append(_error(
                "units", "oversell",
                f"Cannot sell {action.units} units, only {account.investment.total_units} held",
            ))

        if (
            action.action == ActionType.REPAY_PRINCIPAL
            and action.amount > account.liability.principal_amount
        ):
            issues.append(_error(
                "amount", "over_repayment",
                f"Cannot repay {action.amount}, outstanding principal is "
                f"{account.liability.principal_amount}",
                suggested_fix="Use SETTLE_LIABILITY to close the loan with interest and fees",
            ))

        if action.action == ActionType.EXTEND_LIABILITY:
            start = account.liability.start_date
            if start is not None and action.new_end_date <= start:
                issues.append(_error(
                    "new_end_date", "invalid_value",
                    "New end date must be after the start date",
                ))

        if action.action == ActionType.SETTLE_SAVINGS_DEPOSIT:
            deposit = next(
                (d for d in account.savings.deposits if d.id == action.deposit_id), None
            )
            if deposit is None:
                issues.append(_error("deposit_id", "not_found", f"Deposit {action.deposit_id} does not exist"))
            elif deposit.status != DepositStatus.ACTIVE:
                issues.append(_error("deposit_id", "not_allowed", f"Deposit {deposit.id} is already settled"))

        return issues

    def validate(
        self,
        action: LedgerAction,
        snapshot: Optional[LedgerSnapshot] = None,
    ) -> ValidationResult:
        """
        Run the two-stage validation pipeline.

        Args:
            action: The action descriptor to validate
            snapshot: Ledger state for stage 2. If None, stage 2 is skipped.

        Returns:
            ValidationResult with all issues found
        """
        all_issues = []

        shape_valid, shape_issues = self._validate_shape(action)
        all_issues.extend(shape_issues)

        # Only run stage 2 if stage 1 passes
        state_valid = False
        if shape_valid:
            if snapshot is None:
                state_valid = True
            else:
                state_valid, state_issues = self._validate_state(action, snapshot)
                all_issues.extend(state_issues)

        return ValidationResult(
            shape_valid=shape_valid,
            state_valid=state_valid,
            issues=all_issues,
        )

    def validate_or_raise(
        self,
        action: LedgerAction,
        snapshot: Optional[LedgerSnapshot] = None,
    ) -> ValidationResult:
        """
        Validate and raise on any error-level issue.

        Raises:
            ActionValidationError: carrying every issue found
        """
        result = self.validate(action, snapshot)
        if result.has_errors:
            raise ActionValidationError(result.issues)
        return result

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """Short human-readable summary of a validation result."""
        if result.is_valid and not result.warnings:
            return "All checks passed."

        lines = []
        errors = [issue for issue in result.issues if issue.severity == "error"]
        if errors:
            lines.append("The action cannot be posted:")
            for issue in errors:
                lines.append(f"  - {issue.message}")
                if issue.suggested_fix:
                    lines.append(f"    {issue.suggested_fix}")

        if result.warnings:
            lines.append("Please double-check:")
            for warning in result.warnings:
                lines.append(f"  - {warning}")

        return "\n".join(lines)
