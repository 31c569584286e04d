"""
Tests for the two-stage action validator.
"""

from datetime import date
from decimal import Decimal

import pytest

from ledger_core.models import (
    Account,
    AccountCategory,
    AccountGroup,
    AccountStatus,
    ActionType,
    LedgerAction,
    LiabilityDetails,
    TransactionType,
)
from ledger_core.posting import ActionValidationError
from ledger_core.validation import REQUIRED_FIELDS, ActionValidator

from conftest import TRADE_DATE


@pytest.fixture
def validator() -> ActionValidator:
    return ActionValidator(today=date(2024, 6, 1))


def issue_types(result) -> set[str]:
    return {issue.issue_type for issue in result.issues}


class TestShapeValidation:
    """Stage 1: fields and combinations."""

    def test_every_action_has_required_fields(self):
        """Each action type declares its required fields."""
        assert set(REQUIRED_FIELDS) == set(ActionType)

    def test_missing_fields_reported(self, validator):
        """Each missing field is its own issue."""
        result = validator.validate(LedgerAction(action=ActionType.BUY_INVESTMENT, date=TRADE_DATE))
        missing = {issue.field for issue in result.issues if issue.issue_type == "missing"}
        assert missing == {"account_id", "counter_account_id", "units", "price"}
        assert not result.shape_valid
        assert not result.state_valid

    def test_zero_amount_rejected(self, validator):
        """Amounts must be strictly positive."""
        result = validator.validate(LedgerAction(
            action=ActionType.REPAY_PRINCIPAL,
            date=TRADE_DATE,
            account_id="loan",
            counter_account_id="cash",
            amount=Decimal("0"),
        ))
        assert "invalid_value" in issue_types(result)

    def test_transfer_to_same_account(self, validator):
        """Debit and credit must differ."""
        result = validator.validate(LedgerAction(
            action=ActionType.TRANSFER,
            date=TRADE_DATE,
            transaction_type=TransactionType.INTERNAL_TRANSFER,
            debit_account_id="cash",
            credit_account_id="cash",
            amount=Decimal("1"),
        ))
        assert result.has_errors

    def test_sell_fees_above_gross(self, validator):
        """Fees larger than the sale value are refused."""
        result = validator.validate(LedgerAction(
            action=ActionType.SELL_INVESTMENT,
            date=TRADE_DATE,
            account_id="stock",
            counter_account_id="cash",
            units=Decimal("1"),
            price=Decimal("10"),
            fees=Decimal("11"),
        ))
        assert any(issue.field == "fees" for issue in result.issues)

    def test_future_date_is_a_warning(self, validator):
        """Future dates pass with a warning."""
        result = validator.validate(LedgerAction(
            action=ActionType.REVALUE_INVESTMENT,
            date=date(2024, 12, 1),
            account_id="stock",
            price=Decimal("1"),
        ))
        assert result.is_valid
        assert len(result.warnings) == 1

    def test_declared_balance_on_new_account(self, validator):
        """Opening balances go through the action amount."""
        template = Account(
            name="Bank",
            group=AccountGroup.ASSETS,
            category=AccountCategory.CASH,
            current_balance=Decimal("5"),
        )
        result = validator.validate(LedgerAction(
            action=ActionType.OPEN_ACCOUNT, date=TRADE_DATE, new_account=template,
        ))
        assert any(issue.field == "new_account.current_balance" for issue in result.issues)

    def test_liability_opening_balance_redirected(self, validator):
        """A liability with a balance must be opened with OPEN_LIABILITY."""
        template = Account(
            name="Loan",
            group=AccountGroup.CAPITAL,
            category=AccountCategory.LIABILITY,
            details=LiabilityDetails(),
        )
        result = validator.validate(LedgerAction(
            action=ActionType.OPEN_ACCOUNT,
            date=TRADE_DATE,
            new_account=template,
            amount=Decimal("100"),
        ))
        fixes = [issue.suggested_fix for issue in result.issues if issue.suggested_fix]
        assert any("OPEN_LIABILITY" in fix for fix in fixes)

    def test_open_liability_wrong_category(self, validator, cash):
        """OPEN_LIABILITY only opens liabilities."""
        result = validator.validate(LedgerAction(
            action=ActionType.OPEN_LIABILITY,
            date=TRADE_DATE,
            new_account=cash.model_copy(update={"current_balance": Decimal("0")}),
            amount=Decimal("1"),
        ))
        assert "not_allowed" in issue_types(result)


class TestStateValidation:
    """Stage 2: the action against a snapshot."""

    def test_unknown_account(self, validator, snapshot_of, cash):
        """Referenced accounts must exist."""
        result = validator.validate(LedgerAction(
            action=ActionType.REPAY_PRINCIPAL,
            date=TRADE_DATE,
            account_id="loan",
            counter_account_id="cash",
            amount=Decimal("1"),
        ), snapshot_of(cash))
        assert "not_found" in issue_types(result)
        assert result.shape_valid
        assert not result.state_valid

    def test_closed_account(self, validator, snapshot_of, cash, loan):
        """Closed accounts are refused."""
        closed = loan.model_copy(update={"status": AccountStatus.CLOSED})
        result = validator.validate(LedgerAction(
            action=ActionType.REPAY_PRINCIPAL,
            date=TRADE_DATE,
            account_id="loan",
            counter_account_id="cash",
            amount=Decimal("1"),
        ), snapshot_of(cash, closed))
        assert "not_allowed" in issue_types(result)

    def test_liquidated_position_may_be_bought(self, validator, snapshot_of, cash, stock):
        """BUY is allowed on a LIQUIDATED investment."""
        liquidated = stock.model_copy(update={"status": AccountStatus.LIQUIDATED})
        result = validator.validate(LedgerAction(
            action=ActionType.BUY_INVESTMENT,
            date=TRADE_DATE,
            account_id="stock",
            counter_account_id="cash",
            units=Decimal("1"),
            price=Decimal("1"),
        ), snapshot_of(cash, liquidated))
        assert result.is_valid

    def test_oversell(self, validator, snapshot_of, cash, held_stock):
        """Selling more units than held is reported."""
        result = validator.validate(LedgerAction(
            action=ActionType.SELL_INVESTMENT,
            date=TRADE_DATE,
            account_id="stock",
            counter_account_id="cash",
            units=Decimal("11"),
            price=Decimal("1"),
        ), snapshot_of(cash, held_stock))
        assert "oversell" in issue_types(result)

    def test_over_repayment_suggests_settlement(self, validator, snapshot_of, cash, loan):
        """Repaying above principal points at SETTLE_LIABILITY."""
        result = validator.validate(LedgerAction(
            action=ActionType.REPAY_PRINCIPAL,
            date=TRADE_DATE,
            account_id="loan",
            counter_account_id="cash",
            amount=Decimal("5000000"),
        ), snapshot_of(cash, loan))
        issue = next(i for i in result.issues if i.issue_type == "over_repayment")
        assert "SETTLE_LIABILITY" in issue.suggested_fix

    def test_wrong_account_kind(self, validator, snapshot_of, cash, loan):
        """Buying into a liability is not allowed."""
        result = validator.validate(LedgerAction(
            action=ActionType.BUY_INVESTMENT,
            date=TRADE_DATE,
            account_id="loan",
            counter_account_id="cash",
            units=Decimal("1"),
            price=Decimal("1"),
        ), snapshot_of(cash, loan))
        assert not result.is_valid

    def test_extension_before_start(self, validator, snapshot_of, loan):
        """The new end date must be after the start date."""
        result = validator.validate(LedgerAction(
            action=ActionType.EXTEND_LIABILITY,
            date=TRADE_DATE,
            account_id="loan",
            new_end_date=date(2023, 12, 1),
        ), snapshot_of(loan))
        assert any(issue.field == "new_end_date" for issue in result.issues)

    def test_duplicate_new_account(self, validator, snapshot_of, fund, stock):
        """An OPEN action cannot reuse an existing id."""
        result = validator.validate(LedgerAction(
            action=ActionType.OPEN_ACCOUNT, date=TRADE_DATE, new_account=stock,
        ), snapshot_of(fund, stock))
        assert "duplicate" in issue_types(result)

    def test_validate_or_raise(self, validator, snapshot_of, cash, held_stock):
        """Error issues surface as one ActionValidationError."""
        with pytest.raises(ActionValidationError) as exc_info:
            validator.validate_or_raise(LedgerAction(
                action=ActionType.SELL_INVESTMENT,
                date=TRADE_DATE,
                account_id="stock",
                counter_account_id="cash",
                units=Decimal("11"),
                price=Decimal("1"),
            ), snapshot_of(cash, held_stock))
        assert exc_info.value.code == "INVALID_ACTION"
        assert exc_info.value.issues


class TestSummary:
    """Tests for the human-readable summary."""

    def test_summary_lists_errors_and_fixes(self, validator):
        """Errors and their suggested fixes are listed."""
        result = validator.validate(LedgerAction(action=ActionType.TRANSFER, date=TRADE_DATE))
        summary = validator.get_user_friendly_summary(result)
        assert summary.startswith("The action cannot be posted:")
        assert "amount is required for TRANSFER" in summary

    def test_summary_all_clear(self, validator):
        """A clean result says so."""
        result = validator.validate(LedgerAction(
            action=ActionType.REVALUE_INVESTMENT,
            date=TRADE_DATE,
            account_id="stock",
            price=Decimal("1"),
        ))
        assert validator.get_user_friendly_summary(result) == "All checks passed."
