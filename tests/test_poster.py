"""
Tests for the Ledger Poster.

Plans are applied to the snapshot in memory (`with_plan`) so each test
can check the resulting account state without a store.
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
    CashFlowDirection,
    DepositStatus,
    LedgerAction,
    LiabilityDetails,
    LogType,
    PaymentCycle,
    TransactionType,
)
from ledger_core.posting import (
    AccountStateError,
    ActionValidationError,
    LedgerPoster,
    MissingEquityFundError,
    OverRepaymentError,
    OversellError,
)

from conftest import TRADE_DATE


def equity_gap(snapshot) -> Decimal:
    """ASSETS + EXPENSES minus CAPITAL + INCOME; unchanged by any balanced posting."""
    total = Decimal("0")
    for account in snapshot.accounts.values():
        if account.group in (AccountGroup.ASSETS, AccountGroup.EXPENSES):
            total += account.current_balance
        else:
            total -= account.current_balance
    return total


def post(snapshot, **fields):
    fields.setdefault("date", TRADE_DATE)
    plan = LedgerPoster(snapshot).post(LedgerAction(**fields))
    return plan, snapshot.with_plan(plan)


class TestTransfer:
    """Tests for generic two-account postings."""

    def test_daily_expense_follows_sign_rule(self, snapshot_of, cash, groceries):
        """Debiting an expense raises it, crediting cash lowers it."""
        snapshot = snapshot_of(cash, groceries)
        plan, after = post(
            snapshot,
            action=ActionType.TRANSFER,
            transaction_type=TransactionType.DAILY_CASHFLOW,
            debit_account_id="groceries",
            credit_account_id="cash",
            amount=Decimal("200000"),
        )

        assert after.account("groceries").current_balance == Decimal("200000")
        assert after.account("cash").current_balance == Decimal("49800000")
        assert plan.transactions[0].group == AccountGroup.EXPENSES
        assert equity_gap(after) == equity_gap(snapshot)

    def test_credit_card_spending_raises_capital_balance(self, snapshot_of, card, groceries):
        """Crediting a CAPITAL account increases it."""
        snapshot = snapshot_of(card, groceries)
        _, after = post(
            snapshot,
            action=ActionType.TRANSFER,
            transaction_type=TransactionType.CREDIT_SPENDING,
            debit_account_id="groceries",
            credit_account_id="card",
            amount=Decimal("200000"),
        )
        assert after.account("card").current_balance == Decimal("3200000")
        assert equity_gap(after) == equity_gap(snapshot)

    def test_transfer_needs_transaction_type(self, snapshot_of, cash, groceries):
        """The economic meaning of a transfer must be explicit."""
        with pytest.raises(ActionValidationError):
            post(
                snapshot_of(cash, groceries),
                action=ActionType.TRANSFER,
                debit_account_id="groceries",
                credit_account_id="cash",
                amount=Decimal("1"),
            )

    def test_closed_account_rejected(self, snapshot_of, cash, groceries):
        """Closed accounts take no new postings."""
        closed = cash.model_copy(update={"status": AccountStatus.CLOSED})
        with pytest.raises(AccountStateError):
            post(
                snapshot_of(closed, groceries),
                action=ActionType.TRANSFER,
                transaction_type=TransactionType.DAILY_CASHFLOW,
                debit_account_id="groceries",
                credit_account_id="cash",
                amount=Decimal("1"),
            )


class TestOpenAccount:
    """Tests for account creation with an opening balance."""

    def test_opening_balance_against_default_fund(self, snapshot_of, fund):
        """A new asset is debited, the default fund credited, and linked."""
        template = Account(
            id="bank",
            name="Bank Account",
            group=AccountGroup.ASSETS,
            category=AccountCategory.CASH,
        )
        snapshot = snapshot_of(fund)
        plan, after = post(
            snapshot,
            action=ActionType.OPEN_ACCOUNT,
            new_account=template,
            amount=Decimal("5000000"),
        )

        tx = plan.primary_transaction
        assert tx.type == TransactionType.INITIAL_BALANCE
        assert tx.debit_account_id == "bank"
        assert tx.credit_account_id == "fund"
        assert after.account("bank").current_balance == Decimal("5000000")
        assert after.account("bank").linked_fund_id == "fund"
        assert after.account("fund").current_balance == Decimal("105000000")
        assert [a.id for a in plan.new_accounts] == ["bank"]
        assert "bank" not in plan.expected_versions

    def test_opening_liability_side_account_credits_it(self, snapshot_of, fund):
        """A CAPITAL account opening balance is credited."""
        template = Account(
            id="card",
            name="Visa",
            group=AccountGroup.CAPITAL,
            category=AccountCategory.OTHER,
        )
        plan, after = post(
            snapshot_of(fund),
            action=ActionType.OPEN_ACCOUNT,
            new_account=template,
            amount=Decimal("700"),
        )
        assert plan.primary_transaction.credit_account_id == "card"
        assert after.account("card").current_balance == Decimal("700")
        assert after.account("fund").current_balance == Decimal("99999300")

    def test_open_without_amount_posts_nothing(self, snapshot_of, fund, stock):
        """An empty account is created without a transaction."""
        plan, after = post(snapshot_of(fund), action=ActionType.OPEN_ACCOUNT, new_account=stock)
        assert plan.transactions == []
        assert after.account("stock") is not None

    def test_open_investment_with_units(self, snapshot_of, fund, cash, stock):
        """Units and price open the position through a BUY."""
        plan, after = post(
            snapshot_of(fund, cash),
            action=ActionType.OPEN_ACCOUNT,
            new_account=stock,
            counter_account_id="cash",
            units=Decimal("10"),
            price=Decimal("100"),
            fees=Decimal("5"),
        )
        position = after.account("stock").investment
        assert plan.primary_transaction.type == TransactionType.ASSET_BUY
        assert position.total_units == Decimal("10")
        assert position.avg_price == Decimal("100.5")
        assert after.account("stock").logs[0].type == LogType.BUY

    def test_missing_fund_is_a_configuration_error(self, snapshot_of, cash):
        """No Equity Fund means no opening balance leg."""
        template = Account(
            id="bank",
            name="Bank",
            group=AccountGroup.ASSETS,
            category=AccountCategory.CASH,
        )
        with pytest.raises(MissingEquityFundError) as exc_info:
            post(snapshot_of(cash), action=ActionType.OPEN_ACCOUNT,
                 new_account=template, amount=Decimal("10"))
        assert "'Spending Fund'" in exc_info.value.message

    def test_declared_balance_rejected(self, snapshot_of, fund):
        """Balances are posted, never declared on the template."""
        template = Account(
            id="bank",
            name="Bank",
            group=AccountGroup.ASSETS,
            category=AccountCategory.CASH,
            current_balance=Decimal("10"),
        )
        with pytest.raises(AccountStateError):
            post(snapshot_of(fund), action=ActionType.OPEN_ACCOUNT, new_account=template)


class TestInvestments:
    """Tests for buy, sell and revalue."""

    def test_scenario_a_buy(self, snapshot_of, fund, cash, stock):
        """Buy 10 @ 100 with fee 5 into an empty position."""
        snapshot = snapshot_of(fund, cash, stock)
        plan, after = post(
            snapshot,
            action=ActionType.BUY_INVESTMENT,
            account_id="stock",
            counter_account_id="cash",
            units=Decimal("10"),
            price=Decimal("100"),
            fees=Decimal("5"),
        )

        tx = plan.primary_transaction
        account = after.account("stock")
        assert tx.type == TransactionType.ASSET_BUY
        assert tx.amount == Decimal("1005")
        assert account.investment.avg_price == Decimal("100.5")
        assert account.investment.total_units == Decimal("10")
        assert account.investment.market_price == Decimal("100")
        assert account.current_balance == Decimal("1005")
        assert account.logs[-1].id == tx.related_detail_id
        assert after.account("cash").current_balance == Decimal("49998995")
        assert equity_gap(after) == equity_gap(snapshot)

    def test_scenario_b_partial_sell(self, snapshot_of, fund, cash, held_stock):
        """Sell 4 @ 150 with fee 2 realizes 196 into the fund."""
        snapshot = snapshot_of(fund, cash, held_stock)
        plan, after = post(
            snapshot,
            action=ActionType.SELL_INVESTMENT,
            account_id="stock",
            counter_account_id="cash",
            units=Decimal("4"),
            price=Decimal("150"),
            fees=Decimal("2"),
        )

        sale, gain = plan.transactions
        account = after.account("stock")
        assert sale.type == TransactionType.ASSET_SELL
        assert sale.amount == Decimal("598")
        assert gain.parent_transaction_id == sale.id
        assert gain.amount == Decimal("196")
        assert gain.category == "Realized Gain"

        assert account.investment.total_units == Decimal("6")
        assert account.investment.avg_price == Decimal("100.5")
        assert account.realized_pnl == Decimal("196")
        assert account.current_balance == Decimal("603")
        assert account.status == AccountStatus.ACTIVE
        assert account.logs[-1].type == LogType.SELL
        assert account.logs[-1].id == sale.related_detail_id
        assert after.account("fund").current_balance == Decimal("100000196")
        assert after.account("cash").current_balance == Decimal("50000598")
        assert equity_gap(after) == equity_gap(snapshot)

    def test_full_sale_at_loss_liquidates_at_zero(self, snapshot_of, fund, cash, held_stock):
        """A full sale lands the balance exactly on zero."""
        plan, after = post(
            snapshot_of(fund, cash, held_stock),
            action=ActionType.SELL_INVESTMENT,
            account_id="stock",
            counter_account_id="cash",
            units=Decimal("10"),
            price=Decimal("90"),
        )

        account = after.account("stock")
        assert plan.transactions[1].category == "Realized Loss"
        assert account.current_balance == Decimal("0")
        assert account.investment.total_units == Decimal("0")
        assert account.realized_pnl == Decimal("-105")
        assert account.status == AccountStatus.LIQUIDATED

    def test_full_sale_releases_unrealized_gain(self, snapshot_of, fund, cash, held_stock):
        """Revaluation gains are released on a full sale."""
        snapshot = snapshot_of(fund, cash, held_stock)
        _, revalued = post(
            snapshot,
            action=ActionType.REVALUE_INVESTMENT,
            account_id="stock",
            price=Decimal("120"),
        )
        assert revalued.account("stock").unrealized_pnl == Decimal("195")
        assert revalued.account("stock").current_balance == Decimal("1200")

        _, sold = post(
            revalued,
            action=ActionType.SELL_INVESTMENT,
            account_id="stock",
            counter_account_id="cash",
            units=Decimal("10"),
            price=Decimal("130"),
        )
        account = sold.account("stock")
        assert account.current_balance == Decimal("0")
        assert account.unrealized_pnl == Decimal("0")
        assert account.realized_pnl == Decimal("295")
        assert sold.account("fund").current_balance == Decimal("100000295")
        assert equity_gap(sold) == equity_gap(snapshot)

    def test_oversell_rejected(self, snapshot_of, fund, cash, held_stock):
        """Selling more than held is refused before anything is planned."""
        with pytest.raises(OversellError) as exc_info:
            post(
                snapshot_of(fund, cash, held_stock),
                action=ActionType.SELL_INVESTMENT,
                account_id="stock",
                counter_account_id="cash",
                units=Decimal("11"),
                price=Decimal("150"),
            )
        assert exc_info.value.held == Decimal("10")
        assert exc_info.value.requested == Decimal("11")

    def test_sell_repairs_missing_fund_link(self, snapshot_of, fund, cash, held_stock):
        """The default fund is adopted and the repair recorded separately."""
        unlinked = held_stock.model_copy(update={"linked_fund_id": None})
        plan, after = post(
            snapshot_of(fund, cash, unlinked),
            action=ActionType.SELL_INVESTMENT,
            account_id="stock",
            counter_account_id="cash",
            units=Decimal("4"),
            price=Decimal("150"),
            fees=Decimal("2"),
        )

        assert len(plan.fund_link_repairs) == 1
        repair = plan.fund_link_repairs[0]
        assert repair.account_id == "stock"
        assert repair.fund_id == "fund"
        assert repair.previous_fund_id is None
        assert after.account("stock").linked_fund_id == "fund"

    def test_sell_without_any_fund_fails(self, snapshot_of, cash, held_stock):
        """A gain leg is never dropped silently."""
        with pytest.raises(MissingEquityFundError):
            post(
                snapshot_of(cash, held_stock),
                action=ActionType.SELL_INVESTMENT,
                account_id="stock",
                counter_account_id="cash",
                units=Decimal("4"),
                price=Decimal("150"),
            )

    def test_buy_reopens_liquidated_position(self, snapshot_of, fund, cash, stock):
        """Buying into a sold-out position makes it active again."""
        liquidated = stock.model_copy(update={"status": AccountStatus.LIQUIDATED})
        _, after = post(
            snapshot_of(fund, cash, liquidated),
            action=ActionType.BUY_INVESTMENT,
            account_id="stock",
            counter_account_id="cash",
            units=Decimal("5"),
            price=Decimal("10"),
        )
        assert after.account("stock").status == AccountStatus.ACTIVE

    def test_buy_into_closed_account_rejected(self, snapshot_of, fund, cash, stock):
        """CLOSED accounts cannot be bought into."""
        closed = stock.model_copy(update={"status": AccountStatus.CLOSED})
        with pytest.raises(AccountStateError):
            post(
                snapshot_of(fund, cash, closed),
                action=ActionType.BUY_INVESTMENT,
                account_id="stock",
                counter_account_id="cash",
                units=Decimal("5"),
                price=Decimal("10"),
            )

    def test_buy_on_non_investment_rejected(self, snapshot_of, fund, cash, groceries):
        """Only investment accounts hold units."""
        with pytest.raises(AccountStateError):
            post(
                snapshot_of(fund, cash, groceries),
                action=ActionType.BUY_INVESTMENT,
                account_id="groceries",
                counter_account_id="cash",
                units=Decimal("5"),
                price=Decimal("10"),
            )

    def test_revalue_without_change_only_logs(self, snapshot_of, fund, held_stock):
        """Marking at the carrying value posts no transaction."""
        plan, after = post(
            snapshot_of(fund, held_stock),
            action=ActionType.REVALUE_INVESTMENT,
            account_id="stock",
            price=Decimal("100.5"),
        )
        assert plan.transactions == []
        assert after.account("stock").logs[-1].type == LogType.REVALUE
        assert after.account("stock").investment.market_price == Decimal("100.5")

    def test_revalue_loss(self, snapshot_of, fund, held_stock):
        """A lower price credits the investment and debits the fund."""
        plan, after = post(
            snapshot_of(fund, held_stock),
            action=ActionType.REVALUE_INVESTMENT,
            account_id="stock",
            price=Decimal("90"),
        )
        tx = plan.primary_transaction
        assert tx.credit_account_id == "stock"
        assert tx.amount == Decimal("105")
        assert after.account("stock").unrealized_pnl == Decimal("-105")
        assert after.account("stock").current_balance == Decimal("900")


class TestRealEstate:
    """Tests for capital injections into real estate."""

    def test_invest_raises_total_investment(self, snapshot_of, cash, house):
        """ASSET_INVESTMENT raises balance and total investment, with a CAPEX log."""
        plan, after = post(
            snapshot_of(cash, house),
            action=ActionType.INVEST_REAL_ESTATE,
            account_id="house",
            counter_account_id="cash",
            amount=Decimal("2000000"),
        )
        account = after.account("house")
        assert plan.primary_transaction.type == TransactionType.ASSET_INVESTMENT
        assert account.current_balance == Decimal("2000000")
        assert account.real_estate.total_investment == Decimal("2000000")
        assert account.logs[0].type == LogType.CAPEX


class TestLiabilities:
    """Tests for the liability lifecycle."""

    def _template(self) -> Account:
        return Account(
            id="new-loan",
            name="Home Loan",
            group=AccountGroup.CAPITAL,
            category=AccountCategory.LIABILITY,
            details=LiabilityDetails(
                interest_rate=Decimal("12"),
                payment_cycle=PaymentCycle.MONTHLY,
                term_months=12,
                start_date=date(2024, 1, 1),
            ),
        )

    def test_scenario_c_open_liability(self, snapshot_of, fund, cash):
        """Borrowing 12,000,000 at 12% projects 12 monthly interest events of 120,000."""
        snapshot = snapshot_of(fund, cash)
        plan, after = post(
            snapshot,
            action=ActionType.OPEN_LIABILITY,
            new_account=self._template(),
            counter_account_id="cash",
            amount=Decimal("12000000"),
        )

        tx = plan.primary_transaction
        loan = after.account("new-loan")
        assert tx.type == TransactionType.BORROWING
        assert tx.debit_account_id == "cash"
        assert loan.current_balance == Decimal("12000000")
        assert loan.liability.principal_amount == Decimal("12000000")
        assert loan.liability.end_date == date(2025, 1, 1)
        assert loan.logs[0].type == LogType.DISBURSEMENT
        assert loan.logs[0].id == tx.related_detail_id

        events = loan.scheduled_events
        assert len(events) == 12
        assert all(e.interest_amount == Decimal("120000") for e in events)
        assert all(e.direction == CashFlowDirection.OUTFLOW for e in events)
        assert all(e.source_id == loan.logs[0].id for e in events)
        assert after.account("cash").current_balance == Decimal("62000000")
        assert equity_gap(after) == equity_gap(snapshot)

    def test_open_liability_from_fund_is_initial_balance(self, snapshot_of, fund):
        """An existing debt recorded against the fund is an INITIAL_BALANCE."""
        plan, _ = post(
            snapshot_of(fund),
            action=ActionType.OPEN_LIABILITY,
            new_account=self._template(),
            amount=Decimal("1000"),
        )
        assert plan.primary_transaction.type == TransactionType.INITIAL_BALANCE

    def test_repay_principal(self, snapshot_of, fund, cash, loan):
        """Repayment lowers balance and principal together."""
        plan, after = post(
            snapshot_of(fund, cash, loan),
            action=ActionType.REPAY_PRINCIPAL,
            account_id="loan",
            counter_account_id="cash",
            amount=Decimal("500000"),
        )
        account = after.account("loan")
        assert plan.primary_transaction.type == TransactionType.DEBT_REPAYMENT
        assert account.current_balance == Decimal("4000000")
        assert account.liability.principal_amount == Decimal("4000000")
        assert account.logs[-1].type == LogType.REPAYMENT
        assert account.status == AccountStatus.ACTIVE

    def test_full_repayment_closes(self, snapshot_of, fund, cash, loan):
        """Repaying the whole principal closes the liability."""
        _, after = post(
            snapshot_of(fund, cash, loan),
            action=ActionType.REPAY_PRINCIPAL,
            account_id="loan",
            counter_account_id="cash",
            amount=Decimal("4500000"),
        )
        assert after.account("loan").status == AccountStatus.CLOSED
        assert after.account("loan").current_balance == Decimal("0")

    def test_over_repayment_rejected(self, snapshot_of, fund, cash, loan):
        """Repaying more than outstanding is refused."""
        with pytest.raises(OverRepaymentError):
            post(
                snapshot_of(fund, cash, loan),
                action=ActionType.REPAY_PRINCIPAL,
                account_id="loan",
                counter_account_id="cash",
                amount=Decimal("4500001"),
            )

    def test_borrow_more(self, snapshot_of, fund, cash, loan):
        """Additional borrowing raises principal."""
        _, after = post(
            snapshot_of(fund, cash, loan),
            action=ActionType.BORROW_MORE,
            account_id="loan",
            counter_account_id="cash",
            amount=Decimal("1000000"),
        )
        assert after.account("loan").liability.principal_amount == Decimal("5500000")
        assert after.account("loan").logs[-1].type == LogType.BORROW_MORE

    def test_pay_interest_is_expense_against_fund(self, snapshot_of, fund, cash, loan):
        """Interest leaves the loan untouched and reduces the fund."""
        plan, after = post(
            snapshot_of(fund, cash, loan),
            action=ActionType.PAY_INTEREST,
            account_id="loan",
            counter_account_id="cash",
            amount=Decimal("45000"),
        )
        tx = plan.primary_transaction
        assert tx.type == TransactionType.INTEREST_LOG
        assert tx.group == AccountGroup.EXPENSES
        assert after.account("fund").current_balance == Decimal("99955000")
        assert after.account("cash").current_balance == Decimal("49955000")
        assert after.account("loan").current_balance == Decimal("4500000")

    def test_extend_liability(self, snapshot_of, loan):
        """Extension moves the end date and reprojects future events only."""
        plan, after = post(
            snapshot_of(loan),
            action=ActionType.EXTEND_LIABILITY,
            account_id="loan",
            new_end_date=date(2025, 7, 1),
        )
        account = after.account("loan")
        assert plan.transactions == []
        assert account.liability.end_date == date(2025, 7, 1)
        assert account.liability.term_months == 18
        assert account.logs[-1].type == LogType.CONTRACT_ADJUSTMENT
        assert account.scheduled_events
        assert all(e.date > TRADE_DATE for e in account.scheduled_events)
        assert account.scheduled_events[-1].date == date(2025, 7, 1)
        assert account.current_balance == Decimal("4500000")

    def test_settle_liability(self, snapshot_of, fund, cash, loan):
        """One payoff of the total zeroes balance and principal exactly."""
        snapshot = snapshot_of(fund, cash, loan)
        plan, after = post(
            snapshot,
            action=ActionType.SETTLE_LIABILITY,
            account_id="loan",
            counter_account_id="cash",
            accrued_interest=Decimal("50000"),
            manual_fee=Decimal("100000"),
        )

        payoff = plan.transactions[0]
        assert payoff.type == TransactionType.DEBT_REPAYMENT
        assert payoff.amount == Decimal("4650000")
        children = plan.transactions[1:]
        assert {c.category for c in children} == {"Financial Expense", "Settlement Fee"}
        assert all(c.parent_transaction_id == payoff.id for c in children)

        account = after.account("loan")
        assert account.current_balance == Decimal("0")
        assert account.liability.principal_amount == Decimal("0")
        assert account.status == AccountStatus.CLOSED
        assert after.account("fund").current_balance == Decimal("99850000")
        assert after.account("cash").current_balance == Decimal("45350000")
        assert equity_gap(after) == equity_gap(snapshot)

    def test_settle_without_interest_needs_no_fund(self, snapshot_of, cash, loan):
        """Principal-only settlement has no fund leg."""
        plan, after = post(
            snapshot_of(cash, loan),
            action=ActionType.SETTLE_LIABILITY,
            account_id="loan",
            counter_account_id="cash",
        )
        assert len(plan.transactions) == 1
        assert after.account("loan").status == AccountStatus.CLOSED


class TestSavings:
    """Tests for savings deposits."""

    def _open(self, snapshot_of, fund, cash, savings_template):
        snapshot = snapshot_of(fund, cash)
        return post(
            snapshot,
            action=ActionType.OPEN_SAVINGS,
            date=date(2024, 1, 1),
            new_account=savings_template,
            counter_account_id="cash",
            amount=Decimal("10000000"),
        )

    def test_open_savings(self, snapshot_of, fund, cash, savings_template):
        """A deposit entry and a maturity inflow are recorded."""
        plan, after = self._open(snapshot_of, fund, cash, savings_template)
        account = after.account("savings")
        deposit = account.savings.deposits[0]

        assert plan.primary_transaction.type == TransactionType.INTERNAL_TRANSFER
        assert plan.primary_transaction.related_detail_id == deposit.id
        assert account.current_balance == Decimal("10000000")
        assert account.savings.principal_amount == Decimal("10000000")
        assert deposit.end_date == date(2025, 1, 1)
        assert len(account.scheduled_events) == 1
        assert account.scheduled_events[0].amount == Decimal("10600000")
        assert account.scheduled_events[0].direction == CashFlowDirection.INFLOW
        assert account.scheduled_events[0].source_id == deposit.id

    def test_add_deposit(self, snapshot_of, fund, cash, savings_template):
        """A second deposit adds principal and an event."""
        _, opened = self._open(snapshot_of, fund, cash, savings_template)
        _, after = post(
            opened,
            action=ActionType.ADD_SAVINGS_DEPOSIT,
            account_id="savings",
            counter_account_id="cash",
            amount=Decimal("5000000"),
        )
        account = after.account("savings")
        assert len(account.savings.deposits) == 2
        assert account.savings.principal_amount == Decimal("15000000")
        assert len(account.scheduled_events) == 2

    def test_settle_at_maturity(self, snapshot_of, fund, cash, savings_template):
        """Principal returns to cash and full-term interest is credited to the fund."""
        _, opened = self._open(snapshot_of, fund, cash, savings_template)
        deposit_id = opened.account("savings").savings.deposits[0].id

        plan, after = post(
            opened,
            action=ActionType.SETTLE_SAVINGS_DEPOSIT,
            date=date(2025, 1, 1),
            account_id="savings",
            counter_account_id="cash",
            deposit_id=deposit_id,
        )
        principal, interest = plan.transactions
        account = after.account("savings")
        deposit = account.savings.deposits[0]

        assert principal.related_detail_id == deposit_id
        assert interest.amount == Decimal("600000")
        assert interest.parent_transaction_id == principal.id
        assert deposit.status == DepositStatus.SETTLED
        assert deposit.settled_interest == Decimal("600000")
        assert account.current_balance == Decimal("0")
        assert account.status == AccountStatus.CLOSED
        assert after.account("cash").current_balance == Decimal("50600000")
        assert after.account("fund").current_balance == Decimal("100600000")

    def test_early_settlement_uses_early_rate(self, snapshot_of, fund, cash, savings_template):
        """Breaking the deposit early pays the early-withdrawal rate per day."""
        _, opened = self._open(snapshot_of, fund, cash, savings_template)
        deposit_id = opened.account("savings").savings.deposits[0].id

        plan, _ = post(
            opened,
            action=ActionType.SETTLE_SAVINGS_DEPOSIT,
            date=date(2024, 7, 1),
            account_id="savings",
            counter_account_id="cash",
            deposit_id=deposit_id,
        )
        assert plan.transactions[1].amount == Decimal("49863.01")

    def test_settle_unknown_deposit_rejected(self, snapshot_of, fund, cash, savings_template):
        """Only active deposits can be settled."""
        _, opened = self._open(snapshot_of, fund, cash, savings_template)
        with pytest.raises(AccountStateError):
            post(
                opened,
                action=ActionType.SETTLE_SAVINGS_DEPOSIT,
                account_id="savings",
                counter_account_id="cash",
                deposit_id="missing",
            )
