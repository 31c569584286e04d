"""
Ledger Poster

Turns one LedgerAction into a PostingPlan: the transactions it records and
every account delta (balance and sub-ledger) they cause.

DESIGN DECISION: The poster is pure computation against a snapshot.
It never reads or writes storage, so the whole action can be planned,
inspected and rejected before anything is written. Rejections always
happen before the plan is returned, never halfway through a commit.

Each booked transaction goes through `_book`, which derives the
balance-side effects from the shared sign rule (see rules.py). Action
handlers only add what the transaction record cannot express: log
entries, deposits, schedules, average cost and status changes.
"""

from decimal import Decimal
from typing import Callable, Optional

import structlog

from ledger_core.calculators.cost_basis import weighted_average_cost
from ledger_core.calculators.money import ZERO, quantize
from ledger_core.calculators.schedule import add_months, generate_schedule
from ledger_core.calculators.settlement import estimate_accrued_interest, settle
from ledger_core.config import LedgerSettings, get_settings
from ledger_core.models.account import (
    Account,
    AccountGroup,
    AccountLog,
    AccountStatus,
    CashFlowDirection,
    DepositStatus,
    InvestmentDetails,
    LiabilityDetails,
    LogType,
    PaymentCycle,
    RatePeriod,
    SavingsDeposit,
    SavingsDetails,
)
from ledger_core.models.ledger import (
    AccountDelta,
    FundLinkRepair,
    LedgerSnapshot,
    PostingPlan,
)
from ledger_core.models.transaction import (
    ActionType,
    LedgerAction,
    Transaction,
    TransactionType,
)
from ledger_core.models.validation import ValidationIssue
from ledger_core.posting.errors import (
    AccountStateError,
    ActionValidationError,
    MissingEquityFundError,
    OverRepaymentError,
    OversellError,
    UnknownAccountError,
)
from ledger_core.posting.rules import (
    DEBIT_NORMAL_GROUPS,
    REALIZED_GAIN,
    REALIZED_LOSS,
    REVALUATION,
    UNREALIZED_RELEASE,
    has_position,
    position_shortfall,
    transaction_deltas,
)
from ledger_core.services.storage.interface import select_default_equity_fund

logger = structlog.get_logger(__name__)


def _missing(field: str, message: str) -> ActionValidationError:
    return ActionValidationError([ValidationIssue(
        field=field,
        issue_type="missing",
        message=message,
        severity="error",
    )])


def _required_amount(action: LedgerAction) -> Decimal:
    if not action.amount:
        raise ActionValidationError([ValidationIssue(
            field="amount",
            issue_type="invalid_value",
            message="amount must be greater than zero",
            severity="error",
        )])
    return action.amount


def annual_rate(rate: Decimal, period: RatePeriod) -> Decimal:
    return rate * 12 if period == RatePeriod.MONTHLY else rate


class LedgerPoster:
    """
    Plans the postings of financial actions against one snapshot.

    Usage:
        poster = LedgerPoster(snapshot)
        plan = poster.post(action)
    """

    def __init__(
        self,
        snapshot: LedgerSnapshot,
        settings: Optional[LedgerSettings] = None,
    ):
        self._snapshot = snapshot
        self._settings = settings or get_settings().ledger
        self._working: dict[str, Account] = {}
        self._handlers: dict[ActionType, Callable[[LedgerAction, PostingPlan], None]] = {
            ActionType.TRANSFER: self._transfer,
            ActionType.OPEN_ACCOUNT: self._open_account,
            ActionType.BUY_INVESTMENT: self._buy_investment,
            ActionType.SELL_INVESTMENT: self._sell_investment,
            ActionType.REVALUE_INVESTMENT: self._revalue_investment,
            ActionType.INVEST_REAL_ESTATE: self._invest_real_estate,
            ActionType.OPEN_LIABILITY: self._open_liability,
            ActionType.BORROW_MORE: self._borrow_more,
            ActionType.REPAY_PRINCIPAL: self._repay_principal,
            ActionType.PAY_INTEREST: self._pay_interest,
            ActionType.EXTEND_LIABILITY: self._extend_liability,
            ActionType.SETTLE_LIABILITY: self._settle_liability,
            ActionType.OPEN_SAVINGS: self._open_savings,
            ActionType.ADD_SAVINGS_DEPOSIT: self._add_savings_deposit,
            ActionType.SETTLE_SAVINGS_DEPOSIT: self._settle_savings_deposit,
        }

    def post(self, action: LedgerAction) -> PostingPlan:
        """
        Plan all writes of `action`.

        Raises:
            ActionValidationError: Required fields missing or inconsistent
            UnknownAccountError: A referenced account is not in the snapshot
            AccountStateError: Operation not allowed for the account
            OversellError / OverRepaymentError: More than held
            MissingEquityFundError: A required fund leg has no Equity Fund
        """
        self._working = dict(self._snapshot.accounts)
        plan = PostingPlan()
        self._handlers[action.action](action, plan)

        logger.info(
            "action_planned",
            action=action.action.value,
            transactions=len(plan.transactions),
            accounts=len(plan.merged_deltas()),
            fund_link_repairs=len(plan.fund_link_repairs),
        )
        return plan

    # =========================================================================
    # BUILDING BLOCKS
    # =========================================================================

    def _account(self, account_id: Optional[str], field: str = "account_id") -> Account:
        if not account_id:
            raise _missing(field, f"{field} is required for this action")
        account = self._working.get(account_id)
        if account is None:
            raise UnknownAccountError(account_id)
        return account

    def _active(
        self,
        account_id: Optional[str],
        field: str = "account_id",
        allowed: tuple[AccountStatus, ...] = (AccountStatus.ACTIVE,),
    ) -> Account:
        account = self._account(account_id, field)
        if account.status not in allowed:
            raise AccountStateError(
                account.id, f"Account '{account.name}' is {account.status.value}"
            )
        return account

    def _require(self, account: Account, kind: type, label: str):
        if not isinstance(account.details, kind):
            raise AccountStateError(account.id, f"Account '{account.name}' is not {label}")
        return account.details

    def _add_account(self, plan: PostingPlan, account: Account) -> None:
        plan.new_accounts.append(account)
        self._working[account.id] = account

    def _apply(self, plan: PostingPlan, delta: AccountDelta) -> None:
        account = self._working[delta.account_id]
        plan.touch(account)
        plan.add_delta(delta)
        self._working[delta.account_id] = delta.apply_to(account)

    def _patch(self, plan: PostingPlan, account_id: str, patch: dict) -> None:
        self._apply(plan, AccountDelta(account_id=account_id, patch=patch))

    def _book(self, plan: PostingPlan, tx: Transaction) -> Transaction:
        """Record `tx` and apply its balance-side effects to both accounts."""
        debit = self._account(tx.debit_account_id, "debit_account_id")
        credit = self._account(tx.credit_account_id, "credit_account_id")

        for account, delta in zip((debit, credit), transaction_deltas(tx, debit, credit)):
            shortfall = position_shortfall(account, delta)
            if shortfall is not None:
                field, held, change = shortfall
                if field == "total_units":
                    raise OversellError(account.id, -change, held)
                raise OverRepaymentError(account.id, -change, held)
            self._apply(plan, delta)

        plan.transactions.append(tx)
        return tx

    def _append_log(self, plan: PostingPlan, account_id: str, log: AccountLog, **extra) -> None:
        patch = {"logs": self._working[account_id].logs + [log]}
        patch.update(extra)
        self._patch(plan, account_id, patch)

    def _equity_fund(self, plan: PostingPlan, account: Optional[Account]) -> Account:
        """
        The fund receiving `account`'s gains, losses, fees and interest.

        Falls back to the default Equity Fund. When the fallback is used
        the link is repaired on the account as a separate, recorded step.
        """
        if account is not None and account.linked_fund_id:
            fund = self._working.get(account.linked_fund_id)
            if fund is not None and fund.is_equity_fund and fund.is_active:
                return fund

        candidates = [
            a for a in self._working.values()
            if account is None or a.id != account.id
        ]
        fund = select_default_equity_fund(candidates)
        if fund is None:
            raise MissingEquityFundError(
                account.id if account else None,
                suggested_name=self._settings.default_equity_fund_name,
            )

        if account is not None and not account.is_equity_fund:
            self._repair_fund_link(plan, account, fund)
        return fund

    def _repair_fund_link(self, plan: PostingPlan, account: Account, fund: Account) -> None:
        plan.fund_link_repairs.append(FundLinkRepair(
            account_id=account.id,
            fund_id=fund.id,
            previous_fund_id=account.linked_fund_id,
        ))
        self._patch(plan, account.id, {"linked_fund_id": fund.id})
        logger.warning(
            "equity_fund_link_repaired",
            account_id=account.id,
            fund_id=fund.id,
            previous_fund_id=account.linked_fund_id,
        )

    def _fresh_account(self, template: Optional[Account], field: str = "new_account") -> Account:
        """A new account with an empty position. Positions are posted, never declared."""
        if template is None:
            raise _missing(field, "new_account is required for this action")
        if template.id in self._working:
            raise AccountStateError(template.id, f"Account {template.id} already exists")
        if has_position(template) or template.logs:
            raise AccountStateError(
                template.id,
                "New accounts start empty; post the opening balance through the action amount",
            )
        return template.model_copy(update={
            "status": AccountStatus.ACTIVE,
            "realized_pnl": ZERO,
            "unrealized_pnl": ZERO,
            "version": 0,
        })

    def _tx(self, action: LedgerAction, **fields) -> Transaction:
        fields.setdefault("date", action.date)
        fields.setdefault("note", action.note)
        if action.category is not None:
            fields.setdefault("category", action.category)
        return Transaction(**fields)

    # =========================================================================
    # GENERIC
    # =========================================================================

    def _transfer(self, action: LedgerAction, plan: PostingPlan) -> None:
        debit = self._active(action.debit_account_id, "debit_account_id")
        credit = self._active(action.credit_account_id, "credit_account_id")
        if action.transaction_type is None:
            raise _missing("transaction_type", "transaction_type is required for a transfer")

        if credit.group == AccountGroup.INCOME:
            group = AccountGroup.INCOME
        elif debit.group == AccountGroup.EXPENSES:
            group = AccountGroup.EXPENSES
        else:
            group = debit.group

        self._book(plan, self._tx(
            action,
            debit_account_id=debit.id,
            credit_account_id=credit.id,
            amount=_required_amount(action),
            type=action.transaction_type,
            group=group,
        ))

    def _open_account(self, action: LedgerAction, plan: PostingPlan) -> None:
        account = self._fresh_account(action.new_account)
        self._add_account(plan, account)

        if account.investment is not None and action.units:
            counter = self._opening_counter(action, plan, account)
            tx_type = (
                TransactionType.INITIAL_BALANCE if counter.is_equity_fund
                else TransactionType.ASSET_BUY
            )
            self._buy_into(plan, action, account, counter, tx_type)
            return

        if not action.amount:
            return

        counter = self._opening_counter(action, plan, account)
        if account.group in DEBIT_NORMAL_GROUPS:
            debit, credit = account, counter
        else:
            debit, credit = counter, account
        self._book(plan, self._tx(
            action,
            debit_account_id=debit.id,
            credit_account_id=credit.id,
            amount=action.amount,
            type=TransactionType.INITIAL_BALANCE,
            group=account.group,
        ))

    def _opening_counter(self, action: LedgerAction, plan: PostingPlan, account: Account) -> Account:
        if action.counter_account_id:
            return self._active(action.counter_account_id, "counter_account_id")
        return self._equity_fund(plan, account)

    # =========================================================================
    # INVESTMENTS
    # =========================================================================

    def _buy_into(
        self,
        plan: PostingPlan,
        action: LedgerAction,
        account: Account,
        counter: Account,
        tx_type: TransactionType,
    ) -> None:
        if action.units is None or action.price is None:
            raise _missing("units", "units and price are required to buy")

        position = self._working[account.id].investment
        new_avg = weighted_average_cost(
            position.total_units, position.avg_price, action.units, action.price, action.fees
        )
        log = AccountLog(
            date=action.date,
            type=LogType.BUY,
            units=action.units,
            price=action.price,
            fees=action.fees,
            note=action.note,
        )
        self._book(plan, self._tx(
            action,
            debit_account_id=account.id,
            credit_account_id=counter.id,
            amount=action.units * action.price + action.fee_amount,
            type=tx_type,
            units=action.units,
            price=action.price,
            fees=action.fees,
            related_detail_id=log.id,
            category=action.category or "Investment",
            group=AccountGroup.ASSETS,
        ))

        extra = {
            "details.avg_price": new_avg,
            "details.market_price": action.price,
        }
        if self._working[account.id].status != AccountStatus.ACTIVE:
            extra["status"] = AccountStatus.ACTIVE.value
        self._append_log(plan, account.id, log, **extra)

    def _buy_investment(self, action: LedgerAction, plan: PostingPlan) -> None:
        account = self._active(
            action.account_id,
            allowed=(AccountStatus.ACTIVE, AccountStatus.LIQUIDATED),
        )
        self._require(account, InvestmentDetails, "an investment")
        counter = self._active(action.counter_account_id, "counter_account_id")
        self._buy_into(plan, action, account, counter, TransactionType.ASSET_BUY)

    def _sell_investment(self, action: LedgerAction, plan: PostingPlan) -> None:
        """
        Sell units at the current average cost.

        Postings:
            proceeds   ASSET_SELL         Dr cash        Cr investment
            P/L        ASSET_REVALUATION  Dr investment  Cr fund (gain, reversed for loss)
            release    ASSET_REVALUATION  Dr fund        Cr investment (unrealized share)
        """
        account = self._active(action.account_id)
        position = self._require(account, InvestmentDetails, "an investment")
        counter = self._active(action.counter_account_id, "counter_account_id")
        if action.units is None or action.price is None:
            raise _missing("units", "units and price are required to sell")

        quantity = action.units
        held = position.total_units
        if quantity > held:
            raise OversellError(account.id, quantity, held)

        proceeds = action.price * quantity - action.fee_amount
        if proceeds < 0:
            raise ActionValidationError([ValidationIssue(
                field="fees",
                issue_type="invalid_value",
                message="Fees exceed the gross sale value",
                severity="error",
            )])

        full_sale = quantity == held
        if full_sale:
            unrealized_share = account.unrealized_pnl
            carrying = account.current_balance - unrealized_share
        else:
            unrealized_share = account.unrealized_pnl * quantity / held
            carrying = position.avg_price * quantity
        pnl = proceeds - carrying

        log = AccountLog(
            date=action.date,
            type=LogType.SELL,
            units=quantity,
            price=action.price,
            fees=action.fees,
            note=action.note,
        )
        sale = self._book(plan, self._tx(
            action,
            debit_account_id=counter.id,
            credit_account_id=account.id,
            amount=proceeds,
            type=TransactionType.ASSET_SELL,
            units=quantity,
            price=action.price,
            fees=action.fees,
            related_detail_id=log.id,
            category=action.category or "Investment",
            group=AccountGroup.ASSETS,
        ))

        if pnl != 0 or unrealized_share != 0:
            fund = self._equity_fund(plan, account)
            self._fund_leg(plan, action, sale, account, fund, pnl, REALIZED_GAIN, REALIZED_LOSS)
            self._fund_leg(plan, action, sale, account, fund, -unrealized_share,
                           UNREALIZED_RELEASE, UNREALIZED_RELEASE)

        extra = {"status": AccountStatus.LIQUIDATED.value} if full_sale else {}
        self._append_log(plan, account.id, log, **extra)

    def _fund_leg(
        self,
        plan: PostingPlan,
        action: LedgerAction,
        parent: Transaction,
        account: Account,
        fund: Account,
        amount: Decimal,
        gain_category: str,
        loss_category: str,
    ) -> None:
        """Revaluation leg between an investment and its fund; positive raises the investment."""
        if amount == 0:
            return
        if amount > 0:
            debit, credit, category = account, fund, gain_category
        else:
            debit, credit, category = fund, account, loss_category
        self._book(plan, self._tx(
            action,
            debit_account_id=debit.id,
            credit_account_id=credit.id,
            amount=abs(amount),
            type=TransactionType.ASSET_REVALUATION,
            parent_transaction_id=parent.id,
            category=category,
            group=AccountGroup.CAPITAL,
        ))

    def _revalue_investment(self, action: LedgerAction, plan: PostingPlan) -> None:
        account = self._active(action.account_id)
        position = self._require(account, InvestmentDetails, "an investment")
        if action.price is None:
            raise _missing("price", "price is required to revalue")

        log = AccountLog(
            date=action.date,
            type=LogType.REVALUE,
            price=action.price,
            note=action.note,
        )
        difference = position.total_units * action.price - account.current_balance
        if difference != 0:
            fund = self._equity_fund(plan, account)
            if difference > 0:
                debit, credit = account, fund
            else:
                debit, credit = fund, account
            self._book(plan, self._tx(
                action,
                debit_account_id=debit.id,
                credit_account_id=credit.id,
                amount=abs(difference),
                type=TransactionType.ASSET_REVALUATION,
                price=action.price,
                related_detail_id=log.id,
                category=REVALUATION,
                group=AccountGroup.ASSETS,
            ))
        self._append_log(plan, account.id, log, **{"details.market_price": action.price})

    def _invest_real_estate(self, action: LedgerAction, plan: PostingPlan) -> None:
        amount = _required_amount(action)
        account = self._active(action.account_id)
        if account.real_estate is None:
            raise AccountStateError(account.id, f"Account '{account.name}' is not real estate")
        counter = self._active(action.counter_account_id, "counter_account_id")

        log = AccountLog(date=action.date, type=LogType.CAPEX, price=amount, note=action.note)
        self._book(plan, self._tx(
            action,
            debit_account_id=account.id,
            credit_account_id=counter.id,
            amount=amount,
            type=TransactionType.ASSET_INVESTMENT,
            related_detail_id=log.id,
            category=action.category or "Real Estate",
            group=AccountGroup.ASSETS,
        ))
        self._append_log(plan, account.id, log)

    # =========================================================================
    # LIABILITIES
    # =========================================================================

    def _open_liability(self, action: LedgerAction, plan: PostingPlan) -> None:
        template = action.new_account
        if template is None:
            raise _missing("new_account", "new_account is required to open a liability")
        terms = template.liability
        if terms is None:
            raise AccountStateError(template.id, "A liability needs liability details")

        amount = action.amount if action.amount is not None else terms.principal_amount
        start = terms.start_date or action.date
        term = action.term_months if action.term_months is not None else terms.term_months
        cycle = action.payment_cycle or terms.payment_cycle
        rate = action.interest_rate if action.interest_rate is not None else terms.interest_rate
        payment_day = (
            action.fixed_payment_day if action.fixed_payment_day is not None
            else terms.payment_day
        )

        log = AccountLog(date=action.date, type=LogType.DISBURSEMENT, price=amount, note=action.note)
        events = generate_schedule(
            amount,
            annual_rate(rate, terms.interest_period),
            start,
            term,
            cycle,
            CashFlowDirection.OUTFLOW,
            template.name,
            fixed_payment_day=payment_day,
            account_id=template.id,
            source_id=log.id,
        )
        details = terms.model_copy(update={
            "principal_amount": ZERO,
            "interest_rate": rate,
            "term_months": term,
            "payment_cycle": cycle,
            "payment_day": payment_day,
            "start_date": start,
            "end_date": terms.end_date or (add_months(start, term) if term else None),
        })
        account = self._fresh_account(template.model_copy(update={"details": details}))
        self._add_account(plan, account)

        counter = self._opening_counter(action, plan, account)
        tx_type = (
            TransactionType.INITIAL_BALANCE if counter.is_equity_fund
            else TransactionType.BORROWING
        )
        self._book(plan, self._tx(
            action,
            debit_account_id=counter.id,
            credit_account_id=account.id,
            amount=amount,
            type=tx_type,
            related_detail_id=log.id,
            category=action.category or "Liability",
            group=AccountGroup.CAPITAL,
        ))
        self._append_log(plan, account.id, log, scheduled_events=events)

    def _borrow_more(self, action: LedgerAction, plan: PostingPlan) -> None:
        amount = _required_amount(action)
        account = self._active(action.account_id)
        self._require(account, LiabilityDetails, "a liability")
        counter = self._active(action.counter_account_id, "counter_account_id")

        log = AccountLog(date=action.date, type=LogType.BORROW_MORE, price=amount, note=action.note)
        self._book(plan, self._tx(
            action,
            debit_account_id=counter.id,
            credit_account_id=account.id,
            amount=amount,
            type=TransactionType.BORROWING,
            related_detail_id=log.id,
            category=action.category or "Liability",
            group=AccountGroup.CAPITAL,
        ))
        self._append_log(plan, account.id, log)

    def _repay_principal(self, action: LedgerAction, plan: PostingPlan) -> None:
        amount = _required_amount(action)
        account = self._active(action.account_id)
        terms = self._require(account, LiabilityDetails, "a liability")
        counter = self._active(action.counter_account_id, "counter_account_id")

        outstanding = terms.principal_amount
        if amount > outstanding:
            raise OverRepaymentError(account.id, amount, outstanding)

        log = AccountLog(date=action.date, type=LogType.REPAYMENT, price=amount, note=action.note)
        self._book(plan, self._tx(
            action,
            debit_account_id=account.id,
            credit_account_id=counter.id,
            amount=amount,
            type=TransactionType.DEBT_REPAYMENT,
            related_detail_id=log.id,
            category=action.category or "Liability",
            group=AccountGroup.CAPITAL,
        ))
        extra = {"status": AccountStatus.CLOSED.value} if amount == outstanding else {}
        self._append_log(plan, account.id, log, **extra)

    def _pay_interest(self, action: LedgerAction, plan: PostingPlan) -> None:
        amount = _required_amount(action)
        account = self._active(action.account_id)
        self._require(account, LiabilityDetails, "a liability")
        counter = self._active(action.counter_account_id, "counter_account_id")
        fund = self._equity_fund(plan, account)

        self._book(plan, self._tx(
            action,
            debit_account_id=fund.id,
            credit_account_id=counter.id,
            amount=amount,
            type=TransactionType.INTEREST_LOG,
            category=action.category or "Financial Expense",
            note=action.note or f"Interest: {account.name}",
            group=AccountGroup.EXPENSES,
        ))

    def _extend_liability(self, action: LedgerAction, plan: PostingPlan) -> None:
        """Move the maturity date. No money moves, so no transaction is recorded."""
        account = self._active(action.account_id)
        terms = self._require(account, LiabilityDetails, "a liability")
        if action.new_end_date is None:
            raise _missing("new_end_date", "new_end_date is required to extend")

        log = AccountLog(
            date=action.date,
            type=LogType.CONTRACT_ADJUSTMENT,
            price=ZERO,
            note=action.note or f"Extended to {action.new_end_date.isoformat()}",
        )
        extra: dict = {"details.end_date": action.new_end_date}

        if terms.start_date is not None:
            start = terms.start_date
            term = (
                (action.new_end_date.year - start.year) * 12
                + action.new_end_date.month - start.month
            )
            events = generate_schedule(
                terms.principal_amount,
                annual_rate(terms.interest_rate, terms.interest_period),
                start,
                term,
                terms.payment_cycle,
                CashFlowDirection.OUTFLOW,
                account.name,
                fixed_payment_day=terms.payment_day,
                account_id=account.id,
                source_id=log.id,
            )
            kept = [e for e in account.scheduled_events if e.completed or e.date <= action.date]
            extra["details.term_months"] = term
            extra["scheduled_events"] = kept + [e for e in events if e.date > action.date]

        self._append_log(plan, account.id, log, **extra)

    def _settle_liability(self, action: LedgerAction, plan: PostingPlan) -> None:
        """
        Close a liability with one payoff transaction.

        Interest and fee legs are booked against the fund onto the
        liability first, so the payoff of the total lands balance and
        principal exactly on zero.
        """
        account = self._active(action.account_id)
        terms = self._require(account, LiabilityDetails, "a liability")
        counter = self._active(action.counter_account_id, "counter_account_id")

        accrued = (
            action.accrued_interest if action.accrued_interest is not None
            else account.accrued_interest
        )
        fee = action.manual_fee if action.manual_fee is not None else action.fee_amount
        quote = settle(terms.principal_amount, accrued, fee)

        if account.current_balance != terms.principal_amount:
            plan.warnings.append(
                f"Balance {account.current_balance} of '{account.name}' differs from "
                f"principal {terms.principal_amount}; settlement zeroes the principal"
            )

        log = AccountLog(date=action.date, type=LogType.REPAYMENT, price=quote.total, note="Settlement")
        payoff = self._tx(
            action,
            debit_account_id=account.id,
            credit_account_id=counter.id,
            amount=quote.total,
            type=TransactionType.DEBT_REPAYMENT,
            related_detail_id=log.id,
            category=action.category or "Liability",
            note=action.note or f"Settlement: {account.name}",
            group=AccountGroup.CAPITAL,
        )

        if quote.accrued_interest > 0 or quote.fee > 0:
            fund = self._equity_fund(plan, account)
            for amount, category in (
                (quote.accrued_interest, "Financial Expense"),
                (quote.fee, "Settlement Fee"),
            ):
                if amount > 0:
                    self._book(plan, self._tx(
                        action,
                        debit_account_id=fund.id,
                        credit_account_id=account.id,
                        amount=amount,
                        type=TransactionType.INTEREST_LOG,
                        parent_transaction_id=payoff.id,
                        category=category,
                        group=AccountGroup.EXPENSES,
                    ))

        self._book(plan, payoff)
        # payoff is the primary record
        plan.transactions.remove(payoff)
        plan.transactions.insert(0, payoff)

        self._append_log(
            plan,
            account.id,
            log,
            status=AccountStatus.CLOSED.value,
            accrued_interest=ZERO,
        )

    # =========================================================================
    # SAVINGS
    # =========================================================================

    def _open_savings(self, action: LedgerAction, plan: PostingPlan) -> None:
        template = action.new_account
        if template is None:
            raise _missing("new_account", "new_account is required to open savings")
        book = template.savings
        if book is None:
            raise AccountStateError(template.id, "A savings account needs savings details")

        amount = action.amount if action.amount is not None else book.principal_amount
        details = book.model_copy(update={
            "principal_amount": ZERO,
            "deposits": [],
            "start_date": book.start_date or action.date,
        })
        account = self._fresh_account(template.model_copy(update={"details": details}))
        self._add_account(plan, account)

        counter = self._opening_counter(action, plan, account)
        self._deposit(plan, action, account, counter, amount)

    def _add_savings_deposit(self, action: LedgerAction, plan: PostingPlan) -> None:
        account = self._active(
            action.account_id,
            allowed=(AccountStatus.ACTIVE, AccountStatus.CLOSED),
        )
        self._require(account, SavingsDetails, "a savings account")
        counter = self._active(action.counter_account_id, "counter_account_id")
        self._deposit(plan, action, account, counter, _required_amount(action))

    def _deposit(
        self,
        plan: PostingPlan,
        action: LedgerAction,
        account: Account,
        counter: Account,
        amount: Decimal,
    ) -> None:
        book = account.savings
        rate = action.interest_rate if action.interest_rate is not None else book.interest_rate
        term = action.term_months if action.term_months is not None else book.term_months

        deposit = SavingsDeposit(
            amount=amount,
            interest_rate=rate,
            term_months=term,
            start_date=action.date,
            end_date=add_months(action.date, term) if term else None,
        )
        events = generate_schedule(
            amount,
            rate,
            action.date,
            term,
            PaymentCycle.END_OF_TERM,
            CashFlowDirection.INFLOW,
            account.name,
            account_id=account.id,
            source_id=deposit.id,
        )

        tx_type = (
            TransactionType.INITIAL_BALANCE if counter.is_equity_fund
            else TransactionType.INTERNAL_TRANSFER
        )
        self._book(plan, self._tx(
            action,
            debit_account_id=account.id,
            credit_account_id=counter.id,
            amount=amount,
            type=tx_type,
            related_detail_id=deposit.id,
            category=action.category or "Savings",
            group=AccountGroup.ASSETS,
        ))

        current = self._working[account.id]
        patch = {
            "details.deposits": current.savings.deposits + [deposit],
            "scheduled_events": current.scheduled_events + events,
        }
        if current.status != AccountStatus.ACTIVE:
            patch["status"] = AccountStatus.ACTIVE.value
        self._patch(plan, account.id, patch)

    def _settle_savings_deposit(self, action: LedgerAction, plan: PostingPlan) -> None:
        account = self._active(action.account_id)
        book = self._require(account, SavingsDetails, "a savings account")
        counter = self._active(action.counter_account_id, "counter_account_id")

        deposit = next((d for d in book.deposits if d.id == action.deposit_id), None)
        if deposit is None or deposit.status != DepositStatus.ACTIVE:
            raise AccountStateError(
                account.id, f"No active deposit {action.deposit_id} in '{account.name}'"
            )

        if action.accrued_interest is not None:
            interest = action.accrued_interest
        elif deposit.end_date is None or action.date >= deposit.end_date:
            interest = quantize(
                deposit.amount * deposit.interest_rate / Decimal(100)
                * Decimal(deposit.term_months) / Decimal(12)
            )
        else:
            interest = estimate_accrued_interest(
                deposit.amount,
                book.early_withdrawal_rate,
                RatePeriod.YEARLY,
                deposit.start_date,
                action.date,
            )

        withdrawal = self._book(plan, self._tx(
            action,
            debit_account_id=counter.id,
            credit_account_id=account.id,
            amount=deposit.amount,
            type=TransactionType.INTERNAL_TRANSFER,
            related_detail_id=deposit.id,
            category=action.category or "Savings",
            group=AccountGroup.ASSETS,
        ))
        if interest > 0:
            fund = self._equity_fund(plan, account)
            self._book(plan, self._tx(
                action,
                debit_account_id=counter.id,
                credit_account_id=fund.id,
                amount=interest,
                type=TransactionType.INTEREST_LOG,
                parent_transaction_id=withdrawal.id,
                category="Interest Income",
                group=AccountGroup.INCOME,
            ))

        settled = deposit.model_copy(update={
            "status": DepositStatus.SETTLED,
            "settled_date": action.date,
            "settled_interest": interest,
        })
        deposits = [settled if d.id == deposit.id else d for d in self._working[account.id].savings.deposits]
        patch: dict = {"details.deposits": deposits}
        if all(d.status == DepositStatus.SETTLED for d in deposits):
            patch["status"] = AccountStatus.CLOSED.value
        self._patch(plan, account.id, patch)


def post_action(
    snapshot: LedgerSnapshot,
    action: LedgerAction,
    settings: Optional[LedgerSettings] = None,
) -> PostingPlan:
    """Convenience wrapper: plan one action against a snapshot."""
    return LedgerPoster(snapshot, settings).post(action)
