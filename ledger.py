from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import case, func, or_, select
from sqlalchemy.orm import Session

from models import (
    Account,
    AccountType,
    Category,
    Payee,
    ScheduledTransaction,
    Transaction,
    TransactionSplit,
    TransactionStatus,
)
from money import cents_to_decimal
from periods import DateRange
from rollup import CategoryIndex, build_category_index


@dataclass(frozen=True)
class CategoryTotalRow:
    category_id: Optional[int]
    currency_code: str
    total: Decimal


@dataclass(frozen=True)
class PayeeTotalRow:
    payee_id: Optional[int]
    payee_name: Optional[str]
    canonical_name: Optional[str]
    currency_code: str
    total: Decimal


@dataclass(frozen=True)
class MonthlyCategoryRow:
    month: str
    category_id: Optional[int]
    currency_code: str
    total: Decimal


@dataclass(frozen=True)
class MonthlyFlowRow:
    month: str
    currency_code: str
    income: Decimal
    expenses: Decimal


@dataclass(frozen=True)
class YearMonthFlowRow:
    year: int
    month: int
    currency_code: str
    income: Decimal
    expenses: Decimal


@dataclass(frozen=True)
class DayCategoryRow:
    day_of_week: int
    category_id: Optional[int]
    currency_code: str
    tx_count: int
    total: Decimal


@dataclass(frozen=True)
class ExpenseRow:
    id: int
    transaction_date: date
    payee_id: Optional[int]
    payee_name: Optional[str]
    currency_code: str
    category_id: Optional[int]
    amount: Decimal  # magnitude, always positive


@dataclass(frozen=True)
class TaxRow:
    category_id: Optional[int]
    currency_code: str
    amount: Decimal  # signed


@dataclass(frozen=True)
class RecurringGroupRow:
    payee_id: Optional[int]
    payee_name_normalized: str
    payee_name: str
    category_name: Optional[str]
    currency_code: str
    occurrences: int
    total_amount: Decimal
    last_transaction_date: date


@dataclass(frozen=True)
class BillTemplate:
    id: int
    name: str
    amount: Decimal
    payee_name: Optional[str]


@dataclass(frozen=True)
class BillTransactionRow:
    id: int
    transaction_date: date
    currency_code: str
    amount: Decimal  # magnitude
    payee_name_normalized: Optional[str]


@dataclass(frozen=True)
class LedgerEntry:
    id: int
    transaction_date: date
    currency_code: str
    amount: Decimal  # signed
    payee_name: Optional[str]
    description: Optional[str]
    account_name: Optional[str]


@dataclass(frozen=True)
class UncategorizedSummaryRow:
    currency_code: str
    total_count: int
    expense_count: int
    expense_total: Decimal
    income_count: int
    income_total: Decimal


_split_amount = func.coalesce(TransactionSplit.amount_cents, Transaction.amount_cents)
_split_category = func.coalesce(TransactionSplit.category_id, Transaction.category_id)
_payee_display = func.coalesce(Payee.name, Transaction.payee_name)


class LedgerStore:
    """Grouped, read-only queries over one user's ledger.

    Every query skips transfers, void and child transactions; investment
    accounts are skipped unless a query says otherwise.
    """

    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def category_index(self) -> CategoryIndex:
        categories = self.session.scalars(
            select(Category).where(Category.user_id == self.user_id)
        ).all()
        return build_category_index(categories)

    def _reportable(
        self,
        *columns,
        with_splits: bool = False,
        with_payee: bool = False,
        exclude_investment: bool = True,
    ):
        stmt = (
            select(*columns)
            .select_from(Transaction)
            .join(Account, Account.id == Transaction.account_id)
            .where(
                Transaction.user_id == self.user_id,
                Transaction.is_transfer.is_(False),
                or_(
                    Transaction.status.is_(None),
                    Transaction.status != TransactionStatus.void,
                ),
                Transaction.parent_transaction_id.is_(None),
            )
        )
        if exclude_investment:
            stmt = stmt.where(Account.account_type != AccountType.investment)
        if with_splits:
            stmt = stmt.outerjoin(
                TransactionSplit, TransactionSplit.transaction_id == Transaction.id
            ).where(TransactionSplit.transfer_account_id.is_(None))
        if with_payee:
            stmt = stmt.outerjoin(Payee, Payee.id == Transaction.payee_id)
        return stmt

    @staticmethod
    def _within(stmt, window: DateRange):
        stmt = stmt.where(Transaction.transaction_date <= window.end)
        if window.start:
            stmt = stmt.where(Transaction.transaction_date >= window.start)
        return stmt

    def category_totals(
        self, window: DateRange, *, income: bool = False
    ) -> list[CategoryTotalRow]:
        if income:
            total = func.sum(_split_amount)
            sign = _split_amount > 0
        else:
            total = func.sum(func.abs(_split_amount))
            sign = _split_amount < 0
        category_id = _split_category.label("category_id")
        stmt = self._within(
            self._reportable(
                category_id,
                Transaction.currency_code,
                total.label("total"),
                with_splits=True,
            ).where(sign),
            window,
        )
        stmt = stmt.group_by(_split_category, Transaction.currency_code).order_by(
            _split_category, Transaction.currency_code
        )
        return [
            CategoryTotalRow(
                category_id=row.category_id,
                currency_code=row.currency_code,
                total=cents_to_decimal(row.total),
            )
            for row in self.session.execute(stmt)
        ]

    def payee_totals(self, window: DateRange) -> list[PayeeTotalRow]:
        stmt = self._within(
            self._reportable(
                Transaction.payee_id,
                Transaction.payee_name,
                Payee.name.label("canonical_name"),
                Transaction.currency_code,
                func.sum(func.abs(Transaction.amount_cents)).label("total"),
                with_payee=True,
            ).where(Transaction.amount_cents < 0),
            window,
        )
        keys = (
            Transaction.payee_id,
            Transaction.payee_name,
            Payee.name,
            Transaction.currency_code,
        )
        stmt = stmt.group_by(*keys).order_by(*keys)
        return [
            PayeeTotalRow(
                payee_id=row.payee_id,
                payee_name=row.payee_name,
                canonical_name=row.canonical_name,
                currency_code=row.currency_code,
                total=cents_to_decimal(row.total),
            )
            for row in self.session.execute(stmt)
        ]

    def monthly_category_totals(self, window: DateRange) -> list[MonthlyCategoryRow]:
        month = func.strftime("%Y-%m", Transaction.transaction_date)
        stmt = self._within(
            self._reportable(
                month.label("month"),
                _split_category.label("category_id"),
                Transaction.currency_code,
                func.sum(func.abs(_split_amount)).label("total"),
                with_splits=True,
            ).where(_split_amount < 0),
            window,
        )
        stmt = stmt.group_by(month, _split_category, Transaction.currency_code).order_by(
            month, _split_category, Transaction.currency_code
        )
        return [
            MonthlyCategoryRow(
                month=row.month,
                category_id=row.category_id,
                currency_code=row.currency_code,
                total=cents_to_decimal(row.total),
            )
            for row in self.session.execute(stmt)
        ]

    def _flow_columns(self):
        income = func.sum(case((_split_amount > 0, _split_amount), else_=0))
        expenses = func.sum(
            case((_split_amount < 0, func.abs(_split_amount)), else_=0)
        )
        return income.label("income"), expenses.label("expenses")

    def monthly_flows(self, window: DateRange) -> list[MonthlyFlowRow]:
        month = func.strftime("%Y-%m", Transaction.transaction_date)
        stmt = self._within(
            self._reportable(
                month.label("month"),
                Transaction.currency_code,
                *self._flow_columns(),
                with_splits=True,
            ),
            window,
        )
        stmt = stmt.group_by(month, Transaction.currency_code).order_by(
            month, Transaction.currency_code
        )
        return [
            MonthlyFlowRow(
                month=row.month,
                currency_code=row.currency_code,
                income=cents_to_decimal(row.income),
                expenses=cents_to_decimal(row.expenses),
            )
            for row in self.session.execute(stmt)
        ]

    def year_month_flows(self, first_year: int, last_year: int) -> list[YearMonthFlowRow]:
        year = func.strftime("%Y", Transaction.transaction_date)
        month = func.strftime("%m", Transaction.transaction_date)
        stmt = self._within(
            self._reportable(
                year.label("year"),
                month.label("month"),
                Transaction.currency_code,
                *self._flow_columns(),
                with_splits=True,
            ),
            DateRange(date(first_year, 1, 1), date(last_year, 12, 31)),
        )
        stmt = stmt.group_by(year, month, Transaction.currency_code).order_by(
            year, month, Transaction.currency_code
        )
        return [
            YearMonthFlowRow(
                year=int(row.year),
                month=int(row.month),
                currency_code=row.currency_code,
                income=cents_to_decimal(row.income),
                expenses=cents_to_decimal(row.expenses),
            )
            for row in self.session.execute(stmt)
        ]

    def day_category_totals(self, window: DateRange) -> list[DayCategoryRow]:
        # %w: 0 = Sunday .. 6 = Saturday
        weekday = func.strftime("%w", Transaction.transaction_date)
        stmt = self._within(
            self._reportable(
                weekday.label("day_of_week"),
                _split_category.label("category_id"),
                Transaction.currency_code,
                func.count().label("tx_count"),
                func.sum(func.abs(_split_amount)).label("total"),
                with_splits=True,
            ).where(_split_amount < 0),
            window,
        )
        stmt = stmt.group_by(
            weekday, _split_category, Transaction.currency_code
        ).order_by(weekday, _split_category, Transaction.currency_code)
        return [
            DayCategoryRow(
                day_of_week=int(row.day_of_week),
                category_id=row.category_id,
                currency_code=row.currency_code,
                tx_count=int(row.tx_count or 0),
                total=cents_to_decimal(row.total),
            )
            for row in self.session.execute(stmt)
        ]

    def expense_entries(self, window: DateRange) -> list[ExpenseRow]:
        stmt = self._within(
            self._reportable(
                Transaction.id,
                Transaction.transaction_date,
                Transaction.payee_id,
                Transaction.payee_name,
                Transaction.currency_code,
                _split_category.label("category_id"),
                func.abs(_split_amount).label("amount"),
                with_splits=True,
            ).where(_split_amount < 0),
            window,
        ).order_by(Transaction.transaction_date, Transaction.id, TransactionSplit.id)
        return [
            ExpenseRow(
                id=row.id,
                transaction_date=row.transaction_date,
                payee_id=row.payee_id,
                payee_name=row.payee_name,
                currency_code=row.currency_code,
                category_id=row.category_id,
                amount=cents_to_decimal(row.amount),
            )
            for row in self.session.execute(stmt)
        ]

    def tax_entries(self, year: int) -> list[TaxRow]:
        stmt = self._within(
            self._reportable(
                _split_category.label("category_id"),
                Transaction.currency_code,
                _split_amount.label("amount"),
                with_splits=True,
            ),
            DateRange(date(year, 1, 1), date(year, 12, 31)),
        ).order_by(Transaction.transaction_date, Transaction.id, TransactionSplit.id)
        return [
            TaxRow(
                category_id=row.category_id,
                currency_code=row.currency_code,
                amount=cents_to_decimal(row.amount),
            )
            for row in self.session.execute(stmt)
        ]

    def recurring_groups(
        self, window: DateRange, min_occurrences: int
    ) -> list[RecurringGroupRow]:
        """Expense groups per payee and currency that already meet the threshold.

        The ``HAVING`` filter runs per currency, before any cross-currency merge.
        """
        normalized = func.lower(func.trim(_payee_display))
        total = func.sum(func.abs(Transaction.amount_cents))
        stmt = (
            self._within(
                self._reportable(
                    Transaction.payee_id,
                    normalized.label("payee_name_normalized"),
                    _payee_display.label("payee_name"),
                    Category.name.label("category_name"),
                    Transaction.currency_code,
                    func.count().label("occurrences"),
                    total.label("total_amount"),
                    func.max(Transaction.transaction_date).label(
                        "last_transaction_date"
                    ),
                    with_payee=True,
                )
                .outerjoin(Category, Category.id == Transaction.category_id)
                .where(
                    Transaction.amount_cents < 0,
                    _payee_display.is_not(None),
                    func.trim(_payee_display) != "",
                ),
                window,
            )
            .group_by(
                Transaction.payee_id,
                normalized,
                _payee_display,
                Category.name,
                Transaction.currency_code,
            )
            .having(func.count() >= min_occurrences)
            .order_by(total.desc(), normalized, Transaction.currency_code)
        )
        return [
            RecurringGroupRow(
                payee_id=row.payee_id,
                payee_name_normalized=row.payee_name_normalized,
                payee_name=row.payee_name,
                category_name=row.category_name,
                currency_code=row.currency_code,
                occurrences=int(row.occurrences),
                total_amount=cents_to_decimal(row.total_amount),
                last_transaction_date=row.last_transaction_date,
            )
            for row in self.session.execute(stmt)
        ]

    def bill_templates(self) -> list[BillTemplate]:
        stmt = (
            select(
                ScheduledTransaction.id,
                ScheduledTransaction.name,
                ScheduledTransaction.amount_cents,
                func.coalesce(Payee.name, ScheduledTransaction.payee_name).label(
                    "payee_name"
                ),
            )
            .outerjoin(Payee, Payee.id == ScheduledTransaction.payee_id)
            .where(
                ScheduledTransaction.user_id == self.user_id,
                ScheduledTransaction.is_transfer.is_(False),
            )
            .order_by(ScheduledTransaction.id)
        )
        return [
            BillTemplate(
                id=row.id,
                name=row.name,
                amount=abs(cents_to_decimal(row.amount_cents)),
                payee_name=row.payee_name,
            )
            for row in self.session.execute(stmt)
        ]

    def bill_candidates(self, window: DateRange) -> list[BillTransactionRow]:
        stmt = self._within(
            self._reportable(
                Transaction.id,
                Transaction.transaction_date,
                Transaction.currency_code,
                func.abs(Transaction.amount_cents).label("amount"),
                func.lower(func.trim(_payee_display)).label("payee_name_normalized"),
                with_payee=True,
            ),
            window,
        ).order_by(Transaction.transaction_date, Transaction.id)
        return [
            BillTransactionRow(
                id=row.id,
                transaction_date=row.transaction_date,
                currency_code=row.currency_code,
                amount=cents_to_decimal(row.amount),
                payee_name_normalized=row.payee_name_normalized,
            )
            for row in self.session.execute(stmt)
        ]

    def _uncategorized(self, *columns, with_payee: bool = False):
        categorized_split = (
            select(TransactionSplit.id)
            .where(
                TransactionSplit.transaction_id == Transaction.id,
                TransactionSplit.category_id.is_not(None),
            )
            .exists()
        )
        return self._reportable(*columns, with_payee=with_payee).where(
            Transaction.category_id.is_(None), ~categorized_split
        )

    def uncategorized_entries(self, window: DateRange, limit: int) -> list[LedgerEntry]:
        stmt = (
            self._within(
                self._uncategorized(
                    Transaction.id,
                    Transaction.transaction_date,
                    Transaction.currency_code,
                    Transaction.amount_cents,
                    _payee_display.label("payee_name"),
                    Transaction.description,
                    Account.name.label("account_name"),
                    with_payee=True,
                ),
                window,
            )
            .order_by(Transaction.transaction_date.desc(), Transaction.id.desc())
            .limit(limit)
        )
        return [self._entry(row) for row in self.session.execute(stmt)]

    def uncategorized_summary(self, window: DateRange) -> list[UncategorizedSummaryRow]:
        amount = Transaction.amount_cents
        stmt = self._within(
            self._uncategorized(
                Transaction.currency_code,
                func.count().label("total_count"),
                func.sum(case((amount < 0, 1), else_=0)).label("expense_count"),
                func.sum(case((amount < 0, func.abs(amount)), else_=0)).label(
                    "expense_total"
                ),
                func.sum(case((amount > 0, 1), else_=0)).label("income_count"),
                func.sum(case((amount > 0, amount), else_=0)).label("income_total"),
            ),
            window,
        )
        stmt = stmt.group_by(Transaction.currency_code).order_by(
            Transaction.currency_code
        )
        return [
            UncategorizedSummaryRow(
                currency_code=row.currency_code,
                total_count=int(row.total_count or 0),
                expense_count=int(row.expense_count or 0),
                expense_total=cents_to_decimal(row.expense_total),
                income_count=int(row.income_count or 0),
                income_total=cents_to_decimal(row.income_total),
            )
            for row in self.session.execute(stmt)
        ]

    def duplicate_candidates(self, window: DateRange) -> list[LedgerEntry]:
        stmt = self._within(
            self._reportable(
                Transaction.id,
                Transaction.transaction_date,
                Transaction.currency_code,
                Transaction.amount_cents,
                _payee_display.label("payee_name"),
                Transaction.description,
                Account.name.label("account_name"),
                with_payee=True,
                exclude_investment=False,
            ),
            window,
        ).order_by(
            Transaction.transaction_date, Transaction.amount_cents, Transaction.id
        )
        return [self._entry(row) for row in self.session.execute(stmt)]

    @staticmethod
    def _entry(row) -> LedgerEntry:
        return LedgerEntry(
            id=row.id,
            transaction_date=row.transaction_date,
            currency_code=row.currency_code,
            amount=cents_to_decimal(row.amount_cents),
            payee_name=row.payee_name,
            description=row.description,
            account_name=row.account_name,
        )
