from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Optional

from sqlalchemy.orm import Session

import aggregation
import anomalies
import comparisons
import data_quality
import recurring
from aggregation import Normalizer
from fx_rates import ReportCurrencyService
from ledger import LedgerStore
from periods import (
    DateInput,
    DateRange,
    add_months,
    parse_month,
    resolve_range,
    today_local,
)
from schemas import (
    AnomalyParams,
    DuplicateParams,
    MonthlyComparisonParams,
    RecurringParams,
    TaxYearParams,
    UncategorizedParams,
    YearOverYearParams,
    parse_params,
)

logger = logging.getLogger(__name__)

TRAILING_WINDOW_MONTHS = 6


def get_current_user_id() -> int:
    return 1


def trailing_window(today: Optional[date] = None) -> DateRange:
    end = today_local(today)
    return DateRange(add_months(end, -TRAILING_WINDOW_MONTHS), end)


def month_window(first_day: date) -> DateRange:
    return DateRange(first_day, add_months(first_day, 1) - timedelta(days=1))


class ReportService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.store = LedgerStore(session, self.user_id)

    def normalizer(self) -> Normalizer:
        """Default currency plus the rate snapshot, fixed for one report call."""
        currencies = ReportCurrencyService(self.session, self.user_id)
        currency = currencies.default_currency()
        return Normalizer(currency, currencies.rate_table(currency))

    def _log(self, report: str, rows: int) -> None:
        logger.info("report=%s user_id=%s rows=%s", report, self.user_id, rows)


class SpendingReportService(ReportService):
    def spending_by_category(
        self, start_date: DateInput = None, end_date: DateInput = None
    ) -> dict[str, object]:
        window = resolve_range(start_date, end_date)
        rows = self.store.category_totals(window)
        data, total = aggregation.category_breakdown(
            rows, self.store.category_index(), self.normalizer()
        )
        self._log("spending_by_category", len(rows))
        return {"data": data, "total_spending": float(total)}

    def spending_by_payee(
        self, start_date: DateInput = None, end_date: DateInput = None
    ) -> dict[str, object]:
        window = resolve_range(start_date, end_date)
        rows = self.store.payee_totals(window)
        data, total = aggregation.payee_breakdown(rows, self.normalizer())
        self._log("spending_by_payee", len(rows))
        return {"data": data, "total_spending": float(total)}

    def monthly_spending_trend(
        self, start_date: DateInput = None, end_date: DateInput = None
    ) -> dict[str, object]:
        window = resolve_range(start_date, end_date)
        rows = self.store.monthly_category_totals(window)
        data = aggregation.monthly_category_trend(
            rows, self.store.category_index(), self.normalizer()
        )
        self._log("monthly_spending_trend", len(rows))
        return {"data": data}


class IncomeReportService(ReportService):
    def income_by_source(
        self, start_date: DateInput = None, end_date: DateInput = None
    ) -> dict[str, object]:
        window = resolve_range(start_date, end_date)
        rows = self.store.category_totals(window, income=True)
        data, total = aggregation.category_breakdown(
            rows, self.store.category_index(), self.normalizer()
        )
        self._log("income_by_source", len(rows))
        return {"data": data, "total_income": float(total)}

    def income_vs_expenses(
        self, start_date: DateInput = None, end_date: DateInput = None
    ) -> dict[str, object]:
        window = resolve_range(start_date, end_date)
        rows = self.store.monthly_flows(window)
        result = aggregation.income_vs_expenses(rows, self.normalizer())
        self._log("income_vs_expenses", len(rows))
        return result

    def cash_flow(
        self, start_date: DateInput = None, end_date: DateInput = None
    ) -> dict[str, object]:
        """Monthly income, expenses and net; same figures as income_vs_expenses."""
        return self.income_vs_expenses(start_date, end_date)


class ComparisonReportService(ReportService):
    def year_over_year(
        self, years_to_compare: Optional[int] = None, today: Optional[date] = None
    ) -> dict[str, object]:
        params = parse_params(YearOverYearParams, years_to_compare=years_to_compare)
        last_year = today_local(today).year
        first_year = last_year - params.years_to_compare + 1
        rows = self.store.year_month_flows(first_year, last_year)
        data = comparisons.year_over_year(rows, first_year, last_year, self.normalizer())
        self._log("year_over_year", len(rows))
        return {"data": data}

    def weekend_vs_weekday(
        self, start_date: DateInput = None, end_date: DateInput = None
    ) -> dict[str, object]:
        window = resolve_range(start_date, end_date)
        rows = self.store.day_category_totals(window)
        result = comparisons.weekend_vs_weekday(
            rows, self.store.category_index(), self.normalizer()
        )
        self._log("weekend_vs_weekday", len(rows))
        return result

    def monthly_comparison(self, month: Optional[str] = None) -> dict[str, object]:
        params = parse_params(MonthlyComparisonParams, month=month)
        first_day = parse_month(params.month)
        current = month_window(first_day)
        previous = month_window(add_months(first_day, -1))
        flows = self.store.monthly_flows(DateRange(previous.start, current.end))
        current_rows = self.store.category_totals(current)
        previous_rows = self.store.category_totals(previous)
        result = comparisons.monthly_comparison(
            first_day,
            flows,
            current_rows,
            previous_rows,
            self.store.category_index(),
            self.normalizer(),
        )
        self._log(
            "monthly_comparison", len(flows) + len(current_rows) + len(previous_rows)
        )
        return result


class AnomalyReportService(ReportService):
    def spending_anomalies(
        self, threshold: Optional[float] = None, today: Optional[date] = None
    ) -> dict[str, object]:
        params = parse_params(AnomalyParams, threshold=threshold)
        window = trailing_window(today)
        rows = self.store.expense_entries(window)
        result = anomalies.detect_anomalies(
            rows,
            self.store.category_index(),
            self.normalizer(),
            today=window.end,
            threshold=params.threshold,
        )
        self._log("spending_anomalies", len(rows))
        return result


class TaxRecurringReportService(ReportService):
    def tax_summary(self, year: int) -> dict[str, object]:
        params = parse_params(TaxYearParams, year=year)
        rows = self.store.tax_entries(params.year)
        result = aggregation.tax_summary(
            rows, self.store.category_index(), self.normalizer()
        )
        self._log("tax_summary", len(rows))
        return result

    def recurring_expenses(
        self, min_occurrences: Optional[int] = None, today: Optional[date] = None
    ) -> dict[str, object]:
        params = parse_params(RecurringParams, min_occurrences=min_occurrences)
        rows = self.store.recurring_groups(
            trailing_window(today), params.min_occurrences
        )
        result = recurring.classify_recurring(rows, self.normalizer())
        self._log("recurring_expenses", len(rows))
        return result

    def bill_payment_history(
        self, start_date: DateInput = None, end_date: DateInput = None
    ) -> dict[str, object]:
        window = resolve_range(start_date, end_date)
        templates = self.store.bill_templates()
        if not templates:
            self._log("bill_payment_history", 0)
            return recurring.empty_bill_history()
        rows = self.store.bill_candidates(window)
        result = recurring.match_bill_payments(templates, rows, self.normalizer())
        self._log("bill_payment_history", len(rows))
        return result


class DataQualityReportService(ReportService):
    def uncategorized_transactions(
        self,
        start_date: DateInput = None,
        end_date: DateInput = None,
        limit: Optional[int] = None,
    ) -> dict[str, object]:
        window = resolve_range(start_date, end_date)
        params = parse_params(UncategorizedParams, limit=limit)
        entries = self.store.uncategorized_entries(window, params.limit)
        summary = self.store.uncategorized_summary(window)
        result = data_quality.uncategorized_report(entries, summary, self.normalizer())
        self._log("uncategorized_transactions", len(entries))
        return result

    def duplicate_transactions(
        self,
        start_date: DateInput = None,
        end_date: DateInput = None,
        sensitivity: Optional[str] = None,
    ) -> dict[str, object]:
        window = resolve_range(start_date, end_date)
        params = parse_params(DuplicateParams, sensitivity=sensitivity)
        entries = self.store.duplicate_candidates(window)
        result = data_quality.find_duplicates(entries, params.sensitivity)
        self._log("duplicate_transactions", len(entries))
        if result["groups"]:
            logger.info(
                "duplicates_found: user_id=%s groups=%s potential_savings=%s",
                self.user_id,
                result["summary"]["total_groups"],
                result["summary"]["potential_savings"],
            )
        return result
