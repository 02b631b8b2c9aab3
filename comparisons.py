from __future__ import annotations

from collections.abc import Hashable, Iterable
from datetime import date
from decimal import Decimal
from typing import Optional

from aggregation import Normalizer, category_breakdown, monthly_flow_totals
from ledger import CategoryTotalRow, DayCategoryRow, MonthlyFlowRow, YearMonthFlowRow
from money import ZERO, money_out, round_money, to_decimal
from periods import add_months, long_month_label, month_key
from rollup import CategoryIndex, resolve_display_category

TOP_DAY_CATEGORIES = 10
TOP_COMPARISON_CATEGORIES = 5
WEEKEND_DAYS = (0, 6)
WEEKDAYS = (1, 2, 3, 4, 5)


def _empty_year(year: int) -> dict[str, object]:
    return {
        "year": year,
        "months": [
            {"month": month, "income": ZERO, "expenses": ZERO, "savings": ZERO}
            for month in range(1, 13)
        ],
        "totals": {"income": ZERO, "expenses": ZERO, "savings": ZERO},
    }


def year_over_year(
    rows: Iterable[YearMonthFlowRow],
    first_year: int,
    last_year: int,
    normalize: Normalizer,
) -> list[dict[str, object]]:
    """Dense year x month grid of income, expenses and savings.

    Month cells accumulate already-rounded amounts; year totals accumulate the
    unrounded amounts and are rounded once at the end.
    """
    years = {year: _empty_year(year) for year in range(first_year, last_year + 1)}

    for row in rows:
        year_data = years.get(row.year)
        if year_data is None or not 1 <= row.month <= 12:
            continue
        income = normalize(row.income, row.currency_code)
        expenses = normalize(row.expenses, row.currency_code)

        cell = year_data["months"][row.month - 1]
        cell["income"] += round_money(income)
        cell["expenses"] += round_money(expenses)
        cell["savings"] = round_money(cell["income"] - cell["expenses"])

        totals = year_data["totals"]
        totals["income"] += income
        totals["expenses"] += expenses
        totals["savings"] += income - expenses

    data = []
    for year in sorted(years):
        year_data = years[year]
        data.append(
            {
                "year": year,
                "months": [
                    {
                        "month": cell["month"],
                        "income": float(cell["income"]),
                        "expenses": float(cell["expenses"]),
                        "savings": float(cell["savings"]),
                    }
                    for cell in year_data["months"]
                ],
                "totals": {
                    key: money_out(value)
                    for key, value in year_data["totals"].items()
                },
            }
        )
    return data


def weekend_vs_weekday(
    rows: Iterable[DayCategoryRow],
    index: CategoryIndex,
    normalize: Normalizer,
    *,
    limit: int = TOP_DAY_CATEGORIES,
) -> dict[str, object]:
    day_totals = [ZERO] * 7
    day_counts = [0] * 7
    weekend: dict[Optional[Hashable], list] = {}
    weekday: dict[Optional[Hashable], list] = {}

    for row in rows:
        if not 0 <= row.day_of_week <= 6:
            continue
        total = normalize(row.total, row.currency_code)
        day_totals[row.day_of_week] += total
        day_counts[row.day_of_week] += row.tx_count

        display = resolve_display_category(row.category_id, index)
        target = weekend if row.day_of_week in WEEKEND_DAYS else weekday
        entry = target.setdefault(display.display_id, [display.display_name, ZERO])
        entry[1] += total

    category_ids = list(weekend) + [cid for cid in weekday if cid not in weekend]
    by_category = []
    for cid in category_ids:
        weekend_entry = weekend.get(cid)
        weekday_entry = weekday.get(cid)
        name = (weekend_entry or weekday_entry)[0]
        by_category.append(
            (
                cid,
                name,
                round_money(weekend_entry[1] if weekend_entry else ZERO),
                round_money(weekday_entry[1] if weekday_entry else ZERO),
            )
        )
    by_category.sort(key=lambda item: item[2] + item[3], reverse=True)

    return {
        "summary": {
            "weekend_total": money_out(sum((day_totals[d] for d in WEEKEND_DAYS), ZERO)),
            "weekday_total": money_out(sum((day_totals[d] for d in WEEKDAYS), ZERO)),
            "weekend_count": sum(day_counts[d] for d in WEEKEND_DAYS),
            "weekday_count": sum(day_counts[d] for d in WEEKDAYS),
        },
        "by_day": [
            {"day_of_week": day, "total": money_out(total), "count": day_counts[day]}
            for day, total in enumerate(day_totals)
        ],
        "by_category": [
            {
                "category_id": cid,
                "category_name": name,
                "weekend_total": float(weekend_total),
                "weekday_total": float(weekday_total),
            }
            for cid, name, weekend_total, weekday_total in by_category[:limit]
        ],
    }


def percent_change(previous: Decimal, current: Decimal) -> float:
    """Change relative to ``previous``; growth from zero counts as 100%."""
    if previous == 0:
        return 0.0 if current == 0 else 100.0
    return money_out((current - previous) / abs(previous) * 100)


def _snapshot(item: dict[str, object]) -> dict[str, object]:
    return {
        "category_id": item["category_id"],
        "category_name": item["category_name"],
        "color": item["color"],
        "total": item["total"],
    }


def _expense_comparison(
    current: list[dict[str, object]], previous: list[dict[str, object]]
) -> list[dict[str, object]]:
    merged: dict[object, dict[str, object]] = {}
    for column, items in (("current", current), ("previous", previous)):
        for item in items:
            key = item["category_id"]
            if key is None:
                key = item["category_name"]
            entry = merged.get(key)
            if entry is None:
                entry = merged[key] = {
                    **_snapshot(item),
                    "current": ZERO,
                    "previous": ZERO,
                }
            entry[column] = to_decimal(item["total"])

    comparison = [
        {
            "category_id": entry["category_id"],
            "category_name": entry["category_name"],
            "color": entry["color"],
            "current_total": float(entry["current"]),
            "previous_total": float(entry["previous"]),
            "change": money_out(entry["current"] - entry["previous"]),
            "change_percent": percent_change(entry["previous"], entry["current"]),
        }
        for entry in merged.values()
    ]
    comparison.sort(key=lambda item: item["current_total"], reverse=True)
    return comparison


def monthly_comparison(
    month: date,
    flows: Iterable[MonthlyFlowRow],
    current_rows: Iterable[CategoryTotalRow],
    previous_rows: Iterable[CategoryTotalRow],
    index: CategoryIndex,
    normalize: Normalizer,
    *,
    top: int = TOP_COMPARISON_CATEGORIES,
) -> dict[str, object]:
    """One month against the month before it.

    Income, expenses and savings are compared on rounded monthly figures. The
    category table merges both months' spending breakdowns by category.
    """
    previous_month = add_months(month, -1)
    current_key, previous_key = month_key(month), month_key(previous_month)
    months = monthly_flow_totals(flows, normalize)

    figures: dict[str, dict[str, Decimal]] = {}
    for label, key in (("current", current_key), ("previous", previous_key)):
        income, expenses = (round_money(v) for v in months.get(key, (ZERO, ZERO)))
        figures[label] = {
            "income": income,
            "expenses": expenses,
            "savings": income - expenses,
        }

    income_expenses: dict[str, object] = {
        "current_month": current_key,
        "previous_month": previous_key,
    }
    for measure in ("income", "expenses", "savings"):
        current, previous = figures["current"][measure], figures["previous"][measure]
        income_expenses[f"current_{measure}"] = float(current)
        income_expenses[f"previous_{measure}"] = float(previous)
        income_expenses[f"{measure}_change"] = float(current - previous)
        income_expenses[f"{measure}_change_percent"] = percent_change(previous, current)

    current_data, current_total = category_breakdown(current_rows, index, normalize)
    previous_data, previous_total = category_breakdown(previous_rows, index, normalize)

    return {
        "current_month": current_key,
        "previous_month": previous_key,
        "current_month_label": long_month_label(month),
        "previous_month_label": long_month_label(previous_month),
        "currency": normalize.currency,
        "income_expenses": income_expenses,
        "expenses": {
            "current_month": [_snapshot(item) for item in current_data],
            "previous_month": [_snapshot(item) for item in previous_data],
            "comparison": _expense_comparison(current_data, previous_data),
            "current_total": float(current_total),
            "previous_total": float(previous_total),
        },
        "top_categories": {
            "current_month": [_snapshot(item) for item in current_data[:top]],
            "previous_month": [_snapshot(item) for item in previous_data[:top]],
        },
    }
