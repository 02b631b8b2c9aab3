"""Shared report pipeline: normalize currency, roll up categories, bucket, round.

Functions here are pure; they take rows already fetched by the ledger store and
return JSON-ready structures. Bucket maps are local to each call.
"""
from __future__ import annotations

from collections.abc import Hashable, Iterable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from fx_rates import convert_amount
from ledger import (
    CategoryTotalRow,
    MonthlyCategoryRow,
    MonthlyFlowRow,
    PayeeTotalRow,
    TaxRow,
)
from money import ZERO, Number, money_out, round_money, to_decimal
from rollup import CategoryIndex, DisplayCategory, resolve_display_category

TOP_CATEGORIES = 15
TOP_PAYEES = 20
TOP_TREND_CATEGORIES = 10

TAX_DEDUCTIBLE_KEYWORDS = (
    "medical",
    "health",
    "dental",
    "vision",
    "prescription",
    "pharmacy",
    "donation",
    "charity",
    "charitable",
    "education",
    "tuition",
    "school",
    "course",
    "training",
    "childcare",
    "daycare",
    "moving",
    "union",
    "professional dues",
    "rrsp",
    "retirement",
)


@dataclass(frozen=True)
class Normalizer:
    """Converts row amounts into the report currency with a fixed rate table."""

    currency: str
    rates: Mapping[str, Number] = field(default_factory=dict)

    def __call__(self, amount: Number, from_currency: Optional[str]) -> Decimal:
        return to_decimal(
            convert_amount(to_decimal(amount), from_currency, self.currency, self.rates)
        )


@dataclass
class _CategoryBucket:
    category: DisplayCategory
    total: Decimal = ZERO


def _sum_rounded(values: Iterable[Decimal]) -> Decimal:
    return round_money(sum(values, ZERO))


def rollup_category_totals(
    rows: Iterable[CategoryTotalRow], index: CategoryIndex, normalize: Normalizer
) -> dict[Optional[Hashable], _CategoryBucket]:
    buckets: dict[Optional[Hashable], _CategoryBucket] = {}
    for row in rows:
        total = normalize(row.total, row.currency_code)
        display = resolve_display_category(row.category_id, index)
        bucket = buckets.get(display.display_id)
        if bucket is None:
            bucket = buckets[display.display_id] = _CategoryBucket(display)
        bucket.total += total
    return buckets


def category_breakdown(
    rows: Iterable[CategoryTotalRow],
    index: CategoryIndex,
    normalize: Normalizer,
    *,
    limit: int = TOP_CATEGORIES,
) -> tuple[list[dict[str, object]], Decimal]:
    """Top ``limit`` display categories and the rounded sum of what is shown."""
    buckets = rollup_category_totals(rows, index, normalize)
    ranked = sorted(
        (
            (bucket.category, round_money(bucket.total))
            for bucket in buckets.values()
        ),
        key=lambda item: item[1],
        reverse=True,
    )[:limit]
    data = [
        {
            "category_id": category.display_id,
            "category_name": category.display_name,
            "color": category.color,
            "total": float(total),
        }
        for category, total in ranked
    ]
    return data, _sum_rounded(total for _, total in ranked)


def payee_breakdown(
    rows: Iterable[PayeeTotalRow],
    normalize: Normalizer,
    *,
    limit: int = TOP_PAYEES,
) -> tuple[list[dict[str, object]], Decimal]:
    totals: dict[object, dict[str, object]] = {}
    for row in rows:
        total = normalize(row.total, row.currency_code)
        key = row.payee_id or row.payee_name or "unknown"
        entry = totals.get(key)
        if entry is None:
            totals[key] = {
                "payee_id": row.payee_id,
                "payee_name": row.canonical_name or row.payee_name or "Unknown",
                "total": total,
            }
        else:
            entry["total"] += total

    ranked = sorted(
        (
            {**entry, "total": round_money(entry["total"])}
            for entry in totals.values()
        ),
        key=lambda entry: entry["total"],
        reverse=True,
    )[:limit]
    grand_total = _sum_rounded(entry["total"] for entry in ranked)
    for entry in ranked:
        entry["total"] = float(entry["total"])
    return ranked, grand_total


def monthly_category_trend(
    rows: Iterable[MonthlyCategoryRow],
    index: CategoryIndex,
    normalize: Normalizer,
    *,
    limit: int = TOP_TREND_CATEGORIES,
) -> list[dict[str, object]]:
    by_month: dict[str, dict[Optional[Hashable], Decimal]] = {}
    shown: dict[Optional[Hashable], DisplayCategory] = {}
    overall: dict[Optional[Hashable], Decimal] = {}
    for row in rows:
        total = normalize(row.total, row.currency_code)
        display = resolve_display_category(row.category_id, index)
        shown.setdefault(display.display_id, display)
        month_totals = by_month.setdefault(row.month, {})
        month_totals[display.display_id] = (
            month_totals.get(display.display_id, ZERO) + total
        )
        overall[display.display_id] = overall.get(display.display_id, ZERO) + total

    # Chosen once across the whole range so every month lists the same columns.
    top_ids = [
        category_id
        for category_id, _ in sorted(
            overall.items(), key=lambda item: item[1], reverse=True
        )[:limit]
    ]

    data: list[dict[str, object]] = []
    for month in sorted(by_month):
        month_totals = by_month[month]
        rounded = [round_money(month_totals.get(cid, ZERO)) for cid in top_ids]
        data.append(
            {
                "month": month,
                "categories": [
                    {
                        "category_id": cid,
                        "category_name": shown[cid].display_name,
                        "color": shown[cid].color,
                        "total": float(total),
                    }
                    for cid, total in zip(top_ids, rounded)
                ],
                "total_spending": float(_sum_rounded(rounded)),
            }
        )
    return data


def monthly_flow_totals(
    rows: Iterable[MonthlyFlowRow], normalize: Normalizer
) -> dict[str, list[Decimal]]:
    """Unrounded ``[income, expenses]`` per ``YYYY-MM`` month."""
    months: dict[str, list[Decimal]] = {}
    for row in rows:
        income = normalize(row.income, row.currency_code)
        expenses = normalize(row.expenses, row.currency_code)
        flows = months.setdefault(row.month, [ZERO, ZERO])
        flows[0] += income
        flows[1] += expenses
    return months


def income_vs_expenses(
    rows: Iterable[MonthlyFlowRow], normalize: Normalizer
) -> dict[str, object]:
    months = monthly_flow_totals(rows, normalize)

    data = []
    sums = {"income": ZERO, "expenses": ZERO, "net": ZERO}
    for month in sorted(months):
        income, expenses = months[month]
        item = {
            "income": round_money(income),
            "expenses": round_money(expenses),
            "net": round_money(income - expenses),
        }
        for key, value in item.items():
            sums[key] += value
        data.append({"month": month, **{k: float(v) for k, v in item.items()}})

    return {
        "data": data,
        "totals": {key: money_out(value) for key, value in sums.items()},
    }


def is_tax_deductible(category_name: str) -> bool:
    lowered = category_name.lower()
    return any(keyword in lowered for keyword in TAX_DEDUCTIBLE_KEYWORDS)


def _named_totals(totals: Mapping[str, Decimal]) -> list[dict[str, object]]:
    rounded = [(name, round_money(total)) for name, total in totals.items()]
    rounded.sort(key=lambda item: item[1], reverse=True)
    return [{"name": name, "total": float(total)} for name, total in rounded]


def tax_summary(
    rows: Iterable[TaxRow], index: CategoryIndex, normalize: Normalizer
) -> dict[str, object]:
    income_by_source: dict[str, Decimal] = {}
    deductible: dict[str, Decimal] = {}
    all_expenses: dict[str, Decimal] = {}
    total_income = ZERO
    total_expenses = ZERO

    for row in rows:
        amount = normalize(row.amount, row.currency_code)
        name = resolve_display_category(row.category_id, index).display_name
        if amount > 0:
            total_income += amount
            income_by_source[name] = income_by_source.get(name, ZERO) + amount
            continue
        expense = abs(amount)
        total_expenses += expense
        all_expenses[name] = all_expenses.get(name, ZERO) + expense
        if is_tax_deductible(name):
            deductible[name] = deductible.get(name, ZERO) + expense

    return {
        "income_by_source": _named_totals(income_by_source),
        "deductible_expenses": _named_totals(deductible),
        "all_expenses": _named_totals(all_expenses),
        "totals": {
            "income": money_out(total_income),
            "expenses": money_out(total_expenses),
            "deductible": money_out(sum(deductible.values(), ZERO)),
        },
    }
