"""Spending anomaly detection over the trailing six months of expenses.

Three independent detectors feed one list:

* large transactions, by population z-score against the window's mean;
* category spikes, current calendar month against the previous one;
* new payees, first seen within the last month with meaningful spend.
"""
from __future__ import annotations

from collections.abc import Hashable, Sequence
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from aggregation import Normalizer
from ledger import ExpenseRow
from money import ZERO, money_out, round_whole
from periods import add_months, month_abbr, month_start
from rollup import CategoryIndex, category_name

MIN_SAMPLE_SIZE = 10
DEFAULT_THRESHOLD = 2

SPIKE_MIN_BASELINE = Decimal("50")
SPIKE_MIN_PERCENT = Decimal("100")
NEW_PAYEE_MIN_SPEND = Decimal("100")

SEVERITY_ORDER = {"high": 0, "medium": 1, "low": 2}


@dataclass(frozen=True)
class _Normalized:
    row: ExpenseRow
    amount: Decimal


def empty_result() -> dict[str, object]:
    return {
        "statistics": {"mean": 0.0, "std_dev": 0.0},
        "anomalies": [],
        "counts": {"high": 0, "medium": 0, "low": 0},
    }


def population_stats(amounts: Sequence[Decimal]) -> tuple[Decimal, Decimal]:
    """Mean and population standard deviation (divides by N)."""
    if not amounts:
        return ZERO, ZERO
    count = Decimal(len(amounts))
    mean = sum(amounts, ZERO) / count
    variance = sum(((a - mean) ** 2 for a in amounts), ZERO) / count
    return mean, variance.sqrt()


def _format_day(d: date) -> str:
    return f"{month_abbr(d)} {d.day}, {d.year}"


def detect_large_transactions(
    entries: Sequence[_Normalized],
    mean: Decimal,
    std_dev: Decimal,
    threshold: Decimal,
) -> list[dict[str, object]]:
    if not std_dev:
        return []
    found = []
    for entry in entries:
        z_score = (entry.amount - mean) / std_dev
        if z_score <= threshold:
            continue
        if z_score > threshold * 2:
            severity = "high"
        elif z_score > threshold * Decimal("1.5"):
            severity = "medium"
        else:
            severity = "low"
        row = entry.row
        found.append(
            {
                "type": "large_transaction",
                "severity": severity,
                "title": "Unusually large transaction",
                "description": (
                    f"{row.payee_name or 'Unknown payee'} - "
                    f"{_format_day(row.transaction_date)}"
                ),
                "amount": money_out(entry.amount),
                "transaction_id": row.id,
                "transaction_date": row.transaction_date.isoformat(),
                "payee_name": row.payee_name or None,
            }
        )
    return found


def detect_category_spikes(
    entries: Sequence[_Normalized], index: CategoryIndex, today: date
) -> list[dict[str, object]]:
    current_start = month_start(today)
    previous_end = current_start - timedelta(days=1)
    previous_start = month_start(previous_end)

    current: dict[Optional[Hashable], Decimal] = {}
    previous: dict[Optional[Hashable], Decimal] = {}
    for entry in entries:
        day = entry.row.transaction_date
        key = entry.row.category_id
        if day >= current_start:
            current[key] = current.get(key, ZERO) + entry.amount
        elif previous_start <= day <= previous_end:
            previous[key] = previous.get(key, ZERO) + entry.amount

    found = []
    for category_id, current_amount in current.items():
        previous_amount = previous.get(category_id, ZERO)
        if previous_amount < SPIKE_MIN_BASELINE:
            continue
        percent_change = (current_amount - previous_amount) / previous_amount * 100
        if percent_change <= SPIKE_MIN_PERCENT:
            continue
        if percent_change > 300:
            severity = "high"
        elif percent_change > 200:
            severity = "medium"
        else:
            severity = "low"
        name = category_name(category_id, index)
        found.append(
            {
                "type": "category_spike",
                "severity": severity,
                "title": f"Spending spike in {name}",
                "description": f"{round_whole(percent_change)}% increase from last month",
                "category_id": category_id,
                "category_name": name,
                "current_period_amount": money_out(current_amount),
                "previous_period_amount": money_out(previous_amount),
                "percent_change": round_whole(percent_change),
            }
        )
    return found


def detect_new_payees(
    entries: Sequence[_Normalized], today: date
) -> list[dict[str, object]]:
    window_start = add_months(today, -1)
    first_seen: dict[str, date] = {}
    recent: dict[str, dict[str, object]] = {}

    for entry in entries:
        row = entry.row
        key = (row.payee_name or "").lower().strip()
        if not key:
            continue
        day = row.transaction_date
        if key not in first_seen or day < first_seen[key]:
            first_seen[key] = day
        if day >= window_start:
            spend = recent.get(key)
            if spend is None:
                recent[key] = {
                    "name": row.payee_name or "Unknown",
                    "total": entry.amount,
                    "count": 1,
                    "transaction_id": row.id,
                }
            else:
                spend["total"] += entry.amount
                spend["count"] += 1

    found = []
    for key, seen in first_seen.items():
        spend = recent.get(key)
        if seen < window_start or spend is None:
            continue
        total = spend["total"]
        if total <= NEW_PAYEE_MIN_SPEND:
            continue
        if total > 500:
            severity = "high"
        elif total > 200:
            severity = "medium"
        else:
            severity = "low"
        found.append(
            {
                "type": "unusual_payee",
                "severity": severity,
                "title": "New payee detected",
                "description": f"{spend['name']} - {spend['count']} transaction(s)",
                "amount": money_out(total),
                "transaction_id": spend["transaction_id"],
                "payee_name": spend["name"],
            }
        )
    return found


def detect_anomalies(
    rows: Sequence[ExpenseRow],
    index: CategoryIndex,
    normalize: Normalizer,
    *,
    today: date,
    threshold: float = DEFAULT_THRESHOLD,
) -> dict[str, object]:
    """Run all detectors; fewer than ten rows yields the zeroed result."""
    if len(rows) < MIN_SAMPLE_SIZE:
        return empty_result()

    entries = [
        _Normalized(row, normalize(row.amount, row.currency_code)) for row in rows
    ]
    mean, std_dev = population_stats([entry.amount for entry in entries])
    limit = Decimal(str(threshold))

    anomalies = (
        detect_large_transactions(entries, mean, std_dev, limit)
        + detect_category_spikes(entries, index, today)
        + detect_new_payees(entries, today)
    )
    anomalies.sort(
        key=lambda a: (SEVERITY_ORDER[a["severity"]], -(a.get("amount") or 0))
    )

    counts = {severity: 0 for severity in SEVERITY_ORDER}
    for anomaly in anomalies:
        counts[anomaly["severity"]] += 1

    return {
        "statistics": {"mean": money_out(mean), "std_dev": money_out(std_dev)},
        "anomalies": anomalies,
        "counts": counts,
    }
