from __future__ import annotations

from collections.abc import Iterable, Sequence
from decimal import Decimal
from typing import Literal

from rapidfuzz.distance import Levenshtein

from aggregation import Normalizer
from ledger import LedgerEntry, UncategorizedSummaryRow
from money import ZERO, money_out

Sensitivity = Literal["high", "medium", "low"]

# Maximum day gap between duplicates per sensitivity.
DUPLICATE_WINDOW_DAYS = {"high": 3, "medium": 1, "low": 0}
DUPLICATE_SCAN_STOP_DAYS = 7
AMOUNT_TOLERANCE = Decimal("0.01")
PAYEE_MAX_EDIT_DISTANCE = 1
# Names this short are only grouped on an exact match.
PAYEE_MIN_FUZZY_LENGTH = 3

CONFIDENCE_ORDER = {"high": 0, "medium": 1, "low": 2}


def uncategorized_report(
    entries: Iterable[LedgerEntry],
    summary_rows: Iterable[UncategorizedSummaryRow],
    normalize: Normalizer,
) -> dict[str, object]:
    transactions = [
        {
            "id": entry.id,
            "transaction_date": entry.transaction_date.isoformat(),
            "amount": money_out(normalize(entry.amount, entry.currency_code)),
            "payee_name": entry.payee_name,
            "description": entry.description,
            "account_name": entry.account_name,
        }
        for entry in entries
    ]

    total_count = expense_count = income_count = 0
    expense_total = income_total = ZERO
    for row in summary_rows:
        total_count += row.total_count
        expense_count += row.expense_count
        income_count += row.income_count
        expense_total += normalize(row.expense_total, row.currency_code)
        income_total += normalize(row.income_total, row.currency_code)

    return {
        "transactions": transactions,
        "summary": {
            "total_count": total_count,
            "expense_count": expense_count,
            "expense_total": money_out(expense_total),
            "income_count": income_count,
            "income_total": money_out(income_total),
        },
    }


def _payee_key(entry: LedgerEntry) -> str:
    return (entry.payee_name or "").lower().strip()


def payees_match(left: str, right: str) -> bool:
    """Equal normalized payee keys, or one edit apart for longer names."""
    if not left or not right:
        return False
    if left == right:
        return True
    if min(len(left), len(right)) <= PAYEE_MIN_FUZZY_LENGTH:
        return False
    return Levenshtein.distance(left, right) <= PAYEE_MAX_EDIT_DISTANCE


def _describe(
    group: Sequence[LedgerEntry], max_days: int
) -> tuple[Literal["high", "medium", "low"], str]:
    first = group[0]
    same_date = all(e.transaction_date == first.transaction_date for e in group)
    first_payee = _payee_key(first)
    # Confidence labels need the exact normalized payee on every entry.
    same_payee = all(_payee_key(e) == first_payee for e in group)
    if same_date and same_payee:
        return "high", "Same date, amount, and payee"
    if same_date:
        return "medium", "Same date and amount"
    if same_payee:
        return "medium", f"Same payee and amount within {max_days} day(s)"
    return "low", f"Same amount within {max_days} day(s)"


def find_duplicates(
    entries: Sequence[LedgerEntry], sensitivity: Sensitivity = "medium"
) -> dict[str, object]:
    """Group likely duplicate entries; ``entries`` must be sorted by date."""
    max_days = DUPLICATE_WINDOW_DAYS[sensitivity]
    check_payee = sensitivity != "low"

    ranked: list[tuple[dict[str, object], Decimal, int]] = []
    processed: set[int] = set()
    for i, first in enumerate(entries):
        if first.id in processed:
            continue
        first_payee = _payee_key(first)
        matches = [first]
        for other in entries[i + 1 :]:
            if other.id in processed or other.id == first.id:
                continue
            gap = abs((first.transaction_date - other.transaction_date).days)
            if gap > max_days:
                if gap > DUPLICATE_SCAN_STOP_DAYS:
                    break
                continue
            if abs(first.amount - other.amount) > AMOUNT_TOLERANCE:
                continue
            other_payee = _payee_key(other)
            if (
                check_payee
                and first_payee
                and other_payee
                and not payees_match(first_payee, other_payee)
            ):
                continue
            matches.append(other)

        if len(matches) < 2:
            continue
        processed.update(m.id for m in matches)
        confidence, reason = _describe(matches, max_days)
        group = {
            "key": f"{first.id}-{len(matches)}",
            "transactions": [
                {
                    "id": m.id,
                    "transaction_date": m.transaction_date.isoformat(),
                    "amount": float(m.amount),
                    "payee_name": m.payee_name,
                    "description": m.description,
                    "account_name": m.account_name,
                }
                for m in matches
            ],
            "reason": reason,
            "confidence": confidence,
        }
        ranked.append((group, abs(first.amount), len(matches) - 1))

    ranked.sort(key=lambda item: (CONFIDENCE_ORDER[item[0]["confidence"]], -item[1]))
    groups = [group for group, _, _ in ranked]
    potential_savings = sum((amount * extra for _, amount, extra in ranked), ZERO)

    counts = {level: 0 for level in CONFIDENCE_ORDER}
    for group in groups:
        counts[group["confidence"]] += 1

    return {
        "groups": groups,
        "summary": {
            "total_groups": len(groups),
            "high_count": counts["high"],
            "medium_count": counts["medium"],
            "low_count": counts["low"],
            "potential_savings": money_out(potential_savings),
        },
    }
