from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional

from aggregation import Normalizer
from ledger import BillTemplate, BillTransactionRow, RecurringGroupRow
from money import ZERO, money_out, round_money
from periods import month_key, short_month_label

DEFAULT_MIN_OCCURRENCES = 3
RECURRING_WINDOW_MONTHS = 6

BILL_TOLERANCE_LOW = Decimal("0.8")
BILL_TOLERANCE_HIGH = Decimal("1.2")

# Occurrence counts over the six-month window, highest first.
FREQUENCY_LABELS = (
    (24, "Weekly"),
    (12, "Bi-weekly"),
    (5, "Monthly"),
    (3, "Occasional"),
)


def normalize_payee(name: Optional[str]) -> str:
    return (name or "").lower().strip()


def frequency_label(occurrences: int) -> str:
    for minimum, label in FREQUENCY_LABELS:
        if occurrences >= minimum:
            return label
    return "Irregular"


@dataclass
class _PayeeGroup:
    payee_name: str
    payee_id: Optional[int]
    category_name: Optional[str]
    occurrences: int
    total_amount: Decimal
    last_transaction_date: date


def classify_recurring(
    rows: Iterable[RecurringGroupRow], normalize: Normalizer
) -> dict[str, object]:
    """Merge per-currency payee groups and label how often each one recurs.

    Rows arrive already filtered by the per-currency occurrence threshold.
    """
    merged: dict[str, _PayeeGroup] = {}
    for row in rows:
        total = normalize(row.total_amount, row.currency_code)
        group = merged.get(row.payee_name_normalized)
        if group is None:
            merged[row.payee_name_normalized] = _PayeeGroup(
                payee_name=row.payee_name,
                payee_id=row.payee_id,
                category_name=row.category_name,
                occurrences=row.occurrences,
                total_amount=total,
                last_transaction_date=row.last_transaction_date,
            )
            continue
        group.occurrences += row.occurrences
        group.total_amount += total
        if row.last_transaction_date > group.last_transaction_date:
            group.last_transaction_date = row.last_transaction_date

    data = []
    rounded_totals = []
    for group in merged.values():
        total = round_money(group.total_amount)
        rounded_totals.append(total)
        data.append(
            {
                "payee_name": group.payee_name,
                "payee_id": group.payee_id,
                "occurrences": group.occurrences,
                "total_amount": float(total),
                "average_amount": money_out(group.total_amount / group.occurrences),
                "last_transaction_date": group.last_transaction_date.isoformat(),
                "frequency": frequency_label(group.occurrences),
                "category_name": group.category_name or "Uncategorized",
            }
        )

    total_recurring = sum(rounded_totals, ZERO)
    return {
        "data": data,
        "summary": {
            "total_recurring": money_out(total_recurring),
            "monthly_estimate": money_out(total_recurring / RECURRING_WINDOW_MONTHS),
            "unique_payees": len(data),
        },
    }


@dataclass
class _BillPayments:
    template: BillTemplate
    payee_name: str
    payments: list[tuple[date, Decimal]] = field(default_factory=list)


def within_tolerance(amount: Decimal, expected: Decimal) -> bool:
    """Inclusive +/-20% band around the expected bill amount."""
    return expected * BILL_TOLERANCE_LOW <= amount <= expected * BILL_TOLERANCE_HIGH


def empty_bill_history() -> dict[str, object]:
    return {
        "bill_payments": [],
        "monthly_totals": [],
        "summary": {
            "total_paid": 0.0,
            "total_payments": 0,
            "unique_bills": 0,
            "monthly_average": 0.0,
        },
    }


def match_bill_payments(
    templates: Iterable[BillTemplate],
    transactions: Iterable[BillTransactionRow],
    normalize: Normalizer,
) -> dict[str, object]:
    by_payee: dict[str, BillTemplate] = {}
    for template in templates:
        if template.payee_name:
            by_payee[normalize_payee(template.payee_name)] = template
    if not by_payee:
        return empty_bill_history()

    matched: dict[object, _BillPayments] = {}
    for tx in transactions:
        if not tx.payee_name_normalized:
            continue
        template = by_payee.get(tx.payee_name_normalized)
        if template is None:
            continue
        amount = normalize(tx.amount, tx.currency_code)
        # Out-of-band payments are dropped, not offered to another template.
        if not within_tolerance(amount, template.amount):
            continue
        bill = matched.get(template.id)
        if bill is None:
            bill = matched[template.id] = _BillPayments(
                template, tx.payee_name_normalized
            )
        bill.payments.append((tx.transaction_date, amount))

    bill_payments = []
    for bill in matched.values():
        paid = sum((amount for _, amount in bill.payments), ZERO)
        bill_payments.append(
            {
                "scheduled_transaction_id": bill.template.id,
                "scheduled_transaction_name": bill.template.name,
                "payee_name": bill.payee_name,
                "total_paid": round_money(paid),
                "payment_count": len(bill.payments),
                "average_payment": money_out(paid / len(bill.payments)),
                "last_payment_date": max(day for day, _ in bill.payments).isoformat(),
            }
        )
    bill_payments.sort(key=lambda item: item["total_paid"], reverse=True)

    months: dict[str, list] = {}
    for bill in matched.values():
        for day, amount in bill.payments:
            entry = months.setdefault(month_key(day), [short_month_label(day), ZERO])
            entry[1] += amount
    monthly_totals = [
        {"month": month, "label": label, "total": money_out(total)}
        for month, (label, total) in sorted(months.items())
    ]

    total_paid = sum((item["total_paid"] for item in bill_payments), ZERO)
    for item in bill_payments:
        item["total_paid"] = float(item["total_paid"])
    month_count = len(monthly_totals) or 1

    return {
        "bill_payments": bill_payments,
        "monthly_totals": monthly_totals,
        "summary": {
            "total_paid": money_out(total_paid),
            "total_payments": sum(item["payment_count"] for item in bill_payments),
            "unique_bills": len(bill_payments),
            "monthly_average": money_out(total_paid / month_count),
        },
    }
