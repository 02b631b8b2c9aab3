from datetime import date
from decimal import Decimal

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from aggregation import Normalizer
from database import Base
from fx_rates import RateTable
from ledger import BillTemplate, BillTransactionRow, RecurringGroupRow
from models import Account, Payee, ScheduledTransaction, Transaction
from recurring import (
    classify_recurring,
    empty_bill_history,
    frequency_label,
    match_bill_payments,
    within_tolerance,
)
from services import TaxRecurringReportService

USD = Normalizer("USD")


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def group(name, currency, occurrences, total, last=date(2025, 5, 20)):
    return RecurringGroupRow(
        payee_id=None,
        payee_name_normalized=name.lower(),
        payee_name=name,
        category_name=None,
        currency_code=currency,
        occurrences=occurrences,
        total_amount=Decimal(str(total)),
        last_transaction_date=last,
    )


def test_six_occurrences_is_monthly() -> None:
    result = classify_recurring([group("Netflix", "USD", 6, 90)], USD)
    assert result["data"] == [
        {
            "payee_name": "Netflix",
            "payee_id": None,
            "occurrences": 6,
            "total_amount": 90.0,
            "average_amount": 15.0,
            "last_transaction_date": "2025-05-20",
            "frequency": "Monthly",
            "category_name": "Uncategorized",
        }
    ]
    assert result["summary"] == {
        "total_recurring": 90.0,
        "monthly_estimate": 15.0,
        "unique_payees": 1,
    }


def test_currency_groups_merge_by_normalized_payee() -> None:
    normalize = Normalizer("USD", RateTable({"EUR->USD": Decimal("1.1")}))
    rows = [
        group("Spotify", "USD", 3, 30, last=date(2025, 4, 1)),
        group("Spotify", "EUR", 3, 33, last=date(2025, 5, 1)),
    ]
    [entry] = classify_recurring(rows, normalize)["data"]
    assert entry["occurrences"] == 6
    assert entry["total_amount"] == 66.3
    assert entry["average_amount"] == 11.05
    assert entry["last_transaction_date"] == "2025-05-01"


def test_frequency_thresholds() -> None:
    assert frequency_label(24) == "Weekly"
    assert frequency_label(12) == "Bi-weekly"
    assert frequency_label(11) == "Monthly"
    assert frequency_label(5) == "Monthly"
    assert frequency_label(4) == "Occasional"
    assert frequency_label(3) == "Occasional"
    assert frequency_label(2) == "Irregular"


def test_bill_tolerance_band_is_inclusive() -> None:
    expected = Decimal("100")
    assert within_tolerance(Decimal("80"), expected)
    assert within_tolerance(Decimal("120"), expected)
    assert not within_tolerance(Decimal("79"), expected)
    assert not within_tolerance(Decimal("121"), expected)


def bill_tx(tx_id, day, amount, payee="comcast"):
    return BillTransactionRow(
        id=tx_id,
        transaction_date=day,
        currency_code="USD",
        amount=Decimal(str(amount)),
        payee_name_normalized=payee,
    )


def test_bill_payments_match_by_payee_and_amount() -> None:
    templates = [
        BillTemplate(
            id=7, name="Internet", amount=Decimal("100"), payee_name="Comcast "
        )
    ]
    transactions = [
        bill_tx(1, date(2025, 1, 15), 100),
        bill_tx(2, date(2025, 2, 15), 95),
        bill_tx(3, date(2025, 3, 15), 150),
        bill_tx(4, date(2025, 3, 16), 100, payee="verizon"),
    ]

    result = match_bill_payments(templates, transactions, USD)

    assert result["bill_payments"] == [
        {
            "scheduled_transaction_id": 7,
            "scheduled_transaction_name": "Internet",
            "payee_name": "comcast",
            "total_paid": 195.0,
            "payment_count": 2,
            "average_payment": 97.5,
            "last_payment_date": "2025-02-15",
        }
    ]
    assert result["monthly_totals"] == [
        {"month": "2025-01", "label": "Jan 25", "total": 100.0},
        {"month": "2025-02", "label": "Feb 25", "total": 95.0},
    ]
    assert result["summary"] == {
        "total_paid": 195.0,
        "total_payments": 2,
        "unique_bills": 1,
        "monthly_average": 97.5,
    }


def test_later_template_replaces_earlier_for_same_payee() -> None:
    templates = [
        BillTemplate(1, "Old plan", Decimal("50"), "Comcast"),
        BillTemplate(2, "New plan", Decimal("100"), "comcast"),
    ]
    transactions = [
        bill_tx(1, date(2025, 1, 15), 50),
        bill_tx(2, date(2025, 2, 15), 100),
    ]
    result = match_bill_payments(templates, transactions, USD)
    assert [b["scheduled_transaction_id"] for b in result["bill_payments"]] == [2]
    assert result["summary"]["total_payments"] == 1


def seed_subscription(session, account, payee_name, currency, days, cents):
    for day in days:
        session.add(
            Transaction(
                account_id=account.id,
                transaction_date=day,
                amount_cents=-cents,
                currency_code=currency,
                payee_name=payee_name,
            )
        )


def test_recurring_threshold_applies_per_currency() -> None:
    session = make_session()
    account = Account(name="Card")
    session.add(account)
    session.flush()
    seed_subscription(
        session,
        account,
        "Netflix",
        "USD",
        [date(2025, 3, 5), date(2025, 4, 5), date(2025, 5, 5)],
        1_599,
    )
    seed_subscription(
        session, account, "Spotify", "USD", [date(2025, 3, 9), date(2025, 4, 9)], 999
    )
    seed_subscription(
        session, account, "Spotify", "EUR", [date(2025, 5, 9), date(2025, 6, 9)], 999
    )
    # Outside the six-month window.
    seed_subscription(session, account, "Netflix", "USD", [date(2024, 11, 5)], 1_599)
    session.commit()

    result = TaxRecurringReportService(session).recurring_expenses(
        min_occurrences=3, today=date(2025, 6, 15)
    )

    assert [entry["payee_name"] for entry in result["data"]] == ["Netflix"]
    netflix = result["data"][0]
    assert netflix["occurrences"] == 3
    assert netflix["total_amount"] == 47.97
    assert netflix["average_amount"] == 15.99
    assert netflix["frequency"] == "Occasional"
    assert netflix["last_transaction_date"] == "2025-05-05"
    assert result["summary"] == {
        "total_recurring": 47.97,
        "monthly_estimate": 8.0,
        "unique_payees": 1,
    }

    loose = TaxRecurringReportService(session).recurring_expenses(
        min_occurrences=2, today=date(2025, 6, 15)
    )
    spotify = next(e for e in loose["data"] if e["payee_name"] == "Spotify")
    assert spotify["occurrences"] == 4


def test_bill_history_without_templates_is_empty() -> None:
    session = make_session()
    account = Account(name="Checking")
    session.add(account)
    session.flush()
    seed_subscription(session, account, "Comcast", "USD", [date(2025, 1, 15)], 10_000)
    session.commit()

    result = TaxRecurringReportService(session).bill_payment_history(
        None, "2025-12-31"
    )
    assert result == empty_bill_history()


def test_bill_history_uses_canonical_payee_names() -> None:
    session = make_session()
    account = Account(name="Checking")
    payee = Payee(name="Hydro One")
    session.add_all([account, payee])
    session.flush()
    session.add(
        ScheduledTransaction(
            name="Electricity", amount_cents=-12_000, payee_id=payee.id
        )
    )
    session.add_all(
        [
            Transaction(
                account_id=account.id,
                transaction_date=date(2025, 1, 20),
                amount_cents=-11_500,
                currency_code="USD",
                payee_id=payee.id,
            ),
            Transaction(
                account_id=account.id,
                transaction_date=date(2025, 2, 20),
                amount_cents=-13_000,
                currency_code="USD",
                payee_name="  HYDRO ONE",
            ),
            Transaction(
                account_id=account.id,
                transaction_date=date(2025, 3, 20),
                amount_cents=-13_000,
                currency_code="USD",
                payee_name="Hydro One",
                is_transfer=True,
            ),
        ]
    )
    session.commit()

    result = TaxRecurringReportService(session).bill_payment_history(
        "2025-01-01", "2025-12-31"
    )

    [bill] = result["bill_payments"]
    assert bill["scheduled_transaction_name"] == "Electricity"
    assert bill["payment_count"] == 2
    assert bill["total_paid"] == 245.0
    assert bill["last_payment_date"] == "2025-02-20"
    assert result["summary"]["monthly_average"] == 122.5
