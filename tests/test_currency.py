from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from aggregation import Normalizer
from database import Base
from fx_rates import (
    FxQuote,
    RateTable,
    ReportCurrencyService,
    build_rate_table,
    convert_amount,
)
from models import Account, ExchangeRate, Transaction, UserPreference
from money import round_money, round_whole, to_decimal
from services import SpendingReportService


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def test_same_currency_is_identity() -> None:
    table = RateTable({"USD->EUR": Decimal("0.9")})
    assert convert_amount(Decimal("12.34"), "USD", "USD", table) == Decimal("12.34")
    assert convert_amount(7, "CAD", "CAD", {}) == 7


def test_direct_rate_multiplies() -> None:
    table = RateTable({"EUR->USD": Decimal("1.1")})
    assert convert_amount(Decimal("100"), "EUR", "USD", table) == Decimal("110")


def test_inverse_rate_divides() -> None:
    table = RateTable({"USD->CAD": Decimal("1.36")})
    assert convert_amount(Decimal("136"), "CAD", "USD", table) == Decimal("100")


def test_missing_or_zero_rate_passes_amount_through() -> None:
    table = RateTable({"EUR->USD": Decimal("1.1"), "JPY->USD": 0})
    assert convert_amount(Decimal("500"), "JPY", "USD", table) == Decimal("500")
    assert convert_amount(Decimal("500"), "GBP", "USD", table) == Decimal("500")
    assert convert_amount(Decimal("5"), None, "USD", table) == Decimal("5")


def test_rate_table_is_read_only() -> None:
    table = build_rate_table(
        [FxQuote("EUR", "USD", Decimal("1.1")), FxQuote("USD", "CAD", Decimal("1.36"))],
        "USD",
    )
    assert dict(table) == {"EUR->USD": Decimal("1.1"), "USD->CAD": Decimal("1.36")}
    assert table.base_currency == "USD"
    with pytest.raises(TypeError):
        table["GBP->USD"] = Decimal("1.3")  # type: ignore[index]


def test_normalizer_returns_decimal_for_unparsable_amounts() -> None:
    normalize = Normalizer("USD", RateTable({"EUR->USD": Decimal("2")}))
    assert normalize("not a number", "EUR") == Decimal("0")
    assert normalize(Decimal("3"), "EUR") == Decimal("6")
    assert normalize(None, "USD") == Decimal("0")


def test_rounding_ties_go_toward_positive_infinity() -> None:
    assert round_money(Decimal("100.555")) == Decimal("100.56")
    assert round_money(Decimal("-100.555")) == Decimal("-100.55")
    assert round_money(Decimal("0.005")) == Decimal("0.01")
    assert round_whole(Decimal("2.5")) == 3
    assert round_whole(Decimal("-2.5")) == -2


def test_to_decimal_treats_garbage_as_zero() -> None:
    assert to_decimal("abc") == 0
    assert to_decimal(float("nan")) == 0
    assert to_decimal("Infinity") == 0
    assert to_decimal(" 4.20 ") == Decimal("4.20")


def test_default_currency_prefers_user_setting() -> None:
    session = make_session()
    currencies = ReportCurrencyService(session, 1)
    assert currencies.default_currency() == "USD"

    session.add(UserPreference(user_id=1, default_currency=" eur"))
    session.commit()
    assert currencies.default_currency() == "EUR"


def test_blank_currency_preference_uses_fallback() -> None:
    session = make_session()
    session.add(UserPreference(user_id=1, default_currency="  "))
    session.commit()
    assert ReportCurrencyService(session, 1).default_currency() == "USD"


def test_latest_rate_per_pair_wins() -> None:
    session = make_session()
    session.add_all(
        [
            ExchangeRate(
                from_currency="USD",
                to_currency="EUR",
                rate_micros=800_000,
                rate_date=date(2024, 1, 1),
            ),
            ExchangeRate(
                from_currency="USD",
                to_currency="EUR",
                rate_micros=900_000,
                rate_date=date(2025, 1, 1),
            ),
            ExchangeRate(
                from_currency="GBP",
                to_currency="EUR",
                rate_micros=ReportCurrencyService.rate_to_micros("1.15"),
                rate_date=date(2023, 6, 1),
            ),
        ]
    )
    session.commit()

    table = ReportCurrencyService(session, 1).rate_table("EUR")
    assert table["USD->EUR"] == Decimal("0.9")
    assert table["GBP->EUR"] == Decimal("1.15")
    assert len(table) == 2


def test_spending_is_reported_in_default_currency() -> None:
    session = make_session()
    account = Account(name="Checking", currency_code="USD")
    session.add_all(
        [
            account,
            UserPreference(user_id=1, default_currency="EUR"),
            ExchangeRate(
                from_currency="USD",
                to_currency="EUR",
                rate_micros=900_000,
                rate_date=date(2025, 1, 1),
            ),
        ]
    )
    session.flush()
    session.add_all(
        [
            Transaction(
                account_id=account.id,
                transaction_date=date(2025, 3, 4),
                amount_cents=-10_000,
                currency_code="USD",
            ),
            Transaction(
                account_id=account.id,
                transaction_date=date(2025, 3, 5),
                amount_cents=-2_500,
                currency_code="EUR",
            ),
            # No CHF rate: counted at face value.
            Transaction(
                account_id=account.id,
                transaction_date=date(2025, 3, 6),
                amount_cents=-1_000,
                currency_code="CHF",
            ),
        ]
    )
    session.commit()

    result = SpendingReportService(session).spending_by_category(
        "2025-03-01", "2025-03-31"
    )
    assert result["total_spending"] == 125.0
    assert result["data"] == [
        {
            "category_id": None,
            "category_name": "Uncategorized",
            "color": None,
            "total": 125.0,
        }
    ]
