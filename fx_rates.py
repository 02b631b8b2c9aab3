from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from types import MappingProxyType
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from config import get_settings
from models import ExchangeRate, UserPreference
from money import Number, to_decimal

logger = logging.getLogger(__name__)

_MICROS = Decimal("1000000")


@dataclass(frozen=True)
class FxQuote:
    from_currency: str
    to_currency: str
    rate: Decimal  # to_currency per 1 from_currency
    rate_date: Optional[date] = None


def rate_key(from_currency: str, to_currency: str) -> str:
    return f"{from_currency}->{to_currency}"


class RateTable(Mapping[str, Decimal]):
    """Immutable ``"FROM->TO" -> rate`` lookup built once per report call.

    Directed and not transitively closed: only the pairs that were quoted
    are present.
    """

    __slots__ = ("_rates", "base_currency")

    def __init__(
        self, rates: Mapping[str, Number], base_currency: str = ""
    ) -> None:
        self._rates = MappingProxyType(
            {key: to_decimal(value) for key, value in rates.items()}
        )
        self.base_currency = base_currency

    def __getitem__(self, key: str) -> Decimal:
        return self._rates[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._rates)

    def __len__(self) -> int:
        return len(self._rates)

    def __repr__(self) -> str:
        return f"RateTable(base={self.base_currency!r}, pairs={len(self._rates)})"


def build_rate_table(quotes: Iterable[FxQuote], base_currency: str) -> RateTable:
    rates: dict[str, Decimal] = {}
    for quote in quotes:
        rates[rate_key(quote.from_currency, quote.to_currency)] = quote.rate
    return RateTable(rates, base_currency=base_currency)


def convert_amount(
    amount: Number,
    from_currency: Optional[str],
    to_currency: str,
    rates: Mapping[str, Number],
) -> Number:
    """Convert with a direct or single inverse lookup, else return ``amount``.

    A missing or zero rate never raises; the amount passes through unchanged.
    """
    if not from_currency or from_currency == to_currency:
        return amount

    direct = to_decimal(rates.get(rate_key(from_currency, to_currency)))
    if direct:
        return to_decimal(amount) * direct

    inverse = to_decimal(rates.get(rate_key(to_currency, from_currency)))
    if inverse:
        return to_decimal(amount) / inverse

    logger.debug(
        "fx_identity_fallback: from=%s to=%s", from_currency, to_currency
    )
    return amount


class ReportCurrencyService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def default_currency(self) -> str:
        preferred = self.session.scalar(
            select(UserPreference.default_currency).where(
                UserPreference.user_id == self.user_id
            )
        )
        if preferred and preferred.strip():
            return preferred.strip().upper()
        return get_settings().fallback_currency

    def latest_quotes(self) -> list[FxQuote]:
        latest = (
            select(
                ExchangeRate.from_currency,
                ExchangeRate.to_currency,
                func.max(ExchangeRate.rate_date).label("rate_date"),
            )
            .group_by(ExchangeRate.from_currency, ExchangeRate.to_currency)
            .subquery()
        )
        stmt = (
            select(ExchangeRate)
            .join(
                latest,
                (ExchangeRate.from_currency == latest.c.from_currency)
                & (ExchangeRate.to_currency == latest.c.to_currency)
                & (ExchangeRate.rate_date == latest.c.rate_date),
            )
            .order_by(ExchangeRate.from_currency, ExchangeRate.to_currency)
        )
        return [
            FxQuote(
                from_currency=row.from_currency,
                to_currency=row.to_currency,
                rate=Decimal(row.rate_micros) / _MICROS,
                rate_date=row.rate_date,
            )
            for row in self.session.scalars(stmt)
        ]

    def rate_table(self, base_currency: str) -> RateTable:
        return build_rate_table(self.latest_quotes(), base_currency)

    @staticmethod
    def rate_to_micros(rate: Number) -> int:
        return int(
            (to_decimal(rate) * _MICROS).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        )
