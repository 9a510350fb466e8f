from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from models import Currency


@dataclass(frozen=True)
class CurrencyInfo:
    code: str
    symbol: str
    decimal_places: int
    rate: Decimal  # units of this currency per 1 base unit
    is_base: bool = False


class CurrencyConverter:
    """Converts minor-unit amounts between currencies.

    Rates are expressed relative to the base currency, so a conversion goes
    through the base amount and is rounded once, half up, at the target's
    precision.
    """

    def __init__(self, currencies: Iterable[CurrencyInfo]) -> None:
        self._by_code = {c.code: c for c in currencies}
        base = [c for c in self._by_code.values() if c.is_base]
        if len(base) > 1:
            raise ValueError("Only one base currency is allowed")
        self.base: Optional[CurrencyInfo] = base[0] if base else None

    @classmethod
    def from_session(cls, session: Session) -> "CurrencyConverter":
        rows = session.scalars(select(Currency).order_by(Currency.code)).all()
        return cls(
            CurrencyInfo(
                code=row.code,
                symbol=row.symbol,
                decimal_places=row.decimal_places,
                rate=micros_to_rate(row.rate_micros),
                is_base=row.is_base,
            )
            for row in rows
        )

    @property
    def base_code(self) -> str:
        if self.base is None:
            raise ValueError("No base currency configured")
        return self.base.code

    def info(self, code: str) -> CurrencyInfo:
        try:
            return self._by_code[code]
        except KeyError as exc:
            raise ValueError(f"Unknown currency: {code}") from exc

    def convert(self, amount: int, from_code: str, to_code: str) -> int:
        if from_code == to_code or amount == 0:
            return amount
        source = self.info(from_code)
        target = self.info(to_code)
        major = Decimal(amount).scaleb(-source.decimal_places)
        converted = (major / source.rate * target.rate).scaleb(target.decimal_places)
        return int(converted.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    def to_base(self, amount: int, from_code: str) -> int:
        return self.convert(amount, from_code, self.base_code)

    @staticmethod
    def rate_to_micros(rate: Decimal) -> int:
        return int(
            (rate * Decimal("1000000")).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        )


def micros_to_rate(rate_micros: int) -> Decimal:
    return Decimal(rate_micros) / Decimal("1000000")
