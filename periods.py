from dataclasses import dataclass
from datetime import date
from enum import IntEnum
from typing import Optional, Union


class Period(IntEnum):
    AUTOMATIC = 0
    THIS_MONTH = 1
    LAST_MONTH = 2
    THIS_YEAR = 3

    @property
    def label(self) -> str:
        return PERIOD_LABELS[self]


PERIOD_LABELS = {
    Period.AUTOMATIC: "Automatic",
    Period.THIS_MONTH: "This Month",
    Period.LAST_MONTH: "Last Month",
    Period.THIS_YEAR: "This Year",
}


def month_end(year: int, month: int) -> date:
    if month == 12:
        return date(year + 1, 1, 1) - date.resolution
    return date(year, month + 1, 1) - date.resolution


@dataclass(frozen=True)
class PeriodSelection:
    start_month: int
    year: int
    month_count: int

    @property
    def months(self) -> range:
        return range(self.start_month, self.start_month + self.month_count)

    @property
    def start(self) -> date:
        return date(self.year, self.start_month, 1)

    @property
    def end(self) -> date:
        return month_end(self.year, self.start_month + self.month_count - 1)


def resolve_period(
    period: Union[Period, int, None],
    *,
    today: Optional[date] = None,
) -> PeriodSelection:
    today = today or date.today()
    if period == Period.THIS_MONTH:
        return PeriodSelection(today.month, today.year, 1)
    if period == Period.LAST_MONTH:
        if today.month == 1:
            return PeriodSelection(12, today.year - 1, 1)
        return PeriodSelection(today.month - 1, today.year, 1)
    if period == Period.THIS_YEAR:
        return PeriodSelection(1, today.year, 12)

    # automatic: January through the current month
    return PeriodSelection(1, today.year, today.month)
