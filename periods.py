from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, Union


DEFAULT_PERIOD = "30days"
TREND_MONTHS = 6


@dataclass(frozen=True)
class Period:
    slug: str
    start: datetime
    end: datetime


@dataclass(frozen=True)
class MonthWindow:
    """Every instant of one calendar month: ``[start, end)``."""

    year: int
    month: int

    @property
    def start(self) -> datetime:
        return datetime(self.year, self.month, 1)

    @property
    def end(self) -> datetime:
        following = add_months(date(self.year, self.month, 1), 1)
        return datetime(following.year, following.month, 1)

    def previous(self) -> "MonthWindow":
        return MonthWindow.containing(add_months(date(self.year, self.month, 1), -1))

    @classmethod
    def containing(cls, moment: Union[date, datetime]) -> "MonthWindow":
        return cls(moment.year, moment.month)


@dataclass(frozen=True)
class DateRangeWindow:
    """Inclusive ``[start, end]`` range; a missing bound is open."""

    start: Optional[datetime] = None
    end: Optional[datetime] = None


Window = Union[MonthWindow, DateRangeWindow]


def add_months(d: date, count: int) -> date:
    month_index = (d.year * 12) + (d.month - 1) + count
    year = month_index // 12
    month = (month_index % 12) + 1
    return date(year, month, 1)


def trailing_months(now: datetime, count: int = TREND_MONTHS) -> list[MonthWindow]:
    """The month containing ``now`` and the ``count - 1`` before it, oldest first."""
    anchor = now.date()
    return [
        MonthWindow.containing(add_months(anchor, -offset))
        for offset in range(count - 1, -1, -1)
    ]


def resolve_period(period: Optional[str], *, now: datetime) -> Period:
    if period == "year":
        return Period("year", datetime(now.year, 1, 1), now)
    if period == "90days":
        return Period("90days", now - timedelta(days=90), now)
    # Unknown tokens fall back to the default window.
    return Period(DEFAULT_PERIOD, now - timedelta(days=30), now)
