"""Federal Reserve holidays and banking days."""

from __future__ import annotations

import datetime as dt
import functools
from dataclasses import dataclass

_MONDAY, _THURSDAY, _SUNDAY = 0, 3, 6


@dataclass(frozen=True)
class Holiday:
    """A holiday, the date it falls on and the date banks observe it."""

    name: str
    date: dt.date
    observed: dt.date


def _nth_weekday(year: int, month: int, weekday: int, n: int) -> dt.date:
    first = dt.date(year, month, 1)
    offset = (weekday - first.weekday()) % 7
    return first + dt.timedelta(days=offset + 7 * (n - 1))


def _last_weekday(year: int, month: int, weekday: int) -> dt.date:
    next_month = dt.date(year + month // 12, month % 12 + 1, 1)
    last = next_month - dt.timedelta(days=1)
    return last - dt.timedelta(days=(last.weekday() - weekday) % 7)


def _observed(day: dt.date) -> dt.date:
    # Holidays on a Sunday are observed on Monday; Saturday ones are not moved.
    return day + dt.timedelta(days=1) if day.weekday() == _SUNDAY else day


@functools.lru_cache(maxsize=64)
def _holidays(year: int) -> tuple[Holiday, ...]:
    dates: list[tuple[str, dt.date]] = [("New Year's Day", dt.date(year, 1, 1))]
    if year >= 1986:
        dates.append(("Martin Luther King Jr. Day", _nth_weekday(year, 1, _MONDAY, 3)))
    dates += [
        ("Washington's Birthday", _nth_weekday(year, 2, _MONDAY, 3)),
        ("Memorial Day", _last_weekday(year, 5, _MONDAY)),
    ]
    if year >= 2021:
        dates.append(("Juneteenth National Independence Day", dt.date(year, 6, 19)))
    dates += [
        ("Independence Day", dt.date(year, 7, 4)),
        ("Labor Day", _nth_weekday(year, 9, _MONDAY, 1)),
        ("Columbus Day", _nth_weekday(year, 10, _MONDAY, 2)),
        ("Veterans Day", dt.date(year, 11, 11)),
        ("Thanksgiving Day", _nth_weekday(year, 11, _THURSDAY, 4)),
        ("Christmas Day", dt.date(year, 12, 25)),
    ]
    return tuple(Holiday(name, day, _observed(day)) for name, day in dates)


def _as_date(day: dt.date) -> dt.date:
    return day.date() if isinstance(day, dt.datetime) else day


def holiday_for(day: dt.date) -> Holiday | None:
    """The holiday falling on or observed on ``day``, if any."""
    when = _as_date(day)
    for holiday in _holidays(when.year):
        if when in (holiday.date, holiday.observed):
            return holiday
    return None


def is_weekend(day: dt.date) -> bool:
    return _as_date(day).weekday() >= 5


def is_banking_day(day: dt.date) -> bool:
    """A weekday that is neither a holiday nor an observed holiday."""
    return not is_weekend(day) and holiday_for(day) is None