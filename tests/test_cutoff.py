import datetime as dt

import pytest

from achdispatch.schedule.cutoff import CutoffTimes, for_cutoff_times


def test_cutoff_times_errors():
    with pytest.raises(ValueError):
        for_cutoff_times("bad_zone", None)
    with pytest.raises(ValueError):
        for_cutoff_times("Local", None)
    with pytest.raises(ValueError):
        for_cutoff_times("Local", ["bad:time"])
    with pytest.raises(ValueError):
        for_cutoff_times("bad_zone", ["10:30"])


def test_first_cutoff():
    ct = for_cutoff_times("America/New_York", ["16:15", "08:30", "12:00"])
    try:
        assert ct.first_cutoff == "08:30"
    finally:
        ct.stop()


def test_holiday_tick():
    holiday = dt.datetime(2022, 7, 4, 15, 30, tzinfo=dt.timezone.utc)
    ct = for_cutoff_times("America/New_York", ["15:30"], clock=lambda: holiday)
    try:
        ct.maybe_tick(dt.timezone.utc)
        cutoff = ct.get(timeout=1)
        assert cutoff.time == holiday
        assert cutoff.is_banking_day is False
        assert cutoff.is_holiday is True
        assert cutoff.is_weekend is False
        assert cutoff.first_window is True
    finally:
        ct.stop()


def test_tick_converts_to_zone():
    moment = dt.datetime(2022, 7, 5, 16, 0, tzinfo=dt.timezone.utc)
    ct = CutoffTimes("America/New_York", ["12:00", "16:00"], clock=lambda: moment)
    from zoneinfo import ZoneInfo

    ct.maybe_tick(ZoneInfo("America/New_York"))
    day = ct.get(timeout=1)
    assert day.time.strftime("%H:%M") == "12:00"
    assert day.time == moment
    assert day.first_window is True
    assert day.is_banking_day is True


def test_later_window_is_not_first():
    moment = dt.datetime(2022, 7, 5, 12, 0, tzinfo=dt.timezone.utc)
    ct = CutoffTimes("UTC", ["08:30", "12:00"], clock=lambda: moment)
    ct.maybe_tick(dt.timezone.utc)
    day = ct.get(timeout=1)
    assert day.first_window is False
    assert day.holiday is None


def test_weekend_does_not_tick():
    saturday = dt.datetime(2022, 7, 2, 10, 0, tzinfo=dt.timezone.utc)
    ct = CutoffTimes("UTC", ["10:00"], clock=lambda: saturday)
    ct.maybe_tick(dt.timezone.utc)
    with pytest.raises(TimeoutError):
        ct.get(timeout=0.05)


def test_stop_releases_reader():
    ct = for_cutoff_times("UTC", ["10:00"])
    ct.stop()
    ct.stop()
    assert ct.get(timeout=1) is None