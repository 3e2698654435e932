"""Cutoff times that fire on weekdays to trigger file processing."""

from __future__ import annotations

import datetime as dt
import queue
import re
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from achdispatch.schedule.holidays import Holiday, holiday_for, is_banking_day, is_weekend

Clock = Callable[[], dt.datetime]

_TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")


def _system_clock() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


@dataclass
class Day:
    """One firing of a cutoff window."""

    time: dt.datetime
    holiday: Holiday | None = None
    is_banking_day: bool = False
    is_holiday: bool = False
    is_weekend: bool = False
    # True when time is the first cutoff of the day.
    first_window: bool = False


@dataclass(frozen=True)
class _Schedule:
    hour: int
    minute: int
    zone: dt.tzinfo


def _parse_hhmm(timestamp: str) -> tuple[int, int]:
    match = _TIME_PATTERN.match(timestamp)
    if not match:
        raise ValueError(f"failed to parse '{timestamp}'")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValueError(f"failed to parse '{timestamp}' error=out of range")
    return hour, minute


def _load_zone(tz: str) -> dt.tzinfo:
    if not tz:
        return dt.timezone.utc
    if tz == "Local":
        local = dt.datetime.now().astimezone().tzinfo
        return local or dt.timezone.utc
    try:
        return ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"unknown time zone {tz!r}") from exc


def _next_fire(schedule: _Schedule, after: dt.datetime) -> dt.datetime:
    local = after.astimezone(schedule.zone)
    at = dt.time(schedule.hour, schedule.minute)
    candidate = dt.datetime.combine(local.date(), at, tzinfo=schedule.zone)
    if candidate.astimezone(dt.timezone.utc) <= after.astimezone(dt.timezone.utc):
        candidate = dt.datetime.combine(
            local.date() + dt.timedelta(days=1), at, tzinfo=schedule.zone
        )
    return candidate.astimezone(dt.timezone.utc)


class CutoffTimes:
    """Fires a Day at each cutoff time on weekdays, read with :meth:`get`."""

    def __init__(self, tz: str, timestamps: Iterable[str] | None, clock: Clock | None = None):
        self.clock = clock or _system_clock
        ordered = sorted(timestamps or [])
        self.first_cutoff = ordered[0] if ordered else ""
        self._queue: queue.Queue[Day | None] = queue.Queue()
        self._stopped = threading.Event()
        self._thread: threading.Thread | None = None
        self._schedules = self._register(tz, ordered)

    @staticmethod
    def _register(tz: str, timestamps: list[str]) -> list[_Schedule]:
        if not timestamps:
            raise ValueError("missing cutoff times")
        schedules = []
        for timestamp in timestamps:
            try:
                hour, minute = _parse_hhmm(timestamp)
                zone = _load_zone(tz)
            except ValueError as exc:
                raise ValueError(f"timestamp={timestamp} error={exc}") from exc
            schedules.append(_Schedule(hour, minute, zone))
        return schedules

    def start(self) -> None:
        """Begin firing at the registered times in a background thread."""
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="cutoff-times", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop firing; a pending or later :meth:`get` returns None."""
        if self._stopped.is_set():
            return
        self._stopped.set()
        self._queue.put(None)

    def maybe_tick(self, tz: dt.tzinfo) -> None:
        """Queue a Day for the current time in ``tz`` unless it is a weekend."""
        now = self.clock().astimezone(tz)
        if is_weekend(now):
            return
        holiday = holiday_for(now)
        self._queue.put(
            Day(
                time=now,
                holiday=holiday,
                is_banking_day=is_banking_day(now),
                is_holiday=holiday is not None,
                is_weekend=False,
                first_window=now.strftime("%H:%M") == self.first_cutoff,
            )
        )

    def get(self, timeout: float | None = None) -> Day | None:
        """Wait for the next Day; None once stopped. Raises TimeoutError on timeout."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            raise TimeoutError("no cutoff time fired") from None

    def _run(self) -> None:
        now = dt.datetime.now(dt.timezone.utc)
        pending = [_next_fire(schedule, now) for schedule in self._schedules]
        while not self._stopped.is_set():
            wait = (min(pending) - dt.datetime.now(dt.timezone.utc)).total_seconds()
            if wait > 0 and self._stopped.wait(wait):
                return
            now = dt.datetime.now(dt.timezone.utc)
            for index, (schedule, when) in enumerate(zip(self._schedules, pending)):
                if when <= now and not self._stopped.is_set():
                    self.maybe_tick(schedule.zone)
                    pending[index] = _next_fire(schedule, when + dt.timedelta(seconds=1))


def for_cutoff_times(
    tz: str, timestamps: Iterable[str] | None, clock: Clock | None = None
) -> CutoffTimes:
    """Create and start cutoff times in the zone ``tz`` (UTC when empty)."""
    cutoffs = CutoffTimes(tz, timestamps, clock)
    cutoffs.start()
    return cutoffs