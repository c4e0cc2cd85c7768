"""Date/time selection over a contractor's availability.

Dates:  loading -> dates_loaded | dates_empty | load_error
Times:  idle -> loading_times -> times_loaded | times_empty | times_error

Picking a date always drops the previously picked time and re-queries that
date; a time can only be picked from the last successful query for the
currently selected date.
"""

from datetime import date, datetime, timedelta
from enum import Enum
import logging
from typing import Awaitable, Callable, Optional

from servilink_bot.dto import AvailabilitySlot
from servilink_bot.services.result import Err, ErrorKind, Result
from servilink_bot.services.schedule import bookable_dates, slot_is_future, times_for_date
from servilink_bot.utils.time import parse_date, parse_time

logger = logging.getLogger(__name__)

FetchSlots = Callable[[date, date], Awaitable[Result[list[AvailabilitySlot]]]]


class DatesState(str, Enum):
    LOADING = "loading"
    LOADED = "dates_loaded"
    EMPTY = "dates_empty"
    ERROR = "load_error"


class TimesState(str, Enum):
    IDLE = "idle"
    LOADING = "loading_times"
    LOADED = "times_loaded"
    EMPTY = "times_empty"
    ERROR = "times_error"


class SelectionError(ValueError):
    pass


class DateTimeSelector:
    def __init__(
        self,
        contractor_id: str,
        fetch: FetchSlots,
        *,
        now: Callable[[], datetime],
        window_days: int = 14,
    ):
        self.contractor_id = contractor_id
        self._fetch = fetch
        self._now = now
        self.window_days = window_days

        self.dates_state = DatesState.LOADING
        self.times_state = TimesState.IDLE
        self.dates: list[date] = []
        self.times: list[AvailabilitySlot] = []
        self.selected_date: Optional[date] = None
        self.selected_time: Optional[str] = None
        self.error: Optional[Err] = None
        self._generation = 0

    async def load_dates(self) -> DatesState:
        self.dates_state = DatesState.LOADING
        self.error = None
        today = self._now().date()
        res = await self._fetch(today, today + timedelta(days=self.window_days))
        if isinstance(res, Err):
            self.dates = []
            self.error = res
            self.dates_state = DatesState.ERROR
            return self.dates_state
        self.dates = bookable_dates(res.value, self._now())
        self.dates_state = DatesState.LOADED if self.dates else DatesState.EMPTY
        return self.dates_state

    async def select_date(self, day: date) -> TimesState:
        if day not in self.dates:
            raise SelectionError(f"date {day} is not offered")
        self._generation += 1
        generation = self._generation
        self.selected_date = day
        self.selected_time = None
        self.times = []
        self.error = None
        self.times_state = TimesState.LOADING

        res = await self._fetch(day, day)
        if generation != self._generation:
            logger.info("selector: dropped stale times contractor=%s date=%s", self.contractor_id, day)
            return self.times_state
        if isinstance(res, Err):
            self.error = res
            self.times_state = TimesState.ERROR
            return self.times_state
        self.times = times_for_date(res.value, day, self._now())
        self.times_state = TimesState.LOADED if self.times else TimesState.EMPTY
        return self.times_state

    def select_time(self, hhmm: str) -> AvailabilitySlot:
        if self.times_state != TimesState.LOADED:
            raise SelectionError("no times loaded for the selected date")
        for slot in self.times:
            if slot.start_label == hhmm:
                if not slot_is_future(slot, self._now()):
                    raise SelectionError(f"time {hhmm} on {self.selected_date} has already passed")
                self.selected_time = hhmm
                return slot
        raise SelectionError(f"time {hhmm} is not offered on {self.selected_date}")

    @property
    def selected_slot(self) -> Optional[AvailabilitySlot]:
        if not self.selected_time:
            return None
        return next((s for s in self.times if s.start_label == self.selected_time), None)

    def can_confirm(self) -> bool:
        return self.selected_date is not None and self.selected_slot is not None

    def to_dict(self) -> dict:
        return {
            "contractor_id": self.contractor_id,
            "window_days": self.window_days,
            "dates_state": self.dates_state.value,
            "times_state": self.times_state.value,
            "dates": [d.isoformat() for d in self.dates],
            "times": [_slot_to_dict(s) for s in self.times],
            "selected_date": self.selected_date.isoformat() if self.selected_date else None,
            "selected_time": self.selected_time,
            "error": [self.error.kind.value, self.error.message] if self.error else None,
        }

    @classmethod
    def from_dict(cls, data: dict, fetch: FetchSlots, *, now: Callable[[], datetime]) -> "DateTimeSelector":
        selector = cls(
            data["contractor_id"],
            fetch,
            now=now,
            window_days=data.get("window_days", 14),
        )
        selector.dates_state = DatesState(data.get("dates_state", DatesState.LOADING.value))
        selector.times_state = TimesState(data.get("times_state", TimesState.IDLE.value))
        selector.dates = [d for d in (parse_date(v) for v in data.get("dates") or []) if d]
        selector.times = [s for s in (_slot_from_dict(v) for v in data.get("times") or []) if s]
        selector.selected_date = parse_date(data.get("selected_date"))
        selector.selected_time = data.get("selected_time")
        if data.get("error"):
            kind, message = data["error"]
            selector.error = Err(ErrorKind(kind), message)
        return selector


def _slot_to_dict(slot: AvailabilitySlot) -> dict:
    return {
        "id": slot.id,
        "contratista_id": slot.contractor_id,
        "fecha": slot.date.isoformat(),
        "hora_inicio": slot.start.strftime("%H:%M:%S"),
        "hora_fin": slot.end.strftime("%H:%M:%S"),
    }


def _slot_from_dict(raw: dict) -> Optional[AvailabilitySlot]:
    day = parse_date(raw.get("fecha"))
    start = parse_time(raw.get("hora_inicio"))
    end = parse_time(raw.get("hora_fin"))
    if not day or not start or not end:
        return None
    return AvailabilitySlot(
        contractor_id=raw.get("contratista_id") or "",
        date=day,
        start=start,
        end=end,
        available=True,
        id=raw.get("id"),
    )
