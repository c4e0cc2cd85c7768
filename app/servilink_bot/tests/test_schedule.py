"""Tests for the availability query adapter and slot filtering helpers."""

from datetime import date

import httpx
import pytest

from servilink_bot.services.result import Err, ErrorKind, Ok
from servilink_bot.services.schedule import bookable_dates, fetch_availability, slot_is_future, times_for_date

from conftest import TG_ID, local, make_slot, ok

DAY = date(2025, 8, 27)


def _raw(fecha: str, start: str, end: str, available: bool = True) -> dict:
    return {"contratista_id": 42, "fecha": fecha, "hora_inicio": start, "hora_fin": end, "disponible": available}


AVAILABILITY = [
    _raw("2025-08-27", "14:00:00", "15:00:00"),
    _raw("2025-08-27", "09:00:00", "10:00:00"),
    _raw("2025-08-27", "11:00:00", "12:00:00", available=False),
    _raw("2025-08-27", "10:00:00", "11:00:00"),
    _raw("2025-08-28", "08:00:00", "09:00:00"),
    _raw("2025-09-30", "09:00:00", "10:00:00"),
    {"fecha": "2025-08-27", "hora_inicio": "not-a-time", "hora_fin": "10:00", "disponible": True},
]


class TestFetchAvailability:
    @pytest.mark.asyncio
    async def test_filters_and_orders_slots(self, make_api):
        seen = []

        def handler(request):
            seen.append(request)
            return ok({"horarios": AVAILABILITY})

        api = make_api(handler)
        res = await fetch_availability(
            api, user_id=TG_ID, contractor_id="42", date_from=DAY, date_to=date(2025, 9, 10)
        )
        assert isinstance(res, Ok)
        assert [(s.date.isoformat(), s.start_label) for s in res.value] == [
            ("2025-08-27", "09:00"),
            ("2025-08-27", "10:00"),
            ("2025-08-27", "14:00"),
            ("2025-08-28", "08:00"),
        ]
        assert seen[0].url.path == "/horarios/contratista/42/disponibilidad"
        assert seen[0].url.params["fecha_inicio"] == "2025-08-27"
        assert seen[0].url.params["fecha_fin"] == "2025-09-10"

    @pytest.mark.asyncio
    async def test_same_query_same_result(self, make_api):
        api = make_api(lambda request: ok({"horarios": list(reversed(AVAILABILITY))}))
        first = await fetch_availability(api, user_id=TG_ID, contractor_id="42", date_from=DAY, date_to=DAY)
        second = await fetch_availability(api, user_id=TG_ID, contractor_id="42", date_from=DAY, date_to=DAY)
        assert first == second
        assert [s.start_label for s in first.value] == ["09:00", "10:00", "14:00"]

    @pytest.mark.asyncio
    async def test_no_slots_is_empty_success(self, make_api):
        api = make_api(lambda request: ok({"horarios": []}))
        res = await fetch_availability(api, user_id=TG_ID, contractor_id="42", date_from=DAY, date_to=DAY)
        assert res == Ok([])

    @pytest.mark.asyncio
    async def test_network_failure_is_not_retried(self, make_api):
        calls = 0

        def handler(request):
            nonlocal calls
            calls += 1
            raise httpx.ReadTimeout("timeout", request=request)

        api = make_api(handler)
        res = await fetch_availability(api, user_id=TG_ID, contractor_id="42", date_from=DAY, date_to=DAY)
        assert isinstance(res, Err) and res.kind == ErrorKind.NETWORK
        assert calls == 1


class TestSlotFilters:
    def test_slot_must_start_strictly_after_now(self):
        slot = make_slot(DAY, "10:00")
        assert slot_is_future(slot, local(2025, 8, 27, 9, 59))
        assert not slot_is_future(slot, local(2025, 8, 27, 10, 0))

    def test_times_for_date_skips_past_and_dedupes(self):
        slots = [
            make_slot(DAY, "14:00"),
            make_slot(DAY, "09:00"),
            make_slot(DAY, "14:00"),
            make_slot(DAY, "12:00"),
            make_slot(date(2025, 8, 28), "08:00"),
        ]
        picked = times_for_date(slots, DAY, local(2025, 8, 27, 11, 0))
        assert [s.start_label for s in picked] == ["12:00", "14:00"]

    def test_bookable_dates_drop_days_without_future_slots(self):
        slots = [make_slot(DAY, "09:00"), make_slot(date(2025, 8, 28), "08:00")]
        assert bookable_dates(slots, local(2025, 8, 27, 12, 0)) == [date(2025, 8, 28)]
