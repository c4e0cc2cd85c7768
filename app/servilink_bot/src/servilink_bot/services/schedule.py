from datetime import date, datetime
import logging

from servilink_bot.dto import AvailabilitySlot
from servilink_bot.services.http import ApiClient, data_of
from servilink_bot.services.result import Err, Ok, Result
from servilink_bot.utils.time import parse_date, parse_time

logger = logging.getLogger(__name__)


def _to_slot(contractor_id: str, raw: dict) -> AvailabilitySlot | None:
    day = parse_date(raw.get("fecha"))
    start = parse_time(raw.get("hora_inicio"))
    end = parse_time(raw.get("hora_fin"))
    if day is None or start is None or end is None:
        return None
    slot_id = raw.get("id")
    return AvailabilitySlot(
        contractor_id=str(raw.get("contratista_id") or contractor_id),
        date=day,
        start=start,
        end=end,
        available=bool(raw.get("disponible")),
        id=str(slot_id) if slot_id is not None else None,
    )


async def fetch_availability(
    api: ApiClient,
    *,
    user_id: int | None,
    contractor_id: str,
    date_from: date,
    date_to: date,
    corr_id: str | None = None,
) -> Result[list[AvailabilitySlot]]:
    """Open slots of a contractor in ``[date_from, date_to]``, sorted by date then start time.

    No slots is a successful empty list, not an error.
    """
    res = await api.request(
        "GET",
        f"/horarios/contratista/{contractor_id}/disponibilidad",
        user_id=user_id,
        params={"fecha_inicio": date_from.isoformat(), "fecha_fin": date_to.isoformat()},
        corr_id=corr_id,
    )
    if isinstance(res, Err):
        return res

    raw_slots = data_of(res.value).get("horarios") or []
    slots: list[AvailabilitySlot] = []
    skipped = 0
    for raw in raw_slots:
        slot = _to_slot(contractor_id, raw) if isinstance(raw, dict) else None
        if slot is None:
            skipped += 1
            continue
        if not slot.available or not (date_from <= slot.date <= date_to):
            continue
        slots.append(slot)
    if skipped:
        logger.warning(
            "schedule: skipped malformed slots contractor=%s skipped=%s corr=%s",
            contractor_id,
            skipped,
            corr_id,
        )
    slots.sort(key=lambda s: (s.date, s.start_label))
    logger.info(
        "schedule: availability contractor=%s from=%s to=%s count=%s corr=%s",
        contractor_id,
        date_from,
        date_to,
        len(slots),
        corr_id,
    )
    return Ok(slots)


def slot_is_future(slot: AvailabilitySlot, now: datetime) -> bool:
    return datetime.combine(slot.date, slot.start, now.tzinfo) > now


def times_for_date(slots: list[AvailabilitySlot], day: date, now: datetime) -> list[AvailabilitySlot]:
    """Bookable slots of one day: available, strictly in the future, ordered by ``HH:MM``."""
    picked: dict[str, AvailabilitySlot] = {}
    for slot in slots:
        if slot.date != day or not slot.available or not slot_is_future(slot, now):
            continue
        picked.setdefault(slot.start_label, slot)
    return [picked[label] for label in sorted(picked)]


def bookable_dates(slots: list[AvailabilitySlot], now: datetime) -> list[date]:
    return sorted({s.date for s in slots if s.available and slot_is_future(s, now)})
