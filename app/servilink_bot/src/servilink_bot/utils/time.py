from datetime import date, datetime, time, timedelta, timezone


def local_tz(tz_offset_min: int) -> timezone:
    return timezone(timedelta(minutes=tz_offset_min))


def local_now(tz_offset_min: int) -> datetime:
    return datetime.now(local_tz(tz_offset_min))


def parse_date(value) -> date | None:
    """Accept ``date``/``datetime`` objects and ``YYYY-MM-DD`` strings (with or without a time part)."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = str(value).strip()
    if not raw:
        return None
    try:
        return date.fromisoformat(raw[:10])
    except ValueError:
        return None


def parse_time(value) -> time | None:
    """Accept ``time`` objects and ``HH:MM`` / ``HH:MM:SS`` strings."""
    if value is None:
        return None
    if isinstance(value, time):
        return value
    raw = str(value).strip()
    for fmt in ("%H:%M:%S", "%H:%M"):
        try:
            return datetime.strptime(raw, fmt).time()
        except ValueError:
            continue
    return None


def fmt_hhmm(value: time | None) -> str:
    return value.strftime("%H:%M") if value else "—"


def fmt_wire_time(value: time) -> str:
    return value.strftime("%H:%M:%S")