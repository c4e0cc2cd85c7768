from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional

from servilink_bot.dto import Professional, ServiceRequest
from servilink_bot.utils.time import fmt_wire_time, parse_time

# Sent instead of a number when no price has been agreed yet.
TO_BE_QUOTED = "a_cotizar"

WEEKDAYS = ("lunes", "martes", "miércoles", "jueves", "viernes", "sábado", "domingo")
MONTHS = (
    "enero",
    "febrero",
    "marzo",
    "abril",
    "mayo",
    "junio",
    "julio",
    "agosto",
    "septiembre",
    "octubre",
    "noviembre",
    "diciembre",
)

_LAST_MINUTE = time(23, 59)


class AssemblyError(ValueError):
    pass


@dataclass(frozen=True)
class AppointmentDraft:
    request_id: str
    contractor_id: str
    client_id: str
    service_date: date
    start: time
    end: time
    price: Optional[float]
    notes: str
    professional_name: str = ""

    @property
    def requires_payment(self) -> bool:
        return self.price is not None and self.price > 0

    def starts_after(self, now: datetime) -> bool:
        return datetime.combine(self.service_date, self.start, now.tzinfo) > now

    def payload(self) -> dict:
        return {
            "solicitud_id": self.request_id,
            "contratista_id": self.contractor_id,
            "cliente_id": self.client_id,
            "fecha_servicio": self.service_date.isoformat(),
            "hora_inicio": fmt_wire_time(self.start),
            "hora_fin": fmt_wire_time(self.end),
            "precio_acordado": self.price if self.price is not None else TO_BE_QUOTED,
            "notas_cliente": self.notes,
        }

    def to_dict(self) -> dict:
        return {**self.payload(), "precio": self.price, "profesional": self.professional_name}

    @classmethod
    def from_dict(cls, data: dict) -> "AppointmentDraft":
        return cls(
            request_id=data["solicitud_id"],
            contractor_id=data["contratista_id"],
            client_id=data["cliente_id"],
            service_date=date.fromisoformat(data["fecha_servicio"]),
            start=parse_time(data["hora_inicio"]),
            end=parse_time(data["hora_fin"]),
            price=data.get("precio"),
            notes=data.get("notas_cliente") or "",
            professional_name=data.get("profesional") or "",
        )


def _end_time(start: time, slot_end: Optional[time], duration_hours: int) -> time:
    if slot_end is not None and slot_end > start:
        return slot_end
    end_dt = datetime.combine(date.min, start) + timedelta(hours=duration_hours)
    if end_dt.date() != date.min:
        return _LAST_MINUTE
    return end_dt.time()


def assemble_appointment(
    *,
    professional: Professional,
    service: ServiceRequest,
    selected_date: date | None,
    selected_time: str | time | None,
    client_id: str,
    slot_end: time | None = None,
    price: float | None = None,
    duration_hours: int = 2,
) -> AppointmentDraft:
    """Build the ``POST /citas`` draft from the wizard selections.

    ``price`` falls back to the request's estimate; with neither the draft
    carries the "to be quoted" sentinel.
    """
    if selected_date is None:
        raise AssemblyError("a service date must be selected")
    start = parse_time(selected_time)
    if start is None:
        raise AssemblyError("a start time must be selected")
    start = start.replace(second=0, microsecond=0)
    end = _end_time(start, slot_end, duration_hours)
    if end <= start:
        raise AssemblyError(f"end time {end} is not after start time {start}")
    if price is None:
        price = service.estimated_price
    if price is not None and price < 0:
        raise AssemblyError("price cannot be negative")
    notes = (service.description or "").strip() or "Servicio solicitado"
    return AppointmentDraft(
        request_id=service.id,
        contractor_id=professional.id,
        client_id=client_id,
        service_date=selected_date,
        start=start,
        end=end,
        price=price,
        notes=notes,
        professional_name=professional.display_name,
    )


def format_day(day: date) -> str:
    return f"{WEEKDAYS[day.weekday()]}, {day.day} de {MONTHS[day.month - 1]}"


def format_confirmation(day: date, at: str | time) -> str:
    """``"miércoles, 27 de agosto a las 10:00 hs"`` regardless of the process locale."""
    start = parse_time(at)
    label = start.strftime("%H:%M") if start else str(at)
    return f"{format_day(day)} a las {label} hs"


def format_price(price: float | None) -> str:
    if price is None:
        return "A cotizar"
    return "$" + f"{price:,.0f}".replace(",", ".")
