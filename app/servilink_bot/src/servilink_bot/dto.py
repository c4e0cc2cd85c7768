from dataclasses import dataclass, field
from datetime import date, time
from enum import Enum
from typing import Optional


class Urgency(str, Enum):
    TODAY = "hoy"
    TOMORROW = "manana"
    THIS_WEEK = "esta_semana"
    NONE = "normal"


class AppointmentStatus(str, Enum):
    SCHEDULED = "programada"
    CONFIRMED = "confirmada"
    IN_PROGRESS = "en_progreso"
    COMPLETED = "completada"
    CANCELLED = "cancelada"

    @classmethod
    def parse(cls, raw: str | None) -> "AppointmentStatus":
        value = (raw or "").strip().lower()
        return _APPOINTMENT_STATUS_ALIASES.get(value, cls.SCHEDULED)

    @property
    def is_terminal(self) -> bool:
        return self in {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED}


_APPOINTMENT_STATUS_ALIASES = {
    "programada": AppointmentStatus.SCHEDULED,
    "scheduled": AppointmentStatus.SCHEDULED,
    "pendiente": AppointmentStatus.SCHEDULED,
    "confirmada": AppointmentStatus.CONFIRMED,
    "confirmed": AppointmentStatus.CONFIRMED,
    "en_progreso": AppointmentStatus.IN_PROGRESS,
    "en_curso": AppointmentStatus.IN_PROGRESS,
    "in_progress": AppointmentStatus.IN_PROGRESS,
    "completada": AppointmentStatus.COMPLETED,
    "completed": AppointmentStatus.COMPLETED,
    "cancelada": AppointmentStatus.CANCELLED,
    "cancelled": AppointmentStatus.CANCELLED,
}


class PaymentStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(frozen=True)
class AuthUser:
    id: str
    email: str
    name: str
    role: str


@dataclass
class Category:
    id: str
    name: str
    description: str


@dataclass
class Professional:
    id: str
    display_name: str
    specialty: str
    rating: float
    review_count: int
    bio: str


@dataclass
class CatalogService:
    id: str
    name: str
    description: str = ""
    base_price: Optional[float] = None


@dataclass
class CartItem:
    service_id: str
    quantity: int
    description: str
    name: str = ""
    unit_price: Optional[float] = None


@dataclass
class ServiceRequest:
    id: str
    category_id: str
    description: str
    urgency: Urgency = Urgency.NONE
    ai_summary: Optional[str] = None
    cart: list[CartItem] = field(default_factory=list)
    estimated_price: Optional[float] = None
    category_name: str = ""


@dataclass(frozen=True)
class AvailabilitySlot:
    contractor_id: str
    date: date
    start: time
    end: time
    available: bool
    id: Optional[str] = None

    @property
    def start_label(self) -> str:
        return self.start.strftime("%H:%M")


@dataclass
class Appointment:
    id: str
    request_id: str
    contractor_id: str
    client_id: str
    service_date: Optional[date]
    start: Optional[time]
    end: Optional[time]
    price: Optional[float]
    status: AppointmentStatus
    contractor_name: str = ""
    notes: str = ""
