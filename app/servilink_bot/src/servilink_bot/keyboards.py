from datetime import date

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup

from servilink_bot.dto import Appointment, AppointmentStatus, AvailabilitySlot, CartItem, CatalogService, Category, Urgency
from servilink_bot.flows.cart import quantity_of
from servilink_bot.flows.confirmation import WEEKDAYS
from servilink_bot.utils.time import fmt_hhmm

URGENCY_LABELS = {
    Urgency.TODAY: "Hoy",
    Urgency.TOMORROW: "Mañana",
    Urgency.THIS_WEEK: "Esta semana",
    Urgency.NONE: "Sin apuro",
}

STATUS_LABELS = {
    AppointmentStatus.SCHEDULED: "Programada",
    AppointmentStatus.CONFIRMED: "Confirmada",
    AppointmentStatus.IN_PROGRESS: "En progreso",
    AppointmentStatus.COMPLETED: "Completada",
    AppointmentStatus.CANCELLED: "Cancelada",
}


def start_keyboard():
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text="Iniciar sesión", callback_data="auth:login")],
        ]
    )


def main_menu_keyboard():
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text="🛠 Nueva solicitud", callback_data="menu:new_request")],
            [InlineKeyboardButton(text="📋 Mis citas", callback_data="appts:mine")],
            [
                InlineKeyboardButton(text="👤 Perfil", callback_data="menu:profile"),
                InlineKeyboardButton(text="❓ Ayuda", callback_data="menu:help"),
            ],
        ]
    )


def main_menu_only_keyboard():
    """Only the way back home (dead-end screens)."""
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text="🏠 Menú principal", callback_data="menu:main")],
        ]
    )


def help_keyboard(support_url: str):
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text="💬 Soporte por WhatsApp", url=support_url)],
            [InlineKeyboardButton(text="🏠 Menú principal", callback_data="menu:main")],
        ]
    )


def categories_keyboard(categories: list[Category]):
    buttons = [
        [InlineKeyboardButton(text=c.name, callback_data=f"cat:choose:{c.id}")]
        for c in categories[:30]
    ]
    buttons.append([InlineKeyboardButton(text="🏠 Menú principal", callback_data="menu:main")])
    return InlineKeyboardMarkup(inline_keyboard=buttons)


def cart_keyboard(services: list[CatalogService], cart: list[CartItem]):
    buttons = []
    for s in services[:20]:
        qty = quantity_of(cart, s.id)
        if qty:
            buttons.append(
                [
                    InlineKeyboardButton(text=f"➖ {s.name} ×{qty}", callback_data=f"cart:dec:{s.id}"),
                    InlineKeyboardButton(text="➕", callback_data=f"cart:add:{s.id}"),
                ]
            )
        else:
            buttons.append([InlineKeyboardButton(text=f"➕ {s.name}", callback_data=f"cart:add:{s.id}")])
    buttons.append([InlineKeyboardButton(text="Continuar ▶️", callback_data="cart:done")])
    return InlineKeyboardMarkup(inline_keyboard=buttons)


def urgency_keyboard():
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text=label, callback_data=f"urg:{u.value}")]
            for u, label in URGENCY_LABELS.items()
        ]
    )


def retry_keyboard(callback_data: str):
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text="🔄 Reintentar", callback_data=callback_data)],
            [InlineKeyboardButton(text="🏠 Menú principal", callback_data="menu:main")],
        ]
    )


def professional_keyboard(professional_id: str, has_next: bool):
    buttons = [[InlineKeyboardButton(text="📅 Coordinar visita", callback_data=f"pro:schedule:{professional_id}")]]
    if has_next:
        buttons.append([InlineKeyboardButton(text="➡️ Ver otro profesional", callback_data="pro:next")])
    buttons.append([InlineKeyboardButton(text="🏠 Menú principal", callback_data="menu:main")])
    return InlineKeyboardMarkup(inline_keyboard=buttons)


def date_label(day: date) -> str:
    return f"{WEEKDAYS[day.weekday()][:3]} {day.strftime('%d/%m')}"


def dates_keyboard(dates: list[date], max_shown: int):
    rows: list[list[InlineKeyboardButton]] = []
    row: list[InlineKeyboardButton] = []
    for day in dates[:max_shown]:
        row.append(InlineKeyboardButton(text=date_label(day), callback_data=f"date:{day.isoformat()}"))
        if len(row) == 2:
            rows.append(row)
            row = []
    if row:
        rows.append(row)
    rows.append([InlineKeyboardButton(text="◀️ Volver al profesional", callback_data="dates:back")])
    return InlineKeyboardMarkup(inline_keyboard=rows)


def times_keyboard(slots: list[AvailabilitySlot]):
    rows: list[list[InlineKeyboardButton]] = []
    row: list[InlineKeyboardButton] = []
    for slot in slots:
        row.append(InlineKeyboardButton(text=slot.start_label, callback_data=f"time:pick:{slot.start_label}"))
        if len(row) == 3:
            rows.append(row)
            row = []
    if row:
        rows.append(row)
    rows.append([InlineKeyboardButton(text="◀️ Cambiar fecha", callback_data="times:back")])
    return InlineKeyboardMarkup(inline_keyboard=rows)


def times_retry_keyboard():
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text="🔄 Reintentar", callback_data="times:retry")],
            [InlineKeyboardButton(text="◀️ Cambiar fecha", callback_data="times:back")],
        ]
    )


def booking_confirm_keyboard():
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text="✅ Confirmar cita", callback_data="booking:confirm")],
            [InlineKeyboardButton(text="◀️ Cambiar horario", callback_data="times:back")],
        ]
    )


def booking_retry_keyboard(retryable: bool = True):
    buttons = []
    if retryable:
        buttons.append([InlineKeyboardButton(text="🔄 Reintentar", callback_data="booking:confirm")])
    buttons.append([InlineKeyboardButton(text="◀️ Cambiar horario", callback_data="times:back")])
    return InlineKeyboardMarkup(inline_keyboard=buttons)


def booking_result_keyboard(appointment_id: str):
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text="📍 Seguir mi servicio", callback_data=f"appt:track:{appointment_id}")],
            [InlineKeyboardButton(text="📋 Mis citas", callback_data="appts:mine")],
            [InlineKeyboardButton(text="🏠 Menú principal", callback_data="menu:main")],
        ]
    )


def payment_keyboard(init_point: str):
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text="💳 Pagar con Mercado Pago", url=init_point)],
            [InlineKeyboardButton(text="📋 Mis citas", callback_data="appts:mine")],
        ]
    )


def payment_error_keyboard(appointment_id: str | None):
    buttons = []
    if appointment_id:
        buttons.append([InlineKeyboardButton(text="🔄 Reintentar pago", callback_data=f"pay:retry:{appointment_id}")])
    buttons.append([InlineKeyboardButton(text="📋 Mis citas", callback_data="appts:mine")])
    return InlineKeyboardMarkup(inline_keyboard=buttons)


def my_appointments_keyboard(appointments: list[Appointment]):
    buttons: list[list[InlineKeyboardButton]] = []
    for a in appointments[:20]:
        when = a.service_date.strftime("%d/%m") if a.service_date else "—"
        title = f"{when} {fmt_hhmm(a.start)} · {a.contractor_name or 'Profesional'} · {STATUS_LABELS[a.status]}"
        buttons.append([InlineKeyboardButton(text=title, callback_data=f"appt:detail:{a.id}")])
    buttons.append([InlineKeyboardButton(text="🏠 Menú principal", callback_data="menu:main")])
    return InlineKeyboardMarkup(inline_keyboard=buttons)


def appointment_detail_keyboard(appointment: Appointment):
    buttons: list[list[InlineKeyboardButton]] = []
    if not appointment.status.is_terminal:
        buttons.append([InlineKeyboardButton(text="📍 Seguimiento", callback_data=f"appt:track:{appointment.id}")])
    if appointment.status == AppointmentStatus.COMPLETED:
        buttons.append([InlineKeyboardButton(text="⭐ Calificar servicio", callback_data=f"appt:rate:{appointment.id}")])
    buttons.append([InlineKeyboardButton(text="◀️ Volver a mis citas", callback_data="appts:mine")])
    return InlineKeyboardMarkup(inline_keyboard=buttons)


def rating_keyboard(appointment_id: str):
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [
                InlineKeyboardButton(text="⭐" * score, callback_data=f"rate:{appointment_id}:{score}")
                for score in range(1, 6)
            ],
            [InlineKeyboardButton(text="◀️ Volver", callback_data=f"appt:detail:{appointment_id}")],
        ]
    )


def tracking_keyboard(appointment_id: str):
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text="🔄 Actualizar", callback_data=f"appt:track:{appointment_id}")],
            [InlineKeyboardButton(text="◀️ Volver a mis citas", callback_data="appts:mine")],
        ]
    )


def tracking_finished_keyboard(appointment_id: str, completed: bool):
    buttons: list[list[InlineKeyboardButton]] = []
    if completed:
        buttons.append([InlineKeyboardButton(text="⭐ Calificar servicio", callback_data=f"appt:rate:{appointment_id}")])
    buttons.append([InlineKeyboardButton(text="◀️ Volver a mis citas", callback_data="appts:mine")])
    return InlineKeyboardMarkup(inline_keyboard=buttons)


# Contractor keyboards


def contractor_main_menu_keyboard():
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text="📋 Mis trabajos", callback_data="ctr:appts")],
            [InlineKeyboardButton(text="👤 Perfil", callback_data="menu:profile")],
        ]
    )


def contractor_appointments_keyboard(appointments: list[Appointment]):
    buttons: list[list[InlineKeyboardButton]] = []
    for a in appointments[:20]:
        when = a.service_date.strftime("%d/%m") if a.service_date else "—"
        title = f"{when} {fmt_hhmm(a.start)} · {STATUS_LABELS[a.status]}"
        buttons.append([InlineKeyboardButton(text=title, callback_data=f"ctr:detail:{a.id}")])
    buttons.append([InlineKeyboardButton(text="🏠 Menú principal", callback_data="menu:main")])
    return InlineKeyboardMarkup(inline_keyboard=buttons)


def contractor_detail_keyboard(appointment: Appointment):
    buttons: list[list[InlineKeyboardButton]] = []
    if appointment.status in {AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED}:
        buttons.append([InlineKeyboardButton(text="📍 Llegué al domicilio", callback_data=f"ctr:arrive:{appointment.id}")])
        buttons.append([InlineKeyboardButton(text="▶️ Iniciar servicio", callback_data=f"ctr:start:{appointment.id}")])
    elif appointment.status == AppointmentStatus.IN_PROGRESS:
        buttons.append([InlineKeyboardButton(text="✅ Completar servicio", callback_data=f"ctr:complete:{appointment.id}")])
    buttons.append([InlineKeyboardButton(text="◀️ Volver a mis trabajos", callback_data="ctr:appts")])
    return InlineKeyboardMarkup(inline_keyboard=buttons)
