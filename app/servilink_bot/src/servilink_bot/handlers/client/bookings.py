import logging

from aiogram import F, Router
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery

from servilink_bot.dto import Appointment, AppointmentStatus
from servilink_bot.flows.confirmation import format_confirmation, format_price
from servilink_bot.keyboards import (
    STATUS_LABELS,
    appointment_detail_keyboard,
    main_menu_only_keyboard,
    my_appointments_keyboard,
    rating_keyboard,
)
from servilink_bot.services import appointments as appt_svc
from servilink_bot.services.http import ApiClient
from servilink_bot.services.result import Err
from servilink_bot.states import ClientStates
from servilink_bot.utils.corr import new_corr_id
from ..utils import show_error, show_logged_out

router = Router()
logger = logging.getLogger(__name__)

RATED_KEY = "rated_appointments"


def appointment_text(appointment: Appointment) -> str:
    when = (
        format_confirmation(appointment.service_date, appointment.start)
        if appointment.service_date and appointment.start
        else "a coordinar"
    )
    lines = [
        f"Cita #{appointment.id}",
        f"Profesional: {appointment.contractor_name or appointment.contractor_id or '—'}",
        f"Cuándo: {when}",
        f"Precio: {format_price(appointment.price)}",
        f"Estado: {STATUS_LABELS[appointment.status]}",
    ]
    if appointment.notes:
        lines.append(f"Notas: {appointment.notes}")
    return "\n".join(lines)


@router.callback_query(F.data == "appts:mine")
async def on_my_appointments(callback: CallbackQuery, state: FSMContext, api: ApiClient):
    session = api.sessions.get(callback.from_user.id)
    if session is None:
        await show_logged_out(callback.message, state)
        await callback.answer()
        return
    corr_id = new_corr_id()
    logger.info("client.bookings: tg=%s client_id=%s corr=%s", callback.from_user.id, session.user.id, corr_id)
    res = await appt_svc.list_appointments(
        api, user_id=callback.from_user.id, client_id=session.user.id, limit=20, corr_id=corr_id
    )
    if isinstance(res, Err):
        await show_error(callback.message, state, res, retry="appts:mine")
        await callback.answer()
        return
    appointments = res.value
    await state.set_state(ClientStates.my_appointments)
    if not appointments:
        await callback.message.edit_text(
            "Todavía no tenés citas. Creá una nueva solicitud desde el menú.",
            reply_markup=main_menu_only_keyboard(),
        )
        await callback.answer()
        return
    active = sum(1 for a in appointments if not a.status.is_terminal)
    await callback.message.edit_text(
        f"Mis citas\nActivas: {active} · Total: {len(appointments)}",
        reply_markup=my_appointments_keyboard(appointments),
    )
    await callback.answer()


@router.callback_query(F.data.startswith("appt:detail:"))
async def on_appointment_detail(callback: CallbackQuery, state: FSMContext, api: ApiClient):
    appointment_id = callback.data.split(":", 2)[2]
    res = await appt_svc.get_appointment(
        api, user_id=callback.from_user.id, appointment_id=appointment_id, corr_id=new_corr_id()
    )
    if isinstance(res, Err):
        await show_error(callback.message, state, res, retry=f"appt:detail:{appointment_id}")
        await callback.answer()
        return
    appointment = res.value
    await state.set_state(ClientStates.appointment_detail)
    await callback.message.edit_text(appointment_text(appointment), reply_markup=appointment_detail_keyboard(appointment))
    await callback.answer()


@router.callback_query(F.data.startswith("appt:rate:"))
async def on_rate(callback: CallbackQuery, state: FSMContext):
    appointment_id = callback.data.split(":", 2)[2]
    data = await state.get_data()
    if appointment_id in (data.get(RATED_KEY) or []):
        await callback.answer("Ya calificaste este servicio. ¡Gracias!", show_alert=True)
        return
    await state.set_state(ClientStates.rating)
    await callback.message.edit_text("¿Cómo calificarías el servicio?", reply_markup=rating_keyboard(appointment_id))
    await callback.answer()


@router.callback_query(ClientStates.rating, F.data.startswith("rate:"))
async def on_rate_score(callback: CallbackQuery, state: FSMContext, api: ApiClient):
    _, appointment_id, raw_score = callback.data.split(":")
    corr_id = new_corr_id()
    res = await appt_svc.get_appointment(
        api, user_id=callback.from_user.id, appointment_id=appointment_id, corr_id=corr_id
    )
    if isinstance(res, Err):
        await show_error(callback.message, state, res, retry=f"appt:rate:{appointment_id}")
        await callback.answer()
        return
    if res.value.status != AppointmentStatus.COMPLETED:
        await callback.answer("Solo podés calificar servicios completados.", show_alert=True)
        return
    contractor_id = res.value.contractor_id
    res = await appt_svc.rate_service(
        api,
        user_id=callback.from_user.id,
        appointment_id=appointment_id,
        contractor_id=contractor_id,
        score=int(raw_score),
        corr_id=corr_id,
    )
    if isinstance(res, Err):
        await show_error(callback.message, state, res, retry=f"appt:rate:{appointment_id}")
        await callback.answer()
        return
    data = await state.get_data()
    await state.update_data({RATED_KEY: [*(data.get(RATED_KEY) or []), appointment_id]})
    await state.set_state(ClientStates.my_appointments)
    await callback.message.edit_text("¡Gracias por tu calificación!", reply_markup=main_menu_only_keyboard())
    await callback.answer()
