import logging

from aiogram import F, Router
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery, Message

from servilink_bot.keyboards import (
    contractor_appointments_keyboard,
    contractor_detail_keyboard,
    main_menu_only_keyboard,
)
from servilink_bot.services import appointments as appt_svc
from servilink_bot.services import tracking as tracking_svc
from servilink_bot.services.errors import user_friendly_error
from servilink_bot.services.http import ApiClient
from servilink_bot.services.result import Err, ErrorKind
from servilink_bot.states import ContractorStates
from servilink_bot.utils.corr import new_corr_id
from ..client.bookings import appointment_text
from ..utils import show_error, show_logged_out

router = Router()
logger = logging.getLogger(__name__)

ACTIVE_KEY = "active_appointment_id"


async def _show_detail(callback: CallbackQuery, state: FSMContext, api: ApiClient, appointment_id: str, note: str = ""):
    res = await appt_svc.get_appointment(
        api, user_id=callback.from_user.id, appointment_id=appointment_id, corr_id=new_corr_id()
    )
    if isinstance(res, Err):
        await show_error(callback.message, state, res, retry=f"ctr:detail:{appointment_id}")
        return
    appointment = res.value
    await state.set_state(ContractorStates.appointment_detail)
    await state.update_data({ACTIVE_KEY: None if appointment.status.is_terminal else appointment.id})
    text = appointment_text(appointment)
    if not appointment.status.is_terminal:
        text += "\n\nCompartí tu ubicación en tiempo real para que el cliente vea cuándo llegás."
    if note:
        text = f"{note}\n\n{text}"
    await callback.message.edit_text(text, reply_markup=contractor_detail_keyboard(appointment))


@router.callback_query(F.data == "ctr:appts")
async def on_contractor_appointments(callback: CallbackQuery, state: FSMContext, api: ApiClient):
    session = api.sessions.get(callback.from_user.id)
    if session is None:
        await show_logged_out(callback.message, state)
        await callback.answer()
        return
    corr_id = new_corr_id()
    res = await appt_svc.list_appointments(
        api, user_id=callback.from_user.id, contractor_id=session.user.id, limit=20, corr_id=corr_id
    )
    if isinstance(res, Err):
        await show_error(callback.message, state, res, retry="ctr:appts")
        await callback.answer()
        return
    appointments = res.value
    logger.info("contractor.service: appointments tg=%s count=%s corr=%s", callback.from_user.id, len(appointments), corr_id)
    await state.set_state(ContractorStates.appointments)
    if not appointments:
        await callback.message.edit_text("No tenés trabajos asignados.", reply_markup=main_menu_only_keyboard())
    else:
        await callback.message.edit_text("Mis trabajos:", reply_markup=contractor_appointments_keyboard(appointments))
    await callback.answer()


@router.callback_query(F.data.startswith("ctr:detail:"))
async def on_contractor_detail(callback: CallbackQuery, state: FSMContext, api: ApiClient):
    await _show_detail(callback, state, api, callback.data.split(":", 2)[2])
    await callback.answer()


@router.callback_query(ContractorStates.appointment_detail, F.data.startswith("ctr:arrive:"))
async def on_arrive(callback: CallbackQuery, state: FSMContext, api: ApiClient):
    appointment_id = callback.data.split(":", 2)[2]
    data = await state.get_data()
    res = await tracking_svc.confirm_arrival(
        api,
        user_id=callback.from_user.id,
        appointment_id=appointment_id,
        latitude=data.get("last_latitude"),
        longitude=data.get("last_longitude"),
        corr_id=new_corr_id(),
    )
    if isinstance(res, Err):
        await show_error(callback.message, state, res, retry=f"ctr:detail:{appointment_id}")
        await callback.answer()
        return
    await _show_detail(callback, state, api, appointment_id, note="Llegada registrada ✅")
    await callback.answer()


@router.callback_query(ContractorStates.appointment_detail, F.data.startswith("ctr:start:"))
async def on_start_service(callback: CallbackQuery, state: FSMContext, api: ApiClient):
    appointment_id = callback.data.split(":", 2)[2]
    res = await appt_svc.start_service(
        api, user_id=callback.from_user.id, appointment_id=appointment_id, corr_id=new_corr_id()
    )
    if isinstance(res, Err):
        await show_error(callback.message, state, res, retry=f"ctr:detail:{appointment_id}")
        await callback.answer()
        return
    await _show_detail(callback, state, api, appointment_id, note="Servicio iniciado ▶️")
    await callback.answer()


@router.callback_query(ContractorStates.appointment_detail, F.data.startswith("ctr:complete:"))
async def on_complete_service(callback: CallbackQuery, state: FSMContext, api: ApiClient):
    appointment_id = callback.data.split(":", 2)[2]
    res = await appt_svc.complete_service(
        api, user_id=callback.from_user.id, appointment_id=appointment_id, corr_id=new_corr_id()
    )
    if isinstance(res, Err):
        await show_error(callback.message, state, res, retry=f"ctr:detail:{appointment_id}")
        await callback.answer()
        return
    await _show_detail(callback, state, api, appointment_id, note="Servicio completado ✅")
    await callback.answer()


async def _on_location(message: Message, state: FSMContext, api: ApiClient, *, live: bool):
    session = api.sessions.get(message.from_user.id)
    if session is None or not session.is_contractor:
        return
    data = await state.get_data()
    latitude, longitude = message.location.latitude, message.location.longitude
    await state.update_data(last_latitude=latitude, last_longitude=longitude)
    appointment_id = data.get(ACTIVE_KEY)
    if not appointment_id:
        if not live:
            await message.answer("Abrí un trabajo en \"Mis trabajos\" para compartir tu ubicación con el cliente.")
        return
    res = await tracking_svc.update_position(
        api,
        user_id=message.from_user.id,
        appointment_id=appointment_id,
        latitude=latitude,
        longitude=longitude,
        corr_id=new_corr_id(),
    )
    if isinstance(res, Err):
        logger.info(
            "contractor.service: position update failed tg=%s appointment=%s kind=%s",
            message.from_user.id,
            appointment_id,
            res.kind.value,
        )
        if res.kind == ErrorKind.AUTH:
            await show_logged_out(message, state, edit=False)
        elif not live:
            await message.answer(user_friendly_error(res))
        return
    if not live:
        await message.answer("Ubicación enviada al cliente 📍")


@router.message(F.location)
async def on_location(message: Message, state: FSMContext, api: ApiClient):
    await _on_location(message, state, api, live=False)


@router.edited_message(F.location)
async def on_live_location(message: Message, state: FSMContext, api: ApiClient):
    await _on_location(message, state, api, live=True)
