import logging

from aiogram import F, Router
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery

from servilink_bot.config import Settings
from servilink_bot.flows.confirmation import AppointmentDraft, format_confirmation
from servilink_bot.keyboards import booking_result_keyboard, booking_retry_keyboard
from servilink_bot.services.appointments import create_appointment
from servilink_bot.services.errors import user_friendly_error
from servilink_bot.services.http import ApiClient
from servilink_bot.services.result import Err, ErrorKind
from servilink_bot.states import ClientStates
from servilink_bot.utils.corr import new_corr_id
from ..utils import in_flight, now_provider, show_logged_out
from .payment import start_checkout
from .utils import DRAFT_KEY

router = Router()
logger = logging.getLogger(__name__)

BOOKING_FLAG = "booking_in_flight"


@router.callback_query(ClientStates.booking_confirm, F.data == "booking:confirm")
async def on_booking_confirm(callback: CallbackQuery, state: FSMContext, api: ApiClient, settings: Settings):
    async with in_flight(state, BOOKING_FLAG) as acquired:
        if not acquired:
            await callback.answer("Procesando…")
            return
        data = await state.get_data()
        raw_draft = data.get(DRAFT_KEY)
        if not raw_draft:
            await callback.answer("Elegí un horario antes de confirmar.", show_alert=True)
            return
        draft = AppointmentDraft.from_dict(raw_draft)
        if not draft.starts_after(now_provider(settings)()):
            logger.info(
                "client.booking: slot already started tg=%s date=%s start=%s",
                callback.from_user.id,
                draft.service_date,
                draft.start,
            )
            await state.update_data({DRAFT_KEY: None})
            await callback.message.edit_text(
                "Ese horario ya pasó. Elegí otro horario para tu cita.",
                reply_markup=booking_retry_keyboard(retryable=False),
            )
            await callback.answer()
            return
        await callback.message.edit_text("Reservando tu cita…")
        await callback.answer()

        corr_id = new_corr_id()
        res = await create_appointment(api, user_id=callback.from_user.id, draft=draft, corr_id=corr_id)
        if isinstance(res, Err):
            logger.info(
                "client.booking: create failed tg=%s contractor=%s kind=%s corr=%s",
                callback.from_user.id,
                draft.contractor_id,
                res.kind.value,
                corr_id,
            )
            if res.kind == ErrorKind.AUTH:
                await show_logged_out(callback.message, state)
                return
            note = "Tu selección se conservó, podés reintentar." if res.retryable else "Tu selección se conservó."
            await callback.message.edit_text(
                f"{user_friendly_error(res)}\n\n{note}",
                reply_markup=booking_retry_keyboard(res.retryable),
            )
            return

        outcome = res.value
        await state.update_data({DRAFT_KEY: None})
        if not outcome.payment_required:
            await state.set_state(ClientStates.booking_result)
            await callback.message.edit_text(
                (
                    "¡Cita agendada!\n"
                    f"{draft.professional_name} te visitará el {format_confirmation(draft.service_date, draft.start)}.\n"
                    "El precio final se acordará con el profesional."
                ),
                reply_markup=booking_result_keyboard(outcome.appointment_id),
            )
            return
        await start_checkout(
            callback.message,
            state,
            api,
            settings,
            user_id=callback.from_user.id,
            appointment_id=outcome.appointment_id,
            amount=outcome.amount,
        )
