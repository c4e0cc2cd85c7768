import logging

from aiogram import F, Router
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery

from servilink_bot.config import Settings
from servilink_bot.flows.confirmation import format_price
from servilink_bot.flows.payment import PaymentLanding, PaymentReturn, build_return_urls
from servilink_bot.keyboards import booking_result_keyboard, main_menu_only_keyboard, payment_error_keyboard, payment_keyboard, start_keyboard
from servilink_bot.services.appointments import confirm_appointment, get_appointment
from servilink_bot.services.errors import user_friendly_error
from servilink_bot.services.http import ApiClient
from servilink_bot.services.payments import create_checkout
from servilink_bot.services.result import Err, ErrorKind
from servilink_bot.states import ClientStates
from servilink_bot.utils.corr import new_corr_id
from ..utils import in_flight, show_logged_out

router = Router()
logger = logging.getLogger(__name__)

PAYMENT_FLAG = "payment_in_flight"
AMOUNTS_KEY = "payment_amounts"


async def start_checkout(
    message,
    state: FSMContext,
    api: ApiClient,
    settings: Settings,
    *,
    user_id: int,
    appointment_id: str,
    amount: float,
):
    """Opens a fresh checkout for the appointment; the URL is only ever shown, never stored."""
    await state.set_state(ClientStates.payment)
    data = await state.get_data()
    await state.update_data({AMOUNTS_KEY: {**(data.get(AMOUNTS_KEY) or {}), appointment_id: amount}})
    corr_id = new_corr_id()
    res = await create_checkout(
        api,
        user_id=user_id,
        appointment_id=appointment_id,
        amount=amount,
        notification_url=settings.payment_notification_url,
        corr_id=corr_id,
        **build_return_urls(settings.payment_return_url, appointment_id),
    )
    if isinstance(res, Err):
        logger.info(
            "client.payment: checkout failed tg=%s appointment=%s kind=%s corr=%s",
            user_id,
            appointment_id,
            res.kind.value,
            corr_id,
        )
        if res.kind == ErrorKind.AUTH:
            await show_logged_out(message, state)
            return
        await message.edit_text(
            f"Tu cita quedó reservada pero no pudimos iniciar el pago.\n{user_friendly_error(res)}",
            reply_markup=payment_error_keyboard(appointment_id),
        )
        return
    await message.edit_text(
        (
            "Tu cita quedó reservada.\n"
            f"Para confirmarla aboná la visita: {format_price(amount)}\n\n"
            "Al terminar el pago volvés automáticamente a este chat."
        ),
        reply_markup=payment_keyboard(res.value),
    )


@router.callback_query(F.data.startswith("pay:retry:"))
async def on_payment_retry(callback: CallbackQuery, state: FSMContext, api: ApiClient, settings: Settings):
    appointment_id = callback.data.split(":", 2)[2]
    async with in_flight(state, PAYMENT_FLAG) as acquired:
        if not acquired:
            await callback.answer("Procesando…")
            return
        await callback.message.edit_text("Preparando el pago…")
        await callback.answer()
        data = await state.get_data()
        amount = (data.get(AMOUNTS_KEY) or {}).get(appointment_id)
        if amount is None:
            res = await get_appointment(api, user_id=callback.from_user.id, appointment_id=appointment_id)
            if isinstance(res, Err):
                if res.kind == ErrorKind.AUTH:
                    await show_logged_out(callback.message, state)
                    return
                await callback.message.edit_text(user_friendly_error(res), reply_markup=payment_error_keyboard(appointment_id))
                return
            amount = res.value.price
        if not amount or amount <= 0:
            await callback.message.edit_text(
                "Esta cita no requiere pago por adelantado.", reply_markup=booking_result_keyboard(appointment_id)
            )
            return
        await start_checkout(
            callback.message,
            state,
            api,
            settings,
            user_id=callback.from_user.id,
            appointment_id=appointment_id,
            amount=amount,
        )


async def show_payment_return(message, state: FSMContext, api: ApiClient, payment_return: PaymentReturn):
    """Landing screen for a gateway return delivered through the ``/start`` deep link."""
    user_id = message.from_user.id
    appointment_id = payment_return.appointment_id
    session = api.sessions.get(user_id)
    await state.set_state(ClientStates.payment_result)

    if payment_return.retryable:
        await message.answer(
            "El pago fue rechazado. No se realizó ningún cobro.\nPodés intentar nuevamente.",
            reply_markup=payment_error_keyboard(appointment_id) if session else start_keyboard(),
        )
        return
    if payment_return.landing == PaymentLanding.PROCESSING:
        await message.answer(
            "Tu pago está en proceso. Te avisaremos cuando se acredite.",
            reply_markup=main_menu_only_keyboard() if session else start_keyboard(),
        )
        return

    if session is None:
        await message.answer(
            "¡Pago aprobado! Iniciá sesión para ver tu cita.",
            reply_markup=start_keyboard(),
        )
        return
    if appointment_id:
        corr_id = new_corr_id()
        res = await confirm_appointment(api, user_id=user_id, appointment_id=appointment_id, corr_id=corr_id)
        if isinstance(res, Err):
            # The gateway webhook confirms the appointment server side as well.
            logger.warning(
                "client.payment: confirm after approval failed tg=%s appointment=%s kind=%s corr=%s",
                user_id,
                appointment_id,
                res.kind.value,
                corr_id,
            )
    await message.answer(
        "¡Pago aprobado! Tu cita está confirmada.",
        reply_markup=booking_result_keyboard(appointment_id) if appointment_id else main_menu_only_keyboard(),
    )
