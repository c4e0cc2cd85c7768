import logging

from aiogram import F, Router
from aiogram.exceptions import TelegramBadRequest
from aiogram.filters import Command, CommandObject, CommandStart, StateFilter
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery, Message

from servilink_bot.flows.payment import parse_start_payload
from servilink_bot.keyboards import start_keyboard
from servilink_bot.services import auth as auth_svc
from servilink_bot.services.errors import user_friendly_error
from servilink_bot.services.http import ApiClient
from servilink_bot.services.result import Err
from servilink_bot.states import ClientStates
from servilink_bot.utils.corr import new_corr_id
from .client.payment import show_payment_return
from .utils import show_main_menu

router = Router()
logger = logging.getLogger(__name__)

WELCOME = (
    "¡Bienvenido a ServiLink!\n"
    "Encontrá profesionales verificados para tu hogar, coordiná la visita y seguí el servicio desde acá."
)


@router.message(CommandStart(), StateFilter("*"))
async def handle_start(message: Message, state: FSMContext, command: CommandObject, api: ApiClient) -> None:
    payment_return = parse_start_payload(command.args)
    if payment_return is not None:
        logger.info(
            "start: payment return tg=%s status=%s appointment=%s",
            message.from_user.id,
            payment_return.status.value,
            payment_return.appointment_id,
        )
        await show_payment_return(message, state, api, payment_return)
        return

    session = api.sessions.get(message.from_user.id)
    if session is not None:
        await show_main_menu(message, state, session, edit=False)
        return
    await state.clear()
    await state.set_state(ClientStates.welcome)
    await message.answer(WELCOME, reply_markup=start_keyboard())


@router.callback_query(F.data == "auth:login")
async def on_login(callback: CallbackQuery, state: FSMContext):
    await state.set_state(ClientStates.login_email)
    await callback.message.edit_text("Ingresá tu email:")
    await callback.answer()


@router.message(ClientStates.login_email, F.text)
async def on_login_email(message: Message, state: FSMContext):
    email = message.text.strip()
    if "@" not in email or " " in email:
        await message.answer("Ese email no parece válido. Probá de nuevo:")
        return
    await state.update_data(login_email=email)
    await state.set_state(ClientStates.login_password)
    await message.answer("Ahora tu contraseña:")


@router.message(ClientStates.login_password, F.text)
async def on_login_password(message: Message, state: FSMContext, api: ApiClient):
    data = await state.get_data()
    email = data.get("login_email")
    password = message.text
    try:
        await message.delete()
    except TelegramBadRequest:
        logger.info("start: could not delete password message tg=%s", message.from_user.id)
    if not email:
        await state.set_state(ClientStates.login_email)
        await message.answer("Ingresá tu email:")
        return

    corr_id = new_corr_id()
    res = await auth_svc.login(api, user_id=message.from_user.id, email=email, password=password, corr_id=corr_id)
    if isinstance(res, Err):
        logger.info("start: login failed tg=%s kind=%s corr=%s", message.from_user.id, res.kind.value, corr_id)
        await state.set_state(ClientStates.welcome)
        await message.answer(user_friendly_error(res), reply_markup=start_keyboard())
        return
    await state.set_data({})
    await show_main_menu(message, state, res.value, edit=False)


@router.message(Command("logout"), StateFilter("*"))
async def handle_logout(message: Message, state: FSMContext, api: ApiClient):
    auth_svc.logout(api, user_id=message.from_user.id)
    await state.clear()
    await state.set_state(ClientStates.welcome)
    await message.answer("Cerraste sesión. ¡Hasta pronto!", reply_markup=start_keyboard())
