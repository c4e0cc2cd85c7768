from contextlib import asynccontextmanager
import logging
from uuid import uuid4

from aiogram.exceptions import TelegramBadRequest
from aiogram.fsm.context import FSMContext

from servilink_bot.config import Settings
from servilink_bot.keyboards import (
    contractor_main_menu_keyboard,
    main_menu_keyboard,
    main_menu_only_keyboard,
    retry_keyboard,
    start_keyboard,
)
from servilink_bot.services.errors import user_friendly_error
from servilink_bot.services.result import Err, ErrorKind
from servilink_bot.session import Session
from servilink_bot.states import ClientStates, ContractorStates
from servilink_bot.utils.time import local_now

logger = logging.getLogger(__name__)

NOT_LOGGED_IN = "Necesitás iniciar sesión para continuar."


def truncate(text: str, limit: int = 300) -> str:
    if not text:
        return ""
    if len(text) <= limit:
        return text
    return text[: limit - 1].rstrip() + "…"


def now_provider(settings: Settings):
    return lambda: local_now(settings.tz_offset_min)


async def safe_edit(message, text: str, reply_markup=None):
    try:
        await message.edit_text(text, reply_markup=reply_markup)
        return True
    except TelegramBadRequest as exc:
        if "message is not modified" in str(exc):
            return False
        raise


async def show_main_menu(message, state: FSMContext, session: Session, *, edit: bool = True):
    if session.is_contractor:
        await state.set_state(ContractorStates.main_menu)
        text, markup = f"Hola {session.user.name}, ¿qué querés hacer?", contractor_main_menu_keyboard()
    else:
        await state.set_state(ClientStates.main_menu)
        text, markup = f"Hola {session.user.name}, ¿qué servicio necesitás hoy?", main_menu_keyboard()
    if edit:
        await safe_edit(message, text, reply_markup=markup)
    else:
        await message.answer(text, reply_markup=markup)


async def show_logged_out(message, state: FSMContext, *, edit: bool = True):
    await state.clear()
    await state.set_state(ClientStates.welcome)
    text = user_friendly_error(Err(ErrorKind.AUTH))
    if edit:
        await safe_edit(message, text, reply_markup=start_keyboard())
    else:
        await message.answer(text, reply_markup=start_keyboard())


async def show_error(message, state: FSMContext, err: Err, *, retry: str | None = None):
    """Inline error state; an expired session sends the user back to the entry screen."""
    if err.kind == ErrorKind.AUTH:
        await show_logged_out(message, state)
        return
    markup = retry_keyboard(retry) if retry else main_menu_only_keyboard()
    await safe_edit(message, user_friendly_error(err), reply_markup=markup)


@asynccontextmanager
async def in_flight(state: FSMContext, key: str):
    """Marks a blocking action as running in FSM data; yields False if it already is."""
    data = await state.get_data()
    if data.get(key):
        yield False
        return
    await state.update_data({key: True})
    try:
        yield True
    finally:
        await state.update_data({key: False})


async def begin_request(state: FSMContext, key: str) -> str:
    token = uuid4().hex
    await state.update_data({key: token})
    return token


async def is_current_request(state: FSMContext, key: str, token: str) -> bool:
    data = await state.get_data()
    return data.get(key) == token
