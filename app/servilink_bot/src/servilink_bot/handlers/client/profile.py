import logging

from aiogram import F, Router
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery

from servilink_bot.config import Settings
from servilink_bot.keyboards import help_keyboard, main_menu_only_keyboard
from servilink_bot.services import auth as auth_svc
from servilink_bot.services.http import ApiClient
from servilink_bot.services.result import Err
from servilink_bot.states import ClientStates
from servilink_bot.utils.contacts import whatsapp_link
from servilink_bot.utils.corr import new_corr_id
from servilink_bot.utils.roles import role_label
from ..utils import show_error, show_logged_out, show_main_menu

router = Router()
logger = logging.getLogger(__name__)

HELP_TEXT = (
    "Ayuda\n"
    "• Nueva solicitud: elegí la categoría, describí el problema y coordiná la visita.\n"
    "• Mis citas: estado de tus servicios, seguimiento en vivo y calificación.\n"
    "• Perfil: tus datos de cuenta.\n"
    "• /logout cierra la sesión.\n\n"
    "Si algo falla, escribinos por WhatsApp."
)


@router.callback_query(F.data == "menu:main")
async def on_menu_main(callback: CallbackQuery, state: FSMContext, api: ApiClient):
    session = api.sessions.get(callback.from_user.id)
    if session is None:
        await show_logged_out(callback.message, state)
    else:
        await show_main_menu(callback.message, state, session)
    await callback.answer()


@router.callback_query(F.data == "menu:profile")
async def on_profile(callback: CallbackQuery, state: FSMContext, api: ApiClient):
    corr_id = new_corr_id()
    res = await auth_svc.refresh_profile(api, user_id=callback.from_user.id, corr_id=corr_id)
    if isinstance(res, Err):
        await show_error(callback.message, state, res, retry="menu:profile")
        await callback.answer()
        return
    user = res.value.user
    await state.set_state(ClientStates.profile_help)
    await callback.message.edit_text(
        (
            "Perfil\n"
            f"Nombre: {user.name}\n"
            f"Email: {user.email}\n"
            f"Rol: {role_label(user.role)}"
        ),
        reply_markup=main_menu_only_keyboard(),
    )
    await callback.answer()


@router.callback_query(F.data == "menu:help")
async def on_help(callback: CallbackQuery, state: FSMContext, settings: Settings):
    await state.set_state(ClientStates.profile_help)
    await callback.message.edit_text(
        HELP_TEXT,
        reply_markup=help_keyboard(whatsapp_link(settings.support_whatsapp, "Hola, necesito ayuda con ServiLink")),
    )
    await callback.answer()
