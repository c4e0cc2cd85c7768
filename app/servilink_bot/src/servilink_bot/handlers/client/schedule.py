from datetime import date
import logging

from aiogram import F, Router
from aiogram.filters import StateFilter
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery

from servilink_bot.config import Settings
from servilink_bot.flows.confirmation import AssemblyError, assemble_appointment, format_day
from servilink_bot.flows.selector import DateTimeSelector, DatesState, SelectionError, TimesState
from servilink_bot.keyboards import (
    booking_confirm_keyboard,
    dates_keyboard,
    professional_keyboard,
    retry_keyboard,
    times_keyboard,
    times_retry_keyboard,
)
from servilink_bot.services.errors import user_friendly_error
from servilink_bot.services.http import ApiClient
from servilink_bot.services.result import ErrorKind
from servilink_bot.states import ClientStates
from ..utils import begin_request, is_current_request, safe_edit, show_logged_out
from .utils import (
    DRAFT_KEY,
    PROFESSIONALS_KEY,
    REQUEST_KEY,
    SELECTOR_KEY,
    build_selector,
    current_professional,
    draft_text,
    professional_text,
    request_from_dict,
    save_selector,
)

router = Router()
logger = logging.getLogger(__name__)

DATES_REQ_KEY = "dates_req"
TIMES_REQ_KEY = "times_req"


async def _render_dates(message, state: FSMContext, selector: DateTimeSelector, settings: Settings, name: str):
    if selector.dates_state == DatesState.ERROR:
        if selector.error.kind == ErrorKind.AUTH:
            await show_logged_out(message, state)
            return
        await safe_edit(message, user_friendly_error(selector.error), reply_markup=retry_keyboard("dates:retry"))
        return
    await state.set_state(ClientStates.dates_view)
    if selector.dates_state == DatesState.EMPTY:
        await safe_edit(
            message,
            f"{name} no tiene horarios disponibles en los próximos {selector.window_days} días.",
            reply_markup=dates_keyboard([], settings.max_dates_shown),
        )
        return
    await safe_edit(
        message,
        f"Elegí el día de la visita con {name}:",
        reply_markup=dates_keyboard(selector.dates, settings.max_dates_shown),
    )


async def _render_times(message, state: FSMContext, selector: DateTimeSelector):
    day = format_day(selector.selected_date)
    if selector.times_state == TimesState.ERROR:
        if selector.error.kind == ErrorKind.AUTH:
            await show_logged_out(message, state)
            return
        await safe_edit(message, user_friendly_error(selector.error), reply_markup=times_retry_keyboard())
        return
    await state.set_state(ClientStates.times_view)
    if selector.times_state == TimesState.EMPTY:
        await safe_edit(message, f"Ya no quedan horarios para el {day}. Elegí otra fecha.", reply_markup=times_keyboard([]))
        return
    await safe_edit(message, f"Horarios disponibles para el {day}:", reply_markup=times_keyboard(selector.times))


async def _load_dates(callback: CallbackQuery, state: FSMContext, api: ApiClient, settings: Settings):
    data = await state.get_data()
    professional = current_professional(data)
    if professional is None:
        await callback.answer("Se perdió la búsqueda, empezá de nuevo.", show_alert=True)
        return
    await callback.message.edit_text("Consultando disponibilidad…")
    await callback.answer()
    token = await begin_request(state, DATES_REQ_KEY)
    selector = build_selector(api, settings, callback.from_user.id, professional.id)
    await selector.load_dates()
    if not await is_current_request(state, DATES_REQ_KEY, token):
        logger.info("client.schedule: dropped stale dates tg=%s contractor=%s", callback.from_user.id, professional.id)
        return
    logger.info(
        "client.schedule: dates tg=%s contractor=%s state=%s count=%s",
        callback.from_user.id,
        professional.id,
        selector.dates_state.value,
        len(selector.dates),
    )
    await state.update_data({DRAFT_KEY: None})
    await save_selector(state, selector)
    await _render_dates(callback.message, state, selector, settings, professional.display_name)


@router.callback_query(ClientStates.professional_found, F.data.startswith("pro:schedule:"))
async def on_schedule(callback: CallbackQuery, state: FSMContext, api: ApiClient, settings: Settings):
    await _load_dates(callback, state, api, settings)


@router.callback_query(F.data == "dates:retry")
async def on_dates_retry(callback: CallbackQuery, state: FSMContext, api: ApiClient, settings: Settings):
    await _load_dates(callback, state, api, settings)


@router.callback_query(ClientStates.dates_view, F.data == "dates:back")
async def on_dates_back(callback: CallbackQuery, state: FSMContext):
    data = await state.get_data()
    professional = current_professional(data)
    if professional is None:
        await callback.answer("Se perdió la búsqueda, empezá de nuevo.", show_alert=True)
        return
    await state.update_data({SELECTOR_KEY: None, DATES_REQ_KEY: None, TIMES_REQ_KEY: None})
    await state.set_state(ClientStates.professional_found)
    await callback.message.edit_text(
        professional_text(professional, request_from_dict(data.get(REQUEST_KEY))),
        reply_markup=professional_keyboard(professional.id, has_next=len(data.get(PROFESSIONALS_KEY) or []) > 1),
    )
    await callback.answer()


async def _select_date(callback: CallbackQuery, state: FSMContext, api: ApiClient, settings: Settings, day: date):
    data = await state.get_data()
    raw_selector = data.get(SELECTOR_KEY)
    if not raw_selector:
        await callback.answer("Se perdió la selección, volvé a elegir el profesional.", show_alert=True)
        return
    selector = build_selector(api, settings, callback.from_user.id, raw_selector["contractor_id"], raw_selector)
    if day not in selector.dates:
        await callback.answer("Esa fecha ya no está disponible.", show_alert=True)
        return
    token = await begin_request(state, TIMES_REQ_KEY)
    await state.update_data({DRAFT_KEY: None})
    await callback.message.edit_text("Buscando horarios…")
    await callback.answer()
    await selector.select_date(day)
    if not await is_current_request(state, TIMES_REQ_KEY, token):
        logger.info("client.schedule: dropped stale times tg=%s date=%s", callback.from_user.id, day)
        return
    logger.info(
        "client.schedule: times tg=%s date=%s state=%s count=%s",
        callback.from_user.id,
        day,
        selector.times_state.value,
        len(selector.times),
    )
    await save_selector(state, selector)
    await _render_times(callback.message, state, selector)


@router.callback_query(StateFilter(ClientStates.dates_view, ClientStates.times_view), F.data.startswith("date:"))
async def on_date_chosen(callback: CallbackQuery, state: FSMContext, api: ApiClient, settings: Settings):
    try:
        day = date.fromisoformat(callback.data.split(":", 1)[1])
    except ValueError:
        await callback.answer()
        return
    await _select_date(callback, state, api, settings, day)


@router.callback_query(F.data == "times:retry")
async def on_times_retry(callback: CallbackQuery, state: FSMContext, api: ApiClient, settings: Settings):
    data = await state.get_data()
    day = ((data.get(SELECTOR_KEY) or {}).get("selected_date"))
    if not day:
        await callback.answer("Elegí una fecha nuevamente.", show_alert=True)
        return
    await _select_date(callback, state, api, settings, date.fromisoformat(day))


@router.callback_query(F.data == "times:back")
async def on_times_back(callback: CallbackQuery, state: FSMContext, api: ApiClient, settings: Settings):
    data = await state.get_data()
    raw_selector = data.get(SELECTOR_KEY)
    professional = current_professional(data)
    if not raw_selector or professional is None:
        await callback.answer("Se perdió la selección, volvé a elegir el profesional.", show_alert=True)
        return
    selector = build_selector(api, settings, callback.from_user.id, professional.id, raw_selector)
    selector.selected_time = None
    await begin_request(state, TIMES_REQ_KEY)
    await state.update_data({DRAFT_KEY: None})
    await save_selector(state, selector)
    await _render_dates(callback.message, state, selector, settings, professional.display_name)
    await callback.answer()


@router.callback_query(ClientStates.times_view, F.data.startswith("time:pick:"))
async def on_time_chosen(callback: CallbackQuery, state: FSMContext, api: ApiClient, settings: Settings):
    hhmm = callback.data.split(":", 2)[2]
    session = api.sessions.get(callback.from_user.id)
    if session is None:
        await show_logged_out(callback.message, state)
        await callback.answer()
        return
    data = await state.get_data()
    raw_selector = data.get(SELECTOR_KEY)
    professional = current_professional(data)
    request = request_from_dict(data.get(REQUEST_KEY))
    if not raw_selector or professional is None or request is None:
        await callback.answer("Se perdió la selección, volvé a elegir el profesional.", show_alert=True)
        return
    selector = build_selector(api, settings, callback.from_user.id, professional.id, raw_selector)
    try:
        slot = selector.select_time(hhmm)
        draft = assemble_appointment(
            professional=professional,
            service=request,
            selected_date=selector.selected_date,
            selected_time=hhmm,
            client_id=session.user.id,
            slot_end=slot.end,
            duration_hours=settings.service_duration_hours,
        )
    except SelectionError:
        await callback.answer("Ese horario ya no está disponible.", show_alert=True)
        return
    except AssemblyError as exc:
        logger.warning("client.schedule: cannot assemble appointment tg=%s err=%s", callback.from_user.id, exc)
        await callback.answer("No pudimos armar la cita con ese horario, elegí otro.", show_alert=True)
        return
    await save_selector(state, selector)
    await state.update_data({DRAFT_KEY: draft.to_dict()})
    await state.set_state(ClientStates.booking_confirm)
    await callback.message.edit_text(draft_text(draft), reply_markup=booking_confirm_keyboard())
    await callback.answer()
