from dataclasses import asdict
import logging

from aiogram import F, Router
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery, Message

from servilink_bot.config import Settings
from servilink_bot.dto import CatalogService, Category, Urgency
from servilink_bot.flows.cart import add_service, cart_from_list, cart_to_list, cart_total, remove_one
from servilink_bot.flows.confirmation import format_price
from servilink_bot.keyboards import (
    cart_keyboard,
    categories_keyboard,
    main_menu_only_keyboard,
    professional_keyboard,
    retry_keyboard,
    urgency_keyboard,
)
from servilink_bot.services import catalog as catalog_svc
from servilink_bot.services.errors import user_friendly_error
from servilink_bot.services.http import ApiClient
from servilink_bot.services.result import Err, ErrorKind
from servilink_bot.states import ClientStates
from servilink_bot.utils.corr import new_corr_id
from servilink_bot.utils.time import local_now
from ..utils import safe_edit, show_error, show_logged_out
from .utils import (
    PROFESSIONAL_IDX_KEY,
    PROFESSIONALS_KEY,
    REQUEST_KEY,
    current_professional,
    professional_text,
    request_from_dict,
    request_to_dict,
    service_date_for,
)

router = Router()
logger = logging.getLogger(__name__)

MIN_DESCRIPTION_LEN = 10
SERVICES_KEY = "category_services"
CART_KEY = "cart"


@router.callback_query(F.data == "menu:new_request")
async def on_new_request(callback: CallbackQuery, state: FSMContext, api: ApiClient):
    corr_id = new_corr_id()
    res = await catalog_svc.list_categories(api, user_id=callback.from_user.id, corr_id=corr_id)
    if isinstance(res, Err):
        logger.info("client.request: categories failed tg=%s kind=%s corr=%s", callback.from_user.id, res.kind.value, corr_id)
        await show_error(callback.message, state, res, retry="menu:new_request")
        await callback.answer()
        return
    categories = res.value
    if not categories:
        await callback.message.edit_text("No hay categorías disponibles por ahora.", reply_markup=main_menu_only_keyboard())
        await callback.answer()
        return
    await state.update_data(categories={c.id: {"name": c.name, "description": c.description} for c in categories})
    await state.set_state(ClientStates.request_category)
    await callback.message.edit_text("¿Qué tipo de servicio necesitás?", reply_markup=categories_keyboard(categories))
    await callback.answer()


@router.callback_query(ClientStates.request_category, F.data.startswith("cat:choose:"))
async def on_category_chosen(callback: CallbackQuery, state: FSMContext):
    category_id = callback.data.split(":", 2)[2]
    data = await state.get_data()
    known = (data.get("categories") or {}).get(category_id)
    if known is None:
        await callback.answer("Categoría no disponible, elegí otra.", show_alert=True)
        return
    await state.update_data(category_id=category_id)
    await state.set_state(ClientStates.request_description)
    await callback.message.edit_text(
        f"{known['name']}\n\nContanos qué necesitás (por ejemplo: \"pierde agua la canilla de la cocina\")."
    )
    await callback.answer()


@router.message(ClientStates.request_description, F.text)
async def on_description(message: Message, state: FSMContext, api: ApiClient):
    description = message.text.strip()
    if len(description) < MIN_DESCRIPTION_LEN:
        await message.answer(f"Describí el problema con al menos {MIN_DESCRIPTION_LEN} caracteres.")
        return
    await state.update_data(description=description)
    await _start_cart(message, state, api, description)


async def _start_cart(message: Message, state: FSMContext, api: ApiClient, description: str):
    """Offers the category's services, pre-filled with the AI suggestions; skipped when the catalog is empty."""
    data = await state.get_data()
    category_id = data.get("category_id")
    user_id = message.from_user.id
    corr_id = new_corr_id()
    res = await catalog_svc.list_category_services(api, user_id=user_id, category_id=category_id, corr_id=corr_id)
    if isinstance(res, Err):
        if res.kind == ErrorKind.AUTH:
            await show_logged_out(message, state, edit=False)
            return
        logger.info("client.request: services unavailable tg=%s kind=%s corr=%s", user_id, res.kind.value, corr_id)
    services = res.value if not isinstance(res, Err) else []
    if not services:
        await state.update_data({SERVICES_KEY: [], CART_KEY: []})
        await state.set_state(ClientStates.request_urgency)
        await message.answer("¿Para cuándo lo necesitás?", reply_markup=urgency_keyboard())
        return

    offered = {s.id for s in services}
    cart = []
    suggested = await catalog_svc.suggest_services(
        api, user_id=user_id, description=description, category_id=category_id, corr_id=corr_id
    )
    for service in suggested:
        if service.id in offered:
            cart = add_service(cart, service)
    await state.update_data({SERVICES_KEY: [asdict(s) for s in services], CART_KEY: cart_to_list(cart)})
    await state.set_state(ClientStates.request_cart)
    await message.answer(cart_text(cart, bool(suggested)), reply_markup=cart_keyboard(services, cart))


def cart_text(cart, suggested: bool = False) -> str:
    lines = ["Elegí los servicios que necesitás (opcional)."]
    if suggested and cart:
        lines.append("Agregamos los que sugiere el asistente según tu descripción.")
    if cart:
        lines.append("")
        for item in cart:
            price = f" · {format_price(item.unit_price * item.quantity)}" if item.unit_price is not None else ""
            lines.append(f"• {item.name} ×{item.quantity}{price}")
        total = cart_total(cart)
        if total is not None:
            lines.append(f"Total base: {format_price(total)}")
    return "\n".join(lines)


@router.callback_query(ClientStates.request_cart, F.data == "cart:done")
async def on_cart_done(callback: CallbackQuery, state: FSMContext):
    await state.set_state(ClientStates.request_urgency)
    await callback.message.edit_text("¿Para cuándo lo necesitás?", reply_markup=urgency_keyboard())
    await callback.answer()


@router.callback_query(ClientStates.request_cart, F.data.startswith("cart:add:") | F.data.startswith("cart:dec:"))
async def on_cart_change(callback: CallbackQuery, state: FSMContext):
    _, action, service_id = callback.data.split(":", 2)
    data = await state.get_data()
    services = [CatalogService(**raw) for raw in data.get(SERVICES_KEY) or []]
    service = next((s for s in services if s.id == service_id), None)
    if service is None:
        await callback.answer("Servicio no disponible.", show_alert=True)
        return
    cart = cart_from_list(data.get(CART_KEY))
    cart = add_service(cart, service) if action == "add" else remove_one(cart, service_id)
    await state.update_data({CART_KEY: cart_to_list(cart)})
    await safe_edit(callback.message, cart_text(cart), reply_markup=cart_keyboard(services, cart))
    await callback.answer()


@router.callback_query(ClientStates.request_urgency, F.data.startswith("urg:"))
async def on_urgency(callback: CallbackQuery, state: FSMContext, api: ApiClient, settings: Settings):
    try:
        urgency = Urgency(callback.data.split(":", 1)[1])
    except ValueError:
        await callback.answer()
        return
    session = api.sessions.get(callback.from_user.id)
    if session is None:
        await show_logged_out(callback.message, state)
        await callback.answer()
        return
    data = await state.get_data()
    category_id = data.get("category_id")
    known = (data.get("categories") or {}).get(category_id)
    description = data.get("description")
    if not known or not description:
        await callback.answer("Se perdió la solicitud, empezá de nuevo.", show_alert=True)
        return
    category = Category(id=category_id, name=known["name"], description=known["description"])

    await callback.message.edit_text("Analizando tu solicitud…")
    await callback.answer()
    corr_id = new_corr_id()
    summary = await catalog_svc.summarize_description(
        api, user_id=callback.from_user.id, description=description, category_id=category_id, corr_id=corr_id
    )
    res = await catalog_svc.create_request(
        api,
        user_id=callback.from_user.id,
        client_id=session.user.id,
        category=category,
        description=description,
        urgency=urgency,
        latitude=settings.search_latitude,
        longitude=settings.search_longitude,
        ai_summary=summary,
        cart=cart_from_list(data.get(CART_KEY)),
        corr_id=corr_id,
    )
    if isinstance(res, Err):
        logger.info("client.request: create failed tg=%s kind=%s corr=%s", callback.from_user.id, res.kind.value, corr_id)
        await show_error(callback.message, state, res, retry=f"urg:{urgency.value}")
        return
    await state.update_data({REQUEST_KEY: request_to_dict(res.value)})
    await _search(callback.message, state, api, settings, callback.from_user.id)


@router.callback_query(F.data == "req:search")
async def on_search_retry(callback: CallbackQuery, state: FSMContext, api: ApiClient, settings: Settings):
    await callback.answer()
    await _search(callback.message, state, api, settings, callback.from_user.id)


async def _search(message, state: FSMContext, api: ApiClient, settings: Settings, user_id: int):
    data = await state.get_data()
    request = request_from_dict(data.get(REQUEST_KEY))
    if request is None:
        await message.edit_text("Se perdió la solicitud, empezá de nuevo.", reply_markup=main_menu_only_keyboard())
        return
    await message.edit_text("Buscando profesionales cerca tuyo…")
    corr_id = new_corr_id()
    res = await catalog_svc.search_professionals(
        api,
        user_id=user_id,
        category_id=request.category_id,
        service_date=service_date_for(request.urgency, local_now(settings.tz_offset_min).date()),
        latitude=settings.search_latitude,
        longitude=settings.search_longitude,
        radius_km=settings.search_radius_km,
        corr_id=corr_id,
    )
    if isinstance(res, Err):
        if res.kind == ErrorKind.AUTH:
            await show_logged_out(message, state)
            return
        await message.edit_text(user_friendly_error(res), reply_markup=retry_keyboard("req:search"))
        return
    professionals = res.value
    logger.info(
        "client.request: search tg=%s request=%s found=%s corr=%s", user_id, request.id, len(professionals), corr_id
    )
    if not professionals:
        await message.edit_text(
            "Por ahora no encontramos profesionales disponibles en tu zona.",
            reply_markup=retry_keyboard("req:search"),
        )
        return
    await state.update_data({
        PROFESSIONALS_KEY: [asdict(p) for p in professionals],
        PROFESSIONAL_IDX_KEY: 0,
    })
    await state.set_state(ClientStates.professional_found)
    await message.edit_text(
        professional_text(professionals[0], request),
        reply_markup=professional_keyboard(professionals[0].id, has_next=len(professionals) > 1),
    )


@router.callback_query(ClientStates.professional_found, F.data == "pro:next")
async def on_next_professional(callback: CallbackQuery, state: FSMContext):
    data = await state.get_data()
    professionals = data.get(PROFESSIONALS_KEY) or []
    if not professionals:
        await callback.answer()
        return
    idx = ((data.get(PROFESSIONAL_IDX_KEY) or 0) + 1) % len(professionals)
    data[PROFESSIONAL_IDX_KEY] = idx
    await state.update_data({PROFESSIONAL_IDX_KEY: idx})
    professional = current_professional(data)
    await callback.message.edit_text(
        professional_text(professional, request_from_dict(data.get(REQUEST_KEY))),
        reply_markup=professional_keyboard(professional.id, has_next=len(professionals) > 1),
    )
    await callback.answer()
