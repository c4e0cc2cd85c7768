from dataclasses import asdict
from datetime import date, timedelta
import logging

from aiogram.fsm.context import FSMContext

from servilink_bot.config import Settings
from servilink_bot.dto import Professional, ServiceRequest, Urgency
from servilink_bot.flows.cart import cart_from_list, cart_to_list
from servilink_bot.flows.confirmation import AppointmentDraft, format_confirmation, format_price
from servilink_bot.flows.selector import DateTimeSelector
from servilink_bot.services.http import ApiClient
from servilink_bot.services.schedule import fetch_availability
from servilink_bot.utils.corr import new_corr_id
from ..utils import now_provider, truncate

logger = logging.getLogger(__name__)

REQUEST_KEY = "service_request"
PROFESSIONALS_KEY = "professionals"
PROFESSIONAL_IDX_KEY = "professional_idx"
SELECTOR_KEY = "selector"
DRAFT_KEY = "draft"


def request_to_dict(request: ServiceRequest) -> dict:
    data = asdict(request)
    data["urgency"] = request.urgency.value
    data["cart"] = cart_to_list(request.cart)
    return data


def request_from_dict(data: dict | None) -> ServiceRequest | None:
    if not data:
        return None
    return ServiceRequest(
        **{
            **data,
            "urgency": Urgency(data.get("urgency") or Urgency.NONE.value),
            "cart": cart_from_list(data.get("cart")),
        }
    )


def professional_from_dict(data: dict | None) -> Professional | None:
    return Professional(**data) if data else None


def current_professional(data: dict) -> Professional | None:
    professionals = data.get(PROFESSIONALS_KEY) or []
    idx = data.get(PROFESSIONAL_IDX_KEY) or 0
    if not 0 <= idx < len(professionals):
        return None
    return professional_from_dict(professionals[idx])


def service_date_for(urgency: Urgency, today: date) -> date:
    if urgency == Urgency.TOMORROW:
        return today + timedelta(days=1)
    return today


def professional_text(professional: Professional, request: ServiceRequest | None) -> str:
    lines = [
        "¡Encontramos un profesional para vos!",
        "",
        f"👷 {professional.display_name}",
        f"{professional.specialty} · ⭐ {professional.rating:.1f} ({professional.review_count} reseñas)",
        truncate(professional.bio),
    ]
    if request is not None:
        lines.append("")
        lines.append(f"Tu solicitud: {truncate(request.ai_summary or request.description, 200)}")
        if request.cart:
            lines.append("Servicios: " + ", ".join(f"{item.name} ×{item.quantity}" for item in request.cart))
        lines.append(f"Precio estimado: {format_price(request.estimated_price)}")
    return "\n".join(lines)


def build_selector(
    api: ApiClient, settings: Settings, user_id: int, contractor_id: str, data: dict | None = None
) -> DateTimeSelector:
    """Selector wired to the availability endpoint; restored from FSM data when given."""

    async def fetch(date_from: date, date_to: date):
        return await fetch_availability(
            api,
            user_id=user_id,
            contractor_id=contractor_id,
            date_from=date_from,
            date_to=date_to,
            corr_id=new_corr_id(),
        )

    now = now_provider(settings)
    if data:
        return DateTimeSelector.from_dict(data, fetch, now=now)
    return DateTimeSelector(contractor_id, fetch, now=now, window_days=settings.availability_window_days)


async def save_selector(state: FSMContext, selector: DateTimeSelector) -> None:
    await state.update_data({SELECTOR_KEY: selector.to_dict()})


def draft_text(draft: AppointmentDraft) -> str:
    return "\n".join(
        [
            "Confirmá tu cita",
            "",
            f"👷 {draft.professional_name}",
            f"📅 {format_confirmation(draft.service_date, draft.start)}",
            f"💰 {format_price(draft.price)}",
            f"📝 {truncate(draft.notes, 200)}",
        ]
    )
