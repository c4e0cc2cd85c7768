from datetime import date
import logging

from servilink_bot.dto import CartItem, CatalogService, Category, Professional, ServiceRequest, Urgency
from servilink_bot.flows.cart import cart_payload, estimate_price
from servilink_bot.services.http import ApiClient, data_of
from servilink_bot.services.result import Err, ErrorKind, Ok, Result

logger = logging.getLogger(__name__)


def _to_category(raw: dict) -> Category:
    return Category(
        id=str(raw.get("id")),
        name=raw.get("nombre") or "",
        description=raw.get("descripcion") or "",
    )


def _price(value) -> float | None:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _to_service(raw: dict) -> CatalogService:
    return CatalogService(
        id=str(raw.get("id")),
        name=raw.get("nombre") or "",
        description=raw.get("descripcion") or "",
        base_price=_price(raw.get("precio_base")),
    )


def _to_professional(raw: dict) -> Professional:
    services = raw.get("servicios") or [{}]
    first = services[0] if isinstance(services[0], dict) else {}
    rating = raw.get("rating") if isinstance(raw.get("rating"), dict) else {}
    specialty = first.get("categoria_nombre") or "Profesional"
    years = first.get("experiencia_anos") or 5
    name = " ".join(p for p in (raw.get("nombre"), raw.get("apellido")) if p)
    return Professional(
        id=str(raw.get("id")),
        display_name=name or f"Profesional {raw.get('id')}",
        specialty=specialty,
        rating=float(rating.get("promedio") or 4.5),
        review_count=int(rating.get("total_evaluaciones") or 0),
        bio=raw.get("descripcion")
        or f"Especialista en {specialty} con {years} años de experiencia.",
    )


async def list_categories(api: ApiClient, *, user_id: int, corr_id: str | None = None) -> Result[list[Category]]:
    res = await api.request("GET", "/config/categorias", user_id=user_id, corr_id=corr_id)
    if isinstance(res, Err):
        return res
    raw_items = data_of(res.value).get("categorias") or []
    return Ok([_to_category(raw) for raw in raw_items if isinstance(raw, dict)])


async def list_category_services(
    api: ApiClient, *, user_id: int, category_id: str, corr_id: str | None = None
) -> Result[list[CatalogService]]:
    res = await api.request("GET", f"/config/categorias/{category_id}/servicios", user_id=user_id, corr_id=corr_id)
    if isinstance(res, Err):
        return res
    raw_items = data_of(res.value).get("servicios") or []
    return Ok([_to_service(raw) for raw in raw_items if isinstance(raw, dict) and raw.get("id") is not None])


async def suggest_services(
    api: ApiClient, *, user_id: int, description: str, category_id: str, corr_id: str | None = None
) -> list[CatalogService]:
    """Best effort AI suggestions used to pre-fill the cart; empty when unavailable."""
    res = await api.request(
        "POST",
        "/solicitudes/ai/sugerir-servicios",
        user_id=user_id,
        json={"descripcion": description, "categoria_id": category_id},
        corr_id=corr_id,
    )
    if isinstance(res, Err):
        logger.warning("catalog: service suggestions unavailable kind=%s corr=%s", res.kind.value, corr_id)
        return []
    raw_items = data_of(res.value).get("servicios_sugeridos") or []
    return [_to_service(raw) for raw in raw_items if isinstance(raw, dict) and raw.get("id") is not None]


async def summarize_description(
    api: ApiClient, *, user_id: int, description: str, category_id: str, corr_id: str | None = None
) -> str | None:
    """Best effort AI summary; the request is created without one when this fails."""
    res = await api.request(
        "POST",
        "/solicitudes/ai/procesar-descripcion",
        user_id=user_id,
        json={"descripcion": description, "categoria_id": category_id},
        corr_id=corr_id,
    )
    if isinstance(res, Err):
        logger.warning("catalog: ai summary unavailable kind=%s corr=%s", res.kind.value, corr_id)
        return None
    data = data_of(res.value)
    summary = data.get("resumen") or data.get("resumen_ai")
    return summary if isinstance(summary, str) and summary.strip() else None


async def create_request(
    api: ApiClient,
    *,
    user_id: int,
    client_id: str,
    category: Category,
    description: str,
    urgency: Urgency,
    latitude: float,
    longitude: float,
    ai_summary: str | None = None,
    cart: list[CartItem] | None = None,
    corr_id: str | None = None,
) -> Result[ServiceRequest]:
    cart = cart or []
    body = {
        "cliente_id": client_id,
        "categoria_id": category.id,
        "titulo": category.name or "Solicitud de servicio",
        "descripcion": description,
        "latitud": latitude,
        "longitud": longitude,
        "cuando_necesita": urgency.value,
        "descripcion_ai": ai_summary,
        **cart_payload(cart),
    }
    cart_estimate = estimate_price(cart, urgency)
    if cart_estimate is not None:
        body["precio_estimado"] = cart_estimate
    res = await api.request("POST", "/solicitudes", user_id=user_id, json=body, corr_id=corr_id)
    if isinstance(res, Err):
        return res
    data = data_of(res.value)
    request_id = data.get("solicitud_id")
    if request_id in (None, ""):
        return Err(ErrorKind.SERVER)
    estimated_price = _price(data.get("precio_estimado"))
    if estimated_price is None:
        estimated_price = cart_estimate
    logger.info("catalog: request created id=%s category=%s corr=%s", request_id, category.id, corr_id)
    return Ok(
        ServiceRequest(
            id=str(request_id),
            category_id=category.id,
            description=description,
            urgency=urgency,
            ai_summary=ai_summary,
            cart=list(cart),
            estimated_price=estimated_price,
            category_name=category.name,
        )
    )


async def search_professionals(
    api: ApiClient,
    *,
    user_id: int,
    category_id: str,
    service_date: date,
    latitude: float,
    longitude: float,
    radius_km: int,
    corr_id: str | None = None,
) -> Result[list[Professional]]:
    body = {
        "categoria_id": category_id,
        "fecha_servicio": service_date.isoformat(),
        "latitud": latitude,
        "longitud": longitude,
        "radio_km": radius_km,
    }
    res = await api.request("POST", "/contratistas/buscar-disponibles", user_id=user_id, json=body, corr_id=corr_id)
    if isinstance(res, Err):
        return res
    raw_items = data_of(res.value).get("contratistas") or []
    return Ok([_to_professional(raw) for raw in raw_items if isinstance(raw, dict)])
