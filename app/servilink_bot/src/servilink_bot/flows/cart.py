"""Service cart of a request: catalog services with quantities."""

from dataclasses import asdict, replace
from typing import Optional

from servilink_bot.dto import CartItem, CatalogService, Urgency

URGENCY_MULTIPLIER = {
    Urgency.TODAY: 1.8,
    Urgency.TOMORROW: 1.5,
    Urgency.THIS_WEEK: 1.2,
    Urgency.NONE: 1.0,
}


def add_service(cart: list[CartItem], service: CatalogService) -> list[CartItem]:
    for idx, item in enumerate(cart):
        if item.service_id == service.id:
            return [*cart[:idx], replace(item, quantity=item.quantity + 1), *cart[idx + 1 :]]
    return [
        *cart,
        CartItem(
            service_id=service.id,
            quantity=1,
            description=service.description,
            name=service.name,
            unit_price=service.base_price,
        ),
    ]


def remove_one(cart: list[CartItem], service_id: str) -> list[CartItem]:
    """Decrements a service's quantity; the item leaves the cart at zero."""
    result = []
    for item in cart:
        if item.service_id == service_id:
            if item.quantity > 1:
                result.append(replace(item, quantity=item.quantity - 1))
            continue
        result.append(item)
    return result


def quantity_of(cart: list[CartItem], service_id: str) -> int:
    return next((item.quantity for item in cart if item.service_id == service_id), 0)


def cart_total(cart: list[CartItem]) -> Optional[float]:
    """Sum of base prices; None when no item carries a price."""
    priced = [item for item in cart if item.unit_price is not None]
    if not priced:
        return None
    return sum(item.unit_price * item.quantity for item in priced)


def estimate_price(cart: list[CartItem], urgency: Urgency) -> Optional[float]:
    total = cart_total(cart)
    if not total:
        return None
    return round(total * URGENCY_MULTIPLIER[urgency], 2)


def cart_payload(cart: list[CartItem]) -> dict:
    return {
        "necesita_multiples_servicios": len(cart) > 1,
        "cantidad_servicios": len(cart),
        "servicios_carrito": [
            {"servicio_id": item.service_id, "cantidad": item.quantity, "descripcion": item.description}
            for item in cart
        ],
    }


def cart_to_list(cart: list[CartItem]) -> list[dict]:
    return [asdict(item) for item in cart]


def cart_from_list(raw: list[dict] | None) -> list[CartItem]:
    return [CartItem(**item) for item in raw or []]
