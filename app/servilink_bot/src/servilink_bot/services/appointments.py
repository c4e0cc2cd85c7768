from dataclasses import dataclass
import logging
from typing import Optional

from servilink_bot.dto import Appointment, AppointmentStatus
from servilink_bot.flows.confirmation import TO_BE_QUOTED, AppointmentDraft
from servilink_bot.services.http import ApiClient, data_of
from servilink_bot.services.result import Err, ErrorKind, Ok, Result
from servilink_bot.utils.time import parse_date, parse_time

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingOutcome:
    appointment_id: str
    payment_required: bool
    amount: Optional[float]


def _price(raw) -> Optional[float]:
    if raw is None or raw == TO_BE_QUOTED:
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None


def _to_appointment(raw: dict) -> Appointment:
    contractor = raw.get("contratista") or {}
    contractor_name = raw.get("contratista_nombre") or " ".join(
        p for p in (contractor.get("nombre"), contractor.get("apellido")) if p
    )
    return Appointment(
        id=str(raw.get("id") or raw.get("cita_id") or ""),
        request_id=str(raw.get("solicitud_id") or ""),
        contractor_id=str(raw.get("contratista_id") or contractor.get("id") or ""),
        client_id=str(raw.get("cliente_id") or ""),
        service_date=parse_date(raw.get("fecha_servicio")),
        start=parse_time(raw.get("hora_inicio")),
        end=parse_time(raw.get("hora_fin")),
        price=_price(raw.get("precio_acordado")),
        status=AppointmentStatus.parse(raw.get("estado")),
        contractor_name=contractor_name,
        notes=raw.get("notas_cliente") or "",
    )


async def create_appointment(
    api: ApiClient,
    *,
    user_id: int,
    draft: AppointmentDraft,
    corr_id: str | None = None,
) -> Result[BookingOutcome]:
    res = await api.request("POST", "/citas", user_id=user_id, json=draft.payload(), corr_id=corr_id)
    if isinstance(res, Err):
        return res
    appointment_id = data_of(res.value).get("cita_id")
    if appointment_id in (None, ""):
        logger.error("appointments: create response without cita_id tg=%s corr=%s", user_id, corr_id)
        return Err(ErrorKind.SERVER)
    outcome = BookingOutcome(
        appointment_id=str(appointment_id),
        payment_required=draft.requires_payment,
        amount=draft.price,
    )
    logger.info(
        "appointments: created id=%s contractor=%s date=%s start=%s payment=%s corr=%s",
        outcome.appointment_id,
        draft.contractor_id,
        draft.service_date,
        draft.start,
        outcome.payment_required,
        corr_id,
    )
    return Ok(outcome)


async def list_appointments(
    api: ApiClient,
    *,
    user_id: int,
    client_id: str | None = None,
    contractor_id: str | None = None,
    status: AppointmentStatus | None = None,
    limit: int = 10,
    corr_id: str | None = None,
) -> Result[list[Appointment]]:
    params: dict = {"limit": limit}
    if client_id:
        params["cliente_id"] = client_id
    if contractor_id:
        params["contratista_id"] = contractor_id
    if status:
        params["estado"] = status.value
    res = await api.request("GET", "/citas", user_id=user_id, params=params, corr_id=corr_id)
    if isinstance(res, Err):
        return res
    raw_items = data_of(res.value).get("citas") or []
    return Ok([_to_appointment(raw) for raw in raw_items if isinstance(raw, dict)])


async def get_appointment(
    api: ApiClient, *, user_id: int, appointment_id: str, corr_id: str | None = None
) -> Result[Appointment]:
    res = await api.request("GET", f"/citas/{appointment_id}", user_id=user_id, corr_id=corr_id)
    if isinstance(res, Err):
        return res
    data = data_of(res.value)
    raw = data.get("cita") if isinstance(data.get("cita"), dict) else data
    return Ok(_to_appointment({"id": appointment_id, **raw}))


async def _lifecycle(
    api: ApiClient,
    action: str,
    *,
    user_id: int,
    appointment_id: str,
    body: dict | None = None,
    corr_id: str | None = None,
) -> Result[None]:
    res = await api.request("POST", f"/citas/{appointment_id}/{action}", user_id=user_id, json=body, corr_id=corr_id)
    if isinstance(res, Err):
        logger.warning(
            "appointments: %s failed id=%s kind=%s corr=%s", action, appointment_id, res.kind.value, corr_id
        )
        return res
    logger.info("appointments: %s id=%s corr=%s", action, appointment_id, corr_id)
    return Ok(None)


async def confirm_appointment(api: ApiClient, *, user_id: int, appointment_id: str, corr_id: str | None = None):
    return await _lifecycle(api, "confirmar", user_id=user_id, appointment_id=appointment_id, corr_id=corr_id)


async def start_service(api: ApiClient, *, user_id: int, appointment_id: str, corr_id: str | None = None):
    return await _lifecycle(api, "iniciar", user_id=user_id, appointment_id=appointment_id, corr_id=corr_id)


async def complete_service(
    api: ApiClient,
    *,
    user_id: int,
    appointment_id: str,
    notes: str = "Trabajo completado satisfactoriamente",
    corr_id: str | None = None,
):
    return await _lifecycle(
        api,
        "completar",
        user_id=user_id,
        appointment_id=appointment_id,
        body={"notas_final": notes, "fotos_trabajo": []},
        corr_id=corr_id,
    )


async def rate_service(
    api: ApiClient,
    *,
    user_id: int,
    appointment_id: str,
    contractor_id: str,
    score: int,
    comment: str = "",
    corr_id: str | None = None,
) -> Result[None]:
    """Submit the client's evaluation; the overall score fills every sub-score."""
    if not 1 <= score <= 5:
        return Err(ErrorKind.VALIDATION, "La calificación debe estar entre 1 y 5.")
    body = {
        "cita_id": appointment_id,
        "evaluado_id": contractor_id,
        "tipo_evaluador": "cliente",
        "calificacion": score,
        "comentario": comment,
        "puntualidad": score,
        "calidad_trabajo": score,
        "comunicacion": score,
        "limpieza": score,
    }
    res = await api.request("POST", "/evaluaciones", user_id=user_id, json=body, corr_id=corr_id)
    if isinstance(res, Err):
        return res
    logger.info("appointments: rated id=%s score=%s corr=%s", appointment_id, score, corr_id)
    return Ok(None)
