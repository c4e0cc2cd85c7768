import logging

from servilink_bot.flows.tracking import TrackingSnapshot
from servilink_bot.services.http import ApiClient, data_of
from servilink_bot.services.result import Err, Ok, Result

logger = logging.getLogger(__name__)


def _float(value) -> float | None:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


async def fetch_tracking(
    api: ApiClient, *, user_id: int, appointment_id: str, corr_id: str | None = None
) -> Result[TrackingSnapshot]:
    res = await api.request("GET", f"/tracking/cita/{appointment_id}", user_id=user_id, corr_id=corr_id)
    if isinstance(res, Err):
        return res
    data = data_of(res.value)
    raw = data.get("tracking") if isinstance(data.get("tracking"), dict) else {}
    return Ok(
        TrackingSnapshot(
            status=str(data.get("estado") or raw.get("estado") or ""),
            current_lat=_float(raw.get("latitud_actual")),
            current_lon=_float(raw.get("longitud_actual")),
            dest_lat=_float(raw.get("latitud_destino")),
            dest_lon=_float(raw.get("longitud_destino")),
        )
    )


async def update_position(
    api: ApiClient,
    *,
    user_id: int,
    appointment_id: str,
    latitude: float,
    longitude: float,
    corr_id: str | None = None,
) -> Result[None]:
    res = await api.request(
        "POST",
        "/tracking/actualizar",
        user_id=user_id,
        json={"cita_id": appointment_id, "latitud": latitude, "longitud": longitude},
        corr_id=corr_id,
    )
    if isinstance(res, Err):
        return res
    return Ok(None)


async def confirm_arrival(
    api: ApiClient,
    *,
    user_id: int,
    appointment_id: str,
    latitude: float | None,
    longitude: float | None,
    corr_id: str | None = None,
) -> Result[None]:
    res = await api.request(
        "POST",
        "/tracking/llegada",
        user_id=user_id,
        json={"cita_id": appointment_id, "latitud": latitude, "longitud": longitude},
        corr_id=corr_id,
    )
    if isinstance(res, Err):
        return res
    logger.info("tracking: arrival confirmed appointment=%s corr=%s", appointment_id, corr_id)
    return Ok(None)
