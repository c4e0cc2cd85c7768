import logging

from servilink_bot.services.http import ApiClient, data_of
from servilink_bot.services.result import Err, ErrorKind, Ok, Result

logger = logging.getLogger(__name__)


async def create_checkout(
    api: ApiClient,
    *,
    user_id: int,
    appointment_id: str,
    amount: float,
    success_url: str,
    failure_url: str,
    notification_url: str,
    corr_id: str | None = None,
) -> Result[str]:
    """Ask the gateway adapter for a fresh checkout session; returns its ``init_point`` URL."""
    body = {
        "cita_id": appointment_id,
        "monto_consulta": amount,
        "notification_url": notification_url,
        "success_url": success_url,
        "failure_url": failure_url,
    }
    res = await api.request("POST", "/pagos/consulta", user_id=user_id, json=body, corr_id=corr_id)
    if isinstance(res, Err):
        return res
    init_point = data_of(res.value).get("init_point")
    if not init_point:
        logger.error("payments: checkout without init_point appointment=%s corr=%s", appointment_id, corr_id)
        return Err(ErrorKind.SERVER)
    logger.info("payments: checkout created appointment=%s amount=%s corr=%s", appointment_id, amount, corr_id)
    return Ok(str(init_point))
