import logging

from servilink_bot.dto import AuthUser
from servilink_bot.services.http import ApiClient, data_of
from servilink_bot.services.result import Err, ErrorKind, Ok, Result
from servilink_bot.session import Session

logger = logging.getLogger(__name__)


def _to_user(raw: dict) -> AuthUser:
    name = " ".join(p for p in (raw.get("nombre"), raw.get("apellido")) if p) or raw.get("email") or ""
    return AuthUser(
        id=str(raw.get("id") or ""),
        email=raw.get("email") or "",
        name=name,
        role=(raw.get("tipo_usuario") or raw.get("rol") or "cliente").lower(),
    )


async def login(
    api: ApiClient,
    *,
    user_id: int,
    email: str,
    password: str,
    corr_id: str | None = None,
) -> Result[Session]:
    res = await api.request("POST", "/auth/login", json={"email": email, "password": password}, corr_id=corr_id)
    if isinstance(res, Err):
        if res.kind == ErrorKind.AUTH:
            return Err(ErrorKind.VALIDATION, "Email o contraseña incorrectos", res.status_code)
        return res
    data = data_of(res.value)
    tokens = data.get("tokens") or {}
    if not isinstance(data.get("user"), dict) or not tokens.get("access_token"):
        logger.error("auth: login response without user/tokens tg=%s corr=%s", user_id, corr_id)
        return Err(ErrorKind.SERVER)
    session = Session(
        user=_to_user(data["user"]),
        access_token=tokens["access_token"],
        refresh_token=tokens.get("refresh_token") or "",
    )
    api.sessions.replace(user_id, session)
    logger.info("auth: logged in tg=%s user=%s role=%s corr=%s", user_id, session.user.id, session.user.role, corr_id)
    return Ok(session)


async def refresh_profile(api: ApiClient, *, user_id: int, corr_id: str | None = None) -> Result[Session]:
    res = await api.request("GET", "/auth/me", user_id=user_id, corr_id=corr_id)
    if isinstance(res, Err):
        return res
    raw = data_of(res.value).get("user")
    if not isinstance(raw, dict):
        return Err(ErrorKind.SERVER)
    session = api.sessions.with_user(user_id, _to_user(raw))
    if session is None:
        return Err(ErrorKind.AUTH)
    return Ok(session)


def logout(api: ApiClient, *, user_id: int) -> bool:
    dropped = api.sessions.clear(user_id)
    logger.info("auth: logout tg=%s had_session=%s", user_id, dropped is not None)
    return dropped is not None
