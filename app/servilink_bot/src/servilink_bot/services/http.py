import asyncio
import logging
from typing import Any

import httpx

from servilink_bot.services.result import Err, ErrorKind, Ok, Result
from servilink_bot.session import SessionStore
from servilink_bot.utils.corr import new_corr_id

logger = logging.getLogger(__name__)

REFRESH_PATH = "/auth/refresh"
_NO_REFRESH_PATHS = ("/auth/login", REFRESH_PATH)


def build_headers(corr_id: str) -> dict[str, str]:
    return {"X-Corr-Id": corr_id}


class ApiClient:
    """JSON-over-HTTPS client for the ServiLink backend.

    Attaches the user's bearer token, replays a request once after a
    successful token refresh and converts every outcome into ``Ok``/``Err``.
    """

    def __init__(
        self,
        *,
        base_url: str,
        sessions: SessionStore,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url
        self.sessions = sessions
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )
        self._refresh_locks: dict[int, asyncio.Lock] = {}

    async def close(self):
        await self._client.aclose()

    async def request(
        self,
        method: str,
        path: str,
        *,
        user_id: int | None = None,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        corr_id: str | None = None,
    ) -> Result[dict]:
        corr_id = corr_id or new_corr_id()
        session = self.sessions.get(user_id)
        token = session.access_token if session else None
        response = await self._send(method, path, token=token, json=json, params=params, corr_id=corr_id)
        if isinstance(response, Err):
            return response

        if response.status_code == 401 and user_id is not None and session and not path.startswith(_NO_REFRESH_PATHS):
            logger.info("api: 401 on %s %s, refreshing tg=%s corr=%s", method, path, user_id, corr_id)
            fresh_token = await self._refresh(user_id, stale_token=token, corr_id=corr_id)
            if fresh_token is None:
                return Err(ErrorKind.AUTH, status_code=401)
            response = await self._send(method, path, token=fresh_token, json=json, params=params, corr_id=corr_id)
            if isinstance(response, Err):
                return response
            if response.status_code == 401:
                logger.warning("api: still unauthorized after refresh tg=%s corr=%s", user_id, corr_id)
                self.sessions.clear(user_id)
                return Err(ErrorKind.AUTH, status_code=401)

        return self._to_result(response, method=method, path=path, corr_id=corr_id)

    async def _send(
        self,
        method: str,
        path: str,
        *,
        token: str | None,
        json: dict[str, Any] | None,
        params: dict[str, Any] | None,
        corr_id: str,
    ) -> httpx.Response | Err:
        headers = build_headers(corr_id)
        if token:
            headers["Authorization"] = f"Bearer {token}"
        try:
            return await self._client.request(method, path, json=json, params=params, headers=headers)
        except httpx.TransportError as exc:
            logger.warning("api: transport error %s %s corr=%s err=%r", method, path, corr_id, exc)
            return Err(ErrorKind.NETWORK, message=None)

    async def _refresh(self, user_id: int, *, stale_token: str | None, corr_id: str) -> str | None:
        lock = self._refresh_locks.setdefault(user_id, asyncio.Lock())
        async with lock:
            session = self.sessions.get(user_id)
            if session is None:
                return None
            if session.access_token != stale_token:
                # Another request already refreshed while we waited.
                return session.access_token
            response = await self._send(
                "POST",
                REFRESH_PATH,
                token=None,
                json={"refresh_token": session.refresh_token},
                params=None,
                corr_id=corr_id,
            )
            access_token = None
            if not isinstance(response, Err) and response.status_code == 200:
                body = _decode(response)
                if body and body.get("success"):
                    tokens = (body.get("data") or {}).get("tokens") or {}
                    access_token = tokens.get("access_token")
            if not access_token:
                logger.warning("api: token refresh failed, clearing session tg=%s corr=%s", user_id, corr_id)
                self.sessions.clear(user_id)
                return None
            self.sessions.with_access_token(user_id, access_token)
            logger.info("api: token refreshed tg=%s corr=%s", user_id, corr_id)
            return access_token

    def _to_result(self, response: httpx.Response, *, method: str, path: str, corr_id: str) -> Result[dict]:
        status = response.status_code
        body = _decode(response)
        if status == 401:
            return Err(ErrorKind.AUTH, message=_message(body), status_code=status)
        if status >= 500:
            logger.error("api: server error %s %s status=%s corr=%s", method, path, status, corr_id)
            return Err(ErrorKind.SERVER, status_code=status)
        if status >= 400:
            logger.info("api: rejected %s %s status=%s corr=%s", method, path, status, corr_id)
            return Err(ErrorKind.VALIDATION, message=_message(body), status_code=status)
        if body is None:
            logger.error("api: undecodable body %s %s status=%s corr=%s", method, path, status, corr_id)
            return Err(ErrorKind.SERVER, status_code=status)
        if body.get("success") is False:
            return Err(ErrorKind.VALIDATION, message=_message(body), status_code=status)
        return Ok(body)


def _decode(response: httpx.Response) -> dict | None:
    try:
        body = response.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def _message(body: dict | None) -> str | None:
    if not body:
        return None
    for key in ("message", "error", "detail"):
        value = body.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def data_of(body: dict) -> dict:
    data = body.get("data")
    return data if isinstance(data, dict) else {}
