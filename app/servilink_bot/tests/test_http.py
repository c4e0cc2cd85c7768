"""Tests for the REST client: auth header, token refresh and error taxonomy."""

import asyncio
import json

import httpx
import pytest

from servilink_bot.services.http import data_of
from servilink_bot.services.result import Err, ErrorKind, Ok

from conftest import TG_ID, ok


class TestRequest:
    @pytest.mark.asyncio
    async def test_attaches_bearer_and_corr_id(self, make_api):
        seen = []

        def handler(request):
            seen.append(request)
            return ok({"citas": []})

        api = make_api(handler)
        res = await api.request("GET", "/citas", user_id=TG_ID, params={"limit": 5}, corr_id="abc123")
        assert isinstance(res, Ok)
        assert seen[0].headers["Authorization"] == "Bearer tok-1"
        assert seen[0].headers["X-Corr-Id"] == "abc123"
        assert seen[0].url.params["limit"] == "5"

    @pytest.mark.asyncio
    async def test_anonymous_request_has_no_bearer(self, make_api):
        seen = []

        def handler(request):
            seen.append(request)
            return ok({})

        api = make_api(handler)
        await api.request("GET", "/config/categorias")
        assert "Authorization" not in seen[0].headers

    def test_data_of_ignores_non_dict(self):
        assert data_of({"data": [1, 2]}) == {}
        assert data_of({"data": {"a": 1}}) == {"a": 1}


class TestTokenRefresh:
    @pytest.mark.asyncio
    async def test_refreshes_once_and_replays(self, make_api, sessions):
        calls = []

        def handler(request):
            calls.append(request.url.path)
            if request.url.path == "/auth/refresh":
                assert json.loads(request.content) == {"refresh_token": "ref-1"}
                return ok({"tokens": {"access_token": "tok-2"}})
            if request.headers["Authorization"] == "Bearer tok-1":
                return httpx.Response(401, json={"success": False, "message": "expired"})
            return ok({"citas": []})

        api = make_api(handler)
        res = await api.request("GET", "/citas", user_id=TG_ID)
        assert isinstance(res, Ok)
        assert calls == ["/citas", "/auth/refresh", "/citas"]
        assert sessions.get(TG_ID).access_token == "tok-2"
        assert sessions.get(TG_ID).refresh_token == "ref-1"

    @pytest.mark.asyncio
    async def test_failed_refresh_clears_session(self, make_api, sessions):
        def handler(request):
            return httpx.Response(401, json={"success": False})

        api = make_api(handler)
        res = await api.request("GET", "/citas", user_id=TG_ID)
        assert isinstance(res, Err)
        assert res.kind == ErrorKind.AUTH
        assert TG_ID not in sessions

    @pytest.mark.asyncio
    async def test_second_401_after_refresh_clears_session(self, make_api, sessions):
        calls = []

        def handler(request):
            calls.append(request.url.path)
            if request.url.path == "/auth/refresh":
                return ok({"tokens": {"access_token": "tok-2"}})
            return httpx.Response(401, json={"success": False})

        api = make_api(handler)
        res = await api.request("GET", "/citas", user_id=TG_ID)
        assert isinstance(res, Err) and res.kind == ErrorKind.AUTH
        assert calls == ["/citas", "/auth/refresh", "/citas"]
        assert TG_ID not in sessions

    @pytest.mark.asyncio
    async def test_concurrent_401s_share_one_refresh(self, make_api):
        refreshes = 0

        def handler(request):
            nonlocal refreshes
            if request.url.path == "/auth/refresh":
                refreshes += 1
                return ok({"tokens": {"access_token": "tok-2"}})
            if request.headers["Authorization"] == "Bearer tok-1":
                return httpx.Response(401)
            return ok({})

        api = make_api(handler)
        results = await asyncio.gather(
            api.request("GET", "/citas", user_id=TG_ID),
            api.request("GET", "/auth/me", user_id=TG_ID),
        )
        assert all(isinstance(r, Ok) for r in results)
        assert refreshes == 1

    @pytest.mark.asyncio
    async def test_login_401_does_not_refresh(self, make_api):
        calls = []

        def handler(request):
            calls.append(request.url.path)
            return httpx.Response(401, json={"success": False, "message": "bad credentials"})

        api = make_api(handler)
        res = await api.request("POST", "/auth/login", user_id=TG_ID, json={})
        assert isinstance(res, Err) and res.kind == ErrorKind.AUTH
        assert calls == ["/auth/login"]


class TestErrorTaxonomy:
    @pytest.mark.asyncio
    async def test_server_error(self, make_api):
        api = make_api(lambda request: httpx.Response(503, text="upstream down"))
        res = await api.request("GET", "/citas", user_id=TG_ID)
        assert res == Err(ErrorKind.SERVER, status_code=503)
        assert res.retryable

    @pytest.mark.asyncio
    async def test_validation_error_keeps_server_message(self, make_api):
        api = make_api(lambda request: httpx.Response(422, json={"success": False, "message": "Horario ocupado"}))
        res = await api.request("POST", "/citas", user_id=TG_ID, json={})
        assert res.kind == ErrorKind.VALIDATION
        assert res.message == "Horario ocupado"
        assert not res.retryable

    @pytest.mark.asyncio
    async def test_success_false_is_validation(self, make_api):
        api = make_api(lambda request: httpx.Response(200, json={"success": False, "error": "Datos inválidos"}))
        res = await api.request("POST", "/solicitudes", user_id=TG_ID, json={})
        assert res == Err(ErrorKind.VALIDATION, "Datos inválidos", 200)

    @pytest.mark.asyncio
    async def test_undecodable_body_is_server(self, make_api):
        api = make_api(lambda request: httpx.Response(200, text="<html>oops</html>"))
        res = await api.request("GET", "/citas", user_id=TG_ID)
        assert res.kind == ErrorKind.SERVER

    @pytest.mark.asyncio
    async def test_transport_error_is_network(self, make_api):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        api = make_api(handler)
        res = await api.request("GET", "/citas", user_id=TG_ID)
        assert res.kind == ErrorKind.NETWORK
        assert res.retryable
