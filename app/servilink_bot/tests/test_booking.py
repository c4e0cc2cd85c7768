"""Tests for the booking confirmation and rating screens."""

from datetime import date, time
import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from servilink_bot.config import Settings
from servilink_bot.flows.confirmation import AppointmentDraft
from servilink_bot.handlers.client.booking import BOOKING_FLAG, on_booking_confirm
from servilink_bot.handlers.client.bookings import RATED_KEY, on_rate_score
from servilink_bot.handlers.client.utils import DRAFT_KEY
from servilink_bot.states import ClientStates

from conftest import TG_ID, no_http, ok


def _buttons(markup) -> list[str]:
    return [button.callback_data or button.url for row in markup.inline_keyboard for button in row]


def _callback(data: str):
    callback = MagicMock()
    callback.from_user.id = TG_ID
    callback.data = data
    callback.answer = AsyncMock()
    callback.message.edit_text = AsyncMock()
    return callback


def _draft(service_date=date(2099, 1, 15), price=0.0):
    return AppointmentDraft(
        request_id="s-9",
        contractor_id="42",
        client_id="c-1",
        service_date=service_date,
        start=time(10, 0),
        end=time(12, 0),
        price=price,
        notes="Pierde agua la canilla",
        professional_name="Juan Pérez",
    )


@pytest.fixture
def settings(monkeypatch):
    monkeypatch.delenv("BOT_TZ_OFFSET_MIN", raising=False)
    return Settings(_env_file=None, BOT_TOKEN="123:abc")


async def _confirm_state(fsm_state, draft):
    await fsm_state.set_state(ClientStates.booking_confirm)
    await fsm_state.update_data({DRAFT_KEY: draft.to_dict()})
    return fsm_state


class TestBookingConfirm:
    @pytest.mark.asyncio
    async def test_server_failure_keeps_draft_and_offers_retry(self, make_api, fsm_state, settings):
        api = make_api(lambda request: httpx.Response(500))
        await _confirm_state(fsm_state, _draft())
        callback = _callback("booking:confirm")

        await on_booking_confirm(callback, fsm_state, api, settings)

        data = await fsm_state.get_data()
        assert data[DRAFT_KEY] == _draft().to_dict()
        assert data[BOOKING_FLAG] is False
        assert await fsm_state.get_state() == ClientStates.booking_confirm.state
        text = callback.message.edit_text.await_args.args[0]
        markup = callback.message.edit_text.await_args.kwargs["reply_markup"]
        assert "podés reintentar" in text
        assert _buttons(markup) == ["booking:confirm", "times:back"]

    @pytest.mark.asyncio
    async def test_rejected_slot_only_offers_another_time(self, make_api, fsm_state, settings):
        api = make_api(lambda request: httpx.Response(409, json={"success": False, "message": "Horario ocupado"}))
        await _confirm_state(fsm_state, _draft())
        callback = _callback("booking:confirm")

        await on_booking_confirm(callback, fsm_state, api, settings)

        data = await fsm_state.get_data()
        assert data[DRAFT_KEY] is not None
        assert data[BOOKING_FLAG] is False
        markup = callback.message.edit_text.await_args.kwargs["reply_markup"]
        assert _buttons(markup) == ["times:back"]

    @pytest.mark.asyncio
    async def test_zero_price_books_without_checkout(self, make_api, fsm_state, settings):
        seen = []

        def handler(request):
            seen.append((request.method, request.url.path))
            return ok({"cita_id": 77}, status=201)

        api = make_api(handler)
        await _confirm_state(fsm_state, _draft(price=0.0))
        callback = _callback("booking:confirm")

        await on_booking_confirm(callback, fsm_state, api, settings)

        assert seen == [("POST", "/citas")]
        assert await fsm_state.get_state() == ClientStates.booking_result.state
        data = await fsm_state.get_data()
        assert data[DRAFT_KEY] is None
        assert data[BOOKING_FLAG] is False
        text = callback.message.edit_text.await_args.args[0]
        markup = callback.message.edit_text.await_args.kwargs["reply_markup"]
        assert "¡Cita agendada!" in text
        assert "appt:track:77" in _buttons(markup)

    @pytest.mark.asyncio
    async def test_paid_booking_opens_checkout(self, make_api, fsm_state, settings):
        seen = []

        def handler(request):
            seen.append((request.method, request.url.path))
            if request.url.path == "/citas":
                return ok({"cita_id": 78}, status=201)
            return ok({"init_point": "https://mp.test/checkout/78"})

        api = make_api(handler)
        await _confirm_state(fsm_state, _draft(price=8000.0))
        callback = _callback("booking:confirm")

        await on_booking_confirm(callback, fsm_state, api, settings)

        assert seen == [("POST", "/citas"), ("POST", "/pagos/consulta")]
        assert await fsm_state.get_state() == ClientStates.payment.state
        assert (await fsm_state.get_data())[BOOKING_FLAG] is False

    @pytest.mark.asyncio
    async def test_second_tap_while_booking_is_ignored(self, make_api, fsm_state, settings):
        api = make_api(no_http)
        await _confirm_state(fsm_state, _draft())
        await fsm_state.update_data({BOOKING_FLAG: True})
        callback = _callback("booking:confirm")

        await on_booking_confirm(callback, fsm_state, api, settings)

        callback.answer.assert_awaited_once_with("Procesando…")
        callback.message.edit_text.assert_not_awaited()
        assert (await fsm_state.get_data())[BOOKING_FLAG] is True

    @pytest.mark.asyncio
    async def test_slot_in_the_past_is_not_booked(self, make_api, fsm_state, settings):
        api = make_api(no_http)
        await _confirm_state(fsm_state, _draft(service_date=date(2020, 3, 2)))
        callback = _callback("booking:confirm")

        await on_booking_confirm(callback, fsm_state, api, settings)

        data = await fsm_state.get_data()
        assert data[DRAFT_KEY] is None
        assert data[BOOKING_FLAG] is False
        text = callback.message.edit_text.await_args.args[0]
        markup = callback.message.edit_text.await_args.kwargs["reply_markup"]
        assert "ya pasó" in text
        assert _buttons(markup) == ["times:back"]


class TestRateScore:
    @pytest.mark.asyncio
    async def test_contractor_comes_from_the_rated_appointment(self, make_api, fsm_state):
        bodies = []

        def handler(request):
            if request.method == "GET":
                assert request.url.path == "/citas/B"
                return ok({"cita": {"id": "B", "contratista_id": "Y", "estado": "completada"}})
            bodies.append(json.loads(request.content))
            return ok({}, status=201)

        api = make_api(handler)
        await fsm_state.set_state(ClientStates.rating)
        await fsm_state.update_data(detail_contractor_id="X")
        callback = _callback("rate:B:5")

        await on_rate_score(callback, fsm_state, api)

        assert bodies[0]["evaluado_id"] == "Y"
        assert bodies[0]["cita_id"] == "B"
        assert (await fsm_state.get_data())[RATED_KEY] == ["B"]
        assert await fsm_state.get_state() == ClientStates.my_appointments.state

    @pytest.mark.asyncio
    async def test_unfinished_appointment_cannot_be_rated(self, make_api, fsm_state):
        seen = []

        def handler(request):
            seen.append(request.method)
            return ok({"cita": {"id": "B", "contratista_id": "Y", "estado": "en_progreso"}})

        api = make_api(handler)
        await fsm_state.set_state(ClientStates.rating)
        callback = _callback("rate:B:4")

        await on_rate_score(callback, fsm_state, api)

        assert seen == ["GET"]
        callback.answer.assert_awaited_once_with("Solo podés calificar servicios completados.", show_alert=True)
        assert RATED_KEY not in await fsm_state.get_data()
