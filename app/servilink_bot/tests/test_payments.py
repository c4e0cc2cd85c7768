"""Tests for the payment handoff: checkout creation and gateway return handling."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from servilink_bot.dto import PaymentStatus
from servilink_bot.flows.payment import (
    PaymentLanding,
    PaymentReturn,
    build_return_urls,
    landing_for,
    parse_start_payload,
)
from servilink_bot.handlers.client.payment import show_payment_return
from servilink_bot.services.payments import create_checkout
from servilink_bot.services.result import Err, ErrorKind, Ok
from servilink_bot.states import ClientStates

from conftest import TG_ID, no_http, ok


def _buttons(markup) -> list[str]:
    return [button.callback_data or button.url for row in markup.inline_keyboard for button in row]


def _message():
    message = MagicMock()
    message.from_user.id = TG_ID
    message.answer = AsyncMock()
    return message


class TestReturnParsing:
    def test_landing_mapping(self):
        assert landing_for(PaymentStatus.APPROVED) == PaymentLanding.SUCCESS
        assert landing_for(PaymentStatus.PENDING) == PaymentLanding.PROCESSING
        assert landing_for(PaymentStatus.REJECTED) == PaymentLanding.ERROR

    def test_rejected_payload_lands_on_error(self):
        ret = parse_start_payload("pay_rejected_77")
        assert ret == PaymentReturn(status=PaymentStatus.REJECTED, appointment_id="77")
        assert ret.landing == PaymentLanding.ERROR
        assert ret.retryable

    def test_approved_payload_is_not_retryable(self):
        ret = parse_start_payload("pay_APPROVED_77")
        assert ret.landing == PaymentLanding.SUCCESS
        assert not ret.retryable

    def test_payload_without_appointment(self):
        assert parse_start_payload("pay_pending") == PaymentReturn(status=PaymentStatus.PENDING)
        assert parse_start_payload("pay_pending_") == PaymentReturn(status=PaymentStatus.PENDING)

    def test_foreign_payloads_are_ignored(self):
        assert parse_start_payload("pay_chargeback_77") is None
        assert parse_start_payload("referral_abc") is None
        assert parse_start_payload(None) is None

    def test_return_urls_carry_status_and_appointment(self):
        urls = build_return_urls("https://codeo.site/pay?src=bot", "77")
        assert urls == {
            "success_url": "https://codeo.site/pay?src=bot&status=approved&cita_id=77",
            "failure_url": "https://codeo.site/pay?src=bot&status=rejected&cita_id=77",
        }


class TestCheckout:
    @pytest.mark.asyncio
    async def test_returns_init_point(self, make_api):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return ok({"init_point": "https://mp.test/checkout/1"})

        api = make_api(handler)
        res = await create_checkout(
            api,
            user_id=TG_ID,
            appointment_id="77",
            amount=8000,
            notification_url="https://hook.test",
            **build_return_urls("https://ret.test", "77"),
        )
        assert res == Ok("https://mp.test/checkout/1")
        assert bodies[0]["cita_id"] == "77"
        assert bodies[0]["monto_consulta"] == 8000
        assert bodies[0]["failure_url"] == "https://ret.test?status=rejected&cita_id=77"

    @pytest.mark.asyncio
    async def test_missing_init_point_is_server_error(self, make_api):
        api = make_api(lambda request: ok({}))
        res = await create_checkout(
            api,
            user_id=TG_ID,
            appointment_id="77",
            amount=8000,
            success_url="s",
            failure_url="f",
            notification_url="n",
        )
        assert res == Err(ErrorKind.SERVER)


class TestReturnScreen:
    @pytest.mark.asyncio
    async def test_rejected_offers_only_retry_and_dashboard(self, make_api, fsm_state):
        api = make_api(no_http)
        message = _message()
        await show_payment_return(message, fsm_state, api, PaymentReturn(PaymentStatus.REJECTED, "77"))

        text = message.answer.await_args.args[0]
        markup = message.answer.await_args.kwargs["reply_markup"]
        assert "rechazado" in text
        assert "aprobado" not in text
        assert _buttons(markup) == ["pay:retry:77", "appts:mine"]
        assert await fsm_state.get_state() == ClientStates.payment_result.state

    @pytest.mark.asyncio
    async def test_approved_confirms_appointment(self, make_api, fsm_state):
        seen = []

        def handler(request):
            seen.append((request.method, request.url.path))
            return ok({})

        api = make_api(handler)
        message = _message()
        await show_payment_return(message, fsm_state, api, PaymentReturn(PaymentStatus.APPROVED, "77"))
        assert seen == [("POST", "/citas/77/confirmar")]
        assert "aprobado" in message.answer.await_args.args[0]

    @pytest.mark.asyncio
    async def test_pending_does_not_confirm(self, make_api, fsm_state):
        api = make_api(no_http)
        message = _message()
        await show_payment_return(message, fsm_state, api, PaymentReturn(PaymentStatus.PENDING, "77"))
        assert "en proceso" in message.answer.await_args.args[0]
