"""Tests for small helpers: contacts, roles, time parsing, error texts and FSM guards."""

from datetime import date, datetime, time

import pytest

from servilink_bot.handlers.utils import begin_request, in_flight, is_current_request, truncate
from servilink_bot.services.errors import user_friendly_error
from servilink_bot.services.result import Err, ErrorKind
from servilink_bot.utils.contacts import normalize_phone, whatsapp_link
from servilink_bot.utils.roles import role_label
from servilink_bot.utils.time import parse_date, parse_time


class TestContacts:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("+54 9 11 2345-6789", "5491123456789"),
            ("011 2345-6789", "5491123456789"),
            ("1123456789", "5491123456789"),
            ("12345", None),
            ("", None),
        ],
    )
    def test_normalize(self, raw, expected):
        assert normalize_phone(raw) == expected

    def test_link_with_text(self):
        assert whatsapp_link("1123456789", "Hola ServiLink") == "https://wa.me/5491123456789?text=Hola%20ServiLink"

    def test_invalid_number_raises(self):
        with pytest.raises(ValueError):
            whatsapp_link("123")


def test_role_label():
    assert role_label("Contratista") == "profesional"
    assert role_label("cliente") == "cliente"
    assert role_label(None) == "—"


class TestTimeParsing:
    def test_parse_date(self):
        assert parse_date("2025-08-27T10:00:00.000Z") == date(2025, 8, 27)
        assert parse_date(datetime(2025, 8, 27, 10)) == date(2025, 8, 27)
        assert parse_date("27/08/2025") is None
        assert parse_date(None) is None

    def test_parse_time(self):
        assert parse_time("10:00:00") == time(10, 0)
        assert parse_time("09:30") == time(9, 30)
        assert parse_time("mañana") is None


def test_error_texts():
    assert "conectarnos" in user_friendly_error(Err(ErrorKind.NETWORK))
    assert "/start" in user_friendly_error(Err(ErrorKind.AUTH))
    assert user_friendly_error(Err(ErrorKind.VALIDATION, "Horario ocupado")) == "Horario ocupado"
    assert user_friendly_error(Err(ErrorKind.SERVER)) == "Error del servidor. Intentá más tarde."


def test_truncate():
    assert truncate("corto") == "corto"
    assert truncate("x" * 10, limit=5) == "xxxx…"


class TestFsmGuards:
    @pytest.mark.asyncio
    async def test_in_flight_blocks_second_entry(self, fsm_state):
        async with in_flight(fsm_state, "busy") as first:
            assert first
            async with in_flight(fsm_state, "busy") as second:
                assert not second
            assert (await fsm_state.get_data())["busy"] is True
        assert (await fsm_state.get_data())["busy"] is False

    @pytest.mark.asyncio
    async def test_in_flight_released_on_error(self, fsm_state):
        with pytest.raises(RuntimeError):
            async with in_flight(fsm_state, "busy"):
                raise RuntimeError("boom")
        async with in_flight(fsm_state, "busy") as entered:
            assert entered

    @pytest.mark.asyncio
    async def test_newer_request_supersedes_older(self, fsm_state):
        older = await begin_request(fsm_state, "req")
        newer = await begin_request(fsm_state, "req")
        assert not await is_current_request(fsm_state, "req", older)
        assert await is_current_request(fsm_state, "req", newer)
