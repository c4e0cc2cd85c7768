"""Shared test fixtures and helpers."""

from datetime import date, datetime, time, timedelta, timezone

from aiogram.fsm.context import FSMContext
from aiogram.fsm.storage.base import StorageKey
from aiogram.fsm.storage.memory import MemoryStorage
import httpx
import pytest
import pytest_asyncio

from servilink_bot.dto import AuthUser, AvailabilitySlot
from servilink_bot.services.http import ApiClient
from servilink_bot.session import Session, SessionStore

TG_ID = 1001
BUENOS_AIRES = timezone(timedelta(hours=-3))


def ok(data: dict, status: int = 200) -> httpx.Response:
    return httpx.Response(status, json={"success": True, "data": data})


def make_session(access: str = "tok-1", refresh: str = "ref-1", role: str = "cliente") -> Session:
    return Session(
        user=AuthUser(id="c-1", email="ana@example.com", name="Ana Gómez", role=role),
        access_token=access,
        refresh_token=refresh,
    )


def make_slot(day: date, hhmm: str, contractor_id: str = "42", hours: int = 1) -> AvailabilitySlot:
    start = time.fromisoformat(hhmm)
    end = (datetime.combine(day, start) + timedelta(hours=hours)).time()
    return AvailabilitySlot(contractor_id=contractor_id, date=day, start=start, end=end, available=True)


def local(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=BUENOS_AIRES)


@pytest.fixture
def sessions():
    store = SessionStore()
    store.replace(TG_ID, make_session())
    return store


@pytest_asyncio.fixture
async def make_api(sessions):
    """Builds ApiClients whose HTTP traffic goes to the given handler."""
    clients: list[ApiClient] = []

    def factory(handler) -> ApiClient:
        api = ApiClient(base_url="https://api.test", sessions=sessions, transport=httpx.MockTransport(handler))
        clients.append(api)
        return api

    yield factory
    for api in clients:
        await api.close()


@pytest.fixture
def fsm_state():
    return FSMContext(storage=MemoryStorage(), key=StorageKey(bot_id=1, chat_id=TG_ID, user_id=TG_ID))


def no_http(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"unexpected HTTP call {request.method} {request.url}")
