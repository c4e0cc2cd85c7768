import logging
from typing import Any, Awaitable, Callable

from aiogram import BaseMiddleware
from aiogram.fsm.context import FSMContext
from aiogram.types import TelegramObject

from servilink_bot.flows.tracking import ScreenTasks
from servilink_bot.states import ClientStates

logger = logging.getLogger(__name__)


class ScreenLifetimeMiddleware(BaseMiddleware):
    """Stops a chat's tracking poll once the handled update left the tracking screen."""

    def __init__(self, screen_tasks: ScreenTasks):
        self.screen_tasks = screen_tasks

    async def __call__(
        self,
        handler: Callable[[TelegramObject, dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: dict[str, Any],
    ) -> Any:
        try:
            return await handler(event, data)
        finally:
            user = data.get("event_from_user")
            state: FSMContext | None = data.get("state")
            if user is not None and state is not None and self.screen_tasks.running(user.id):
                if await state.get_state() != ClientStates.tracking.state:
                    self.screen_tasks.cancel(user.id)
