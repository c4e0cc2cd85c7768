import asyncio
import logging

from servilink_bot.bot import create_bot, create_dispatcher
from servilink_bot.config import Settings
from servilink_bot.flows.tracking import ScreenTasks
from servilink_bot.handlers import router as handlers_router
from servilink_bot.middlewares import ScreenLifetimeMiddleware
from servilink_bot.services.http import ApiClient
from servilink_bot.session import SessionStore


def setup_logging(level):
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def setup_dispatcher(settings: Settings, api: ApiClient, screen_tasks: ScreenTasks):
    dispatcher = create_dispatcher()
    dispatcher.include_router(handlers_router)
    lifetime = ScreenLifetimeMiddleware(screen_tasks)
    dispatcher.message.middleware(lifetime)
    dispatcher.callback_query.middleware(lifetime)
    dispatcher.workflow_data["settings"] = settings
    dispatcher.workflow_data["api"] = api
    dispatcher.workflow_data["screen_tasks"] = screen_tasks
    return dispatcher


async def main():
    settings = Settings()
    setup_logging(settings.log_level)

    api = ApiClient(
        base_url=settings.api_base_url,
        sessions=SessionStore(),
        timeout=settings.api_timeout_sec,
    )
    screen_tasks = ScreenTasks()

    bot = create_bot(settings.bot_token)
    dispatcher = setup_dispatcher(settings, api, screen_tasks)

    try:
        await dispatcher.start_polling(bot)
    finally:
        await screen_tasks.cancel_all()
        await bot.session.close()
        await api.close()


if __name__ == "__main__":
    asyncio.run(main())
