import asyncio
import logging

from aiogram import F, Router
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery

from servilink_bot.config import Settings
from servilink_bot.flows.tracking import (
    STAGE_LABELS,
    ProgressTracker,
    ScreenTasks,
    TrackingPoller,
    TrackingSnapshot,
    TrackingStage,
)
from servilink_bot.keyboards import tracking_finished_keyboard, tracking_keyboard
from servilink_bot.services.http import ApiClient
from servilink_bot.services.result import Err, ErrorKind
from servilink_bot.services.tracking import fetch_tracking
from servilink_bot.states import ClientStates
from servilink_bot.utils.corr import new_corr_id
from ..utils import safe_edit, show_logged_out

router = Router()
logger = logging.getLogger(__name__)


def tracking_text(tracker: ProgressTracker, snapshot: TrackingSnapshot | None) -> str:
    done = set(tracker.done_stages())
    lines = ["Seguimiento de tu servicio", ""]
    for stage in TrackingStage:
        lines.append(f"{'✅' if stage in done else '⬜'} {STAGE_LABELS[stage]}")
    if snapshot is not None and tracker.current == TrackingStage.EN_ROUTE and snapshot.eta_minutes is not None:
        lines.append("")
        lines.append(f"Llega en aproximadamente {snapshot.eta_minutes} min.")
    if tracker.current is None:
        lines.append("")
        lines.append("El profesional todavía no inició el viaje.")
    return "\n".join(lines)


@router.callback_query(F.data.startswith("appt:track:"))
async def on_track(
    callback: CallbackQuery,
    state: FSMContext,
    api: ApiClient,
    settings: Settings,
    screen_tasks: ScreenTasks,
):
    appointment_id = callback.data.split(":", 2)[2]
    user_id = callback.from_user.id
    message = callback.message
    await state.set_state(ClientStates.tracking)
    await state.update_data(tracking_appointment_id=appointment_id)
    tracker = ProgressTracker()
    await safe_edit(message, tracking_text(tracker, None), reply_markup=tracking_keyboard(appointment_id))
    await callback.answer()

    def relevant() -> bool:
        return screen_tasks.is_current(user_id, asyncio.current_task())

    async def fetch():
        return await fetch_tracking(api, user_id=user_id, appointment_id=appointment_id, corr_id=new_corr_id())

    async def on_stage(stage: TrackingStage, snapshot: TrackingSnapshot):
        if not relevant():
            return
        logger.info("client.tracking: stage tg=%s appointment=%s stage=%s", user_id, appointment_id, stage.name)
        await safe_edit(message, tracking_text(tracker, snapshot), reply_markup=tracking_keyboard(appointment_id))

    async def on_finish(snapshot: TrackingSnapshot):
        if not relevant():
            return
        text = "El servicio fue cancelado." if snapshot.cancelled else tracking_text(tracker, snapshot) + "\n\n¡Servicio completado!"
        await state.set_state(ClientStates.appointment_detail)
        await safe_edit(message, text, reply_markup=tracking_finished_keyboard(appointment_id, completed=not snapshot.cancelled))

    async def on_error(err: Err):
        if not relevant():
            return
        logger.info("client.tracking: poll failed tg=%s appointment=%s kind=%s", user_id, appointment_id, err.kind.value)
        if err.kind == ErrorKind.AUTH:
            await show_logged_out(message, state)
            screen_tasks.cancel(user_id)

    poller = TrackingPoller(
        fetch,
        on_stage,
        interval=settings.tracking_poll_interval_sec,
        on_finish=on_finish,
        on_error=on_error,
        tracker=tracker,
    )
    screen_tasks.start(user_id, poller.run())
    logger.info("client.tracking: polling started tg=%s appointment=%s", user_id, appointment_id)
