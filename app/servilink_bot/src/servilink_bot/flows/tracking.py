"""Post-booking progress: stage model, regression clamp and the poll loop."""

import asyncio
from dataclasses import dataclass
from enum import IntEnum
import logging
import math
from typing import Awaitable, Callable, Hashable, Optional

from servilink_bot.services.result import Err, Result

logger = logging.getLogger(__name__)

MINUTES_PER_KM = 3
EARTH_RADIUS_KM = 6371.0


class TrackingStage(IntEnum):
    EN_ROUTE = 1
    ARRIVED = 2
    IN_PROGRESS = 3
    COMPLETED = 4


STAGE_LABELS = {
    TrackingStage.EN_ROUTE: "En camino",
    TrackingStage.ARRIVED: "Llegó al domicilio",
    TrackingStage.IN_PROGRESS: "Trabajando",
    TrackingStage.COMPLETED: "Completado",
}

_STAGE_ALIASES = {
    "en_camino": TrackingStage.EN_ROUTE,
    "en_route": TrackingStage.EN_ROUTE,
    "llegada": TrackingStage.ARRIVED,
    "llego": TrackingStage.ARRIVED,
    "arrived": TrackingStage.ARRIVED,
    "trabajando": TrackingStage.IN_PROGRESS,
    "en_progreso": TrackingStage.IN_PROGRESS,
    "in_progress": TrackingStage.IN_PROGRESS,
    "finalizado": TrackingStage.COMPLETED,
    "completada": TrackingStage.COMPLETED,
    "completed": TrackingStage.COMPLETED,
}

_CANCELLED = {"cancelada", "cancelado", "cancelled"}


def parse_stage(raw: str | None) -> Optional[TrackingStage]:
    return _STAGE_ALIASES.get((raw or "").strip().lower())


@dataclass(frozen=True)
class TrackingSnapshot:
    status: str
    current_lat: Optional[float] = None
    current_lon: Optional[float] = None
    dest_lat: Optional[float] = None
    dest_lon: Optional[float] = None

    @property
    def stage(self) -> Optional[TrackingStage]:
        return parse_stage(self.status)

    @property
    def cancelled(self) -> bool:
        return self.status.strip().lower() in _CANCELLED

    @property
    def terminal(self) -> bool:
        return self.cancelled or self.stage == TrackingStage.COMPLETED

    @property
    def eta_minutes(self) -> Optional[int]:
        if None in (self.current_lat, self.current_lon, self.dest_lat, self.dest_lon):
            return None
        km = haversine_km(self.current_lat, self.current_lon, self.dest_lat, self.dest_lon)
        return round(km * MINUTES_PER_KM)


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


class ProgressTracker:
    """Monotonic 4-stage indicator.

    A poll reporting an earlier stage than one already shown is ignored
    (clamped to the highest stage seen).
    """

    def __init__(self, current: Optional[TrackingStage] = None):
        self.current = current

    def observe(self, stage: Optional[TrackingStage]) -> bool:
        if stage is None:
            return False
        if self.current is not None and stage <= self.current:
            if stage < self.current:
                logger.info("tracking: clamped regression reported=%s shown=%s", stage.name, self.current.name)
            return False
        self.current = stage
        return True

    def done_stages(self) -> list[TrackingStage]:
        if self.current is None:
            return []
        return [s for s in TrackingStage if s <= self.current]


class TrackingPoller:
    """Fixed-interval poll of one appointment until it completes or is cancelled.

    ``on_stage`` runs once per newly reached stage, ``on_finish`` once when a
    terminal status arrives. Fetch errors go to ``on_error`` and polling goes on.
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[Result["TrackingSnapshot"]]],
        on_stage: Callable[[TrackingStage, TrackingSnapshot], Awaitable[None]],
        *,
        interval: float,
        on_finish: Optional[Callable[[TrackingSnapshot], Awaitable[None]]] = None,
        on_error: Optional[Callable[[Err], Awaitable[None]]] = None,
        tracker: Optional[ProgressTracker] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._fetch = fetch
        self._on_stage = on_stage
        self._on_finish = on_finish
        self._on_error = on_error
        self.interval = interval
        self.tracker = tracker or ProgressTracker()
        self._sleep = sleep
        self.polls = 0

    async def run(self) -> Optional[TrackingSnapshot]:
        while True:
            self.polls += 1
            res = await self._fetch()
            if isinstance(res, Err):
                if self._on_error is not None:
                    await self._on_error(res)
            else:
                snapshot = res.value
                if self.tracker.observe(snapshot.stage):
                    await self._on_stage(self.tracker.current, snapshot)
                if snapshot.terminal:
                    if self._on_finish is not None:
                        await self._on_finish(snapshot)
                    return snapshot
            await self._sleep(self.interval)


class ScreenTasks:
    """Background tasks bound to the screen a chat is currently showing.

    Starting a task under a key cancels whatever ran there before.
    """

    def __init__(self) -> None:
        self._tasks: dict[Hashable, asyncio.Task] = {}

    def start(self, key: Hashable, coro: Awaitable) -> asyncio.Task:
        self.cancel(key)
        task = asyncio.ensure_future(coro)
        self._tasks[key] = task
        task.add_done_callback(lambda t, k=key: self._forget(k, t))
        return task

    def _forget(self, key: Hashable, task: asyncio.Task) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]
        if not task.cancelled() and task.exception() is not None:
            logger.error("screen task failed key=%s", key, exc_info=task.exception())

    def is_current(self, key: Hashable, task: asyncio.Task | None) -> bool:
        return task is not None and self._tasks.get(key) is task

    def running(self, key: Hashable) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    def cancel(self, key: Hashable) -> bool:
        task = self._tasks.pop(key, None)
        if task is None or task.done():
            return False
        task.cancel()
        logger.info("screen task cancelled key=%s", key)
        return True

    async def cancel_all(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
