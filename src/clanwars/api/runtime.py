"""Runtime primitives backing the clan war HTTP API."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Generic, TypeVar

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from clanwars.config import Settings, get_settings
from clanwars.database import build_session_factory, create_db_engine, init_db, run_in_transaction
from clanwars.domain.combat import RandomSource
from clanwars.domain.game_settings import GameSettings
from clanwars.factory import ServiceFactory
from clanwars.models import utc_now
from clanwars.services.notification_service import SideEffectDispatcher
from clanwars.services.settings_service import SettingsProvider
from clanwars.services.settlement_service import SettlementResult

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PeriodicJob(Generic[T]):
    """Background loop that runs a blocking job on a fixed interval.

    The job runs in a worker thread. A lock keeps scheduled and manual runs
    from overlapping; a failing scheduled run is logged and the loop carries on.
    """

    MIN_INTERVAL_SECONDS = 0.1

    def __init__(self, name: str, job: Callable[[], T], *, interval_seconds: float) -> None:
        self.name = name
        self._job = job
        self._interval = max(interval_seconds, self.MIN_INTERVAL_SECONDS)
        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()
        self._run_lock = asyncio.Lock()
        self.last_run_at: datetime | None = None
        self.last_result: T | None = None

    @property
    def interval_seconds(self) -> float:
        return self._interval

    def set_interval(self, seconds: float) -> None:
        self._interval = max(seconds, self.MIN_INTERVAL_SECONDS)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run_loop(), name=f"clanwars-{self.name}")

    async def stop(self) -> None:
        task = self._task
        if task is None:
            return
        self._stop_event.set()
        await task
        self._task = None

    async def run_now(self) -> T:
        """Run the job immediately, waiting for any run in progress; errors propagate."""
        async with self._run_lock:
            result = await asyncio.to_thread(self._job)
            self.last_run_at = utc_now()
            self.last_result = result
            return result

    async def _run_loop(self) -> None:
        try:
            while not self._stop_event.is_set():
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
                    break
                except TimeoutError:
                    pass
                await self._run_cycle()
        finally:
            self._task = None

    async def _run_cycle(self) -> None:
        try:
            await self.run_now()
        except Exception:
            logger.exception("%s job failed; retrying in %.1fs", self.name, self.interval_seconds)


class ApiState:
    """Aggregated services shared by the FastAPI layer."""

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        engine: Engine | None = None,
        rng: RandomSource | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._owns_engine = engine is None
        self.engine = engine or create_db_engine(self.settings.DATABASE_URL)
        init_db(self.engine)
        self.session_factory = build_session_factory(self.engine)

        self.game_settings = SettingsProvider()
        self.reload_game_settings()

        self.dispatcher = SideEffectDispatcher(self.settings.dispatcher_queue_size)
        self.services = ServiceFactory(
            self.game_settings, self.dispatcher, self.session_factory, rng=rng
        )

        self.settlement = PeriodicJob(
            "war-settlement",
            self.settle_expired_wars,
            interval_seconds=self.settings.settlement_interval_seconds,
        )
        self.settings_reloader = PeriodicJob(
            "settings-reload",
            self.reload_game_settings,
            interval_seconds=self.settings.settings_reload_interval_seconds,
        )
        self.notification_purge = PeriodicJob(
            "notification-purge",
            self.purge_notifications,
            interval_seconds=self.settings.notification_purge_interval_seconds,
        )

    @property
    def jobs(self) -> list[PeriodicJob]:
        return [self.settlement, self.settings_reloader, self.notification_purge]

    async def startup(self) -> None:
        self.dispatcher.start()
        for job in self.jobs:
            job.start()

    async def shutdown(self) -> None:
        for job in self.jobs:
            await job.stop()
        await asyncio.to_thread(self.dispatcher.stop)
        if self._owns_engine:
            self.engine.dispose()

    async def run(self, work: Callable[[Session], T]) -> T:
        """Run a unit of work in a worker thread with lock-failure retries."""
        return await asyncio.to_thread(
            run_in_transaction,
            self.session_factory,
            work,
            attempts=self.settings.transaction_attempts,
        )

    def settle_expired_wars(self) -> list[SettlementResult]:
        with self.session_factory() as session:
            return self.services.settlement(session).settle_expired_wars()

    def reload_game_settings(self) -> GameSettings:
        with self.session_factory() as session:
            return self.game_settings.reload(session)

    def purge_notifications(self) -> int:
        older_than = timedelta(days=self.settings.notification_retention_days)
        return self.services.notifier.purge(older_than)


def build_state() -> ApiState:
    """Factory used by the API to initialize state."""

    return ApiState()
