"""Side-effect collaborators: event history, notifications and their dispatcher.

Combat and war transactions hand their follow-up work to a dispatcher after
committing. Dispatch never blocks the caller, and a failing job is logged and
dropped; it can never undo the transaction that produced it.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime, timedelta
from typing import Any, Protocol

from sqlalchemy import delete
from sqlalchemy.orm import Session

from clanwars.domain.enums import EventHistoryType, NotificationType
from clanwars.models import EventHistory, Notification, utc_now

logger = logging.getLogger(__name__)


class EventHistoryRecorder(Protocol):
    def record(
        self,
        user_id: int,
        event_type: EventHistoryType,
        stolen_item_ids: Sequence[int],
        opponent_id: int | None,
    ) -> None: ...


class Notifier(Protocol):
    def push(
        self,
        title: str,
        message: str,
        user_ids: Iterable[int],
        *,
        notification_type: NotificationType,
        details: dict[str, Any] | None = None,
    ) -> None: ...


class Dispatcher(Protocol):
    def submit(self, job: Callable[..., object], *args: Any, **kwargs: Any) -> bool: ...


class SqlEventHistoryRecorder:
    """Writes event history rows in a session of its own."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def record(
        self,
        user_id: int,
        event_type: EventHistoryType,
        stolen_item_ids: Sequence[int],
        opponent_id: int | None,
    ) -> None:
        with self._session_factory() as session:
            session.add(
                EventHistory(
                    user_id=user_id,
                    type=event_type.value,
                    stolen_item_ids=list(stolen_item_ids),
                    opponent_id=opponent_id,
                )
            )
            session.commit()


class SqlNotifier:
    """Stores one notification row per recipient."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def push(
        self,
        title: str,
        message: str,
        user_ids: Iterable[int],
        *,
        notification_type: NotificationType,
        details: dict[str, Any] | None = None,
    ) -> None:
        with self._session_factory() as session:
            session.add_all(
                Notification(
                    user_id=user_id,
                    title=title,
                    description=message,
                    type=notification_type.value,
                    details=details,
                )
                for user_id in dict.fromkeys(user_ids)
            )
            session.commit()

    def purge(self, older_than: timedelta, now: datetime | None = None) -> int:
        """Delete notifications created before ``now - older_than``."""
        cutoff = (now or utc_now()) - older_than
        with self._session_factory() as session:
            result = session.execute(delete(Notification).where(Notification.created_at < cutoff))
            session.commit()
        deleted = result.rowcount or 0
        logger.info("deleted %d notifications older than %s", deleted, older_than)
        return deleted


def _run_isolated(job: Callable[..., object], args: tuple, kwargs: dict) -> None:
    try:
        job(*args, **kwargs)
    except Exception:
        logger.exception("side effect %s failed", getattr(job, "__qualname__", job))


class InlineDispatcher:
    """Runs jobs immediately on the calling thread, with failures isolated."""

    def submit(self, job: Callable[..., object], *args: Any, **kwargs: Any) -> bool:
        _run_isolated(job, args, kwargs)
        return True


_STOP = object()


class SideEffectDispatcher:
    """Bounded queue drained by one daemon worker thread."""

    def __init__(self, maxsize: int = 1000, *, name: str = "clanwars-side-effects") -> None:
        self._queue: queue.Queue[Any] = queue.Queue(maxsize=maxsize)
        self._name = name
        self._thread: threading.Thread | None = None
        self._start_lock = threading.Lock()
        self._stopped = False

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._start_lock:
            self._stopped = False
            self._ensure_worker()

    def _ensure_worker(self) -> None:
        if self.running:
            return
        self._thread = threading.Thread(target=self._worker, name=self._name, daemon=True)
        self._thread.start()

    def submit(self, job: Callable[..., object], *args: Any, **kwargs: Any) -> bool:
        """Queue a job; returns False (and logs) when the queue is full or stopped."""
        with self._start_lock:
            if self._stopped:
                logger.warning(
                    "side-effect dispatcher stopped; dropping %s",
                    getattr(job, "__qualname__", job),
                )
                return False
            self._ensure_worker()
            try:
                self._queue.put_nowait((job, args, kwargs))
            except queue.Full:
                logger.warning(
                    "side-effect queue full; dropping %s", getattr(job, "__qualname__", job)
                )
                return False
        return True

    def join(self) -> None:
        """Block until every queued job has run."""
        self._queue.join()

    def stop(self, timeout: float = 5.0) -> None:
        """Drain the queue and end the worker; later submissions are dropped."""
        with self._start_lock:
            self._stopped = True
            thread = self._thread
        if thread is None:
            return
        self._queue.put(_STOP)
        thread.join(timeout)
        if thread.is_alive():
            logger.warning("side-effect worker did not stop within %.1fs", timeout)
        self._thread = None

    def _worker(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                job, args, kwargs = item
                _run_isolated(job, args, kwargs)
            finally:
                self._queue.task_done()
