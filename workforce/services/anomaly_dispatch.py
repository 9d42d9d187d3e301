from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable

from sqlalchemy.orm import Session

from workforce.models import AnomalyEntityType, Expense, TimeEntry, Vacation
from workforce.services.anomaly_detection import detect_expense, detect_time_entry, detect_vacation
from workforce.settings import get_settings

logger = logging.getLogger("workforce.anomaly_dispatch")

_DETECTORS: dict[AnomalyEntityType, tuple[type, Callable[..., object]]] = {
    AnomalyEntityType.TIME_ENTRY: (TimeEntry, detect_time_entry),
    AnomalyEntityType.EXPENSE: (Expense, detect_expense),
    AnomalyEntityType.VACATION: (Vacation, detect_vacation),
}


def _default_session_factory() -> Session:
    from workforce.db import SessionLocal

    return SessionLocal()


class AnomalyDispatcher:
    """Runs detectors on a worker pool so write requests never wait on them."""

    def __init__(
        self,
        *,
        session_factory: Callable[[], Session] = _default_session_factory,
        max_workers: int | None = None,
        enabled: bool | None = None,
    ) -> None:
        settings = get_settings()
        self._session_factory = session_factory
        self._max_workers = max(1, int(max_workers or settings.anomaly_worker_threads))
        self._enabled = settings.anomaly_detection_enabled if enabled is None else enabled
        self._executor: ThreadPoolExecutor | None = None
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self._enabled

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._max_workers,
                    thread_name_prefix="anomaly",
                )
            return self._executor

    def run(self, entity_type: AnomalyEntityType, entity_id: int) -> None:
        model, detector = _DETECTORS[entity_type]
        db = self._session_factory()
        try:
            entity = db.get(model, entity_id)
            if entity is None:
                logger.warning(
                    "anomaly_entity_missing",
                    extra={"entity_type": entity_type.value, "entity_id": entity_id},
                )
                return
            detector(db, entity)
        finally:
            db.close()

    def submit(self, entity_type: AnomalyEntityType, entity_id: int) -> Future[None] | None:
        if not self._enabled:
            logger.debug(
                "anomaly_dispatch_disabled",
                extra={"entity_type": entity_type.value, "entity_id": entity_id},
            )
            return None

        try:
            future = self._get_executor().submit(self.run, entity_type, entity_id)
        except RuntimeError:
            # Executor already shut down.
            logger.exception(
                "anomaly_dispatch_rejected",
                extra={"entity_type": entity_type.value, "entity_id": entity_id},
            )
            return None

        def _on_done(done: Future[None]) -> None:
            if done.cancelled():
                return
            exc = done.exception()
            if exc is not None:
                logger.error(
                    "anomaly_task_failed",
                    exc_info=(type(exc), exc, exc.__traceback__),
                    extra={"entity_type": entity_type.value, "entity_id": entity_id},
                )

        future.add_done_callback(_on_done)
        return future

    def shutdown(self, *, wait: bool = True) -> None:
        with self._lock:
            executor = self._executor
            self._executor = None
        if executor is not None:
            executor.shutdown(wait=wait)


_dispatcher: AnomalyDispatcher | None = None
_dispatcher_lock = threading.Lock()


def get_anomaly_dispatcher() -> AnomalyDispatcher:
    global _dispatcher
    with _dispatcher_lock:
        if _dispatcher is None:
            _dispatcher = AnomalyDispatcher()
        return _dispatcher


def schedule_detection(entity_type: AnomalyEntityType, entity_id: int) -> None:
    get_anomaly_dispatcher().submit(entity_type, entity_id)
