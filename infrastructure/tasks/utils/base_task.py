"""Common base task for the order sweeps"""
from __future__ import annotations

import time

from celery import Task
from core.logging_config import get_logger

logger = get_logger(__name__)


class BaseTask(Task):
    """Structured start/finish logging; sweep reports are logged as fields."""

    _started: dict[str, float] = {}

    def before_start(self, task_id, args, kwargs):  # type: ignore[override]
        self._started[task_id] = time.monotonic()
        logger.info("celery_task_started", task_id=task_id, task_name=self.name)

    def _elapsed(self, task_id) -> float | None:
        started = self._started.pop(task_id, None)
        return round(time.monotonic() - started, 3) if started is not None else None

    def on_failure(self, exc, task_id, args, kwargs, einfo):  # type: ignore[override]
        logger.error(
            "celery_task_failure",
            task_id=task_id,
            task_name=self.name,
            duration=self._elapsed(task_id),
            exc=str(exc),
            error_type=type(exc).__name__,
        )
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_success(self, retval, task_id, args, kwargs):  # type: ignore[override]
        report = retval if isinstance(retval, dict) else {"result": retval}
        logger.info(
            "celery_task_success",
            task_id=task_id,
            task_name=self.name,
            duration=self._elapsed(task_id),
            **report,
        )
        super().on_success(retval, task_id, args, kwargs)
