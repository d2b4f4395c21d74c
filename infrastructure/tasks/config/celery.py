"""Celery application configuration.

Redis is broker and result backend. The hard time limit equals the sweep
interval so a hung run never overlaps the next one.
"""
from __future__ import annotations

import os

from celery import Celery
from kombu import Queue

from core.config import settings
from core.logging_config import get_logger
from core.settings import order_settings
from .beat import CELERY_BEAT_SCHEDULE


CELERY_IMPORTS = (
    "infrastructure.tasks.tasks",
)

SWEEP_TIME_LIMIT = order_settings.sweep_interval_seconds

logger = get_logger(__name__)

celery_app = Celery("order_payment_service")

celery_app.conf.update(
    broker_url=settings.redis.url or os.getenv("CELERY_BROKER_URL"),
    result_backend=settings.redis.url or os.getenv("CELERY_RESULT_BACKEND"),
    broker_connection_retry_on_startup=True,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # Ack after the sweep finishes so a lost worker reruns it; sweeps are idempotent.
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_track_started=True,
    task_time_limit=SWEEP_TIME_LIMIT,
    task_soft_time_limit=max(SWEEP_TIME_LIMIT - 30, 30),
    result_expires=3600,
    worker_prefetch_multiplier=1,
    task_default_queue="default",
    task_queues=(
        Queue("default"),
        Queue("low"),
    ),
    task_routes={
        "orders.reconcile_stale": {"queue": "default"},
        "orders.purge_snapshots": {"queue": "low"},
    },
    beat_schedule=CELERY_BEAT_SCHEDULE,
    imports=CELERY_IMPORTS,
)

# 开发/测试环境同步执行，无需 broker
if (settings.ENVIRONMENT or "production").lower() in {"development", "dev", "test", "testing"}:
    celery_app.conf.task_always_eager = True

celery_app.autodiscover_tasks(packages=CELERY_IMPORTS)


@celery_app.on_after_configure.connect
def _log_configuration(sender, **kwargs):
    logger.info(
        "celery_configured",
        broker=sender.conf.broker_url,
        eager=bool(sender.conf.task_always_eager),
        sweep_interval_seconds=order_settings.sweep_interval_seconds,
    )
