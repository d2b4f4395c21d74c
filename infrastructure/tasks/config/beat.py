"""Celery beat schedule configuration.

Intervals come from the order policy so operators tune them with
ORDERS__SWEEP_INTERVAL_SECONDS instead of editing code. Queued runs expire
after one interval: a backlog of identical sweeps is pointless.
"""
from __future__ import annotations

from core.settings import order_settings

_SWEEP_INTERVAL = float(order_settings.sweep_interval_seconds)

CELERY_BEAT_SCHEDULE = {
    "orders-reconcile-stale": {
        "task": "orders.reconcile_stale",
        "schedule": _SWEEP_INTERVAL,
        "options": {"expires": _SWEEP_INTERVAL},
    },
    "orders-purge-snapshots": {
        "task": "orders.purge_snapshots",
        "schedule": 3600.0,  # hourly
        "options": {"expires": 3600.0},
    },
}
