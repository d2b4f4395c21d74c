"""Celery app and beat schedule."""
from .celery import celery_app

__all__ = ["celery_app"]
