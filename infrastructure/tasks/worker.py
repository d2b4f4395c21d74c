"""Convenience entry point for running the Celery worker with embedded beat.

Deployments usually invoke the Celery CLI
(`celery -A infrastructure.tasks worker -B`); this keeps a Procfile-style
runner for local use.
"""
from __future__ import annotations

from .config.celery import celery_app


def main() -> None:
    celery_app.worker_main([
        "worker",
        "--beat",
        "--hostname=worker@%h",
        "--loglevel=INFO",
    ])


if __name__ == "__main__":
    main()
