"""Celery application.

Run a worker with ``celery -A gatherly worker -l INFO`` and the periodic jobs
(order expiry, scheduled communications) with ``celery -A gatherly beat -l INFO``.
"""

import os
import typing as t

import structlog
from celery import Celery
from celery.signals import task_postrun, task_prerun

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "gatherly.settings")

app = Celery("gatherly")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()


@task_prerun.connect
def bind_task_context(task_id: str, task: t.Any, *args: t.Any, **kwargs: t.Any) -> None:
    """Start every task run with a fresh log context naming the task and attempt."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        task_id=task_id,
        task_name=task.name,
        attempt=(getattr(task.request, "retries", 0) or 0) + 1,
    )


@task_postrun.connect
def clear_task_context(*args: t.Any, **kwargs: t.Any) -> None:
    structlog.contextvars.clear_contextvars()
