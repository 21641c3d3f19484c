"""
Celery application setup for order asset background work.

Configures Celery from the same settings as the API so workers and the API
share one broker / result backend. Tasks live in order_assets.core.tasks.

Queue Architecture:
- images: Order image backups enqueued on order creation
- maintenance: Scheduled sweeps (expired links) and fleet reports
"""
import os

from celery import Celery
from kombu import Queue

from order_assets.config import settings


def _bool(val: str, default: bool = False) -> bool:
    if val is None:
        return default
    return str(val).lower() in {"1", "true", "yes", "on"}


app = Celery(
    "order_assets",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["order_assets.core.tasks.order_images"],
)

app.conf.task_queues = (
    Queue("images", routing_key="images"),
    Queue("maintenance", routing_key="maintenance"),
)

app.conf.update(
    task_acks_late=_bool(os.getenv("CELERY_ACKS_LATE", "true"), True),
    worker_prefetch_multiplier=int(os.getenv("CELERY_PREFETCH_MULTIPLIER", "1")),
    task_soft_time_limit=int(os.getenv("CELERY_TASK_SOFT_TIME_LIMIT", "600")),
    task_time_limit=int(os.getenv("CELERY_TASK_TIME_LIMIT", "900")),
    result_expires=int(os.getenv("CELERY_RESULT_EXPIRES", "86400")),
    task_default_queue="images",
    task_routes={
        "order_assets.tasks.backup_order_images": {"queue": "images"},
        "order_assets.tasks.cleanup_expired_links": {"queue": "maintenance"},
        "order_assets.tasks.generate_order_images_report": {"queue": "maintenance"},
    },
)

# ============================================================================
# Celery Beat Schedule
# ============================================================================

beat_schedule = {}

if _bool(os.getenv("LINK_CLEANUP_ENABLED", "true"), True):
    beat_schedule["cleanup-expired-links"] = {
        "task": "order_assets.tasks.cleanup_expired_links",
        "schedule": settings.link_cleanup_interval_seconds,
        "options": {"queue": "maintenance"},
    }

app.conf.beat_schedule = beat_schedule
