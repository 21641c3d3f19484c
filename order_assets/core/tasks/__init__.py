"""
Celery tasks package.

Celery discovers tasks via the include= list in celery_app.py, which
references each submodule directly.
"""

from order_assets.core.tasks.order_images import (
    backup_order_images_task,
    cleanup_expired_links_task,
    generate_order_images_report_task,
)

__all__ = [
    "backup_order_images_task",
    "cleanup_expired_links_task",
    "generate_order_images_report_task",
]
