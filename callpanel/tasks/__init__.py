from .celery_app import celery_app
from .billing_tasks import process_auto_recharges_task

__all__ = [
    "celery_app",
    "process_auto_recharges_task",
]
