from celery import Celery
from ..platform.config import settings

celery_app = Celery(
    "callpanel",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    beat_schedule={
        "auto-recharge-every-15-minutes": {
            "task": "callpanel.tasks.billing_tasks.process_auto_recharges_task",
            "schedule": settings.AUTO_RECHARGE_INTERVAL_SECONDS,
        },
    },
)

# Auto-discover tasks
celery_app.autodiscover_tasks(["callpanel.tasks"])
