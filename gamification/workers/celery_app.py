from celery import Celery

from gamification.core.config import settings

celery_app = Celery(
    "crm_gamification",
    broker=settings.celery_broker_url or str(settings.redis_url),
    backend=settings.celery_result_backend or str(settings.redis_url),
    include=[
        "gamification.workers.tasks.activity_tasks",
        "gamification.workers.tasks.season_tasks",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=settings.job_default_timeout,
    task_soft_time_limit=settings.job_default_timeout - 60,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
)

# Periodic tasks
celery_app.conf.beat_schedule = {
    "check-season-rollovers": {
        "task": "gamification.workers.tasks.season_tasks.check_season_rollovers",
        "schedule": settings.rollover_check_interval,
    },
}
