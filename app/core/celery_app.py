from celery import Celery
from celery.schedules import crontab

from app.core.config import get_settings
from app.core.database import SessionLocal
from app.services.audit import activity_writer

settings = get_settings()

celery_app = Celery("crm_api", broker=settings.redis_url, backend=settings.redis_url)
celery_app.conf.beat_schedule = {
    "cleanup-activities-daily": {
        "task": "app.tasks.cleanup_activities",
        "schedule": crontab(hour=3, minute=0),
    },
}
celery_app.conf.timezone = "UTC"


@celery_app.task(name="app.tasks.cleanup_activities")
def cleanup_activities_task(days_to_keep: int | None = None) -> int:
    session = SessionLocal()
    try:
        return activity_writer.cleanup(session, days_to_keep or get_settings().activity_retention_days)
    finally:
        session.close()
