from celery import Celery

from html2png.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "html2png",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["html2png.workers.tasks"],
)
celery_app.conf.beat_schedule = {
    "purge-expired-revocations": {
        "task": "html2png.workers.tasks.purge_expired_revocations",
        "schedule": float(settings.REVOCATION_PURGE_INTERVAL_SECONDS),
    },
}
