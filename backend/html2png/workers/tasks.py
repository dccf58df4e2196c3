import structlog

from html2png.core.deps import get_revocation_store
from html2png.core.logger import configure_logging
from html2png.workers.celery_app import celery_app

configure_logging()
logger = structlog.get_logger()


@celery_app.task
def purge_expired_revocations() -> dict:
    removed = get_revocation_store().purge_expired()
    logger.info("revocation.purged", removed=removed)
    return {"removed": removed}
