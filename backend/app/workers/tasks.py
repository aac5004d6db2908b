"""Celery task definitions.

Deployments that run dedicated worker processes schedule these with Celery
beat instead of (or alongside) the in-process poller started by the API.
Every process claims work through the same conditional update, so running
several of them is safe.
"""

import logging

from celery import Celery, Task

from app.config import settings
from app.db.database import SessionLocal, init_db
from app.logging_config import setup_logging as setup_app_logging
from app.services.registry import build_services

# Creating tables is a no-op if they already exist (and very fast).  This way
# we do not depend on the FastAPI container running first.
init_db()

setup_app_logging()
logger = logging.getLogger(__name__)


celery_app = Celery(
    "audio",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=['app.workers.tasks'],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    worker_prefetch_multiplier=1,
    beat_schedule={
        "transcode-queued-audio": {
            "task": "transcode_queued_audio",
            "schedule": settings.worker_poll_seconds,
        },
        "purge-expired-uploads": {
            "task": "purge_expired_uploads",
            "schedule": 3600.0,
        },
    },
)

_worker = None


def get_worker():
    """One TranscodeWorker per Celery process, built lazily."""
    global _worker
    if _worker is None:
        _worker = build_services(settings, SessionLocal).worker
    return _worker


class BaseAudioTask(Task):
    """Base Celery Task that logs the lifecycle of every run."""
    abstract = True

    def __call__(self, *args, **kwargs):
        logger.debug(f"Task {self.name} [{self.request.id}] called with args: {args}, kwargs: {kwargs}")
        return super().__call__(*args, **kwargs)

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        logger.error(f"Task {self.name} [{task_id}] failed: {exc}", exc_info=einfo)
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_success(self, retval, task_id, args, kwargs):
        logger.debug(f"Task {self.name} [{task_id}] completed successfully. Result: {retval}")
        super().on_success(retval, task_id, args, kwargs)


@celery_app.task(name="transcode_queued_audio", base=BaseAudioTask)
def transcode_queued_audio() -> dict:
    processed = get_worker().tick()
    if processed:
        logger.info(f"Transcode tick processed {processed} asset(s)")
    return {"processed": processed}


@celery_app.task(name="purge_expired_uploads", base=BaseAudioTask)
def purge_expired_uploads() -> dict:
    expired = get_worker().purge_expired()
    return {"purged": len(expired)}
