"""Celery application configuration"""
from celery import Celery
from celery.signals import worker_ready
import logging

from gazette_sync.core.config import settings

logger = logging.getLogger(__name__)

# Create Celery app
celery_app = Celery(
    "gazettesync",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "gazette_sync.worker.tasks"
    ]
)

# Configure Celery
celery_app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # Timezone
    timezone="UTC",
    enable_utc=True,

    # Task settings
    task_track_started=True,
    task_time_limit=3600,  # 1 hour max per sync
    task_soft_time_limit=3000,
    task_acks_late=True,  # Acknowledge after completion
    task_reject_on_worker_lost=True,

    # Result settings
    result_expires=86400,  # 24 hours

    # Worker settings
    worker_prefetch_multiplier=1,  # One task at a time per worker

    # Beat schedule for stale run recovery
    # Runs every 60 seconds to finalize runs whose process died mid-sync
    beat_schedule={
        "recover-stale-sync-runs": {
            "task": "gazette_sync.worker.tasks.recover_stale_sync_runs",
            "schedule": 60.0,  # Every 60 seconds
        },
    },
)


@worker_ready.connect
def on_worker_ready(sender, **kwargs):
    """
    Called when the worker is ready to accept tasks.
    Finalizes runs left 'running' by a previous worker.
    """
    logger.info("Worker ready - checking for stale sync runs...")

    # Import here to avoid circular imports
    from gazette_sync.worker.tasks import recover_stale_sync_runs

    # Delay slightly to ensure worker is fully initialized
    recover_stale_sync_runs.apply_async(countdown=5)
