"""Celery application for worker deployments.

Used when ``SCHEDULER_BACKEND=celery``: Beat sends a tick every minute,
any worker picks it up, and the Redis batch lock makes sure only one of
them runs the batch.

Usage (starting a worker)::

    celery -A snippet_harvester.workers.celery_app worker -Q scraping --loglevel=info

Usage (starting Beat)::

    celery -A snippet_harvester.workers.celery_app beat --loglevel=info
"""

from __future__ import annotations

from celery import Celery
from celery.signals import setup_logging
from dotenv import load_dotenv

# Export .env values to os.environ so Celery's own CELERY_* variables are
# picked up alongside the pydantic settings.
load_dotenv()

from snippet_harvester.config.settings import get_settings  # noqa: E402

settings = get_settings()

#: The global Celery application instance.
celery_app = Celery(
    "snippet_harvester",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["snippet_harvester.scraper.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone=settings.timezone,
    enable_utc=True,
    # A worker crash mid-batch must not lose the tick.
    task_acks_late=True,
    # Batches are long; do not let one worker hoard ticks.
    worker_prefetch_multiplier=1,
    result_expires=86_400,
    task_routes={
        "snippet_harvester.scraper.tasks.*": {"queue": "scraping"},
    },
    beat_schedule_filename="celerybeat-schedule",
)

from snippet_harvester.workers.beat_schedule import beat_schedule  # noqa: E402

celery_app.conf.beat_schedule = beat_schedule


@setup_logging.connect
def _configure_worker_logging(**kwargs: object) -> None:  # noqa: ARG001
    """Replace Celery's logging setup with the shared structlog configuration."""
    from snippet_harvester.core.logging_config import configure_logging  # noqa: PLC0415

    configure_logging(settings.log_level)
