"""Celery application configuration for Social Tracker Worker."""

from celery import Celery
from celery.signals import setup_logging

from tracker_core.config import get_settings
from tracker_core.observability import configure_logging

settings = get_settings()

app = Celery(
    "tracker_worker",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "tracker_worker.tasks.fetch",
    ],
)

app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Task execution
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # Time limits (seconds)
    task_soft_time_limit=240,
    task_time_limit=290,
    # Queue routing
    task_routes={
        "fetch.*": {"queue": "fetch"},
    },
    # Worker settings
    worker_prefetch_multiplier=1,
)

# Beat schedule for periodic tasks
app.conf.beat_schedule = {
    # Fetch pipeline every 5 minutes; the pipeline lock skips overlapping runs
    "fetch-posts-periodic": {
        "task": "fetch.run_pipeline",
        "schedule": 300.0,
        "kwargs": {"trigger": "beat"},
    },
}


@setup_logging.connect
def _configure_worker_logging(**kwargs) -> None:
    settings = get_settings()
    configure_logging(
        level=settings.log_level,
        json_format=settings.log_json,
        service_name="tracker-worker",
    )


if __name__ == "__main__":
    app.start()
