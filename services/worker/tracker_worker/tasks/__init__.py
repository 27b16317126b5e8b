"""Social Tracker Worker Tasks."""

# Import all tasks to register them with Celery
from tracker_worker.tasks import fetch  # noqa: F401
