"""Fetch pipeline tasks.

Provides background processing for:
1. The periodic fetch run (Celery beat, every 5 minutes)
2. On-demand runs queued when a tenant subscribes to a source without
   stored content

Both share the database lock with the HTTP cron route, so overlapping
runs are skipped rather than queued.
"""

import asyncio
import logging
from typing import Any

from tracker_worker.celery_app import app

logger = logging.getLogger(__name__)


def _get_db_session() -> Any:
    """Get database session for task execution."""
    from tracker_core.infra.db import get_sync_session_factory

    session_factory = get_sync_session_factory()
    return session_factory()


@app.task(
    bind=True,
    name="fetch.run_pipeline",
    max_retries=2,
    default_retry_delay=60,
)
def run_pipeline(self, trigger: str = "beat") -> dict:
    """Run the fetch pipeline once.

    Args:
        trigger: What requested the run ("beat" or "subscribe").

    Returns:
        dict: Pipeline summary (fetched sources, skipped count, emails).
    """
    db = None

    try:
        db = _get_db_session()

        from tracker_core.config import get_settings
        from tracker_core.domain.services.fetch_pipeline import FetchPipeline

        pipeline = FetchPipeline.from_settings(db, get_settings(), trigger=trigger)
        result = asyncio.run(pipeline.run())

        summary = result.to_dict()
        logger.info(
            f"Fetch pipeline ({trigger}) finished with status {summary['status']}: "
            f"fetched={summary['fetched']}, skipped={summary['skipped']}"
        )
        return summary

    except Exception as exc:
        logger.error(f"Failed to run fetch pipeline: {str(exc)}", exc_info=True)

        if self.request.retries < self.max_retries:
            raise self.retry(exc=exc, countdown=60)
        else:
            return {
                "status": "failed",
                "error": str(exc),
            }

    finally:
        if db:
            db.close()
