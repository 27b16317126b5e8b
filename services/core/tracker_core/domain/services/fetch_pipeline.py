"""Scheduled fetch pipeline.

One run:
1. Takes the pipeline lock without waiting (a concurrent run means skip)
2. Lists distinct subscribed sources in first-subscription order
3. Partitions them into due and not-due by refresh interval
4. For each due source: computes the lower bound, fetches, fans out,
   stores replies, records the watermark, and commits
5. Dispatches notification digests once
6. Releases the lock on every path

Usage:
    pipeline = FetchPipeline(
        db=session,
        provider=ArcticShiftClient.from_settings(settings),
        lock=DatabaseLock(engine, settings.pipeline_lock_name),
        notifier=notification_service,
        app_url=settings.base_url,
    )

    result = await pipeline.run()
    return result.to_response(), result.http_status
"""

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from tracker_core.domain.models import Subscription, utcnow
from tracker_core.domain.services.content_store import ContentStore
from tracker_core.domain.services.fanout import FanOutService
from tracker_core.domain.services.notifications import DispatchResult, NotificationService
from tracker_core.domain.services.watermark import (
    DEFAULT_BACKFILL_DAYS,
    DEFAULT_REFRESH_INTERVAL_MINUTES,
    WatermarkService,
)
from tracker_core.infra.locks import DatabaseLock, PipelineLock
from tracker_core.infrastructure.email import SmtpEmailSender
from tracker_core.observability import MetricsCollector, RunContext, get_collector, get_logger
from tracker_core.providers.arctic_shift import ArcticShiftClient
from tracker_core.providers.base import SearchProvider

logger = get_logger(__name__)


# =============================================================================
# RESULT TYPES
# =============================================================================


class PipelineStatus:
    """Outcome of a pipeline run."""

    OK = "ok"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass
class SourceFetchStats:
    """What one source contributed to a run."""

    source_name: str
    items_fetched: int = 0
    items_stored: int = 0
    new_visibility: int = 0
    replies_stored: int = 0


@dataclass
class PipelineResult:
    """Result of one pipeline run."""

    status: str = PipelineStatus.OK
    fetched: list[str] = field(default_factory=list)
    skipped: int = 0
    emails: Optional[DispatchResult] = None
    sources: list[SourceFetchStats] = field(default_factory=list)
    reason: Optional[str] = None
    error: Optional[str] = None
    run_id: Optional[str] = None

    @property
    def http_status(self) -> int:
        return 500 if self.status == PipelineStatus.ERROR else 200

    def to_response(self) -> dict[str, Any]:
        """JSON body returned to the trigger."""
        if self.status == PipelineStatus.SKIPPED:
            return {"status": "skipped", "reason": self.reason}
        if self.status == PipelineStatus.ERROR:
            return {"error": self.error}

        body: dict[str, Any] = {"fetched": self.fetched, "skipped": self.skipped}
        if self.emails is not None:
            body["emails"] = self.emails.to_dict()
        return body

    def to_dict(self) -> dict[str, Any]:
        """Summary for task results and logs."""
        return {
            "status": self.status,
            "run_id": self.run_id,
            "fetched": self.fetched,
            "skipped": self.skipped,
            "emails": self.emails.to_dict() if self.emails else None,
            "items_fetched": sum(s.items_fetched for s in self.sources),
            "new_visibility": sum(s.new_visibility for s in self.sources),
            "replies_stored": sum(s.replies_stored for s in self.sources),
            "reason": self.reason,
            "error": self.error,
        }


# =============================================================================
# PIPELINE
# =============================================================================


class FetchPipeline:
    """Coordinates one fetch run across all subscribed sources."""

    def __init__(
        self,
        db: Session,
        provider: SearchProvider,
        lock: PipelineLock,
        notifier: Optional[NotificationService] = None,
        app_url: str = "",
        replies_limit: int = 50,
        default_refresh_interval_minutes: int = DEFAULT_REFRESH_INTERVAL_MINUTES,
        initial_backfill_days: int = DEFAULT_BACKFILL_DAYS,
        metrics: Optional[MetricsCollector] = None,
        trigger: str = "cron",
    ):
        """Initialize the pipeline.

        Args:
            db: SQLAlchemy database session.
            provider: Search provider for posts and replies.
            lock: Non-blocking named lock shared by all triggers.
            notifier: Notification dispatcher, invoked once per run.
            app_url: Base URL for links in notification emails.
            replies_limit: Maximum replies fetched per item.
            default_refresh_interval_minutes: Interval for new watermark records.
            initial_backfill_days: Backfill window for sources without content.
            metrics: Metrics collector (defaults to the process-wide one).
            trigger: Label for logs ("cron", "beat", "subscribe").
        """
        self.db = db
        self.provider = provider
        self.lock = lock
        self.notifier = notifier
        self.app_url = app_url
        self.replies_limit = replies_limit
        self.metrics = metrics or get_collector()
        self.trigger = trigger

        self.content_store = ContentStore(db)
        self.fanout = FanOutService(db, content_store=self.content_store)
        self.watermarks = WatermarkService(
            db,
            default_refresh_interval_minutes=default_refresh_interval_minutes,
            initial_backfill_days=initial_backfill_days,
        )

    @classmethod
    def from_settings(cls, db: Session, settings: Any, trigger: str = "cron") -> "FetchPipeline":
        """Build a pipeline with the configured provider, lock and notifier."""
        notifier = NotificationService(
            db,
            sender=SmtpEmailSender.from_settings(settings),
            secret_key=settings.secret_key,
            throttle_hours=settings.notification_throttle_hours,
        )
        return cls(
            db=db,
            provider=ArcticShiftClient.from_settings(settings),
            lock=DatabaseLock(db.get_bind(), settings.pipeline_lock_name),
            notifier=notifier,
            app_url=settings.base_url,
            replies_limit=settings.replies_limit,
            default_refresh_interval_minutes=settings.default_refresh_interval_minutes,
            initial_backfill_days=settings.initial_backfill_days,
            trigger=trigger,
        )

    def list_sources(self) -> list[str]:
        """Distinct subscribed sources, ordered by first subscription."""
        return list(
            self.db.execute(
                select(Subscription.source_name)
                .group_by(Subscription.source_name)
                .order_by(func.min(Subscription.id))
            ).scalars()
        )

    async def run(self, now: Optional[datetime] = None) -> PipelineResult:
        """Execute one run.

        Never raises: failures are logged and returned as an error result.
        """
        context = RunContext(run_id=uuid.uuid4().hex[:12], trigger=self.trigger)

        try:
            acquired = self.lock.try_acquire()
        except Exception as e:
            logger.error(f"Failed to acquire pipeline lock: {e}", context, exc_info=True)
            self.metrics.increment("pipeline.runs.failed")
            return PipelineResult(
                status=PipelineStatus.ERROR,
                error="Internal server error",
                run_id=context.run_id,
            )

        if not acquired:
            self.metrics.increment("pipeline.lock.denied")
            logger.info("Fetch pipeline already running, skipping", context)
            return PipelineResult(
                status=PipelineStatus.SKIPPED,
                reason="already_running",
                run_id=context.run_id,
            )

        self.metrics.increment("pipeline.lock.acquired")
        started = time.monotonic()
        try:
            return await self._run_locked(now or utcnow(), context)
        except Exception as e:
            logger.error(f"Fetch pipeline failed: {e}", context, exc_info=True)
            self.metrics.increment("pipeline.runs.failed")
            self.db.rollback()
            return PipelineResult(
                status=PipelineStatus.ERROR,
                error="Internal server error",
                run_id=context.run_id,
            )
        finally:
            try:
                self.lock.release()
            except Exception as e:
                # The server drops the lock with its connection
                logger.error(f"Failed to release pipeline lock: {e}", context, exc_info=True)
            self.metrics.increment("pipeline.lock.released")
            self.metrics.record_histogram("pipeline.run.duration_seconds", time.monotonic() - started)
            self.metrics.set_gauge("pipeline.last_run_at", time.time())

    async def _run_locked(self, now: datetime, context: RunContext) -> PipelineResult:
        result = PipelineResult(run_id=context.run_id)

        sources = self.list_sources()
        if not sources:
            logger.info("No subscribed sources", context)
            return result

        partition = self.watermarks.get_due_sources(sources, now)
        result.skipped = len(partition.not_due)

        if not partition.due:
            logger.info(f"No sources due ({result.skipped} not due)", context)
            return result

        bounds = self.watermarks.compute_fetch_bounds(partition.due, now)

        for source_name in partition.due:
            source_context = RunContext(
                run_id=context.run_id, trigger=context.trigger, source_name=source_name
            )
            stats = await self._fetch_source(source_name, bounds[source_name], now, source_context)
            result.sources.append(stats)
            result.fetched.append(source_name)

        if self.notifier is not None:
            result.emails = self.notifier.dispatch(self.app_url, now)
            self.db.commit()

        logger.info(
            f"Fetch pipeline finished: fetched={result.fetched}, skipped={result.skipped}",
            context,
        )
        return result

    async def _fetch_source(
        self,
        source_name: str,
        after: int,
        now: datetime,
        context: RunContext,
    ) -> SourceFetchStats:
        """Fetch, store and fan out one source, then commit its watermark."""
        stats = SourceFetchStats(source_name=source_name)

        posts = await self.provider.fetch_items({source_name: after})
        stats.items_fetched = len(posts)
        self.metrics.increment("pipeline.items.fetched", len(posts))

        fanned = self.fanout.fan_out(source_name, posts)
        stats.items_stored = fanned.items_stored
        stats.new_visibility = fanned.new_visibility_count
        self.metrics.increment("pipeline.visibility.created", fanned.new_visibility_count)

        for post in posts:
            try:
                replies = await self.provider.fetch_replies(post.native_id, self.replies_limit)
                stats.replies_stored += self.content_store.upsert_replies(replies)
            except Exception as e:
                logger.warning(f"Failed to store replies for {post.native_id}: {e}", context)

        self.watermarks.record_fetch_completed(source_name, now)
        self.db.commit()
        self.metrics.increment("pipeline.sources.fetched")

        logger.info(
            f"Fetched r/{source_name}: {stats.items_fetched} items, "
            f"{stats.items_stored} new, {stats.new_visibility} visibility rows, "
            f"{stats.replies_stored} replies",
            context,
        )
        return stats


# =============================================================================
# EXPORTS
# =============================================================================


__all__ = [
    "FetchPipeline",
    "PipelineResult",
    "PipelineStatus",
    "SourceFetchStats",
]
