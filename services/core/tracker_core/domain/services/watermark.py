"""Watermark service for per-source fetch bookkeeping.

This service provides:
1. Due-source selection from each source's refresh interval
2. Content-derived fetch bounds (newest stored post, or a backfill window)
3. Monotonic recording of completed fetches

Usage:
    service = WatermarkService(db=session)

    partition = service.get_due_sources(["python", "rust"], now)
    bounds = service.compute_fetch_bounds(partition.due, now)
    ...
    service.record_fetch_completed("python", now)
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from tracker_core.domain.models import ContentItem, WatermarkRecord, utcnow
from tracker_core.infra.db import insert_ignore


# =============================================================================
# CONSTANTS
# =============================================================================


DEFAULT_REFRESH_INTERVAL_MINUTES = 60
DEFAULT_BACKFILL_DAYS = 7


# =============================================================================
# RESULT TYPES
# =============================================================================


@dataclass
class DuePartition:
    """Sources split by whether their refresh interval has elapsed."""

    due: list[str] = field(default_factory=list)
    not_due: list[str] = field(default_factory=list)


def to_unix_seconds(dt: datetime) -> int:
    """Floor a naive-UTC (or aware) datetime to unix seconds."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return math.floor(dt.timestamp())


# =============================================================================
# SERVICE
# =============================================================================


class WatermarkService:
    """Service for source fetch scheduling and lower bounds."""

    def __init__(
        self,
        db: Session,
        default_refresh_interval_minutes: int = DEFAULT_REFRESH_INTERVAL_MINUTES,
        initial_backfill_days: int = DEFAULT_BACKFILL_DAYS,
    ):
        """Initialize the watermark service.

        Args:
            db: SQLAlchemy database session.
            default_refresh_interval_minutes: Interval stored for new sources.
            initial_backfill_days: How far back to fetch a source with no content.
        """
        self.db = db
        self.default_refresh_interval_minutes = default_refresh_interval_minutes
        self.initial_backfill_days = initial_backfill_days

    # =========================================================================
    # DUE SOURCES
    # =========================================================================

    def get_record(self, source_name: str) -> Optional[WatermarkRecord]:
        return self.db.get(WatermarkRecord, source_name)

    def get_due_sources(
        self,
        all_sources: list[str],
        now: Optional[datetime] = None,
    ) -> DuePartition:
        """Partition sources into due and not-due.

        A source is due when it has no record, has never been fetched, or
        its refresh interval has fully elapsed. Input order is preserved
        in both lists.

        Args:
            all_sources: Source names to consider.
            now: Reference time (naive UTC).

        Returns:
            DuePartition.
        """
        now = now or utcnow()
        partition = DuePartition()

        if not all_sources:
            return partition

        records = {
            record.source_name: record
            for record in self.db.execute(
                select(WatermarkRecord).where(WatermarkRecord.source_name.in_(all_sources))
            ).scalars()
        }

        for source_name in all_sources:
            record = records.get(source_name)
            if record is None or record.last_fetched_at is None:
                partition.due.append(source_name)
                continue

            interval = timedelta(minutes=record.refresh_interval_minutes)
            if now - record.last_fetched_at >= interval:
                partition.due.append(source_name)
            else:
                partition.not_due.append(source_name)

        return partition

    # =========================================================================
    # FETCH BOUNDS
    # =========================================================================

    def get_last_content_timestamp(self, sources: list[str]) -> dict[str, datetime]:
        """Newest stored content creation time per source.

        Sources without any stored content are absent from the result.
        """
        if not sources:
            return {}

        rows = self.db.execute(
            select(ContentItem.source_name, func.max(ContentItem.created_at))
            .where(ContentItem.source_name.in_(sources))
            .group_by(ContentItem.source_name)
        ).all()

        return {source_name: latest for source_name, latest in rows if latest is not None}

    def compute_fetch_bounds(
        self,
        sources: list[str],
        now: Optional[datetime] = None,
    ) -> dict[str, int]:
        """Lower bound (unix seconds) for the next fetch of each source.

        floor(newest stored content time) when the source has content,
        otherwise now minus the backfill window.
        """
        now = now or utcnow()
        latest = self.get_last_content_timestamp(sources)
        backfill_start = to_unix_seconds(now - timedelta(days=self.initial_backfill_days))

        bounds = {}
        for source_name in sources:
            if source_name in latest:
                bounds[source_name] = to_unix_seconds(latest[source_name])
            else:
                bounds[source_name] = backfill_start
        return bounds

    # =========================================================================
    # RECORD FETCH
    # =========================================================================

    def record_fetch_completed(
        self,
        source_name: str,
        now: Optional[datetime] = None,
    ) -> WatermarkRecord:
        """Record that a source finished fetching at ``now``.

        Creates the record with the default refresh interval if missing.
        An existing interval is never overwritten and last_fetched_at never
        moves backwards.
        """
        now = now or utcnow()

        insert_ignore(
            self.db,
            WatermarkRecord,
            {
                "source_name": source_name,
                "last_fetched_at": now,
                "refresh_interval_minutes": self.default_refresh_interval_minutes,
                "created_at": now,
            },
        )

        self.db.execute(
            update(WatermarkRecord)
            .where(
                WatermarkRecord.source_name == source_name,
                or_(
                    WatermarkRecord.last_fetched_at.is_(None),
                    WatermarkRecord.last_fetched_at < now,
                ),
            )
            .values(last_fetched_at=now)
            .execution_options(synchronize_session=False)
        )

        return self.db.get(WatermarkRecord, source_name, populate_existing=True)

    def set_refresh_interval(self, source_name: str, minutes: int) -> WatermarkRecord:
        """Set a source's refresh interval, creating an unfetched record if needed."""
        if minutes < 1:
            raise ValueError("Refresh interval must be at least 1 minute")

        record = self.get_record(source_name)
        if record is None:
            record = WatermarkRecord(
                source_name=source_name,
                last_fetched_at=None,
                refresh_interval_minutes=minutes,
            )
            self.db.add(record)
        else:
            record.refresh_interval_minutes = minutes

        self.db.flush()
        return record


# =============================================================================
# EXPORTS
# =============================================================================


__all__ = [
    "WatermarkService",
    "DuePartition",
    "to_unix_seconds",
    "DEFAULT_REFRESH_INTERVAL_MINUTES",
    "DEFAULT_BACKFILL_DAYS",
]
