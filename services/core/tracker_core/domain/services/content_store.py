"""Deduplicating store for canonical content.

Every post and reply is stored once, keyed by its native ID. Writes are
insert-or-ignore: the first stored copy wins, so score and reply counts
reflect the first fetch and are never refreshed.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.orm import Session

from tracker_core.domain.models import ContentItem, Reply
from tracker_core.infra.db import insert_ignore
from tracker_core.providers.base import FetchedPost, FetchedReply

logger = logging.getLogger(__name__)


# =============================================================================
# RESULT TYPES
# =============================================================================


@dataclass
class Inserted:
    """The item was new and is now stored."""

    item: ContentItem


@dataclass
class Skipped:
    """An item with this native ID was already stored."""

    native_id: str


UpsertResult = Union[Inserted, Skipped]


# =============================================================================
# SERVICE
# =============================================================================


class ContentStore:
    """Insert-or-ignore storage for posts and replies."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_native_id(self, native_id: str) -> Optional[ContentItem]:
        return self.db.execute(
            select(ContentItem).where(ContentItem.native_id == native_id)
        ).scalar_one_or_none()

    def upsert_canonical(self, post: FetchedPost) -> UpsertResult:
        """Store a post unless its native ID is already present.

        Args:
            post: Normalized post.

        Returns:
            Inserted with the stored row, or Skipped.
        """
        if insert_ignore(self.db, ContentItem, post.to_row()):
            return Inserted(item=self.get_by_native_id(post.native_id))
        return Skipped(native_id=post.native_id)

    def resolve(self, post: FetchedPost) -> ContentItem:
        """Return the canonical row for a post, storing it first if new.

        On conflict the fetched copy is discarded and the stored row is
        returned unchanged.
        """
        result = self.upsert_canonical(post)
        if isinstance(result, Inserted):
            return result.item

        item = self.get_by_native_id(post.native_id)
        if item is None:
            # Ignored for a reason other than a native_id collision
            raise LookupError(f"Content item {post.native_id} was not stored")
        return item

    def upsert_replies(self, replies: list[FetchedReply]) -> int:
        """Store replies, ignoring ones already present.

        Returns:
            Number of replies inserted by this call.
        """
        inserted = 0
        for reply in replies:
            if insert_ignore(self.db, Reply, reply.to_row()):
                inserted += 1
        return inserted

    def list_for_source(self, source_name: str) -> list[ContentItem]:
        """All stored items of a source, newest first."""
        return list(
            self.db.execute(
                select(ContentItem)
                .where(ContentItem.source_name == source_name)
                .order_by(ContentItem.created_at.desc())
            ).scalars()
        )


# =============================================================================
# EXPORTS
# =============================================================================


__all__ = [
    "ContentStore",
    "Inserted",
    "Skipped",
    "UpsertResult",
]
