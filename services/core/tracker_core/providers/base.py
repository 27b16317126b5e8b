"""Base search provider interface and DTOs.

This module defines the interface the fetch pipeline uses to pull content
from an external search API, along with normalized data transfer objects:
- FetchedPost: Normalized post, ready to become a canonical ContentItem
- FetchedReply: Normalized comment on a post

Usage:
    class ArcticShiftClient(SearchProvider):
        @property
        def provider_id(self) -> str:
            return "arctic_shift"

        async def fetch_items(self, source_to_after) -> list[FetchedPost]:
            ...
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


# =============================================================================
# DATA TRANSFER OBJECTS
# =============================================================================


@dataclass
class FetchedPost:
    """Normalized post from a search provider.

    native_id carries the type prefix ("t3_...") and is the global
    deduplication key.
    """

    native_id: str
    source_name: str
    title: str
    author: str
    permalink: str
    created_at: datetime

    # Optional fields
    body: Optional[str] = None
    external_url: Optional[str] = None
    score: int = 0
    reply_count: int = 0
    is_sensitive: bool = False
    is_self: bool = True
    raw_data: Optional[dict] = field(default=None, repr=False)

    @property
    def canonical_text(self) -> str:
        """Text used for tag matching: title and body."""
        return f"{self.title} {self.body or ''}"

    def to_row(self) -> dict:
        """Column values for the content_items table."""
        return {
            "native_id": self.native_id,
            "source_name": self.source_name,
            "title": self.title,
            "body": self.body,
            "author": self.author,
            "permalink": self.permalink,
            "external_url": self.external_url,
            "created_at": self.created_at,
            "score": self.score,
            "reply_count": self.reply_count,
            "is_sensitive": self.is_sensitive,
            "is_self": self.is_self,
        }


@dataclass
class FetchedReply:
    """Normalized comment on a post."""

    native_id: str
    parent_native_id: str
    author: str
    body: str
    created_at: datetime

    # Optional fields
    parent_reply_native_id: Optional[str] = None
    score: int = 0

    def to_row(self) -> dict:
        """Column values for the replies table."""
        return {
            "native_id": self.native_id,
            "parent_native_id": self.parent_native_id,
            "parent_reply_native_id": self.parent_reply_native_id,
            "author": self.author,
            "body": self.body,
            "score": self.score,
            "created_at": self.created_at,
        }


# =============================================================================
# PROVIDER INTERFACE
# =============================================================================


class SearchProvider(ABC):
    """Abstract interface for external search providers.

    Implementations must never raise for upstream failures: a failing
    source yields zero items so the remaining sources can proceed.
    """

    @property
    @abstractmethod
    def provider_id(self) -> str:
        """Unique identifier for this provider."""
        ...

    @abstractmethod
    async def fetch_items(self, source_to_after: dict[str, int]) -> list[FetchedPost]:
        """Fetch posts created after a per-source lower bound.

        Args:
            source_to_after: Map of source name to unix-seconds lower bound.

        Returns:
            Posts across all sources, deduplicated by native ID, newest first.
        """
        ...

    @abstractmethod
    async def fetch_replies(self, native_item_id: str, limit: int = 50) -> list[FetchedReply]:
        """Fetch comments for a post.

        Args:
            native_item_id: Prefixed post ID ("t3_...").
            limit: Maximum number of comments to return.

        Returns:
            Normalized comments, empty on failure.
        """
        ...

    @abstractmethod
    async def verify_source_exists(self, source_name: str) -> bool:
        """Check whether a source has any content.

        Returns True when the check itself fails, so an unreachable
        provider never blocks a subscription.
        """
        ...
