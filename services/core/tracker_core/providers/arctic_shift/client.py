"""Arctic Shift search API client.

Implements the SearchProvider interface against the public Arctic Shift
archive of Reddit content, mapping its responses to normalized DTOs.
No authentication is required.

Usage:
    client = ArcticShiftClient(base_url="https://arctic-shift.photon-reddit.com")

    posts = await client.fetch_items({"python": 1704067200})
    replies = await client.fetch_replies("t3_abc123")
    exists = await client.verify_source_exists("python")
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Optional

import httpx
import redis.asyncio as redis

from tracker_core.infrastructure.rate_limiter import (
    BackoffStrategy,
    RateLimitConfig,
    RateLimiter,
    RateLimitExceeded,
    RateLimitState,
)
from tracker_core.providers.base import FetchedPost, FetchedReply, SearchProvider

logger = logging.getLogger(__name__)


POST_PREFIX = "t3_"
REPLY_PREFIX = "t1_"


class SearchAPIError(Exception):
    """Raised when a search API call fails."""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        """Network errors (status 0), 429 and 5xx are transient."""
        return self.status_code == 0 or self.status_code == 429 or self.status_code >= 500


class ArcticShiftClient(SearchProvider):
    """Search provider backed by the Arctic Shift API.

    Every request carries a timeout. 429 and 5xx responses are retried with
    bounded exponential backoff; any other failure for a source is logged
    and that source contributes zero items.
    """

    DEFAULT_BASE_URL = "https://arctic-shift.photon-reddit.com"
    POSTS_PATH = "/api/posts/search"
    COMMENTS_PATH = "/api/comments/search"

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 15.0,
        backoff: Optional[BackoffStrategy] = None,
        limiter: Optional[RateLimiter] = None,
        rate_limit: Optional[RateLimitState] = None,
        max_rate_limit_wait: float = 60.0,
        user_agent: str = "SocialTracker/1.0",
    ):
        """Initialize the client.

        Args:
            base_url: API base URL.
            timeout: Per-request timeout in seconds.
            backoff: Retry policy for transient failures.
            limiter: Request budget shared across processes (None for no limit).
            rate_limit: Upstream rate limit headers seen so far.
            max_rate_limit_wait: Cap on time spent waiting for an exhausted window.
            user_agent: User-Agent string for API requests.
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.backoff = backoff or BackoffStrategy()
        self.limiter = limiter
        self.rate_limit = rate_limit or RateLimitState()
        self.max_rate_limit_wait = max_rate_limit_wait
        self.user_agent = user_agent

    @classmethod
    def from_settings(cls, settings: Any) -> "ArcticShiftClient":
        """Build a client from application settings."""
        limiter = RateLimiter(
            redis.from_url(settings.redis_url),
            RateLimitConfig(
                provider_id="arctic_shift",
                requests_per_minute=settings.search_api_requests_per_minute,
                max_concurrent=settings.search_api_max_concurrent,
                acquire_timeout=settings.search_api_max_rate_limit_wait,
            ),
        )
        return cls(
            base_url=settings.search_api_base_url,
            timeout=settings.search_api_timeout_seconds,
            backoff=BackoffStrategy(max_retries=settings.search_api_max_retries),
            limiter=limiter,
            max_rate_limit_wait=settings.search_api_max_rate_limit_wait,
        )

    @property
    def provider_id(self) -> str:
        """Return the provider identifier."""
        return "arctic_shift"

    # =========================================================================
    # HTTP
    # =========================================================================

    @asynccontextmanager
    async def _request_budget(self) -> AsyncIterator[None]:
        """Hold a token and an inflight slot of the shared budget, if any."""
        if self.limiter is None:
            yield
            return

        async with self.limiter:
            yield

    async def _get_json(self, path: str, params: dict[str, Any]) -> Any:
        """GET a JSON document with retries.

        Args:
            path: API path.
            params: Query parameters.

        Returns:
            Decoded JSON body.

        Raises:
            SearchAPIError: When the request fails for good.
        """
        url = f"{self.base_url}{path}"
        attempt = 0

        while True:
            attempt += 1

            wait = self.rate_limit.wait_time(max_wait=self.max_rate_limit_wait)
            if wait > 0:
                logger.info(f"Waiting {wait:.1f}s for search API rate limit")
                await asyncio.sleep(wait)

            try:
                async with self._request_budget():
                    async with httpx.AsyncClient(timeout=self.timeout) as client:
                        response = await client.get(
                            url,
                            params=params,
                            headers={"User-Agent": self.user_agent},
                        )
            except RateLimitExceeded as e:
                error = SearchAPIError(str(e), status_code=429)
            except httpx.HTTPError as e:
                error = SearchAPIError(f"Request to {path} failed: {e}", status_code=0)
            else:
                self.rate_limit.update_from_headers(response.headers)

                if response.status_code == 200:
                    try:
                        return response.json()
                    except ValueError as e:
                        raise SearchAPIError(f"Invalid JSON from {path}: {e}", 200) from e

                error = SearchAPIError(
                    f"Search API error: {response.status_code}",
                    status_code=response.status_code,
                )

            if not error.retryable or not self.backoff.should_retry(error.status_code, attempt):
                raise error

            delay = self.backoff.get_delay_for_status(error.status_code, attempt)
            logger.warning(
                f"{error} (attempt {attempt}/{self.backoff.max_retries}), "
                f"retrying in {delay:.1f}s"
            )
            await asyncio.sleep(delay)

    # =========================================================================
    # POSTS
    # =========================================================================

    async def fetch_items(self, source_to_after: dict[str, int]) -> list[FetchedPost]:
        """Fetch posts for each source created after its lower bound.

        Args:
            source_to_after: Map of source name to unix-seconds lower bound.

        Returns:
            Posts across all sources, deduplicated by native ID, newest first.
        """
        posts_by_id: dict[str, FetchedPost] = {}

        for source_name, after in source_to_after.items():
            try:
                data = await self._get_json(
                    self.POSTS_PATH,
                    {
                        "subreddit": source_name,
                        "after": str(int(after)),
                        "sort": "desc",
                        "limit": "auto",
                    },
                )
            except SearchAPIError as e:
                logger.error(f"Failed to fetch posts for r/{source_name}: {e}")
                continue

            for item in self._extract_data(data):
                post = self._map_post(item, source_name)
                if post is not None and post.native_id not in posts_by_id:
                    posts_by_id[post.native_id] = post

        return sorted(posts_by_id.values(), key=lambda p: p.created_at, reverse=True)

    async def verify_source_exists(self, source_name: str) -> bool:
        """Check a source with a single-item query.

        Returns:
            True if the source returned at least one post, or the check failed.
        """
        try:
            data = await self._get_json(
                self.POSTS_PATH,
                {"subreddit": source_name, "limit": "1"},
            )
        except SearchAPIError as e:
            logger.warning(f"Could not verify r/{source_name}, assuming it exists: {e}")
            return True

        if not isinstance(data, dict) or not isinstance(data.get("data"), list):
            return True

        return len(data["data"]) > 0

    # =========================================================================
    # REPLIES
    # =========================================================================

    async def fetch_replies(self, native_item_id: str, limit: int = 50) -> list[FetchedReply]:
        """Fetch comments for a post.

        Args:
            native_item_id: Prefixed post ID ("t3_...").
            limit: Maximum number of comments to return.

        Returns:
            Normalized comments, empty on failure.
        """
        link_id = native_item_id[len(POST_PREFIX):] if native_item_id.startswith(POST_PREFIX) else native_item_id
        parent_native_id = f"{POST_PREFIX}{link_id}"

        try:
            data = await self._get_json(
                self.COMMENTS_PATH,
                {"link_id": link_id, "limit": str(limit)},
            )
        except SearchAPIError as e:
            logger.error(f"Failed to fetch replies for {parent_native_id}: {e}")
            return []

        replies = []
        for item in self._extract_data(data):
            reply = self._map_reply(item, parent_native_id)
            if reply is not None:
                replies.append(reply)
        return replies

    # =========================================================================
    # MAPPING HELPERS
    # =========================================================================

    def _extract_data(self, data: Any) -> list[dict]:
        """Return the item list of a response, or [] for unexpected payloads."""
        if not isinstance(data, dict):
            return []
        items = data.get("data")
        if not isinstance(items, list):
            return []
        return [item for item in items if isinstance(item, dict)]

    def _parse_timestamp(self, ts: Optional[float]) -> Optional[datetime]:
        """Parse a unix timestamp into a naive UTC datetime."""
        if ts is None:
            return None
        try:
            return datetime.fromtimestamp(float(ts), tz=timezone.utc).replace(tzinfo=None)
        except (TypeError, ValueError, OverflowError):
            return None

    def _map_post(self, data: dict, source_name: str) -> Optional[FetchedPost]:
        """Map an Arctic Shift post to FetchedPost."""
        post_id = data.get("id")
        created_at = self._parse_timestamp(data.get("created_utc"))
        if not post_id or created_at is None:
            logger.debug(f"Skipping malformed post in r/{source_name}: {data!r:.200}")
            return None

        body = data.get("selftext") or None

        return FetchedPost(
            native_id=f"{POST_PREFIX}{post_id}",
            source_name=(data.get("subreddit") or source_name).lower(),
            title=data.get("title") or "",
            body=body,
            author=data.get("author") or "[deleted]",
            permalink=data.get("permalink") or "",
            external_url=data.get("url") or None,
            created_at=created_at,
            score=int(data.get("score") or 0),
            reply_count=int(data.get("num_comments") or 0),
            is_sensitive=bool(data.get("over_18", False)),
            is_self=bool(data.get("is_self", True)),
            raw_data=data,
        )

    def _map_reply(self, data: dict, parent_native_id: str) -> Optional[FetchedReply]:
        """Map an Arctic Shift comment to FetchedReply."""
        reply_id = data.get("id")
        created_at = self._parse_timestamp(data.get("created_utc"))
        if not reply_id or created_at is None:
            return None

        parent_id = data.get("parent_id")
        parent_reply = parent_id if isinstance(parent_id, str) and parent_id.startswith(REPLY_PREFIX) else None

        return FetchedReply(
            native_id=f"{REPLY_PREFIX}{reply_id}",
            parent_native_id=parent_native_id,
            parent_reply_native_id=parent_reply,
            author=data.get("author") or "[deleted]",
            body=data.get("body") or "",
            score=int(data.get("score") or 0),
            created_at=created_at,
        )
