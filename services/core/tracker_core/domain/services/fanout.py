"""Fan-out of canonical content to subscribed tenants.

This service provides:
1. Per-tenant visibility rows (exactly once per tenant and item)
2. Tag association at first visibility, from the tenant's rules at that moment
3. Backlog materialization when a tenant subscribes to a source with content

Tags are only evaluated when a visibility row is created; later rule
changes never re-tag existing rows.

Usage:
    service = FanOutService(db=session)

    result = service.fan_out("python", fetched_posts)
    print(result.new_visibility_count)
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from tracker_core.domain.models import (
    ContentItem,
    Subscription,
    Tag,
    TenantTagAssociation,
    TenantVisibility,
    WorkflowStatus,
    utcnow,
)
from tracker_core.domain.services.content_store import ContentStore, Inserted
from tracker_core.infra.db import insert_ignore
from tracker_core.providers.base import FetchedPost

logger = logging.getLogger(__name__)


# =============================================================================
# TAG MATCHING
# =============================================================================


@dataclass
class TagRule:
    """A tag and its search terms, as evaluated at fan-out time."""

    tag_id: int
    terms: list[str] = field(default_factory=list)


def canonical_text(title: str, body: Optional[str]) -> str:
    """Text a content item is matched against."""
    return f"{title} {body or ''}"


def match_tags(text: str, rules: Iterable[TagRule]) -> set[int]:
    """Return IDs of tags with at least one term contained in ``text``.

    Matching is a case-insensitive substring test.
    """
    lowered = text.lower()
    return {
        rule.tag_id
        for rule in rules
        if any(term and term.lower() in lowered for term in rule.terms)
    }


# =============================================================================
# RESULT TYPES
# =============================================================================


@dataclass
class MaterializeResult:
    """Outcome of materializing one item."""

    new_visibility_count: int = 0
    new_tag_count: int = 0


@dataclass
class FanOutResult:
    """Outcome of fanning out a batch of fetched posts for one source."""

    items_received: int = 0
    items_stored: int = 0
    new_visibility_count: int = 0
    new_tag_count: int = 0


# =============================================================================
# SERVICE
# =============================================================================


class FanOutService:
    """Service that makes canonical content visible to tenants."""

    def __init__(self, db: Session, content_store: Optional[ContentStore] = None):
        """Initialize the fan-out service.

        Args:
            db: SQLAlchemy database session.
            content_store: Store used to resolve fetched posts.
        """
        self.db = db
        self.content_store = content_store or ContentStore(db)

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    def get_subscribers(self, source_name: str) -> list[int]:
        """IDs of tenants currently subscribed to a source."""
        return list(
            self.db.execute(
                select(Subscription.tenant_id)
                .where(Subscription.source_name == source_name)
                .order_by(Subscription.tenant_id)
            ).scalars()
        )

    def load_tag_rules(self, tenant_id: int) -> list[TagRule]:
        """Current tags and terms of a tenant."""
        tags = self.db.execute(
            select(Tag)
            .where(Tag.tenant_id == tenant_id)
            .options(selectinload(Tag.search_terms))
            .order_by(Tag.id)
        ).scalars()

        return [
            TagRule(tag_id=tag.id, terms=[t.term for t in tag.search_terms])
            for tag in tags
        ]

    # =========================================================================
    # MATERIALIZE
    # =========================================================================

    def materialize_for_tenant(
        self,
        tenant_id: int,
        content_item_id: int,
        text: str,
        rules: Optional[list[TagRule]] = None,
    ) -> tuple[bool, int]:
        """Create one tenant's visibility row and tag associations.

        Args:
            tenant_id: Tenant to materialize for.
            content_item_id: Canonical item.
            text: Canonical text for tag matching.
            rules: Pre-loaded tag rules for the tenant.

        Returns:
            (whether the visibility row was created, number of tags associated)
        """
        now = utcnow()
        created = insert_ignore(
            self.db,
            TenantVisibility,
            {
                "tenant_id": tenant_id,
                "content_item_id": content_item_id,
                "workflow_status": WorkflowStatus.NEW,
                "created_at": now,
                "updated_at": now,
            },
        )
        if not created:
            return False, 0

        if rules is None:
            rules = self.load_tag_rules(tenant_id)

        tag_count = 0
        for tag_id in sorted(match_tags(text, rules)):
            if insert_ignore(
                self.db,
                TenantTagAssociation,
                {
                    "tenant_id": tenant_id,
                    "content_item_id": content_item_id,
                    "tag_id": tag_id,
                },
            ):
                tag_count += 1

        return True, tag_count

    def materialize(
        self,
        content_item_id: int,
        source_name: str,
        text: str,
        rules_cache: Optional[dict[int, list[TagRule]]] = None,
    ) -> MaterializeResult:
        """Make an item visible to every tenant subscribed to its source.

        Args:
            content_item_id: Canonical item.
            source_name: Source the item belongs to.
            text: Canonical text for tag matching.
            rules_cache: Optional per-call cache of tenant tag rules.

        Returns:
            MaterializeResult with the number of tenants that newly see the item.
        """
        result = MaterializeResult()

        for tenant_id in self.get_subscribers(source_name):
            rules = None
            if rules_cache is not None:
                if tenant_id not in rules_cache:
                    rules_cache[tenant_id] = self.load_tag_rules(tenant_id)
                rules = rules_cache[tenant_id]

            created, tag_count = self.materialize_for_tenant(
                tenant_id, content_item_id, text, rules
            )
            if created:
                result.new_visibility_count += 1
                result.new_tag_count += tag_count

        return result

    def fan_out(self, source_name: str, posts: list[FetchedPost]) -> FanOutResult:
        """Store fetched posts and materialize them for subscribers.

        Posts are processed in the order given. Each post is matched using
        the stored canonical copy, not the fetched one.
        """
        result = FanOutResult(items_received=len(posts))
        rules_cache: dict[int, list[TagRule]] = {}

        for post in posts:
            upsert = self.content_store.upsert_canonical(post)
            if isinstance(upsert, Inserted):
                item = upsert.item
                result.items_stored += 1
            else:
                item = self.content_store.get_by_native_id(upsert.native_id)
                if item is None:
                    raise LookupError(f"Content item {post.native_id} was not stored")

            materialized = self.materialize(
                item.id,
                source_name,
                canonical_text(item.title, item.body),
                rules_cache,
            )
            result.new_visibility_count += materialized.new_visibility_count
            result.new_tag_count += materialized.new_tag_count

        logger.info(
            f"Fanned out r/{source_name}: {result.items_received} received, "
            f"{result.items_stored} new, {result.new_visibility_count} visibility rows"
        )
        return result

    def materialize_backlog(self, tenant_id: int, source_name: str) -> int:
        """Make every stored item of a source visible to one tenant.

        Returns:
            Number of visibility rows created.
        """
        rules = self.load_tag_rules(tenant_id)
        created_count = 0

        items = self.db.execute(
            select(ContentItem)
            .where(ContentItem.source_name == source_name)
            .order_by(ContentItem.created_at.desc())
        ).scalars().all()

        for item in items:
            created, _ = self.materialize_for_tenant(
                tenant_id, item.id, canonical_text(item.title, item.body), rules
            )
            if created:
                created_count += 1

        logger.info(
            f"Materialized {created_count} backlog items from r/{source_name} "
            f"for tenant {tenant_id}"
        )
        return created_count


# =============================================================================
# EXPORTS
# =============================================================================


__all__ = [
    "FanOutService",
    "FanOutResult",
    "MaterializeResult",
    "TagRule",
    "canonical_text",
    "match_tags",
]
