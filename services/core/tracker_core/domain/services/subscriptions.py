"""Subscription service for tenant source lists.

This service provides:
1. Adding a source (normalize, reject duplicates, verify upstream)
2. Immediate visibility of already-stored content for the new subscriber
3. An on-demand pipeline run when the source has no stored content yet
4. Removing a source (content stays; other tenants are unaffected)

Usage:
    service = SubscriptionService(db=session, provider=client, trigger_fetch=send_fetch_task)

    result = await service.add_subscription(tenant_id=1, name="r/Python")
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from tracker_core.domain.models import ContentItem, Subscription
from tracker_core.domain.services.fanout import FanOutService
from tracker_core.domain.validation import ValidationError, normalize_source_name
from tracker_core.providers.base import SearchProvider

logger = logging.getLogger(__name__)


# =============================================================================
# EXCEPTIONS
# =============================================================================


class SubscriptionError(Exception):
    """Exception raised for subscription errors."""

    pass


class SubscriptionNotFoundError(SubscriptionError):
    """Exception raised when a subscription is not found for the tenant."""

    pass


# =============================================================================
# RESULT TYPES
# =============================================================================


@dataclass
class AddSubscriptionResult:
    """Outcome of adding a subscription."""

    subscription: Subscription
    backlog_count: int = 0
    fetch_triggered: bool = False


# =============================================================================
# SERVICE
# =============================================================================


class SubscriptionService:
    """Service for managing a tenant's subscribed sources."""

    def __init__(
        self,
        db: Session,
        provider: Optional[SearchProvider] = None,
        trigger_fetch: Optional[Callable[[], None]] = None,
        fanout: Optional[FanOutService] = None,
    ):
        """Initialize the subscription service.

        Args:
            db: SQLAlchemy database session.
            provider: Search provider used to verify that a source exists.
            trigger_fetch: Called to request a pipeline run for a source
                without stored content.
            fanout: Fan-out service used for backlog materialization.
        """
        self.db = db
        self.provider = provider
        self.trigger_fetch = trigger_fetch
        self.fanout = fanout or FanOutService(db)

    # =========================================================================
    # LIST
    # =========================================================================

    def list_subscriptions(self, tenant_id: int) -> list[Subscription]:
        """A tenant's subscriptions, alphabetically."""
        return list(
            self.db.execute(
                select(Subscription)
                .where(Subscription.tenant_id == tenant_id)
                .order_by(Subscription.source_name)
            ).scalars()
        )

    # =========================================================================
    # ADD
    # =========================================================================

    async def add_subscription(self, tenant_id: int, name: str) -> AddSubscriptionResult:
        """Subscribe a tenant to a source.

        Args:
            tenant_id: Subscribing tenant.
            name: Source name as typed (``r/`` prefix and case are normalized).

        Returns:
            AddSubscriptionResult.

        Raises:
            SubscriptionError: If the name is invalid, already subscribed, or
                the source does not exist upstream.
        """
        try:
            source_name = normalize_source_name(name)
        except ValidationError as e:
            raise SubscriptionError(str(e)) from e

        existing = self.db.execute(
            select(Subscription.id).where(
                Subscription.tenant_id == tenant_id,
                Subscription.source_name == source_name,
            )
        ).first()
        if existing:
            raise SubscriptionError("Subreddit already added")

        if self.provider is not None:
            exists = await self.provider.verify_source_exists(source_name)
            if not exists:
                raise SubscriptionError(f"Subreddit r/{source_name} was not found")

        subscription = Subscription(tenant_id=tenant_id, source_name=source_name)
        self.db.add(subscription)
        self.db.flush()

        result = AddSubscriptionResult(subscription=subscription)

        has_content = self.db.execute(
            select(ContentItem.id).where(ContentItem.source_name == source_name).limit(1)
        ).first()

        if has_content:
            result.backlog_count = self.fanout.materialize_backlog(tenant_id, source_name)
        elif self.trigger_fetch is not None:
            # The pipeline runs in another process and must see the subscription
            self.db.commit()
            try:
                self.trigger_fetch()
                result.fetch_triggered = True
            except Exception as e:
                logger.error(f"Failed to trigger fetch for r/{source_name}: {e}")

        logger.info(
            f"Tenant {tenant_id} subscribed to r/{source_name} "
            f"(backlog={result.backlog_count}, fetch_triggered={result.fetch_triggered})"
        )
        return result

    # =========================================================================
    # REMOVE
    # =========================================================================

    def remove_subscription(self, tenant_id: int, subscription_id: int) -> None:
        """Unsubscribe a tenant. Stored content and visibility rows are kept.

        Raises:
            SubscriptionNotFoundError: If the subscription is not the tenant's.
        """
        subscription = self.db.execute(
            select(Subscription).where(
                Subscription.id == subscription_id,
                Subscription.tenant_id == tenant_id,
            )
        ).scalar_one_or_none()

        if subscription is None:
            raise SubscriptionNotFoundError("Subreddit not found")

        self.db.delete(subscription)
        self.db.flush()


# =============================================================================
# EXPORTS
# =============================================================================


__all__ = [
    "SubscriptionService",
    "SubscriptionError",
    "SubscriptionNotFoundError",
    "AddSubscriptionResult",
]
