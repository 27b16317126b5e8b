"""Notification dispatcher for tagged-post digests.

This service provides:
1. Eligibility selection (notifications on, verified email, throttle elapsed)
2. Collection of new tagged posts since the tenant's last email
3. Digest delivery through an EmailSender, stamping last_emailed_at on success

Usage:
    service = NotificationService(db=session, sender=SmtpEmailSender.from_settings(settings),
                                  secret_key=settings.secret_key)

    result = service.dispatch(app_url=settings.base_url)
    print(f"Sent {result.sent}, skipped {result.skipped}")
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from tracker_core.domain.models import (
    ContentItem,
    Tag,
    Tenant,
    TenantTagAssociation,
    TenantVisibility,
    WorkflowStatus,
    utcnow,
)
from tracker_core.domain.services.email_templates import TaggedPost, build_digest_email
from tracker_core.infrastructure.email import EmailMessage, EmailSender

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================


DEFAULT_THROTTLE_HOURS = 4


# =============================================================================
# RESULT TYPES
# =============================================================================


@dataclass
class DispatchResult:
    """Outcome of one dispatch pass."""

    sent: int = 0
    skipped: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"sent": self.sent, "skipped": self.skipped}


# =============================================================================
# SERVICE
# =============================================================================


class NotificationService:
    """Service that emails tenants about newly tagged posts."""

    def __init__(
        self,
        db: Session,
        sender: EmailSender,
        secret_key: str,
        throttle_hours: int = DEFAULT_THROTTLE_HOURS,
    ):
        """Initialize the notification service.

        Args:
            db: SQLAlchemy database session.
            sender: Email delivery backend.
            secret_key: Key for signing unsubscribe tokens.
            throttle_hours: Minimum hours between two digests to a tenant.
        """
        self.db = db
        self.sender = sender
        self.secret_key = secret_key
        self.throttle_hours = throttle_hours

    def get_eligible_tenants(self, now: Optional[datetime] = None) -> list[Tenant]:
        """Tenants that may receive a digest at ``now``."""
        now = now or utcnow()
        cutoff = now - timedelta(hours=self.throttle_hours)

        return list(
            self.db.execute(
                select(Tenant)
                .where(
                    Tenant.email_notifications.is_(True),
                    Tenant.email_verified_at.is_not(None),
                    or_(Tenant.last_emailed_at.is_(None), Tenant.last_emailed_at < cutoff),
                )
                .order_by(Tenant.id)
            ).scalars()
        )

    def get_new_tagged_posts(self, tenant: Tenant) -> list[TaggedPost]:
        """New tagged posts a tenant has not been emailed about, newest first.

        A post with several tags yields one entry per tag.
        """
        query = (
            select(
                ContentItem.id,
                ContentItem.title,
                ContentItem.body,
                ContentItem.source_name,
                ContentItem.author,
                Tag.name,
                Tag.color,
            )
            .select_from(TenantTagAssociation)
            .join(
                TenantVisibility,
                (TenantVisibility.tenant_id == TenantTagAssociation.tenant_id)
                & (TenantVisibility.content_item_id == TenantTagAssociation.content_item_id),
            )
            .join(ContentItem, ContentItem.id == TenantTagAssociation.content_item_id)
            .join(Tag, Tag.id == TenantTagAssociation.tag_id)
            .where(
                TenantTagAssociation.tenant_id == tenant.id,
                TenantVisibility.workflow_status == WorkflowStatus.NEW,
            )
            .order_by(ContentItem.created_at.desc(), ContentItem.id.desc(), Tag.id)
        )

        if tenant.last_emailed_at is not None:
            query = query.where(TenantVisibility.created_at > tenant.last_emailed_at)

        return [
            TaggedPost(
                content_item_id=row[0],
                title=row[1],
                body=row[2],
                source_name=row[3],
                author=row[4],
                tag_name=row[5],
                tag_color=row[6],
            )
            for row in self.db.execute(query).all()
        ]

    def dispatch(self, app_url: str, now: Optional[datetime] = None) -> DispatchResult:
        """Send one digest to every eligible tenant with new tagged posts.

        ``now`` drives the throttle window. last_emailed_at is stamped with
        the send time, which is later than any visibility row the digest
        covered.

        Tenants without new tagged posts, and tenants whose send failed,
        are counted as skipped and keep their last_emailed_at.
        """
        now = now or utcnow()
        result = DispatchResult()

        for tenant in self.get_eligible_tenants(now):
            posts = self.get_new_tagged_posts(tenant)
            if not posts:
                result.skipped += 1
                continue

            digest = build_digest_email(tenant.id, posts, app_url, self.secret_key)
            send_result = self.sender.send(
                EmailMessage(
                    to=tenant.email,
                    subject=digest.subject,
                    html=digest.html,
                    text=digest.text,
                    headers=digest.headers,
                )
            )

            if not send_result.success:
                logger.warning(
                    f"Failed to send digest to tenant {tenant.id}: {send_result.error}"
                )
                result.skipped += 1
                continue

            tenant.last_emailed_at = utcnow()
            self.db.flush()
            result.sent += 1

        logger.info(f"Notification dispatch: {result.sent} sent, {result.skipped} skipped")
        return result


# =============================================================================
# EXPORTS
# =============================================================================


__all__ = [
    "NotificationService",
    "DispatchResult",
    "DEFAULT_THROTTLE_HOURS",
]
