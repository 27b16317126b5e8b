"""Domain models for Social Tracker.

This module defines the SQLAlchemy ORM models for the ingestion and
fan-out pipeline. Content is stored once globally; per-tenant state lives
in tenant_visibility and tenant_tag_associations.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    ForeignKeyConstraint,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the storage convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# =============================================================================
# ENUMS
# =============================================================================


class WorkflowStatus(str):
    """Per-tenant workflow status values."""

    NEW = "new"
    IGNORED = "ignored"
    DONE = "done"

    ALL = (NEW, IGNORED, DONE)


# =============================================================================
# MODELS
# =============================================================================


class Tenant(Base):
    """End user of the service.

    Owned by the external auth layer; the pipeline reads notification
    preferences from it and stamps last_emailed_at.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    email_verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Notification preferences
    email_notifications: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_emailed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    show_nsfw: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    # Relationships
    subscriptions: Mapped[list["Subscription"]] = relationship(
        back_populates="tenant",
        cascade="all, delete-orphan",
    )
    tags: Mapped[list["Tag"]] = relationship(
        back_populates="tenant",
        cascade="all, delete-orphan",
    )


class Subscription(Base):
    """A tenant's interest in a source (subreddit)."""

    __tablename__ = "subscriptions"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    # Normalized subreddit name (lowercase, no r/ prefix)
    source_name: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "source_name", name="uq_subscription"),
        Index("idx_subscription_source", "source_name"),
    )

    # Relationships
    tenant: Mapped["Tenant"] = relationship(back_populates="subscriptions")


class Tag(Base):
    """Tenant-defined keyword group."""

    __tablename__ = "tags"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    color: Mapped[str] = mapped_column(String(7), nullable=False, default="#6366f1")
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_tag_name"),
    )

    # Relationships
    tenant: Mapped["Tenant"] = relationship(back_populates="tags")
    search_terms: Mapped[list["SearchTerm"]] = relationship(
        back_populates="tag",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    associations: Mapped[list["TenantTagAssociation"]] = relationship(
        back_populates="tag",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class SearchTerm(Base):
    """A lowercase keyword belonging to a tag."""

    __tablename__ = "search_terms"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    tag_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("tags.id", ondelete="CASCADE"), nullable=False
    )
    term: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )

    __table_args__ = (
        UniqueConstraint("tag_id", "term", name="uq_search_term"),
    )

    # Relationships
    tag: Mapped["Tag"] = relationship(back_populates="search_terms")


class ContentItem(Base):
    """Canonical, globally deduplicated post.

    Insert-or-ignore keyed on native_id: the first stored copy wins and
    score/reply_count are never refreshed.
    """

    __tablename__ = "content_items"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    native_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    source_name: Mapped[str] = mapped_column(String(32), nullable=False)

    # Content
    title: Mapped[str] = mapped_column(Text, nullable=False)
    body: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    author: Mapped[str] = mapped_column(String(100), nullable=False)
    permalink: Mapped[str] = mapped_column(Text, nullable=False)
    external_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Snapshot at first fetch
    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reply_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_sensitive: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_self: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    stored_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )

    __table_args__ = (
        Index("idx_content_source_created", "source_name", "created_at"),
    )

    # Relationships
    visibility: Mapped[list["TenantVisibility"]] = relationship(
        back_populates="content_item",
    )


class Reply(Base):
    """Canonical comment on a content item. Insert-or-ignore like posts."""

    __tablename__ = "replies"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    native_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    parent_native_id: Mapped[str] = mapped_column(String(32), nullable=False)
    parent_reply_native_id: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    author: Mapped[str] = mapped_column(String(100), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    stored_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )

    __table_args__ = (
        Index("idx_reply_parent", "parent_native_id"),
    )


class TenantVisibility(Base):
    """Per-tenant view of a content item with workflow state."""

    __tablename__ = "tenant_visibility"

    tenant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    content_item_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("content_items.id", ondelete="CASCADE"), primary_key=True
    )

    workflow_status: Mapped[str] = mapped_column(
        Enum("new", "ignored", "done", name="workflow_status_enum"),
        nullable=False,
        default=WorkflowStatus.NEW,
    )
    response_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    responded_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        Index("idx_visibility_tenant_status", "tenant_id", "workflow_status"),
    )

    # Relationships
    content_item: Mapped["ContentItem"] = relationship(back_populates="visibility")
    tag_associations: Mapped[list["TenantTagAssociation"]] = relationship(
        back_populates="visibility",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class TenantTagAssociation(Base):
    """Tag matched against a content item when it became visible to a tenant."""

    __tablename__ = "tenant_tag_associations"

    tenant_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    content_item_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    tag_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True
    )

    __table_args__ = (
        ForeignKeyConstraint(
            ["tenant_id", "content_item_id"],
            ["tenant_visibility.tenant_id", "tenant_visibility.content_item_id"],
            ondelete="CASCADE",
        ),
    )

    # Relationships
    tag: Mapped["Tag"] = relationship(back_populates="associations")
    visibility: Mapped["TenantVisibility"] = relationship(
        back_populates="tag_associations",
    )


class WatermarkRecord(Base):
    """Per-source fetch bookkeeping.

    last_fetched_at is monotonically non-decreasing; refresh_interval_minutes
    is set once on creation and never overwritten by fetch bookkeeping.
    """

    __tablename__ = "source_fetch_status"

    source_name: Mapped[str] = mapped_column(String(32), primary_key=True)
    last_fetched_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    refresh_interval_minutes: Mapped[int] = mapped_column(
        Integer, nullable=False, default=60
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )


# Export all models
__all__ = [
    "Base",
    "Tenant",
    "Subscription",
    "Tag",
    "SearchTerm",
    "ContentItem",
    "Reply",
    "TenantVisibility",
    "TenantTagAssociation",
    "WatermarkRecord",
    # Enums
    "WorkflowStatus",
    "utcnow",
]
