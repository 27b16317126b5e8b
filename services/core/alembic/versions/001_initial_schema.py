"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-18

Creates all tables for the Social Tracker pipeline:
- users (tenants; owned by the auth layer)
- subscriptions
- tags
- search_terms
- content_items (canonical posts)
- replies (canonical comments)
- tenant_visibility
- tenant_tag_associations
- source_fetch_status (watermarks)
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Tenants
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("email_verified_at", sa.DateTime, nullable=True),
        sa.Column("email_notifications", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("last_emailed_at", sa.DateTime, nullable=True),
        sa.Column("show_nsfw", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
    )

    # Subscriptions
    op.create_table(
        "subscriptions",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column(
            "tenant_id",
            sa.BigInteger,
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("source_name", sa.String(32), nullable=False),
        sa.Column(
            "created_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
        sa.UniqueConstraint("tenant_id", "source_name", name="uq_subscription"),
    )
    op.create_index("idx_subscription_source", "subscriptions", ["source_name"])

    # Tags and search terms
    op.create_table(
        "tags",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column(
            "tenant_id",
            sa.BigInteger,
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("color", sa.String(7), nullable=False, server_default="#6366f1"),
        sa.Column(
            "created_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
        sa.UniqueConstraint("tenant_id", "name", name="uq_tag_name"),
    )

    op.create_table(
        "search_terms",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column(
            "tag_id",
            sa.BigInteger,
            sa.ForeignKey("tags.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("term", sa.String(255), nullable=False),
        sa.Column(
            "created_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
        sa.UniqueConstraint("tag_id", "term", name="uq_search_term"),
    )

    # Canonical content
    op.create_table(
        "content_items",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("native_id", sa.String(32), nullable=False, unique=True),
        sa.Column("source_name", sa.String(32), nullable=False),
        sa.Column("title", sa.Text, nullable=False),
        sa.Column("body", sa.Text, nullable=True),
        sa.Column("author", sa.String(100), nullable=False),
        sa.Column("permalink", sa.Text, nullable=False),
        sa.Column("external_url", sa.Text, nullable=True),
        sa.Column("score", sa.Integer, nullable=False, server_default="0"),
        sa.Column("reply_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("is_sensitive", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("is_self", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column(
            "stored_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
    )
    op.create_index(
        "idx_content_source_created", "content_items", ["source_name", "created_at"]
    )

    op.create_table(
        "replies",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("native_id", sa.String(32), nullable=False, unique=True),
        sa.Column("parent_native_id", sa.String(32), nullable=False),
        sa.Column("parent_reply_native_id", sa.String(32), nullable=True),
        sa.Column("author", sa.String(100), nullable=False),
        sa.Column("body", sa.Text, nullable=False),
        sa.Column("score", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column(
            "stored_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
    )
    op.create_index("idx_reply_parent", "replies", ["parent_native_id"])

    # Per-tenant state
    op.create_table(
        "tenant_visibility",
        sa.Column(
            "tenant_id",
            sa.BigInteger,
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "content_item_id",
            sa.BigInteger,
            sa.ForeignKey("content_items.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "workflow_status",
            sa.Enum("new", "ignored", "done", name="workflow_status_enum"),
            nullable=False,
            server_default="new",
        ),
        sa.Column("response_text", sa.Text, nullable=True),
        sa.Column("responded_at", sa.DateTime, nullable=True),
        sa.Column(
            "created_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
    )
    op.create_index(
        "idx_visibility_tenant_status", "tenant_visibility", ["tenant_id", "workflow_status"]
    )

    op.create_table(
        "tenant_tag_associations",
        sa.Column("tenant_id", sa.BigInteger, primary_key=True),
        sa.Column("content_item_id", sa.BigInteger, primary_key=True),
        sa.Column(
            "tag_id",
            sa.BigInteger,
            sa.ForeignKey("tags.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.ForeignKeyConstraint(
            ["tenant_id", "content_item_id"],
            ["tenant_visibility.tenant_id", "tenant_visibility.content_item_id"],
            ondelete="CASCADE",
        ),
    )

    # Watermarks
    op.create_table(
        "source_fetch_status",
        sa.Column("source_name", sa.String(32), primary_key=True),
        sa.Column("last_fetched_at", sa.DateTime, nullable=True),
        sa.Column("refresh_interval_minutes", sa.Integer, nullable=False, server_default="60"),
        sa.Column(
            "created_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
    )


def downgrade() -> None:
    op.drop_table("source_fetch_status")
    op.drop_table("tenant_tag_associations")
    op.drop_index("idx_visibility_tenant_status", table_name="tenant_visibility")
    op.drop_table("tenant_visibility")
    op.drop_index("idx_reply_parent", table_name="replies")
    op.drop_table("replies")
    op.drop_index("idx_content_source_created", table_name="content_items")
    op.drop_table("content_items")
    op.drop_table("search_terms")
    op.drop_table("tags")
    op.drop_index("idx_subscription_source", table_name="subscriptions")
    op.drop_table("subscriptions")
    op.drop_table("users")
    sa.Enum(name="workflow_status_enum").drop(op.get_bind(), checkfirst=True)
