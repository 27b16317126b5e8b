"""Workflow state of content as seen by one tenant.

Status rules:
- Moving to ``done`` stamps responded_at when it is unset or a response
  text is supplied, and stores the response text if given.
- Moving away from ``done`` clears responded_at but keeps response_text.
"""

from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from tracker_core.domain.models import TenantVisibility, WorkflowStatus, utcnow


# =============================================================================
# EXCEPTIONS
# =============================================================================


class VisibilityError(Exception):
    """Exception raised for visibility errors."""

    pass


class VisibilityNotFoundError(VisibilityError):
    """Exception raised when the tenant cannot see the item."""

    pass


class InvalidStatusError(VisibilityError):
    """Exception raised for an unknown workflow status."""

    pass


# =============================================================================
# SERVICE
# =============================================================================


class VisibilityService:
    """Service for per-tenant workflow state."""

    def __init__(self, db: Session):
        self.db = db

    def get_or_raise(self, tenant_id: int, content_item_id: int) -> TenantVisibility:
        visibility = self.db.get(TenantVisibility, (tenant_id, content_item_id))
        if visibility is None:
            raise VisibilityNotFoundError("Post not found")
        return visibility

    def change_status(
        self,
        tenant_id: int,
        content_item_id: int,
        status: str,
        response_text: Optional[str] = None,
    ) -> TenantVisibility:
        """Move an item to a new workflow status.

        Args:
            tenant_id: Tenant whose view changes.
            content_item_id: Canonical item.
            status: One of new, ignored, done.
            response_text: Optional response, only stored when moving to done.

        Returns:
            The updated visibility row.

        Raises:
            InvalidStatusError: If status is unknown.
            VisibilityNotFoundError: If the tenant cannot see the item.
        """
        if status not in WorkflowStatus.ALL:
            raise InvalidStatusError(f"Invalid status: {status}")

        visibility = self.get_or_raise(tenant_id, content_item_id)

        if status == WorkflowStatus.DONE:
            if response_text is not None:
                visibility.response_text = response_text
            if visibility.responded_at is None or response_text is not None:
                visibility.responded_at = utcnow()
        else:
            visibility.responded_at = None

        visibility.workflow_status = status
        visibility.updated_at = utcnow()
        self.db.flush()
        return visibility

    def update_response_text(
        self,
        tenant_id: int,
        content_item_id: int,
        response_text: str,
    ) -> TenantVisibility:
        """Replace the response text without touching the status."""
        visibility = self.get_or_raise(tenant_id, content_item_id)
        visibility.response_text = response_text
        visibility.updated_at = utcnow()
        self.db.flush()
        return visibility

    def get_status_counts(self, tenant_id: int) -> dict[str, int]:
        """Number of visible items per workflow status."""
        counts = {status: 0 for status in WorkflowStatus.ALL}
        rows = self.db.execute(
            select(TenantVisibility.workflow_status, func.count())
            .where(TenantVisibility.tenant_id == tenant_id)
            .group_by(TenantVisibility.workflow_status)
        ).all()
        for status, count in rows:
            if status in counts:
                counts[status] = count
        return counts


# =============================================================================
# EXPORTS
# =============================================================================


__all__ = [
    "VisibilityService",
    "VisibilityError",
    "VisibilityNotFoundError",
    "InvalidStatusError",
]
