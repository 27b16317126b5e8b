"""API schemas."""

from tracker_core.api.schemas.subscriptions import (
    SubscriptionCreate,
    SubscriptionCreateResponse,
    SubscriptionListResponse,
    SubscriptionResponse,
)
from tracker_core.api.schemas.tags import (
    SearchTermResponse,
    TagCreate,
    TagListResponse,
    TagResponse,
)
from tracker_core.api.schemas.visibility import (
    StatusChangeRequest,
    VisibilityResponse,
)

__all__ = [
    # Subscription schemas
    "SubscriptionCreate",
    "SubscriptionCreateResponse",
    "SubscriptionListResponse",
    "SubscriptionResponse",
    # Tag schemas
    "SearchTermResponse",
    "TagCreate",
    "TagListResponse",
    "TagResponse",
    # Visibility schemas
    "StatusChangeRequest",
    "VisibilityResponse",
]
