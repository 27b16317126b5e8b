"""Domain services for Social Tracker."""

from tracker_core.domain.services.content_store import ContentStore
from tracker_core.domain.services.fanout import FanOutService
from tracker_core.domain.services.fetch_pipeline import FetchPipeline, PipelineResult
from tracker_core.domain.services.notifications import DispatchResult, NotificationService
from tracker_core.domain.services.subscriptions import SubscriptionService
from tracker_core.domain.services.tags import TagService
from tracker_core.domain.services.visibility import VisibilityService
from tracker_core.domain.services.watermark import WatermarkService

__all__ = [
    "ContentStore",
    "DispatchResult",
    "FanOutService",
    "FetchPipeline",
    "NotificationService",
    "PipelineResult",
    "SubscriptionService",
    "TagService",
    "VisibilityService",
    "WatermarkService",
]
