"""API routes."""

from tracker_core.api.routes import cron, posts, subscriptions, tags, unsubscribe

__all__ = ["cron", "posts", "subscriptions", "tags", "unsubscribe"]
