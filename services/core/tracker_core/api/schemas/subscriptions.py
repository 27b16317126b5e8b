"""Pydantic schemas for subscription API."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class SubscriptionCreate(BaseModel):
    """Request schema for subscribing to a source."""

    name: str = Field(..., description="Subreddit name, with or without the 'r/' prefix")


class SubscriptionResponse(BaseModel):
    """Response schema for a subscription."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    source_name: str
    created_at: datetime


class SubscriptionCreateResponse(BaseModel):
    """Response schema for a new subscription."""

    subscription: SubscriptionResponse
    backlog_count: int = Field(0, description="Stored posts made visible immediately")
    fetch_triggered: bool = Field(False, description="Whether an on-demand fetch was queued")


class SubscriptionListResponse(BaseModel):
    subscriptions: list[SubscriptionResponse]
