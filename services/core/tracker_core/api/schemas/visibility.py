"""Pydantic schemas for post workflow API."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class StatusChangeRequest(BaseModel):
    """Request schema for moving a post to another workflow status."""

    status: Literal["new", "ignored", "done"]
    response_text: Optional[str] = Field(None, description="Response stored when status is done")


class VisibilityResponse(BaseModel):
    """Response schema for a tenant's view of a post."""

    model_config = ConfigDict(from_attributes=True)

    content_item_id: int
    workflow_status: str
    response_text: Optional[str]
    responded_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime
