"""Pydantic schemas for tag API."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TagCreate(BaseModel):
    """Request schema for creating a tag."""

    name: str = Field(..., description="Tag name, unique per tenant")
    terms: list[str] = Field(..., min_length=1, description="Initial search terms")
    color: Optional[str] = Field(None, description="Hex color, e.g. '#6366f1'")


class SearchTermResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    term: str


class TagResponse(BaseModel):
    """Response schema for a tag with its terms."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    color: str
    search_terms: list[SearchTermResponse]


class TagListResponse(BaseModel):
    tags: list[TagResponse]
