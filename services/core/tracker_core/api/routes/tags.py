"""Tag API routes.

Provides endpoints for:
- GET /tags - List the tenant's tags with their search terms
- POST /tags - Create a tag
- DELETE /tags/{id} - Delete a tag and its associations
"""

from fastapi import APIRouter, HTTPException, status

from tracker_core.api.deps import CurrentTenant, DBSession
from tracker_core.api.schemas.tags import TagCreate, TagListResponse, TagResponse
from tracker_core.domain.services.tags import TagError, TagNotFoundError, TagService

router = APIRouter(prefix="/tags", tags=["tags"])


@router.get("", response_model=TagListResponse)
async def list_tags(current_tenant: CurrentTenant, db: DBSession) -> TagListResponse:
    service = TagService(db)
    return TagListResponse(
        tags=[TagResponse.model_validate(t) for t in service.list_tags(current_tenant.id)]
    )


@router.post("", response_model=TagResponse, status_code=status.HTTP_201_CREATED)
async def create_tag(
    request: TagCreate,
    current_tenant: CurrentTenant,
    db: DBSession,
) -> TagResponse:
    """Create a tag. New tags only apply to posts that become visible later."""
    service = TagService(db)

    try:
        tag = service.create_tag(
            current_tenant.id, request.name, request.terms, color=request.color
        )
    except TagError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )

    return TagResponse.model_validate(tag)


@router.delete("/{tag_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_tag(tag_id: int, current_tenant: CurrentTenant, db: DBSession) -> None:
    service = TagService(db)

    try:
        service.delete_tag(current_tenant.id, tag_id)
    except TagNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        )
