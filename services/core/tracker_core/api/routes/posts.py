"""Post workflow API routes.

Provides endpoints for:
- PATCH /posts/{content_item_id}/status - Move a post to another workflow status
"""

from fastapi import APIRouter, HTTPException, status

from tracker_core.api.deps import CurrentTenant, DBSession
from tracker_core.api.schemas.visibility import StatusChangeRequest, VisibilityResponse
from tracker_core.domain.services.visibility import (
    InvalidStatusError,
    VisibilityNotFoundError,
    VisibilityService,
)

router = APIRouter(prefix="/posts", tags=["posts"])


@router.patch("/{content_item_id}/status", response_model=VisibilityResponse)
async def change_post_status(
    content_item_id: int,
    request: StatusChangeRequest,
    current_tenant: CurrentTenant,
    db: DBSession,
) -> VisibilityResponse:
    """Change the tenant's workflow status for a post."""
    service = VisibilityService(db)

    try:
        visibility = service.change_status(
            current_tenant.id,
            content_item_id,
            request.status,
            response_text=request.response_text,
        )
    except InvalidStatusError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )
    except VisibilityNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        )

    return VisibilityResponse.model_validate(visibility)
