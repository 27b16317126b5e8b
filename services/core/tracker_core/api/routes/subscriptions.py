"""Subscription API routes.

Provides endpoints for:
- GET /subscriptions - List the tenant's subscribed sources
- POST /subscriptions - Subscribe to a source
- DELETE /subscriptions/{id} - Unsubscribe from a source
"""

import logging
from typing import Annotated, Callable

from fastapi import APIRouter, Depends, HTTPException, status

from tracker_core.api.deps import CeleryApp, CurrentTenant, DBSession, SearchProviderDep
from tracker_core.api.schemas.subscriptions import (
    SubscriptionCreate,
    SubscriptionCreateResponse,
    SubscriptionListResponse,
    SubscriptionResponse,
)
from tracker_core.domain.services.subscriptions import (
    SubscriptionError,
    SubscriptionNotFoundError,
    SubscriptionService,
)

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])
logger = logging.getLogger(__name__)

FETCH_TASK_NAME = "fetch.run_pipeline"


def get_fetch_trigger(celery_app: CeleryApp) -> Callable[[], None]:
    """Get a callback that queues an on-demand pipeline run."""

    def trigger() -> None:
        celery_app.send_task(FETCH_TASK_NAME, kwargs={"trigger": "subscribe"})

    return trigger


FetchTrigger = Annotated[Callable[[], None], Depends(get_fetch_trigger)]


@router.get("", response_model=SubscriptionListResponse)
async def list_subscriptions(
    current_tenant: CurrentTenant,
    db: DBSession,
) -> SubscriptionListResponse:
    """List the tenant's subscriptions alphabetically."""
    service = SubscriptionService(db)
    subscriptions = service.list_subscriptions(current_tenant.id)

    return SubscriptionListResponse(
        subscriptions=[SubscriptionResponse.model_validate(s) for s in subscriptions]
    )


@router.post("", response_model=SubscriptionCreateResponse, status_code=status.HTTP_201_CREATED)
async def add_subscription(
    request: SubscriptionCreate,
    current_tenant: CurrentTenant,
    db: DBSession,
    provider: SearchProviderDep,
    trigger_fetch: FetchTrigger,
) -> SubscriptionCreateResponse:
    """Subscribe the tenant to a source.

    Stored posts of the source become visible immediately; a source without
    stored posts gets an on-demand fetch.

    Raises:
        HTTPException: 400 if the name is invalid, already added, or unknown.
    """
    service = SubscriptionService(db, provider=provider, trigger_fetch=trigger_fetch)

    try:
        result = await service.add_subscription(current_tenant.id, request.name)
    except SubscriptionError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )

    return SubscriptionCreateResponse(
        subscription=SubscriptionResponse.model_validate(result.subscription),
        backlog_count=result.backlog_count,
        fetch_triggered=result.fetch_triggered,
    )


@router.delete("/{subscription_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_subscription(
    subscription_id: int,
    current_tenant: CurrentTenant,
    db: DBSession,
) -> None:
    """Unsubscribe the tenant from a source. Already visible posts are kept."""
    service = SubscriptionService(db)

    try:
        service.remove_subscription(current_tenant.id, subscription_id)
    except SubscriptionNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        )
