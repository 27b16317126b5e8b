"""Cron trigger for the fetch pipeline.

Provides endpoints for:
- GET /cron/fetch-posts - Run one fetch pipeline pass
"""

import hmac
import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from fastapi.responses import JSONResponse

from tracker_core.api.deps import AppSettings, DBSession
from tracker_core.domain.services.fetch_pipeline import FetchPipeline

router = APIRouter(prefix="/cron", tags=["cron"])
logger = logging.getLogger(__name__)


def verify_cron_secret(
    settings: AppSettings,
    authorization: Annotated[Optional[str], Header()] = None,
) -> None:
    """Require ``Authorization: Bearer <cron_secret>`` when a secret is configured."""
    if not settings.cron_secret:
        return

    expected = f"Bearer {settings.cron_secret}"
    if not authorization or not hmac.compare_digest(
        authorization.encode("utf-8"), expected.encode("utf-8")
    ):
        logger.warning("Rejected cron request with invalid authorization")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )


def get_fetch_pipeline(db: DBSession, settings: AppSettings) -> FetchPipeline:
    """Get a pipeline wired to the configured provider, lock and mailer."""
    return FetchPipeline.from_settings(db, settings, trigger="cron")


@router.get("/fetch-posts", dependencies=[Depends(verify_cron_secret)])
async def fetch_posts(
    pipeline: Annotated[FetchPipeline, Depends(get_fetch_pipeline)],
) -> JSONResponse:
    """Run the fetch pipeline once.

    Returns:
        200 with the run summary (or a skip notice when another run holds
        the lock), 500 when the run failed.
    """
    result = await pipeline.run()
    return JSONResponse(status_code=result.http_status, content=result.to_response())
