"""API dependencies for dependency injection."""

from typing import Annotated, Optional

from celery import Celery
from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from tracker_core.config import Settings, get_settings
from tracker_core.domain.models import Tenant
from tracker_core.infra.db import get_sync_session_factory
from tracker_core.providers.arctic_shift import ArcticShiftClient
from tracker_core.providers.base import SearchProvider


def get_db() -> Session:
    """Get a database session."""
    session_factory = get_sync_session_factory()
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_app_settings() -> Settings:
    return get_settings()


def get_search_provider(
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> SearchProvider:
    """Get the search provider used for fetching and source verification."""
    return ArcticShiftClient.from_settings(settings)


def get_celery_app(settings: Annotated[Settings, Depends(get_app_settings)]) -> Celery:
    """Get a Celery client for sending tasks to the worker."""
    return Celery(broker=settings.celery_broker_url, backend=settings.celery_result_backend)


def get_current_tenant(
    db: Annotated[Session, Depends(get_db)],
    x_tenant_id: Annotated[Optional[str], Header()] = None,
) -> Tenant:
    """Get the tenant identified by the upstream auth layer.

    Raises:
        HTTPException: If the header is missing, malformed, or unknown.
    """
    if not x_tenant_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    try:
        tenant_id = int(x_tenant_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    tenant = db.get(Tenant, tenant_id)
    if tenant is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return tenant


# Type aliases for cleaner route signatures
DBSession = Annotated[Session, Depends(get_db)]
AppSettings = Annotated[Settings, Depends(get_app_settings)]
CurrentTenant = Annotated[Tenant, Depends(get_current_tenant)]
SearchProviderDep = Annotated[SearchProvider, Depends(get_search_provider)]
CeleryApp = Annotated[Celery, Depends(get_celery_app)]
