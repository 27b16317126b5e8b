"""Integration tests for one-click unsubscribe."""

import time

import pytest
from httpx import AsyncClient

from tracker_core.domain.models import Tenant
from tracker_core.domain.services.tokens import DEFAULT_TOKEN_TTL_SECONDS, create_signed_token
from tests.factories import create_tenant


@pytest.fixture
def tenant(db_session):
    tenant = create_tenant(db_session)
    db_session.commit()
    return tenant


class TestUnsubscribePage:
    """Tests for GET /unsubscribe."""

    @pytest.mark.asyncio
    async def test_valid_token_shows_form(self, client: AsyncClient, tenant, test_settings):
        token = create_signed_token(tenant.id, test_settings.secret_key)

        response = await client.get("/unsubscribe", params={"token": token})

        assert response.status_code == 200
        assert "text/html" in response.headers["content-type"]
        assert 'method="POST"' in response.text
        assert f"/api/unsubscribe?token={token}" in response.text

    @pytest.mark.asyncio
    async def test_page_does_not_unsubscribe(self, client: AsyncClient, db_session, tenant, test_settings):
        token = create_signed_token(tenant.id, test_settings.secret_key)

        await client.get("/unsubscribe", params={"token": token})

        db_session.expire_all()
        assert db_session.get(Tenant, tenant.id).email_notifications is True

    @pytest.mark.asyncio
    async def test_missing_token(self, client: AsyncClient):
        response = await client.get("/unsubscribe")

        assert response.status_code == 400
        assert "missing a token" in response.text

    @pytest.mark.asyncio
    async def test_invalid_token(self, client: AsyncClient):
        response = await client.get("/unsubscribe", params={"token": "forged.token"})

        assert response.status_code == 400
        assert "invalid or has expired" in response.text


class TestUnsubscribe:
    """Tests for POST /unsubscribe."""

    @pytest.mark.asyncio
    async def test_disables_notifications(self, client: AsyncClient, db_session, tenant, test_settings):
        token = create_signed_token(tenant.id, test_settings.secret_key)

        response = await client.post("/unsubscribe", params={"token": token})

        assert response.status_code == 200
        assert response.json() == {"success": True}
        db_session.expire_all()
        assert db_session.get(Tenant, tenant.id).email_notifications is False

    @pytest.mark.asyncio
    async def test_missing_token(self, client: AsyncClient):
        response = await client.post("/unsubscribe")

        assert response.status_code == 400
        assert response.json()["detail"] == "Missing token"

    @pytest.mark.asyncio
    async def test_token_signed_with_other_key(self, client: AsyncClient, tenant):
        token = create_signed_token(tenant.id, "another-key")

        response = await client.post("/unsubscribe", params={"token": token})

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid or expired token"

    @pytest.mark.asyncio
    async def test_expired_token(self, client: AsyncClient, tenant, test_settings):
        issued = time.time() - DEFAULT_TOKEN_TTL_SECONDS - 60
        token = create_signed_token(tenant.id, test_settings.secret_key, now=issued)

        response = await client.post("/unsubscribe", params={"token": token})

        assert response.status_code == 400
