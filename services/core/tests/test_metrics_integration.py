"""Integration tests for the metrics endpoint."""

import pytest
from httpx import AsyncClient

from tracker_core.api.deps import get_app_settings
from tracker_core.api.routes.cron import get_fetch_pipeline
from tracker_core.api.routes.metrics import get_metrics_collector
from tracker_core.domain.services.fetch_pipeline import FetchPipeline
from tests.factories import FakeLock, create_subscription, create_tenant, make_post


@pytest.fixture
def collector(test_app, metrics):
    test_app.dependency_overrides[get_metrics_collector] = lambda: metrics
    return metrics


class TestMetricsEndpoint:
    """Tests for GET /metrics."""

    @pytest.mark.asyncio
    async def test_empty_collector(self, client: AsyncClient, collector):
        response = await client.get("/metrics")

        assert response.status_code == 200
        body = response.json()
        assert body["service"] == "tracker-core"
        assert "collected_at" in body
        assert body["application"] == {"counters": {}, "gauges": {}, "histograms": {}}

    @pytest.mark.asyncio
    async def test_reports_pipeline_run(
        self, client: AsyncClient, test_app, db_session, sync_session_factory, mock_provider, collector
    ):
        tenant = create_tenant(db_session)
        create_subscription(db_session, tenant, "python")
        db_session.commit()
        mock_provider.fetch_items.return_value = [make_post(native_id="t3_a")]
        test_app.dependency_overrides[get_fetch_pipeline] = lambda: FetchPipeline(
            db=sync_session_factory(),
            provider=mock_provider,
            lock=FakeLock(),
            metrics=collector,
        )

        await client.get("/cron/fetch-posts")
        response = await client.get("/metrics")

        application = response.json()["application"]
        assert application["counters"]["pipeline.lock.acquired"] == 1
        assert application["counters"]["pipeline.lock.released"] == 1
        assert application["counters"]["pipeline.items.fetched"] == 1
        assert application["counters"]["pipeline.visibility.created"] == 1
        assert application["gauges"]["pipeline.last_run_at"] > 0
        assert application["histograms"]["pipeline.run.duration_seconds"]["count"] == 1

    @pytest.mark.asyncio
    async def test_requires_cron_secret_when_configured(
        self, client: AsyncClient, test_app, test_settings, collector
    ):
        settings = test_settings.model_copy(update={"cron_secret": "s3cret"})
        test_app.dependency_overrides[get_app_settings] = lambda: settings

        denied = await client.get("/metrics")
        allowed = await client.get("/metrics", headers={"Authorization": "Bearer s3cret"})

        assert denied.status_code == 401
        assert allowed.status_code == 200
