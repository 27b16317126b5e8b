"""Unit tests for the fetch pipeline.

Tests cover:
- Lock discipline (skip, success, no subscribers, failure)
- Due-source selection and first-subscription ordering
- Fetch bounds passed to the provider
- Exactly-once fan-out across runs
- Best-effort reply storage
- Notification dispatch
"""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import func, select

from tracker_core.domain.models import Reply, TenantVisibility, WatermarkRecord, utcnow
from tracker_core.domain.services.fetch_pipeline import (
    FetchPipeline,
    PipelineResult,
    PipelineStatus,
    SourceFetchStats,
)
from tracker_core.domain.services.notifications import DispatchResult, NotificationService
from tracker_core.domain.services.watermark import to_unix_seconds
from tests.factories import (
    FakeLock,
    create_subscription,
    create_tag,
    create_tenant,
    create_watermark,
    make_post,
    make_reply,
)


@pytest.fixture
def notifier():
    notifier = MagicMock()
    notifier.dispatch.return_value = DispatchResult(sent=1, skipped=0)
    return notifier


@pytest.fixture
def pipeline_factory(db_session, mock_provider, fake_lock, notifier, metrics):
    def factory(**overrides):
        kwargs = {
            "db": db_session,
            "provider": mock_provider,
            "lock": fake_lock,
            "notifier": notifier,
            "app_url": "https://tracker.test",
            "metrics": metrics,
        }
        kwargs.update(overrides)
        return FetchPipeline(**kwargs)

    return factory


def _visibility_count(db_session) -> int:
    return db_session.execute(select(func.count()).select_from(TenantVisibility)).scalar()


class TestLockDiscipline:
    """The lock is released exactly once for every acquisition."""

    @pytest.mark.asyncio
    async def test_overlapping_run_is_skipped(self, pipeline_factory, mock_provider, notifier, metrics):
        lock = FakeLock(available=False)
        pipeline = pipeline_factory(lock=lock)

        result = await pipeline.run()

        assert result.status == PipelineStatus.SKIPPED
        assert result.to_response() == {"status": "skipped", "reason": "already_running"}
        assert result.http_status == 200
        assert lock.release_count == 0
        mock_provider.fetch_items.assert_not_called()
        notifier.dispatch.assert_not_called()
        assert metrics.get("pipeline.lock.denied") == 1

    @pytest.mark.asyncio
    async def test_overlap_runs_no_source_queries(self, pipeline_factory, db_session):
        """A denied run does not touch the database."""
        pipeline = pipeline_factory(lock=FakeLock(available=False))
        pipeline.list_sources = MagicMock()

        await pipeline.run()

        pipeline.list_sources.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_subscribers(self, pipeline_factory, fake_lock, notifier, mock_provider):
        result = await pipeline_factory().run()

        assert result.to_response() == {"fetched": [], "skipped": 0}
        assert fake_lock.acquire_count == 1
        assert fake_lock.release_count == 1
        notifier.dispatch.assert_not_called()
        mock_provider.fetch_items.assert_not_called()

    @pytest.mark.asyncio
    async def test_success_releases_once(self, pipeline_factory, fake_lock, db_session, metrics):
        tenant = create_tenant(db_session)
        create_subscription(db_session, tenant, "python")

        result = await pipeline_factory().run()

        assert result.status == PipelineStatus.OK
        assert fake_lock.acquire_count == 1
        assert fake_lock.release_count == 1
        assert metrics.get("pipeline.lock.acquired") == 1
        assert metrics.get("pipeline.lock.released") == 1
        assert metrics.get_histogram_stats("pipeline.run.duration_seconds")["count"] == 1
        assert metrics.get("pipeline.last_run_at") > 0

    @pytest.mark.asyncio
    async def test_failure_returns_500_and_releases(
        self, pipeline_factory, fake_lock, db_session, mock_provider, metrics
    ):
        tenant = create_tenant(db_session)
        create_subscription(db_session, tenant, "python")
        mock_provider.fetch_items.side_effect = RuntimeError("boom")

        result = await pipeline_factory().run()

        assert result.status == PipelineStatus.ERROR
        assert result.http_status == 500
        assert result.to_response() == {"error": "Internal server error"}
        assert fake_lock.release_count == 1
        assert metrics.get("pipeline.runs.failed") == 1

    @pytest.mark.asyncio
    async def test_acquire_error_returns_500(self, pipeline_factory, mock_provider, metrics):
        lock = MagicMock()
        lock.try_acquire.side_effect = RuntimeError("db down")

        result = await pipeline_factory(lock=lock).run()

        assert result.http_status == 500
        assert result.to_response() == {"error": "Internal server error"}
        lock.release.assert_not_called()
        mock_provider.fetch_items.assert_not_called()
        assert metrics.get("pipeline.runs.failed") == 1

    @pytest.mark.asyncio
    async def test_release_error_keeps_result(self, pipeline_factory, metrics):
        lock = MagicMock()
        lock.try_acquire.return_value = True
        lock.release.side_effect = RuntimeError("connection lost")

        result = await pipeline_factory(lock=lock).run()

        assert result.status == PipelineStatus.OK
        assert result.to_response() == {"fetched": [], "skipped": 0}
        lock.release.assert_called_once()
        assert metrics.get("pipeline.lock.released") == 1

    @pytest.mark.asyncio
    async def test_failure_leaves_watermark_untouched(self, pipeline_factory, db_session, mock_provider):
        tenant = create_tenant(db_session)
        create_subscription(db_session, tenant, "python")
        db_session.commit()
        mock_provider.fetch_items.side_effect = RuntimeError("boom")

        await pipeline_factory().run()

        assert db_session.get(WatermarkRecord, "python") is None


class TestDueSources:
    """Tests for source selection."""

    @pytest.mark.asyncio
    async def test_mixed_due_and_not_due(self, pipeline_factory, db_session, mock_provider):
        tenant = create_tenant(db_session)
        create_subscription(db_session, tenant, "react")
        create_subscription(db_session, tenant, "vue")
        create_subscription(db_session, tenant, "angular")
        now = utcnow()
        create_watermark(db_session, "react", now - timedelta(minutes=10))
        create_watermark(db_session, "vue", now - timedelta(minutes=120))

        result = await pipeline_factory().run(now=now)

        assert result.fetched == ["vue", "angular"]
        assert result.skipped == 1
        fetched_sources = [list(c.args[0].keys())[0] for c in mock_provider.fetch_items.call_args_list]
        assert fetched_sources == ["vue", "angular"]

    @pytest.mark.asyncio
    async def test_nothing_due_skips_dispatch(self, pipeline_factory, db_session, notifier):
        tenant = create_tenant(db_session)
        create_subscription(db_session, tenant, "react")
        now = utcnow()
        create_watermark(db_session, "react", now - timedelta(minutes=10))

        result = await pipeline_factory().run(now=now)

        assert result.to_response() == {"fetched": [], "skipped": 1}
        notifier.dispatch.assert_not_called()

    @pytest.mark.asyncio
    async def test_shared_source_is_fetched_once(self, pipeline_factory, db_session, mock_provider):
        alice = create_tenant(db_session, email="alice@example.com")
        bob = create_tenant(db_session, email="bob@example.com")
        create_subscription(db_session, alice, "python")
        create_subscription(db_session, bob, "python")

        result = await pipeline_factory().run()

        assert result.fetched == ["python"]
        assert mock_provider.fetch_items.call_count == 1

    @pytest.mark.asyncio
    async def test_backfill_bound_for_new_source(self, pipeline_factory, db_session, mock_provider):
        tenant = create_tenant(db_session)
        create_subscription(db_session, tenant, "python")
        now = utcnow()

        await pipeline_factory().run(now=now)

        bound = mock_provider.fetch_items.call_args.args[0]["python"]
        expected = to_unix_seconds(now - timedelta(days=7))
        assert abs(bound - expected) <= 5

    @pytest.mark.asyncio
    async def test_watermark_recorded(self, pipeline_factory, db_session):
        tenant = create_tenant(db_session)
        create_subscription(db_session, tenant, "python")
        now = utcnow()

        await pipeline_factory().run(now=now)

        record = db_session.get(WatermarkRecord, "python")
        assert record.last_fetched_at == now
        assert record.refresh_interval_minutes == 60


class TestIngestion:
    """Tests for storage and fan-out during a run."""

    @pytest.mark.asyncio
    async def test_second_run_creates_nothing_new(self, pipeline_factory, db_session, mock_provider):
        tenant = create_tenant(db_session)
        create_subscription(db_session, tenant, "python")
        mock_provider.fetch_items.return_value = [make_post(native_id="t3_a"), make_post(native_id="t3_b")]
        now = utcnow()

        first = await pipeline_factory().run(now=now)
        second = await pipeline_factory().run(now=now + timedelta(hours=2))

        assert sum(s.new_visibility for s in first.sources) == 2
        assert sum(s.new_visibility for s in second.sources) == 0
        assert _visibility_count(db_session) == 2

    @pytest.mark.asyncio
    async def test_replies_are_stored(self, pipeline_factory, db_session, mock_provider):
        tenant = create_tenant(db_session)
        create_subscription(db_session, tenant, "python")
        mock_provider.fetch_items.return_value = [make_post(native_id="t3_a")]
        mock_provider.fetch_replies.return_value = [
            make_reply(native_id="t1_x", parent_native_id="t3_a"),
            make_reply(native_id="t1_y", parent_native_id="t3_a"),
        ]

        result = await pipeline_factory(replies_limit=10).run()

        mock_provider.fetch_replies.assert_awaited_once_with("t3_a", 10)
        assert result.sources[0].replies_stored == 2
        assert db_session.execute(select(func.count()).select_from(Reply)).scalar() == 2

    @pytest.mark.asyncio
    async def test_reply_failure_is_isolated(self, pipeline_factory, db_session, mock_provider):
        tenant = create_tenant(db_session)
        create_subscription(db_session, tenant, "python")
        mock_provider.fetch_items.return_value = [make_post(native_id="t3_a"), make_post(native_id="t3_b")]
        mock_provider.fetch_replies = AsyncMock(
            side_effect=[RuntimeError("replies down"), [make_reply(native_id="t1_z", parent_native_id="t3_b")]]
        )

        result = await pipeline_factory().run()

        assert result.status == PipelineStatus.OK
        assert result.fetched == ["python"]
        assert result.sources[0].replies_stored == 1
        assert db_session.get(WatermarkRecord, "python") is not None

    @pytest.mark.asyncio
    async def test_metrics_recorded(self, pipeline_factory, db_session, mock_provider, metrics):
        tenant = create_tenant(db_session)
        create_subscription(db_session, tenant, "python")
        mock_provider.fetch_items.return_value = [make_post(native_id="t3_a")]

        await pipeline_factory().run()

        assert metrics.get("pipeline.sources.fetched") == 1
        assert metrics.get("pipeline.items.fetched") == 1
        assert metrics.get("pipeline.visibility.created") == 1


class TestNotifications:
    """Tests for the dispatch step."""

    @pytest.mark.asyncio
    async def test_dispatch_once_after_fetching(self, pipeline_factory, db_session, notifier):
        tenant = create_tenant(db_session)
        create_subscription(db_session, tenant, "python")
        create_subscription(db_session, tenant, "rust")
        now = utcnow()

        result = await pipeline_factory().run(now=now)

        notifier.dispatch.assert_called_once_with("https://tracker.test", now)
        assert result.to_response() == {
            "fetched": ["python", "rust"],
            "skipped": 0,
            "emails": {"sent": 1, "skipped": 0},
        }

    @pytest.mark.asyncio
    async def test_post_is_emailed_once_across_runs(
        self, pipeline_factory, db_session, mock_provider, mock_sender
    ):
        tenant = create_tenant(db_session)
        create_subscription(db_session, tenant, "python")
        create_tag(db_session, tenant, "Postgres", ["postgres"])
        notifier = NotificationService(db_session, sender=mock_sender, secret_key="secret")
        mock_provider.fetch_items.return_value = [make_post(native_id="t3_a", title="Postgres tips")]
        now = utcnow()

        first = await pipeline_factory(notifier=notifier).run(now=now)
        mock_provider.fetch_items.return_value = []
        second = await pipeline_factory(notifier=notifier).run(now=now + timedelta(hours=5))

        assert first.emails == DispatchResult(sent=1, skipped=0)
        assert second.emails == DispatchResult(sent=0, skipped=1)
        assert mock_sender.send.call_count == 1

    @pytest.mark.asyncio
    async def test_without_notifier(self, pipeline_factory, db_session):
        tenant = create_tenant(db_session)
        create_subscription(db_session, tenant, "python")

        result = await pipeline_factory(notifier=None).run()

        assert result.to_response() == {"fetched": ["python"], "skipped": 0}


class TestPipelineResult:
    def test_to_dict_totals(self):
        result = PipelineResult(
            fetched=["a", "b"],
            sources=[
                SourceFetchStats(source_name="a", items_fetched=3, new_visibility=2, replies_stored=4),
                SourceFetchStats(source_name="b", items_fetched=1, new_visibility=1, replies_stored=0),
            ],
        )

        summary = result.to_dict()

        assert summary["status"] == "ok"
        assert summary["items_fetched"] == 4
        assert summary["new_visibility"] == 3
        assert summary["replies_stored"] == 4
