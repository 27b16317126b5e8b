"""Unit tests for fan-out materialization and tag matching."""

from sqlalchemy import func, select

from tracker_core.domain.models import TenantTagAssociation, TenantVisibility, WorkflowStatus
from tracker_core.domain.services.fanout import FanOutService, TagRule, canonical_text, match_tags
from tests.factories import create_content_item, create_subscription, create_tag, create_tenant, make_post


def _visibility_count(db_session, tenant_id=None) -> int:
    query = select(func.count()).select_from(TenantVisibility)
    if tenant_id is not None:
        query = query.where(TenantVisibility.tenant_id == tenant_id)
    return db_session.execute(query).scalar()


class TestMatchTags:
    """Tests for tag matching."""

    def test_substring_case_insensitive(self):
        rules = [
            TagRule(tag_id=1, terms=["yugabyte"]),
            TagRule(tag_id=2, terms=["postgres"]),
            TagRule(tag_id=3, terms=["mongodb"]),
        ]

        assert match_tags("Using Yugabyte with Postgres", rules) == {1, 2}

    def test_any_term_matches(self):
        rules = [TagRule(tag_id=1, terms=["kafka", "pulsar"])]

        assert match_tags("Apache Pulsar in prod", rules) == {1}

    def test_body_is_matched(self):
        text = canonical_text("Question", "We migrated to Postgres")

        assert match_tags(text, [TagRule(tag_id=7, terms=["postgres"])]) == {7}

    def test_missing_body(self):
        assert canonical_text("Title", None) == "Title "

    def test_no_rules(self):
        assert match_tags("anything", []) == set()


class TestFanOut:
    """Tests for fan_out."""

    def test_creates_visibility_for_every_subscriber(self, db_session):
        alice = create_tenant(db_session, email="alice@example.com")
        bob = create_tenant(db_session, email="bob@example.com")
        carol = create_tenant(db_session, email="carol@example.com")
        create_subscription(db_session, alice, "python")
        create_subscription(db_session, bob, "python")
        create_subscription(db_session, carol, "rust")
        service = FanOutService(db_session)

        result = service.fan_out("python", [make_post(native_id="t3_a"), make_post(native_id="t3_b")])

        assert result.items_received == 2
        assert result.items_stored == 2
        assert result.new_visibility_count == 4
        assert _visibility_count(db_session, alice.id) == 2
        assert _visibility_count(db_session, bob.id) == 2
        assert _visibility_count(db_session, carol.id) == 0

    def test_new_rows_start_as_new(self, db_session):
        alice = create_tenant(db_session)
        create_subscription(db_session, alice, "python")

        FanOutService(db_session).fan_out("python", [make_post(native_id="t3_a")])

        visibility = db_session.execute(select(TenantVisibility)).scalar_one()
        assert visibility.workflow_status == WorkflowStatus.NEW
        assert visibility.responded_at is None

    def test_exactly_once(self, db_session):
        alice = create_tenant(db_session)
        create_subscription(db_session, alice, "python")
        service = FanOutService(db_session)
        posts = [make_post(native_id="t3_a"), make_post(native_id="t3_b")]
        service.fan_out("python", posts)

        result = service.fan_out("python", posts)

        assert result.items_stored == 0
        assert result.new_visibility_count == 0
        assert _visibility_count(db_session) == 2

    def test_tags_associated_at_first_visibility(self, db_session):
        alice = create_tenant(db_session)
        create_subscription(db_session, alice, "databases")
        yugabyte = create_tag(db_session, alice, "Yugabyte", ["yugabyte"])
        postgres = create_tag(db_session, alice, "Postgres", ["postgres"])
        create_tag(db_session, alice, "Mongo", ["mongodb"])

        result = FanOutService(db_session).fan_out(
            "databases", [make_post(native_id="t3_a", source_name="databases", title="Using Yugabyte with Postgres")]
        )

        assert result.new_tag_count == 2
        tag_ids = set(db_session.execute(select(TenantTagAssociation.tag_id)).scalars())
        assert tag_ids == {yugabyte.id, postgres.id}

    def test_tags_use_each_tenants_own_rules(self, db_session):
        alice = create_tenant(db_session, email="alice@example.com")
        bob = create_tenant(db_session, email="bob@example.com")
        create_subscription(db_session, alice, "python")
        create_subscription(db_session, bob, "python")
        create_tag(db_session, alice, "Async", ["asyncio"])

        FanOutService(db_session).fan_out("python", [make_post(native_id="t3_a", title="asyncio tips")])

        rows = db_session.execute(select(TenantTagAssociation.tenant_id)).scalars().all()
        assert rows == [alice.id]

    def test_later_tag_changes_do_not_retag(self, db_session):
        alice = create_tenant(db_session)
        create_subscription(db_session, alice, "python")
        service = FanOutService(db_session)
        service.fan_out("python", [make_post(native_id="t3_a", title="asyncio tips")])

        create_tag(db_session, alice, "Async", ["asyncio"])
        service.fan_out("python", [make_post(native_id="t3_a", title="asyncio tips")])

        count = db_session.execute(select(func.count()).select_from(TenantTagAssociation)).scalar()
        assert count == 0

    def test_matches_stored_copy_not_fetched_copy(self, db_session):
        """A post already stored under its first title keeps matching by that title."""
        create_content_item(db_session, native_id="t3_a", title="Plain title")
        alice = create_tenant(db_session)
        create_subscription(db_session, alice, "python")
        create_tag(db_session, alice, "Async", ["asyncio"])

        result = FanOutService(db_session).fan_out(
            "python", [make_post(native_id="t3_a", title="Now about asyncio")]
        )

        assert result.new_visibility_count == 1
        assert result.new_tag_count == 0

    def test_no_subscribers_still_stores(self, db_session):
        result = FanOutService(db_session).fan_out("python", [make_post(native_id="t3_a")])

        assert result.items_stored == 1
        assert result.new_visibility_count == 0


class TestMaterializeBacklog:
    """Tests for materialize_backlog."""

    def test_makes_all_stored_items_visible(self, db_session):
        create_content_item(db_session, native_id="t3_a", title="asyncio intro")
        create_content_item(db_session, native_id="t3_b", title="typing")
        create_content_item(db_session, native_id="t3_c", source_name="rust")
        alice = create_tenant(db_session)
        tag = create_tag(db_session, alice, "Async", ["asyncio"])

        created = FanOutService(db_session).materialize_backlog(alice.id, "python")

        assert created == 2
        assert _visibility_count(db_session, alice.id) == 2
        tag_ids = db_session.execute(select(TenantTagAssociation.tag_id)).scalars().all()
        assert tag_ids == [tag.id]

    def test_is_idempotent(self, db_session):
        create_content_item(db_session, native_id="t3_a")
        alice = create_tenant(db_session)
        service = FanOutService(db_session)
        service.materialize_backlog(alice.id, "python")

        assert service.materialize_backlog(alice.id, "python") == 0
