"""
Integration Tests - Completeness Tracker
"""
import uuid

import pytest
from sqlalchemy import update

from judicial_cache.access import Caller
from judicial_cache.completeness import CompletenessTracker, ProgressUpdate, SyncPhase
from judicial_cache.database.models import JudgeSyncProgress
from judicial_cache.errors import AuthorizationError, ValidationError

SERVICE = Caller.service()
READER = Caller.anonymous()


@pytest.fixture
def tracker(session_factory, cache_settings, clock) -> CompletenessTracker:
    return CompletenessTracker(session_factory, settings=cache_settings, clock=clock)


class TestUpsertProgress:
    """Tests for upsert_progress"""

    @pytest.mark.asyncio
    async def test_discovery_to_complete(self, tracker):
        judge = uuid.uuid4()

        steps = [
            ({}, SyncPhase.DISCOVERY),
            ({"has_positions": True}, SyncPhase.POSITIONS),
            ({"has_education": True, "has_political_affiliations": True}, SyncPhase.DETAILS),
            ({"opinions_count": 120}, SyncPhase.OPINIONS),
            ({"dockets_count": 40, "total_cases_count": 160}, SyncPhase.COMPLETE),
        ]
        for update_fields, expected in steps:
            snapshot = await tracker.upsert_progress(SERVICE, judge, update_fields)
            assert snapshot.sync_phase == expected

        assert snapshot.is_complete is True
        assert snapshot.is_analytics_ready is False

        snapshot = await tracker.upsert_progress(SERVICE, judge, {"total_cases_count": 500})
        assert snapshot.is_analytics_ready is True
        assert snapshot.sync_phase == SyncPhase.COMPLETE

    @pytest.mark.asyncio
    async def test_first_contact_creates_defaults(self, tracker, clock):
        judge = uuid.uuid4()

        snapshot = await tracker.upsert_progress(SERVICE, judge, ProgressUpdate())

        assert snapshot.judge_id == judge
        assert snapshot.has_positions is False
        assert snapshot.opinions_count == 0
        assert snapshot.error_count == 0
        assert snapshot.created_at == clock.now
        assert snapshot.last_synced_at == clock.now

    @pytest.mark.asyncio
    async def test_merge_leaves_unset_fields_alone(self, tracker, clock):
        judge = uuid.uuid4()
        first = await tracker.upsert_progress(SERVICE, judge, {"has_positions": True, "opinions_count": 7})

        clock.advance(minutes=5)
        second = await tracker.upsert_progress(SERVICE, judge, {"dockets_count": 3})

        assert second.has_positions is True
        assert second.opinions_count == 7
        assert second.dockets_count == 3
        assert second.positions_synced_at == first.positions_synced_at
        assert second.dockets_synced_at == clock.now
        assert second.education_synced_at is None

    @pytest.mark.asyncio
    async def test_flags_can_be_cleared(self, tracker):
        judge = uuid.uuid4()
        await tracker.upsert_progress(SERVICE, judge, {"has_positions": True})

        snapshot = await tracker.upsert_progress(SERVICE, judge, {"has_positions": False})

        assert snapshot.sync_phase == SyncPhase.DISCOVERY

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "bad_update",
        [
            {"opinions_count": -1},
            {"has_positions": "yes"},
            {"opinions_count": 2.5},
            {"sync_phase": "complete"},
            {"is_complete": True},
        ],
    )
    async def test_invalid_update_rejected(self, tracker, bad_update):
        judge = uuid.uuid4()

        with pytest.raises(ValidationError):
            await tracker.upsert_progress(SERVICE, judge, bad_update)

        assert await tracker.get_progress(READER, judge) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("caller", [Caller.anonymous(), Caller.authenticated("clerk")])
    async def test_non_service_cannot_write(self, tracker, caller):
        judge = uuid.uuid4()
        await tracker.upsert_progress(SERVICE, judge, {"has_positions": True})

        with pytest.raises(AuthorizationError):
            await tracker.upsert_progress(caller, judge, {"opinions_count": 10})
        with pytest.raises(AuthorizationError):
            await tracker.record_error(caller, judge, "nope")

        snapshot = await tracker.get_progress(READER, judge)
        assert snapshot.opinions_count == 0
        assert snapshot.error_count == 0


class TestRecordError:
    """Tests for record_error"""

    @pytest.mark.asyncio
    async def test_counts_errors_without_touching_phase(self, tracker):
        judge = uuid.uuid4()
        await tracker.upsert_progress(SERVICE, judge, {"has_positions": True})

        await tracker.record_error(SERVICE, judge, "timeout")
        snapshot = await tracker.record_error(SERVICE, judge, "rate limited")

        assert snapshot.error_count == 2
        assert snapshot.last_error == "rate limited"
        assert snapshot.sync_phase == SyncPhase.POSITIONS

    @pytest.mark.asyncio
    async def test_error_for_unseen_judge_creates_record(self, tracker):
        snapshot = await tracker.record_error(SERVICE, uuid.uuid4(), "not found upstream")

        assert snapshot.error_count == 1
        assert snapshot.sync_phase == SyncPhase.DISCOVERY

    @pytest.mark.asyncio
    async def test_empty_message_rejected(self, tracker):
        with pytest.raises(ValidationError):
            await tracker.record_error(SERVICE, uuid.uuid4(), "  ")


class TestReads:
    """Tests for the listing and summary reads"""

    @pytest.mark.asyncio
    async def test_listings(self, tracker):
        ready = uuid.uuid4()
        positions = uuid.uuid4()
        complete = uuid.uuid4()
        await tracker.upsert_progress(SERVICE, ready, {"total_cases_count": 800})
        await tracker.upsert_progress(SERVICE, positions, {"has_positions": True})
        await tracker.upsert_progress(SERVICE, complete, {
            "has_positions": True,
            "has_education": True,
            "has_political_affiliations": True,
            "opinions_count": 1,
            "dockets_count": 1,
        })

        by_phase = await tracker.list_by_phase(READER, "positions")
        done = await tracker.list_by_completion(READER, True)
        not_done = await tracker.list_by_completion(READER, False)
        analytics = await tracker.list_analytics_ready(READER)

        assert [s.judge_id for s in by_phase] == [positions]
        assert [s.judge_id for s in done] == [complete]
        assert [s.judge_id for s in not_done] == [ready, positions]
        assert [s.judge_id for s in analytics] == [ready]

    @pytest.mark.asyncio
    async def test_paging(self, tracker):
        judges = [uuid.uuid4() for _ in range(3)]
        for judge in judges:
            await tracker.upsert_progress(SERVICE, judge, {})

        page = await tracker.list_by_phase(READER, SyncPhase.DISCOVERY, limit=2, offset=1)

        assert [s.judge_id for s in page] == judges[1:]

    @pytest.mark.asyncio
    async def test_bad_listing_arguments(self, tracker):
        with pytest.raises(ValidationError):
            await tracker.list_by_phase(READER, "finished")
        with pytest.raises(ValidationError):
            await tracker.list_by_completion(READER, limit=0)
        with pytest.raises(ValidationError):
            await tracker.list_analytics_ready(READER, limit=1001)

    @pytest.mark.asyncio
    async def test_largest_page_allowed(self, tracker):
        await tracker.upsert_progress(SERVICE, uuid.uuid4(), {})

        page = await tracker.list_by_completion(READER, False, limit=1000)

        assert len(page) == 1

    @pytest.mark.asyncio
    async def test_read_timestamps_match_write(self, tracker):
        judge = uuid.uuid4()

        written = await tracker.upsert_progress(SERVICE, judge, {"has_positions": True})
        read = await tracker.get_progress(READER, judge)

        assert read.updated_at == written.updated_at
        assert read.positions_synced_at == written.positions_synced_at
        assert read.created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_summary(self, tracker):
        await tracker.upsert_progress(SERVICE, uuid.uuid4(), {"has_positions": True, "opinions_count": 10})
        await tracker.upsert_progress(SERVICE, uuid.uuid4(), {"total_cases_count": 600, "dockets_count": 4})
        await tracker.record_error(SERVICE, uuid.uuid4(), "boom")

        summary = await tracker.summary(READER)

        assert summary.total_judges == 3
        assert summary.analytics_ready_judges == 1
        assert summary.judges_with_positions == 1
        assert summary.judges_with_opinions == 1
        assert summary.judges_with_dockets == 1
        assert summary.judges_with_errors == 1
        assert summary.phase_counts[SyncPhase.OPINIONS] == 1
        assert summary.phase_counts[SyncPhase.DOCKETS] == 1
        assert summary.phase_counts[SyncPhase.DISCOVERY] == 1
        assert summary.phase_counts[SyncPhase.COMPLETE] == 0
        assert summary.avg_total_cases_per_judge == 200.0

    @pytest.mark.asyncio
    async def test_summary_of_empty_table(self, tracker):
        summary = await tracker.summary(READER)

        assert summary.total_judges == 0
        assert summary.avg_opinions_per_judge == 0.0


class TestReconcile:
    """Tests for reconcile"""

    @pytest.mark.asyncio
    async def test_repairs_out_of_band_changes(self, tracker, session_factory):
        judges = [uuid.uuid4() for _ in range(5)]
        for judge in judges:
            await tracker.upsert_progress(SERVICE, judge, {"has_positions": True})

        # Bypass the tracker, as a manual SQL fix would
        async with session_factory() as session:
            async with session.begin():
                await session.execute(
                    update(JudgeSyncProgress)
                    .where(JudgeSyncProgress.judge_id.in_(judges[:2]))
                    .values(opinions_count=9, total_cases_count=700)
                )

        report = await tracker.reconcile(SERVICE)

        assert report.scanned == 5
        assert report.corrected == 2
        fixed = await tracker.get_progress(READER, judges[0])
        assert fixed.sync_phase == SyncPhase.OPINIONS
        assert fixed.is_analytics_ready is True

        again = await tracker.reconcile(SERVICE)
        assert again.corrected == 0

    @pytest.mark.asyncio
    async def test_reconcile_requires_service(self, tracker):
        with pytest.raises(AuthorizationError):
            await tracker.reconcile(READER)
