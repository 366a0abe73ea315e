# tests/unit/test_fetch_scheduler.py
"""
Unit tests for NewsFetchScheduler.

Slots run against fake fetchers and a real SQLite article store (in-memory,
or file-backed where runs overlap).
"""

import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest

from app.fetch_schedule import FetchSlot, ScheduleConfigError
from app.models import ProviderTag
from app.routers.news import _sources_cache
from app.services.api_fetchers import FetchParams
from app.services.article_store import StoreUnavailableError
from app.services.fetch_scheduler import NewsFetchScheduler, SlotOutcome, SlotState
from app.services.ingestion import IngestionService

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)


def one_param_schedule() -> dict[str, FetchSlot]:
    """MORNING with one parameter set per provider."""
    return {
        "MORNING": FetchSlot(
            name="MORNING",
            time="0 9 * * *",
            description="test morning",
            newsdata_params=(FetchParams(category="business", country="in", language="en"),),
            newsapi_params=(FetchParams(category="business", country="in", page_size=100),),
        ),
        "NIGHT": FetchSlot(
            name="NIGHT",
            time="0 22 * * *",
            description="test night",
            newsdata_params=(FetchParams(category="top", language="en"),),
            newsapi_params=(FetchParams(country="us", page_size=100),),
        ),
    }


async def wait_for(predicate, timeout: float = 3.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def build_scheduler(store, make_fetchers):
    def _build(newsdata=None, newsapi=None, call_log=None, store_override=None, **kwargs):
        fetchers = make_fetchers(newsdata=newsdata, newsapi=newsapi, call_log=call_log)
        ingestion = IngestionService(fetchers, store_override or store)
        kwargs.setdefault("schedule", one_param_schedule())
        kwargs.setdefault("bootstrap_when_empty", False)
        kwargs.setdefault("clock", lambda: NOW)
        return NewsFetchScheduler(ingestion, **kwargs), fetchers

    return _build


class TestExecuteSlot:
    @pytest.mark.asyncio
    async def test_basic_ingestion(self, build_scheduler, store):
        """NewsData returns 2, NewsAPI returns 1: three records committed."""
        scheduler, _ = build_scheduler(newsdata={"per_call": 2}, newsapi={"per_call": 1})

        result = await scheduler.execute_slot("MORNING")

        assert result.status == SlotOutcome.SUCCEEDED
        assert result.articles_saved == 3
        assert result.inserted == 3
        assert store.count_matching() == 3
        assert scheduler.tracker.last_fetch_times()["MORNING"] == NOW
        assert scheduler.tracker.stats()["articles_saved"] == 3
        assert scheduler.slot_state("MORNING") == SlotState.IDLE

    @pytest.mark.asyncio
    async def test_newsapi_records_take_request_context(self, build_scheduler, store):
        scheduler, _ = build_scheduler(newsdata={"per_call": 0}, newsapi={"per_call": 1})

        await scheduler.execute_slot("MORNING")

        record = store.find_recent().records[0]
        assert record.provider == ProviderTag.NEWSAPI
        assert record.category == ["business"]
        assert record.country == ["in"]

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(self, build_scheduler, store):
        scheduler, fetchers = build_scheduler(newsdata={"per_call": 2}, newsapi={"per_call": 1})

        await scheduler.execute_slot("MORNING")
        # Same raw articles again
        for fetcher in fetchers.values():
            fetcher.calls.clear()
        second = await scheduler.execute_slot("MORNING")

        assert second.inserted == 0
        assert second.updated == 3
        assert store.count_matching() == 3

    @pytest.mark.asyncio
    async def test_providers_run_in_order(self, store, make_fetchers):
        call_log = []
        fetchers = make_fetchers(call_log=call_log)
        scheduler = NewsFetchScheduler(
            IngestionService(fetchers, store),
            bootstrap_when_empty=False,
            clock=lambda: NOW,
        )

        await scheduler.execute_slot("MORNING")

        providers = [provider for provider, _ in call_log]
        assert providers == [ProviderTag.NEWSDATA] * 4 + [ProviderTag.NEWSAPI] * 4
        assert [p.category for _, p in call_log[:4]] == ["business", "technology", "business", "technology"]

    @pytest.mark.asyncio
    async def test_provider_failure_is_contained(self, build_scheduler, store):
        """Every NewsData set fails; NewsAPI results still commit."""
        scheduler, fetchers = build_scheduler(newsdata={"fail_all": True}, newsapi={"per_call": 1})

        result = await scheduler.execute_slot("MORNING")

        assert result.status == SlotOutcome.PARTIAL
        assert result.articles_saved == 1
        assert result.failed_param_sets == [
            {
                "provider": "newsdata",
                "params": {"country": "in", "category": "business", "language": "en"},
                "error": "HTTP 429",
            }
        ]
        assert len(fetchers[ProviderTag.NEWSAPI].calls) == 1
        assert store.count_matching() == 1
        assert scheduler.tracker.last_outcomes()["MORNING"]["status"] == "partial"
        assert "MORNING" in scheduler.tracker.last_fetch_times()

    @pytest.mark.asyncio
    async def test_failed_set_is_not_retried(self, store, make_fetchers):
        fetchers = make_fetchers(newsdata={"fail_on": {1}})
        scheduler = NewsFetchScheduler(
            IngestionService(fetchers, store), bootstrap_when_empty=False, clock=lambda: NOW
        )

        result = await scheduler.execute_slot("MORNING")

        assert len(fetchers[ProviderTag.NEWSDATA].calls) == 4
        assert len(result.failed_param_sets) == 1
        assert result.articles_saved == 7

    @pytest.mark.asyncio
    async def test_store_unavailable_fails_slot(self, build_scheduler):
        broken_store = MagicMock()
        broken_store.bulk_upsert.side_effect = StoreUnavailableError("connection refused")
        scheduler, _ = build_scheduler(store_override=broken_store)

        result = await scheduler.execute_slot("MORNING")

        assert result.status == SlotOutcome.FAILED
        assert "article store unavailable" in result.error
        assert scheduler.tracker.last_fetch_times() == {}
        stats = scheduler.tracker.stats()
        assert stats["failed_fetches"] == 1
        assert stats["total_fetches"] == 1
        assert scheduler.slot_state("MORNING") == SlotState.IDLE

    @pytest.mark.asyncio
    async def test_unknown_slot(self, build_scheduler):
        scheduler, fetchers = build_scheduler()

        with pytest.raises(ScheduleConfigError):
            await scheduler.execute_slot("LUNCH")

        assert fetchers[ProviderTag.NEWSDATA].calls == []
        assert scheduler.tracker.stats()["total_fetches"] == 0


class TestManualTrigger:
    @pytest.mark.asyncio
    async def test_trigger_runs_in_background(self, build_scheduler, store):
        scheduler, _ = build_scheduler(newsdata={"per_call": 1}, newsapi={"per_call": 1})

        response = scheduler.trigger_manual("morning")

        assert response == {"schedule": "MORNING", "status": "triggered"}
        await wait_for(lambda: scheduler.tracker.stats()["successful_fetches"] == 1)
        assert store.count_matching() == 2

    @pytest.mark.asyncio
    async def test_trigger_unknown_slot_runs_nothing(self, build_scheduler):
        scheduler, fetchers = build_scheduler()

        with pytest.raises(ScheduleConfigError):
            scheduler.trigger_manual("BRUNCH")

        await asyncio.sleep(0)
        assert fetchers[ProviderTag.NEWSDATA].calls == []
        assert scheduler.get_status()["manual_runs_in_flight"] == 0


class TestSourcesCacheInvalidation:
    @pytest.fixture(autouse=True)
    def cached_sources(self):
        _sources_cache.clear()
        _sources_cache[("in", None, None)] = ["stale"]
        yield
        _sources_cache.clear()

    @pytest.mark.asyncio
    async def test_commit_clears_cached_sources(self, build_scheduler):
        scheduler, _ = build_scheduler()

        await scheduler.execute_slot("MORNING")

        assert len(_sources_cache) == 0

    @pytest.mark.asyncio
    async def test_nothing_committed_keeps_cache(self, build_scheduler):
        scheduler, _ = build_scheduler(newsdata={"fail_all": True}, newsapi={"fail_all": True})

        await scheduler.execute_slot("MORNING")

        assert ("in", None, None) in _sources_cache


class TestOverlappingRuns:
    @pytest.mark.asyncio
    async def test_manual_trigger_during_running_slot(self, build_scheduler, file_store):
        """Both runs upsert the same article ids; one row per id, neither fails."""
        scheduler, fetchers = build_scheduler(
            newsdata={"per_call": 5}, newsapi={"per_call": 5}, store_override=file_store
        )
        in_flight = {"now": 0, "peak": 0}

        for fetcher in fetchers.values():
            page = await fetcher.fetch(FetchParams())

            async def same_page(params, page=page):
                in_flight["now"] += 1
                in_flight["peak"] = max(in_flight["peak"], in_flight["now"])
                await asyncio.sleep(0.05)
                in_flight["now"] -= 1
                return page

            fetcher.fetch = same_page

        scheduler.trigger_manual("MORNING")
        timed = await scheduler.execute_slot("MORNING")
        await wait_for(lambda: scheduler.tracker.stats()["successful_fetches"] == 2)

        assert timed.status == SlotOutcome.SUCCEEDED
        assert timed.articles_saved == 10
        assert scheduler.tracker.stats()["failed_fetches"] == 0
        assert scheduler.tracker.last_outcomes()["MORNING"]["status"] == "succeeded"
        assert file_store.count_matching() == 10
        assert file_store.get_totals(now=NOW)["total"] == 10
        assert in_flight["peak"] == 2
        assert scheduler.slot_state("MORNING") == SlotState.IDLE

    @pytest.mark.asyncio
    async def test_two_slots_commit_concurrently(self, build_scheduler, file_store):
        scheduler, _ = build_scheduler(
            newsdata={"per_call": 50}, newsapi={"per_call": 50}, store_override=file_store
        )

        morning, night = await asyncio.gather(
            scheduler.execute_slot("MORNING"),
            scheduler.execute_slot("NIGHT"),
        )

        assert morning.status == SlotOutcome.SUCCEEDED
        assert night.status == SlotOutcome.SUCCEEDED
        assert morning.articles_saved + night.articles_saved == 200
        assert scheduler.tracker.stats()["failed_fetches"] == 0


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_stop_idempotent(self, build_scheduler):
        scheduler, _ = build_scheduler()

        await scheduler.start()
        await scheduler.start()
        assert scheduler.is_running
        assert len(scheduler._timers) == 2

        await scheduler.stop()
        await scheduler.stop()
        assert not scheduler.is_running
        assert scheduler._timers == {}

    @pytest.mark.asyncio
    async def test_bootstrap_when_store_empty(self, build_scheduler, store):
        scheduler, _ = build_scheduler(
            bootstrap_when_empty=True,
            bootstrap_slot="night",
            bootstrap_delay_seconds=0,
        )

        await scheduler.start()
        try:
            await wait_for(lambda: "NIGHT" in scheduler.tracker.last_fetch_times())
        finally:
            await scheduler.stop()

        assert store.count_matching() == 2

    @pytest.mark.asyncio
    async def test_no_bootstrap_when_store_has_data(self, build_scheduler, store, make_record):
        store.bulk_upsert([make_record()])
        scheduler, fetchers = build_scheduler(bootstrap_when_empty=True, bootstrap_delay_seconds=0)

        await scheduler.start()
        await asyncio.sleep(0.05)
        await scheduler.stop()

        assert fetchers[ProviderTag.NEWSDATA].calls == []

    @pytest.mark.asyncio
    async def test_timer_fires_at_slot_time(self, build_scheduler):
        """A clock set just before 09:00 UTC fires MORNING once."""
        real_now = datetime.now(UTC)
        target = real_now.replace(hour=9, minute=0, second=0, microsecond=0)
        offset = target - real_now - timedelta(seconds=0.2)

        scheduler, _ = build_scheduler(
            schedule={"MORNING": one_param_schedule()["MORNING"]},
            timezone="UTC",
            clock=lambda: datetime.now(UTC) + offset,
        )

        await scheduler.start()
        try:
            await wait_for(lambda: scheduler.tracker.stats()["successful_fetches"] == 1)
            await asyncio.sleep(0.1)
        finally:
            await scheduler.stop()

        assert scheduler.tracker.stats()["total_fetches"] == 1

    @pytest.mark.asyncio
    async def test_stop_cancels_manual_runs(self, build_scheduler):
        scheduler, fetchers = build_scheduler()
        started = asyncio.Event()

        async def slow_fetch(params):
            started.set()
            await asyncio.sleep(60)

        fetchers[ProviderTag.NEWSDATA].fetch = slow_fetch

        scheduler.trigger_manual("MORNING")
        await started.wait()
        await scheduler.stop(cancel_running=True)

        assert scheduler.tracker.last_outcomes()["MORNING"]["error"] == "cancelled"
        assert scheduler.slot_state("MORNING") == SlotState.IDLE

    def test_invalid_timezone(self, build_scheduler):
        with pytest.raises(ScheduleConfigError, match="timezone"):
            build_scheduler(timezone="Mars/Olympus_Mons")

    def test_invalid_bootstrap_slot(self, build_scheduler):
        with pytest.raises(ScheduleConfigError):
            build_scheduler(bootstrap_slot="NOON")

    def test_malformed_slot_time(self, build_scheduler):
        bad = {"BAD": FetchSlot(name="BAD", time="*/5 * * * *", description="")}
        with pytest.raises(ScheduleConfigError):
            build_scheduler(schedule=bad, bootstrap_slot="BAD")


class TestStatus:
    @pytest.mark.asyncio
    async def test_status_shape(self, build_scheduler):
        scheduler, _ = build_scheduler(timezone="Asia/Kolkata")
        await scheduler.execute_slot("MORNING")

        status = scheduler.get_status()

        assert status["is_running"] is False
        assert status["timezone"] == "Asia/Kolkata"
        assert [s["name"] for s in status["schedules"]] == ["MORNING", "NIGHT"]
        morning = status["schedules"][0]
        assert morning["state"] == "idle"
        assert morning["next_run_at"] is None
        assert morning["last_fetch_at"] == NOW.isoformat()
        assert morning["last_outcome"]["status"] == "succeeded"
        assert status["last_fetch_times"] == {"MORNING": NOW.isoformat()}
        assert status["stats"]["successful_fetches"] == 1
        assert status["estimated_credits"]["newsdata"]["estimated"] == 2

    @pytest.mark.asyncio
    async def test_next_run_reported_while_running(self, build_scheduler):
        scheduler, _ = build_scheduler(timezone="Asia/Kolkata")
        await scheduler.start()
        try:
            status = scheduler.get_status()
        finally:
            await scheduler.stop()

        # 12:00 UTC is 17:30 IST; 22:00 IST tonight is 16:30 UTC
        night = status["schedules"][1]
        assert datetime.fromisoformat(night["next_run_at"]) == datetime(2026, 10, 19, 16, 30, tzinfo=UTC)
