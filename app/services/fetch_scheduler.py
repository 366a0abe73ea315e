# app/services/fetch_scheduler.py
"""
News fetch scheduler.

Background asyncio tasks, one per configured slot, each sleeping until the
slot's next wall-clock time in the configured timezone and then executing
the slot:

    NewsData.io parameter sets (in order) -> NewsAPI.org parameter sets
    -> one bulk upsert for everything the slot collected

Per-slot state: idle -> running -> (succeeded | partial | failed) -> idle.
A slot failure is recorded and logged; it never escapes a timer task.

The scheduler is owned by the application's lifespan and kept on
app.state; there is no module-level instance.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.fetch_schedule import (
    FETCH_SCHEDULE,
    FetchSlot,
    ScheduleConfigError,
    get_slot,
    next_run_at,
    parse_daily_cron,
)
from app.logging_config import log_slot
from app.models import ProviderTag, utcnow
from app.services.api_fetchers.base import FetchParams
from app.services.article_store import StoreUnavailableError
from app.services.freshness import FreshnessTracker
from app.services.ingestion import IngestionService

logger = logging.getLogger(__name__)


class SlotState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class SlotOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    PARTIAL = "partial"      # committed, but some parameter sets failed
    FAILED = "failed"        # nothing could be committed


@dataclass
class SlotRunResult:
    """Outcome of one slot execution."""

    slot: str
    status: SlotOutcome
    started_at: datetime
    finished_at: datetime
    articles_saved: int = 0
    inserted: int = 0
    updated: int = 0
    rejected: int = 0
    param_sets_attempted: int = 0
    failed_param_sets: list[dict] = field(default_factory=list)
    record_errors: list[dict] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        data["started_at"] = self.started_at.isoformat()
        data["finished_at"] = self.finished_at.isoformat()
        return data


class NewsFetchScheduler:
    """
    Background scheduler for timed news fetches.

    Also runs manual triggers as fire-and-forget background tasks; callers
    poll get_status() for the outcome.
    """

    def __init__(
        self,
        ingestion: IngestionService,
        tracker: FreshnessTracker | None = None,
        schedule: dict[str, FetchSlot] | None = None,
        timezone: str = "Asia/Kolkata",
        bootstrap_when_empty: bool = True,
        bootstrap_slot: str = "MORNING",
        bootstrap_delay_seconds: float = 3.0,
        clock=utcnow,
    ):
        """
        Args:
            ingestion: Fetch/normalize/commit service
            tracker: In-memory freshness state; a new one is created if omitted
            schedule: Slot table, FETCH_SCHEDULE by default
            timezone: IANA zone the slot times are interpreted in
            bootstrap_when_empty: Run `bootstrap_slot` on start when the store is empty
            bootstrap_delay_seconds: Settle delay before the bootstrap run

        Raises:
            ScheduleConfigError: unknown timezone, malformed slot time or
                unknown bootstrap slot
        """
        self.ingestion = ingestion
        self.schedule = FETCH_SCHEDULE if schedule is None else schedule
        self.tracker = tracker or FreshnessTracker(self.schedule)
        self._clock = clock

        try:
            self._tz = ZoneInfo(timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ScheduleConfigError(f"Unknown timezone: {timezone!r}") from e

        for slot in self.schedule.values():
            parse_daily_cron(slot.time)

        self._bootstrap_when_empty = bootstrap_when_empty
        self._bootstrap_slot = get_slot(bootstrap_slot, self.schedule).name
        self._bootstrap_delay = bootstrap_delay_seconds

        self._running = False
        self._timers: dict[str, asyncio.Task] = {}
        self._bootstrap_task: asyncio.Task | None = None
        self._manual_tasks: set[asyncio.Task] = set()
        self._active_runs: dict[str, int] = {name: 0 for name in self.schedule}

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def timezone(self) -> ZoneInfo:
        return self._tz

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Arm one timer per slot. No-op when already running."""
        if self._running:
            logger.info("Fetch scheduler already running")
            return

        self._running = True
        for slot in self.schedule.values():
            self._timers[slot.name] = asyncio.create_task(
                self._slot_loop(slot), name=f"fetch-slot-{slot.name}"
            )

        logger.info(
            f"Fetch scheduler started with {len(self._timers)} slots ({self._tz.key})",
            extra={"event": "scheduler_start"},
        )

        if self._bootstrap_when_empty and await self._store_is_empty():
            logger.info(f"Article store is empty, bootstrapping with {self._bootstrap_slot}")
            self._bootstrap_task = asyncio.create_task(self._bootstrap(), name="fetch-bootstrap")

    async def stop(self, cancel_running: bool = False) -> None:
        """
        Disarm all timers. Idempotent.

        Args:
            cancel_running: Also cancel in-flight manual runs (used on shutdown)
        """
        tasks = list(self._timers.values())
        if self._bootstrap_task is not None:
            tasks.append(self._bootstrap_task)
        if cancel_running:
            tasks.extend(self._manual_tasks)

        was_running = self._running
        self._running = False

        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        self._timers.clear()
        self._bootstrap_task = None

        if was_running:
            logger.info("Fetch scheduler stopped", extra={"event": "scheduler_stop"})

    async def _store_is_empty(self) -> bool:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self.ingestion.store.is_empty)
        except StoreUnavailableError as e:
            logger.error(f"Could not check article store on start: {e}")
            return False

    async def _bootstrap(self) -> None:
        await asyncio.sleep(self._bootstrap_delay)
        await self.execute_slot(self._bootstrap_slot)

    async def _slot_loop(self, slot: FetchSlot) -> None:
        """Sleep until the slot's next wall-clock time, run it, repeat."""
        while self._running:
            now = self._clock()
            target = next_run_at(slot, now, self._tz)
            delay = max(0.0, (target - now).total_seconds())
            logger.debug(f"Next {slot.name} fetch at {target.isoformat()} (in {int(delay)}s)")

            await asyncio.sleep(delay)
            if not self._running:
                break

            # execute_slot contains its own failures
            await self.execute_slot(slot.name)

            # Never fire twice for the same target if the run finished early
            while self._clock() < target:
                await asyncio.sleep(1)

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def _param_sets(self, slot: FetchSlot) -> list[tuple[ProviderTag, FetchParams]]:
        return [(ProviderTag.NEWSDATA, p) for p in slot.newsdata_params] + [
            (ProviderTag.NEWSAPI, p) for p in slot.newsapi_params
        ]

    async def execute_slot(self, name: str) -> SlotRunResult:
        """
        Execute one slot now.

        Provider failures and store outages are recorded in the result and in
        the tracker; nothing but cancellation propagates.

        Raises:
            ScheduleConfigError: unknown slot name
        """
        slot = get_slot(name, self.schedule)
        self._active_runs[slot.name] = self._active_runs.get(slot.name, 0) + 1
        self.tracker.mark_running(slot.name)
        started_at = self._clock()

        try:
            with log_slot(slot.name):
                collected = await self.ingestion.collect(self._param_sets(slot))
                upsert = await self.ingestion.commit(collected.records)
        except asyncio.CancelledError:
            self.tracker.record_failure(slot.name, "cancelled", self._clock())
            raise
        except StoreUnavailableError as e:
            return self._failed(slot, started_at, f"article store unavailable: {e}")
        except Exception as e:
            return self._failed(slot, started_at, f"unexpected error: {e}")
        finally:
            self._active_runs[slot.name] -= 1

        if upsert.committed:
            from app.routers.news import invalidate_sources_cache

            invalidate_sources_cache()

        finished_at = self._clock()
        status = SlotOutcome.PARTIAL if collected.failures else SlotOutcome.SUCCEEDED
        result = SlotRunResult(
            slot=slot.name,
            status=status,
            started_at=started_at,
            finished_at=finished_at,
            articles_saved=upsert.committed,
            inserted=upsert.inserted,
            updated=upsert.updated,
            rejected=collected.rejected,
            param_sets_attempted=collected.attempted,
            failed_param_sets=collected.failures,
            record_errors=[{"article_id": e.article_id, "message": e.message} for e in upsert.errors],
        )
        self.tracker.record_success(slot.name, upsert.committed, finished_at, status=status.value)

        logger.info(
            f"Slot {slot.name} {status.value}: {upsert.committed} saved "
            f"({collected.succeeded}/{collected.attempted} parameter sets ok)",
            extra={
                "event": "slot_result",
                "status": status.value,
                "articles": upsert.committed,
                "inserted": upsert.inserted,
                "updated": upsert.updated,
                "errors": len(upsert.errors),
                "rejected": collected.rejected,
            },
        )
        return result

    def _failed(self, slot: FetchSlot, started_at: datetime, error: str) -> SlotRunResult:
        finished_at = self._clock()
        self.tracker.record_failure(slot.name, error, finished_at)
        return SlotRunResult(
            slot=slot.name,
            status=SlotOutcome.FAILED,
            started_at=started_at,
            finished_at=finished_at,
            error=error,
        )

    def trigger_manual(self, name: str) -> dict:
        """
        Run a slot in the background and return immediately.

        Must be called from inside the running event loop.

        Raises:
            ScheduleConfigError: unknown slot name (checked before anything runs)
        """
        slot = get_slot(name, self.schedule)
        task = asyncio.create_task(self.execute_slot(slot.name), name=f"fetch-manual-{slot.name}")
        self._manual_tasks.add(task)
        task.add_done_callback(self._manual_tasks.discard)

        logger.info(f"Manual fetch triggered for {slot.name}", extra={"event": "manual_trigger"})
        return {"schedule": slot.name, "status": "triggered"}

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    def slot_state(self, name: str) -> SlotState:
        return SlotState.RUNNING if self._active_runs.get(name, 0) > 0 else SlotState.IDLE

    def get_status(self) -> dict:
        now = self._clock()
        last_fetch = self.tracker.last_fetch_times()
        outcomes = self.tracker.last_outcomes()

        slots = []
        for slot in self.schedule.values():
            slots.append({
                "name": slot.name,
                "time": slot.time,
                "description": slot.description,
                "state": self.slot_state(slot.name).value,
                "next_run_at": next_run_at(slot, now, self._tz).isoformat() if self._running else None,
                "last_fetch_at": last_fetch[slot.name].isoformat() if slot.name in last_fetch else None,
                "last_outcome": outcomes.get(slot.name),
            })

        return {
            "is_running": self._running,
            "timezone": self._tz.key,
            "schedules": slots,
            "last_fetch_times": {name: ts.isoformat() for name, ts in last_fetch.items()},
            "stats": self.tracker.stats(),
            "estimated_credits": self.tracker.estimated_credits(),
            "manual_runs_in_flight": len(self._manual_tasks),
        }
