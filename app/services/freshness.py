# app/services/freshness.py
"""
In-memory fetch bookkeeping for the scheduler.

Holds the last successful fetch time per slot, cumulative counters and the
last outcome per slot. State lives for the lifetime of the process and is
reset on restart. Writes come from slot executions (a few per day), reads
from the status endpoint; one lock covers both.
"""

import threading
from dataclasses import asdict, dataclass
from datetime import datetime

from app.fetch_schedule import FETCH_SCHEDULE, FetchSlot, get_estimated_daily_credits
from app.models import ProviderTag


@dataclass
class FetchStats:
    total_fetches: int = 0
    successful_fetches: int = 0
    failed_fetches: int = 0
    articles_saved: int = 0


class FreshnessTracker:
    """Per-slot last-fetch times, counters and estimated credit usage."""

    def __init__(
        self,
        schedule: dict[str, FetchSlot] | None = None,
        daily_limits: dict[ProviderTag, int] | None = None,
    ):
        self._schedule = FETCH_SCHEDULE if schedule is None else schedule
        self._daily_limits = daily_limits
        self._lock = threading.Lock()
        self._last_fetch: dict[str, datetime] = {}
        self._last_outcome: dict[str, dict] = {}
        self._stats = FetchStats()

    def mark_running(self, slot_name: str) -> None:
        """Count one slot execution attempt."""
        with self._lock:
            self._stats.total_fetches += 1

    def record_success(
        self,
        slot_name: str,
        articles_saved: int,
        finished_at: datetime,
        status: str = "succeeded",
    ) -> None:
        with self._lock:
            self._stats.successful_fetches += 1
            self._stats.articles_saved += articles_saved
            self._last_fetch[slot_name] = finished_at
            self._last_outcome[slot_name] = {
                "status": status,
                "finished_at": finished_at.isoformat(),
                "articles_saved": articles_saved,
                "error": None,
            }

    def record_failure(self, slot_name: str, error: str, finished_at: datetime) -> None:
        # last fetch time is only advanced by a successful commit
        with self._lock:
            self._stats.failed_fetches += 1
            self._last_outcome[slot_name] = {
                "status": "failed",
                "finished_at": finished_at.isoformat(),
                "articles_saved": 0,
                "error": error,
            }

    def last_fetch_times(self) -> dict[str, datetime]:
        with self._lock:
            return dict(self._last_fetch)

    def last_outcomes(self) -> dict[str, dict]:
        with self._lock:
            return {name: dict(outcome) for name, outcome in self._last_outcome.items()}

    def stats(self) -> dict:
        with self._lock:
            return asdict(self._stats)

    def estimated_credits(self) -> dict:
        return get_estimated_daily_credits(self._schedule, self._daily_limits)

    def snapshot(self) -> dict:
        """Everything above in one JSON-friendly dict."""
        with self._lock:
            last_fetch = {name: ts.isoformat() for name, ts in self._last_fetch.items()}
            last_outcome = {name: dict(outcome) for name, outcome in self._last_outcome.items()}
            stats = asdict(self._stats)
        return {
            "last_fetch_times": last_fetch,
            "last_outcomes": last_outcome,
            "stats": stats,
            "estimated_credits": self.estimated_credits(),
        }
