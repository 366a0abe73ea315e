# tests/unit/test_freshness.py
"""
Unit tests for FreshnessTracker.
"""

import threading
from datetime import UTC, datetime

from app.services.freshness import FreshnessTracker

FINISHED = datetime(2026, 10, 19, 3, 31, tzinfo=UTC)


class TestFreshnessTracker:
    def test_initial_state(self):
        tracker = FreshnessTracker()

        assert tracker.last_fetch_times() == {}
        assert tracker.stats() == {
            "total_fetches": 0,
            "successful_fetches": 0,
            "failed_fetches": 0,
            "articles_saved": 0,
        }

    def test_success_updates_last_fetch(self):
        tracker = FreshnessTracker()
        tracker.mark_running("MORNING")
        tracker.record_success("MORNING", articles_saved=12, finished_at=FINISHED)

        assert tracker.last_fetch_times() == {"MORNING": FINISHED}
        assert tracker.stats()["successful_fetches"] == 1
        assert tracker.stats()["articles_saved"] == 12
        assert tracker.last_outcomes()["MORNING"]["status"] == "succeeded"

    def test_failure_keeps_last_fetch(self):
        tracker = FreshnessTracker()
        tracker.record_success("MORNING", articles_saved=1, finished_at=FINISHED)
        tracker.record_failure(
            "MORNING", error="store down", finished_at=datetime(2026, 10, 20, 3, 31, tzinfo=UTC)
        )

        assert tracker.last_fetch_times() == {"MORNING": FINISHED}
        assert tracker.stats()["failed_fetches"] == 1
        outcome = tracker.last_outcomes()["MORNING"]
        assert outcome["status"] == "failed"
        assert outcome["error"] == "store down"

    def test_partial_status_recorded(self):
        tracker = FreshnessTracker()
        tracker.record_success("NIGHT", articles_saved=3, finished_at=FINISHED, status="partial")

        assert tracker.last_outcomes()["NIGHT"]["status"] == "partial"
        assert tracker.stats()["successful_fetches"] == 1

    def test_snapshot_is_json_friendly(self):
        tracker = FreshnessTracker()
        tracker.mark_running("EVENING")
        tracker.record_success("EVENING", articles_saved=5, finished_at=FINISHED)

        snapshot = tracker.snapshot()

        assert snapshot["last_fetch_times"] == {"EVENING": FINISHED.isoformat()}
        assert snapshot["stats"]["total_fetches"] == 1
        assert snapshot["estimated_credits"]["newsdata"]["estimated"] == 24

    def test_returned_maps_are_copies(self):
        tracker = FreshnessTracker()
        tracker.record_success("MORNING", articles_saved=1, finished_at=FINISHED)

        tracker.last_fetch_times().clear()
        tracker.stats()["articles_saved"] = 999

        assert "MORNING" in tracker.last_fetch_times()
        assert tracker.stats()["articles_saved"] == 1

    def test_concurrent_updates(self):
        tracker = FreshnessTracker()

        def work():
            for _ in range(200):
                tracker.mark_running("MORNING")
                tracker.record_success("MORNING", articles_saved=1, finished_at=FINISHED)

        threads = [threading.Thread(target=work) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        stats = tracker.stats()
        assert stats["total_fetches"] == 800
        assert stats["articles_saved"] == 800
