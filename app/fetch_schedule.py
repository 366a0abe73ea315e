# app/fetch_schedule.py
"""
Daily fetch timetable.

Five slots spread both providers' daily credit budgets across the day:

    NewsData.io: 200 credits/day, 1 credit per parameter set
    NewsAPI.org: 100 requests/day, 1 request per parameter set

Slot times are cron-style strings limited to the daily form "M H * * *",
interpreted in the scheduler's configured timezone.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from app.models import ProviderTag
from app.services.api_fetchers.base import FetchParams


class ScheduleConfigError(ValueError):
    """Unknown slot name or malformed slot configuration."""
    pass


@dataclass(frozen=True)
class FetchSlot:
    """A named daily fetch time and what to pull in it."""

    name: str
    time: str
    description: str
    newsdata_params: tuple[FetchParams, ...] = field(default_factory=tuple)
    newsapi_params: tuple[FetchParams, ...] = field(default_factory=tuple)

    def params_for(self, provider: ProviderTag) -> tuple[FetchParams, ...]:
        if provider is ProviderTag.NEWSDATA:
            return self.newsdata_params
        return self.newsapi_params


def _nd(category: str, country: str | None = None) -> FetchParams:
    return FetchParams(category=category, country=country, language="en")


def _na(country: str, category: str | None = None) -> FetchParams:
    return FetchParams(country=country, category=category, page_size=100)


FETCH_SCHEDULE: dict[str, FetchSlot] = {
    "EARLY_MORNING": FetchSlot(
        name="EARLY_MORNING",
        time="0 6 * * *",
        description="Early morning fetch - General & Breaking news",
        newsdata_params=(
            _nd("top", "in"),
            _nd("breaking", "in"),
            _nd("top", "us"),
            _nd("breaking", "us"),
            _nd("world"),
        ),
        newsapi_params=(
            _na("in"),
            _na("us"),
        ),
    ),
    "MORNING": FetchSlot(
        name="MORNING",
        time="0 9 * * *",
        description="Morning fetch - Business & Technology news",
        newsdata_params=(
            _nd("business", "in"),
            _nd("technology", "in"),
            _nd("business", "us"),
            _nd("technology", "us"),
        ),
        newsapi_params=(
            _na("in", "business"),
            _na("in", "technology"),
            _na("us", "business"),
            _na("us", "technology"),
        ),
    ),
    "AFTERNOON": FetchSlot(
        name="AFTERNOON",
        time="0 13 * * *",
        description="Afternoon fetch - Entertainment & Sports",
        newsdata_params=(
            _nd("entertainment", "in"),
            _nd("entertainment", "us"),
            _nd("sports", "us"),
            _nd("sports", "in"),
        ),
        newsapi_params=(
            _na("in", "entertainment"),
            _na("in", "sports"),
            _na("us", "entertainment"),
            _na("us", "sports"),
        ),
    ),
    "EVENING": FetchSlot(
        name="EVENING",
        time="0 18 * * *",
        description="Evening fetch - Health & Science news",
        newsdata_params=(
            _nd("health", "in"),
            _nd("health", "us"),
            _nd("science", "us"),
            _nd("science", "in"),
            _nd("politics", "in"),
            _nd("politics", "us"),
        ),
        newsapi_params=(
            _na("in", "health"),
            _na("us", "health"),
            _na("in", "science"),
            _na("us", "science"),
        ),
    ),
    "NIGHT": FetchSlot(
        name="NIGHT",
        time="0 22 * * *",
        description="Night fetch - Latest updates & Politics",
        newsdata_params=(
            _nd("top"),
            _nd("politics", "us"),
            _nd("technology", "in"),
            _nd("politics", "in"),
            _nd("technology", "us"),
        ),
        newsapi_params=(
            _na("in"),
            _na("us"),
        ),
    ),
}


# Default daily credit limits; overridable through settings
API_LIMITS = {
    ProviderTag.NEWSDATA: 200,
    ProviderTag.NEWSAPI: 100,
}


def parse_daily_cron(expr: str) -> tuple[int, int]:
    """
    Parse "M H * * *" into (minute, hour).

    Raises:
        ScheduleConfigError: any other cron form
    """
    parts = expr.split()
    if len(parts) != 5 or parts[2:] != ["*", "*", "*"]:
        raise ScheduleConfigError(f"Only daily 'M H * * *' schedules are supported, got {expr!r}")
    try:
        minute, hour = int(parts[0]), int(parts[1])
    except ValueError as e:
        raise ScheduleConfigError(f"Invalid minute/hour in {expr!r}") from e
    if not (0 <= minute <= 59 and 0 <= hour <= 23):
        raise ScheduleConfigError(f"Minute/hour out of range in {expr!r}")
    return minute, hour


def get_slot(name: str, schedule: dict[str, FetchSlot] | None = None) -> FetchSlot:
    """Look up a slot by name (case-insensitive)."""
    schedule = FETCH_SCHEDULE if schedule is None else schedule
    slot = schedule.get((name or "").strip().upper())
    if slot is None:
        raise ScheduleConfigError(
            f"Invalid schedule name: {name!r}. Available: {', '.join(schedule)}"
        )
    return slot


def next_run_at(slot: FetchSlot, now: datetime, tz: ZoneInfo) -> datetime:
    """Next wall-clock occurrence of the slot in `tz`, strictly after `now`."""
    local_now = now.astimezone(tz)
    minute, hour = parse_daily_cron(slot.time)
    candidate = local_now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate <= local_now:
        # Re-resolve through the zone so DST transitions land on the right offset
        next_day = (candidate.replace(tzinfo=None) + timedelta(days=1))
        candidate = next_day.replace(tzinfo=tz)
    return candidate


def get_schedule_times(schedule: dict[str, FetchSlot] | None = None) -> list[dict]:
    schedule = FETCH_SCHEDULE if schedule is None else schedule
    return [
        {"name": slot.name, "time": slot.time, "description": slot.description}
        for slot in schedule.values()
    ]


def get_estimated_daily_credits(
    schedule: dict[str, FetchSlot] | None = None,
    limits: dict[ProviderTag, int] | None = None,
) -> dict:
    """
    One credit per configured parameter set, summed over all slots and
    compared against each provider's daily limit.
    """
    schedule = FETCH_SCHEDULE if schedule is None else schedule
    if limits is None:
        limits = API_LIMITS

    estimate = {}
    for tag in ProviderTag:
        used = sum(len(slot.params_for(tag)) for slot in schedule.values())
        limit = limits[tag]
        estimate[tag.value] = {"estimated": used, "limit": limit, "remaining": limit - used}
    return estimate
