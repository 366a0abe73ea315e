# app/routers/scheduler.py
"""
Fetch scheduler control endpoints.

GET  /api/scheduler/status  - Run state, per-slot last fetch, counters, credit estimate
POST /api/scheduler/start   - Arm slot timers
POST /api/scheduler/stop    - Disarm slot timers
POST /api/scheduler/trigger - Run a named slot in the background (202)
"""

import logging

from fastapi import APIRouter, Depends, Request, status

from app.fetch_schedule import FETCH_SCHEDULE, ScheduleConfigError
from app.schemas.news import Envelope, TriggerRequest, TriggerResponse
from app.services.fetch_scheduler import NewsFetchScheduler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/scheduler", tags=["scheduler"])


def get_scheduler(request: Request) -> NewsFetchScheduler:
    return request.app.state.scheduler


@router.get("/status", response_model=Envelope[dict])
async def get_status(scheduler: NewsFetchScheduler = Depends(get_scheduler)):
    return Envelope[dict](message="Scheduler status fetched successfully", data=scheduler.get_status())


@router.post("/start", response_model=Envelope[dict])
async def start_scheduler(scheduler: NewsFetchScheduler = Depends(get_scheduler)):
    logger.info("Starting scheduler via API")
    await scheduler.start()
    return Envelope[dict](message="Scheduler started successfully", data={"status": "running"})


@router.post("/stop", response_model=Envelope[dict])
async def stop_scheduler(scheduler: NewsFetchScheduler = Depends(get_scheduler)):
    logger.info("Stopping scheduler via API")
    await scheduler.stop()
    return Envelope[dict](message="Scheduler stopped successfully", data={"status": "stopped"})


@router.post(
    "/trigger",
    response_model=Envelope[TriggerResponse],
    status_code=status.HTTP_202_ACCEPTED,
)
async def trigger_manual_fetch(
    payload: TriggerRequest | None = None,
    scheduler: NewsFetchScheduler = Depends(get_scheduler),
):
    """
    Start a slot now without waiting for it. Poll /status for the outcome.
    """
    schedule = payload.schedule if payload else None
    if not schedule:
        raise ScheduleConfigError(
            f"Schedule name is required ({', '.join(FETCH_SCHEDULE)})"
        )

    result = scheduler.trigger_manual(schedule)
    return Envelope[TriggerResponse](
        message=f"Manual fetch for {result['schedule']} has been triggered",
        data=TriggerResponse(**result),
    )
