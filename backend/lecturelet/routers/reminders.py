"""Manual reminder scan trigger."""
from fastapi import APIRouter, Depends

from ..schemas.reminder import ScanResponse
from ..services.scheduler import SchedulerService
from .deps import get_current_user_id, get_scheduler

router = APIRouter(prefix="/api/reminders", tags=["reminders"], dependencies=[Depends(get_current_user_id)])


@router.post("/scan", response_model=ScanResponse)
async def trigger_scan(scheduler: SchedulerService = Depends(get_scheduler)):
    """Run a reminder scan now instead of waiting for the next timer tick."""
    summary = await scheduler.run_scan_now()
    return ScanResponse.model_validate(summary)
