"""Shared request dependencies."""
from typing import Optional

from fastapi import Header, HTTPException

from ..services.dispatcher import DispatchGateway, dispatch_gateway
from ..services.scheduler import SchedulerService, scheduler_service


async def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """Identity of the caller, set by the authenticating proxy."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Not authenticated")
    return x_user_id.strip()


def get_gateway() -> DispatchGateway:
    return dispatch_gateway


def get_scheduler() -> SchedulerService:
    return scheduler_service
