"""Lock maintenance endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from invoicelocks.core.auth import get_current_principal
from invoicelocks.schemas import DEFAULT_ERROR_RESPONSES, SweepResponse, SweeperStats
from invoicelocks.services.lock_sweeper import LockSweeper, get_lock_sweeper

router = APIRouter(dependencies=[Depends(get_current_principal)])


@router.get("/locks/sweeper", response_model=SweeperStats, responses=DEFAULT_ERROR_RESPONSES)
def sweeper_stats(sweeper: LockSweeper = Depends(get_lock_sweeper)) -> SweeperStats:
    """Return expiry sweeper statistics."""

    return SweeperStats(**sweeper.get_stats())


@router.post("/locks/sweep", response_model=SweepResponse, responses=DEFAULT_ERROR_RESPONSES)
async def sweep_locks(sweeper: LockSweeper = Depends(get_lock_sweeper)) -> SweepResponse:
    """Trigger an on-demand sweep of expired locks."""

    return SweepResponse(removed=await sweeper.sweep_once())
