from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from energy_monitor.dependencies import get_current_user_id, get_reset_tracker, get_session
from energy_monitor.schemas.reset import ResetStatus, VoteRequest, VoteResponse
from energy_monitor.services.reset_quorum import ResetQuorumTracker

router = APIRouter()


@router.post("/vote", response_model=VoteResponse)
async def cast_vote(
    payload: VoteRequest,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
    tracker: ResetQuorumTracker = Depends(get_reset_tracker),
):
    outcome = await tracker.cast_vote(session, payload.device_id, user_id)
    return VoteResponse(
        votes_received=outcome.votes_received,
        required_votes=outcome.required_votes,
        reset_triggered=outcome.reset_triggered,
    )


@router.get("/status", response_model=ResetStatus)
async def reset_status(
    device_id: str = Query(..., min_length=1),
    session: AsyncSession = Depends(get_session),
    tracker: ResetQuorumTracker = Depends(get_reset_tracker),
):
    return await tracker.status(session, device_id)
