"""Mood sessions: start, end, read active."""

from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user
from app.db.session import get_db
from app.models.user import User
from app.schemas.mood_session import SessionEndRequest, SessionResponse, SessionStartRequest
from app.services import session_manager
from app.services.planner import get_active_session

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.post(
    "",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start a mood session",
    responses={
        401: {"description": "Not authenticated"},
        403: {"description": "Subscription required"},
        404: {"description": "Category not found"},
        409: {"description": "Concurrent session start"},
    },
)
async def start_session(
    session: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    body: SessionStartRequest,
):
    """Start a session (cancelling any active one) and plan its notifications."""
    return await session_manager.start_session(
        session,
        user.id,
        body.category_id,
        frequency_per_day=body.frequency_per_day,
        duration_days=body.duration_days,
    )


@router.get(
    "/active",
    response_model=SessionResponse | None,
    summary="Get the active mood session",
    responses={401: {"description": "Not authenticated"}},
)
async def read_active_session(
    session: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
):
    return await get_active_session(session, user.id)


@router.post(
    "/{session_id}/end",
    response_model=SessionResponse,
    summary="Complete or cancel a mood session",
    responses={401: {"description": "Not authenticated"}, 404: {"description": "No active session"}},
)
async def end_session(
    session: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    session_id: int,
    body: SessionEndRequest | None = None,
):
    """reason="completed" completes the session; anything else cancels it."""
    reason = body.reason if body else session_manager.REASON_COMPLETED
    return await session_manager.end_session(session, session_id, user.id, reason)
