"""Notification preferences: frequency, quiet hours, allow_push."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user
from app.db.session import get_db
from app.models.user import User
from app.schemas.preferences import PreferencesResponse, PreferencesUpdateRequest, PreferencesUpdateResponse
from app.services.preferences import get_or_create_preferences, update_preferences

router = APIRouter(prefix="/prefs", tags=["preferences"])


@router.get("", response_model=PreferencesResponse, responses={401: {"description": "Not authenticated"}})
async def read_preferences(
    session: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
):
    return await get_or_create_preferences(session, user.id)


@router.put(
    "",
    response_model=PreferencesUpdateResponse,
    summary="Update notification preferences",
    responses={401: {"description": "Not authenticated"}, 422: {"description": "Validation failed"}},
)
async def put_preferences(
    session: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    body: PreferencesUpdateRequest,
):
    """Partial update. Re-plans the user's upcoming notifications."""
    result = await update_preferences(
        session,
        user.id,
        frequency=body.frequency,
        quiet_start=body.quiet_start,
        quiet_end=body.quiet_end,
        allow_push=body.allow_push,
    )
    return PreferencesUpdateResponse(
        preferences=PreferencesResponse.model_validate(result.preferences),
        warnings=result.warnings or None,
    )
