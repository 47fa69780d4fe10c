"""Profile endpoints: read, partial update, nickname availability, account deletion."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user
from app.db.session import get_db
from app.models.user import User
from app.schemas.profile import NicknameAvailabilityResponse, ProfileResponse, ProfileUpdateRequest
from app.services import profiles

router = APIRouter(prefix="/profile", tags=["profile"])


@router.get("", response_model=ProfileResponse | None, responses={401: {"description": "Not authenticated"}})
async def read_profile(
    session: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
):
    return await profiles.get_profile(session, user.id)


@router.put(
    "",
    response_model=ProfileResponse,
    summary="Create or update the profile",
    responses={
        401: {"description": "Not authenticated"},
        409: {"description": "Nickname is already taken"},
        422: {"description": "Validation failed"},
    },
)
async def put_profile(
    session: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    body: ProfileUpdateRequest,
):
    """Only fields present in the body change."""
    return await profiles.upsert_profile(
        session,
        user,
        name=body.name,
        nickname=body.nickname,
        date_of_birth=body.date_of_birth,
        birth_hour=body.birth_hour,
    )


@router.get(
    "/nickname-availability",
    response_model=NicknameAvailabilityResponse,
    responses={401: {"description": "Not authenticated"}, 422: {"description": "Empty nickname"}},
)
async def nickname_availability(
    session: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    nickname: Annotated[str, Query(max_length=100)],
):
    available = await profiles.is_nickname_available(session, user.id, nickname)
    return NicknameAvailabilityResponse(nickname=nickname.strip(), available=available)


@router.delete("", status_code=204, responses={401: {"description": "Not authenticated"}})
async def delete_profile(
    session: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
):
    """Delete the account and all its data. The next authenticated request provisions a fresh user."""
    await profiles.delete_account(session, user)
    return Response(status_code=204)
