"""Account endpoints: /me aggregate, locale/timezone update, dev entitlement toggle."""

from typing import Annotated, Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user
from app.config import settings
from app.db.session import get_db
from app.models.user import User
from app.schemas.me import AccountUpdateRequest, MeResponse, UserResponse
from app.services import entitlements
from app.services.accounts import build_me, update_account

router = APIRouter(prefix="/me", tags=["users"])


class SubscriptionToggleBody(BaseModel):
    status: Literal["active", "grace", "lapsed", "revoked"]


@router.get("", response_model=MeResponse, responses={401: {"description": "Not authenticated"}})
async def read_me(
    session: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
):
    """Account, preferences, subscription, active session and upcoming notifications."""
    return MeResponse.model_validate(await build_me(session, user), from_attributes=True)


@router.patch(
    "",
    response_model=UserResponse,
    responses={401: {"description": "Not authenticated"}, 422: {"description": "Validation failed"}},
)
async def patch_me(
    session: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    body: AccountUpdateRequest,
):
    """Update locale / timezone; upcoming notifications are re-planned."""
    return await update_account(session, user, locale=body.locale, timezone=body.timezone)


@router.put(
    "/subscription",
    summary="Set subscription status (development only)",
    responses={401: {"description": "Not authenticated"}, 403: {"description": "Only available in development"}},
)
async def set_my_subscription(
    session: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    body: SubscriptionToggleBody,
) -> dict:
    """Receipt verification is external; this lets development builds flip entitlement."""
    if settings.app_env == "production":
        raise HTTPException(status_code=403, detail="Subscription toggle only available in development.")
    await entitlements.update_subscription_status(session, user.id, body.status, reason="dev_toggle")
    return {"is_subscriber": user.is_subscriber}
