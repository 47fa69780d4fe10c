"""Content catalog: active affirmation categories."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user
from app.db.session import get_db
from app.models.user import User
from app.schemas.me import CategoryResponse
from app.services.content_catalog import list_categories

router = APIRouter(prefix="/categories", tags=["catalog"])


@router.get("", response_model=list[CategoryResponse], responses={401: {"description": "Not authenticated"}})
async def read_categories(
    session: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    locale: str | None = None,
):
    """Active categories in the requested locale (the user's locale by default)."""
    return await list_categories(session, locale or user.locale)
