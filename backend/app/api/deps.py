"""FastAPI dependencies: current user from the identity provider's JWT."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import decode_token
from app.db.session import get_db
from app.models.user import User
from app.services.accounts import ensure_user

MAX_SUBJECT_LENGTH = 64


async def get_current_user(
    request: Request,
    session: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Unauthorized. Please sign in.")
    token = auth_header[7:].strip()
    if not token:
        raise HTTPException(status_code=401, detail="Unauthorized. Please sign in.")
    try:
        payload = decode_token(token)
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    user_id = str(payload.get("sub") or "").strip()
    if not user_id or len(user_id) > MAX_SUBJECT_LENGTH:
        raise HTTPException(status_code=401, detail="Invalid token")
    return await ensure_user(session, user_id)
