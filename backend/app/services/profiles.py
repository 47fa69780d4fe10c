"""
User profile: display name, nickname, date and hour of birth.
Nicknames are unique across users ignoring case; an empty nickname clears it.
"""
from __future__ import annotations

import logging
import re
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import Conflict, ValidationError
from app.db.base import utcnow
from app.models.profile import UserProfile
from app.models.user import User
from app.services.analytics import log_event

logger = logging.getLogger(__name__)

NAME_MAX_LENGTH = 100
NICKNAME_MAX_LENGTH = 50
NICKNAME_RE = re.compile(r"^[A-Za-z0-9_]+$")
DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
NICKNAME_TAKEN = "Nickname is already taken"


def validate_profile_update(
    *,
    name: str | None = None,
    nickname: str | None = None,
    date_of_birth: str | None = None,
    birth_hour: int | None = None,
    today: date | None = None,
) -> tuple[list[str], date | None]:
    """Return (errors, parsed date of birth). Every rule is checked so the client sees all problems at once."""
    today = today or utcnow().date()
    errors: list[str] = []
    if name is not None:
        if not name.strip():
            errors.append("Name must be a non-empty string")
        elif len(name.strip()) > NAME_MAX_LENGTH:
            errors.append(f"Name must be at most {NAME_MAX_LENGTH} characters")
    if nickname is not None and nickname.strip():
        stripped = nickname.strip()
        if len(stripped) > NICKNAME_MAX_LENGTH:
            errors.append(f"Nickname must be at most {NICKNAME_MAX_LENGTH} characters")
        if not NICKNAME_RE.match(stripped):
            errors.append("Nickname may only contain letters, numbers and underscores")
    dob = None
    if date_of_birth is not None:
        try:
            if not DATE_RE.match(date_of_birth):
                raise ValueError(date_of_birth)
            dob = date.fromisoformat(date_of_birth)
        except ValueError:
            errors.append("Date of birth must be a valid date in YYYY-MM-DD format")
        else:
            if dob > today:
                errors.append("Date of birth cannot be in the future")
    if birth_hour is not None and (isinstance(birth_hour, bool) or not 0 <= birth_hour <= 23):
        errors.append("Birth hour must be a number between 0 and 23")
    return errors, dob


async def get_profile(session: AsyncSession, user_id: str) -> UserProfile | None:
    r = await session.execute(select(UserProfile).where(UserProfile.user_id == user_id))
    return r.scalar_one_or_none()


async def is_nickname_available(session: AsyncSession, user_id: str, nickname: str) -> bool:
    """True when no other user holds the nickname (case-insensitive)."""
    nickname = nickname.strip()
    if not nickname:
        raise ValidationError("Nickname cannot be empty")
    r = await session.execute(
        select(UserProfile.user_id).where(
            func.lower(UserProfile.nickname) == nickname.lower(),
            UserProfile.user_id != user_id,
        )
    )
    return r.first() is None


async def upsert_profile(
    session: AsyncSession,
    user: User,
    *,
    name: str | None = None,
    nickname: str | None = None,
    date_of_birth: str | None = None,
    birth_hour: int | None = None,
    today: date | None = None,
) -> UserProfile:
    """Partial update: None leaves a field unchanged. Raises ValidationError or Conflict (nickname taken)."""
    errors, dob = validate_profile_update(
        name=name, nickname=nickname, date_of_birth=date_of_birth, birth_hour=birth_hour, today=today
    )
    if errors:
        raise ValidationError("Validation failed", errors=errors)
    if nickname is not None and nickname.strip():
        if not await is_nickname_available(session, user.id, nickname):
            raise Conflict(NICKNAME_TAKEN)

    profile = await get_profile(session, user.id)
    if profile is None:
        profile = UserProfile(user_id=user.id)
        session.add(profile)
    fields_updated = []
    if name is not None:
        profile.name = name.strip()
        fields_updated.append("name")
    if nickname is not None:
        profile.nickname = nickname.strip() or None
        fields_updated.append("nickname")
    if dob is not None:
        profile.date_of_birth = dob
        fields_updated.append("date_of_birth")
    if birth_hour is not None:
        profile.birth_hour = birth_hour
        fields_updated.append("birth_hour")
    try:
        await session.flush()
    except IntegrityError as e:
        # Someone claimed the nickname between the availability check and our write
        raise Conflict(NICKNAME_TAKEN) from e

    await log_event(
        session,
        user.id,
        "profile_updated",
        {
            "fields_updated": fields_updated,
            "has_name": bool(profile.name),
            "has_nickname": bool(profile.nickname),
            "has_date_of_birth": profile.date_of_birth is not None,
            "has_birth_hour": profile.birth_hour is not None,
        },
    )
    logger.info("Profile: user_id=%s updated %s", user.id, fields_updated)
    return profile


async def delete_account(session: AsyncSession, user: User) -> None:
    """Remove the user and everything hanging off it (profile, preferences, tokens, sessions, schedule)."""
    user_id = user.id
    await session.delete(user)
    await session.flush()
    logger.info("Profile: deleted account user_id=%s", user_id)
