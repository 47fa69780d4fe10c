#!/usr/bin/env python3
"""Seed the starter affirmation catalog (idempotent: existing categories are left alone).
Usage: DATABASE_URL=postgresql+asyncpg://... python scripts/seed_catalog.py"""
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from sqlalchemy import select

from app.db import async_session_maker, init_db
from app.models.content import Affirmation, AffirmationCategory

STARTER_CATALOG = {
    "self_love": ["I am worthy of love and respect"],
    "confidence": ["I believe in my abilities and trust myself"],
    "gratitude": ["I am grateful for all the good in my life"],
    "motivation": ["I have the power to create positive change"],
    "calm": ["I am peaceful and centered in this moment"],
    "success": ["I am capable of achieving my goals"],
    "relationships": ["I attract positive and loving relationships"],
    "health": ["My body is strong and healthy"],
}


async def main(locale: str = "en"):
    await init_db()
    created = 0
    async with async_session_maker() as session:
        for key, texts in STARTER_CATALOG.items():
            r = await session.execute(
                select(AffirmationCategory).where(AffirmationCategory.key == key, AffirmationCategory.locale == locale)
            )
            if r.scalar_one_or_none() is not None:
                continue
            category = AffirmationCategory(key=key, locale=locale)
            session.add(category)
            await session.flush()
            session.add_all(Affirmation(category_id=category.id, text=t, locale=locale, intensity=1) for t in texts)
            created += 1
        await session.commit()
    print(f"Seeded {created} categories for locale {locale!r}")


if __name__ == "__main__":
    asyncio.run(main(*sys.argv[1:2]))
