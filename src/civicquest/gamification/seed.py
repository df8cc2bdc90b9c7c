"""Achievement catalog seed data. Tiers line up with the rank thresholds."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from civicquest.db.models import Achievement
from civicquest.db.upsert import insert_for

logger = logging.getLogger(__name__)

ACHIEVEMENT_SEED_DATA: list[dict] = [
    # Rank milestones
    {
        "id": "novice_trainer",
        "name": "Novice Trainer",
        "description": "Join the community and start your civic journey",
        "icon": "walk",
        "category": "rank",
        "required_coins": 0,
        "sort_order": 1,
    },
    {
        "id": "civic_starter",
        "name": "Civic Starter",
        "description": "Earn your first 100 CivicCoins",
        "icon": "sparkles",
        "category": "milestone",
        "required_coins": 100,
        "sort_order": 2,
    },
    {
        "id": "issue_scout",
        "name": "Issue Scout",
        "description": "Reach 500 CivicCoins by reporting and verifying issues",
        "icon": "search",
        "category": "rank",
        "required_coins": 500,
        "sort_order": 3,
    },
    {
        "id": "community_guardian",
        "name": "Community Guardian",
        "description": "Reach 1,000 CivicCoins. The neighborhood counts on you.",
        "icon": "shield-checkmark",
        "category": "rank",
        "required_coins": 1000,
        "sort_order": 4,
    },
    {
        "id": "district_champion",
        "name": "District Champion",
        "description": "Reach 2,500 CivicCoins and lead your district",
        "icon": "medal",
        "category": "rank",
        "required_coins": 2500,
        "sort_order": 5,
    },
    {
        "id": "elite_pokeranger",
        "name": "Elite PokeRanger",
        "description": "Reach 5,000 CivicCoins. The highest trainer rank.",
        "icon": "trophy",
        "category": "rank",
        "required_coins": 5000,
        "sort_order": 6,
    },
    {
        "id": "city_legend",
        "name": "City Legend",
        "description": "Earn 10,000 CivicCoins. Your city will remember you.",
        "icon": "star",
        "category": "milestone",
        "required_coins": 10000,
        "sort_order": 7,
    },
]


async def seed_achievements(db: AsyncSession) -> int:
    """Upsert the achievement catalog. Returns number of achievements seeded."""
    seeded = 0
    for data in ACHIEVEMENT_SEED_DATA:
        stmt = insert_for(db, Achievement).values(**data)
        stmt = stmt.on_conflict_do_update(
            index_elements=["id"],
            set_={
                "name": stmt.excluded.name,
                "description": stmt.excluded.description,
                "icon": stmt.excluded.icon,
                "category": stmt.excluded.category,
                "required_coins": stmt.excluded.required_coins,
                "sort_order": stmt.excluded.sort_order,
            },
        )
        await db.execute(stmt)
        seeded += 1

    await db.commit()
    logger.info("Seeded %d achievements", seeded)
    return seeded
