#!/usr/bin/env python
"""Initialize database with default achievements."""

import asyncio

from sqlalchemy import select

from gamification.core.config import settings
from gamification.db.database import async_session_maker, init_db
from gamification.db.models.achievement import AchievementDefinition


DEFAULT_ACHIEVEMENTS = [
    {
        "code": "spin_master",
        "name": "SPIN Master",
        "description": "Complete 3 SPIN assessments",
        "icon": "target",
        "badge_color": "blue",
        "points": 150,
        "criteria": {"type": "spin_completions", "target": 3},
    },
    {
        "code": "task_crusher",
        "name": "Task Crusher",
        "description": "Complete 20 tasks in a week",
        "icon": "check-circle",
        "badge_color": "green",
        "points": 100,
        "criteria": {"type": "weekly_tasks", "target": 20},
    },
    {
        "code": "pipeline_builder",
        "name": "Pipeline Builder",
        "description": "Create 5 opportunities in a single day",
        "icon": "trending-up",
        "badge_color": "purple",
        "points": 75,
        "criteria": {"type": "daily_opportunities", "target": 5},
    },
    {
        "code": "closer",
        "name": "Closer",
        "description": "Get 3 proposals signed in a week",
        "icon": "file-signature",
        "badge_color": "gold",
        "points": 200,
        "criteria": {"type": "weekly_proposals", "target": 3},
    },
    {
        "code": "six_figures",
        "name": "Six Figures",
        "description": "Reach $100,000 in closed pipeline value",
        "icon": "dollar-sign",
        "badge_color": "emerald",
        "points": 500,
        "criteria": {"type": "pipeline_value", "target": 100000},
    },
]


async def init_achievements() -> None:
    """Insert default achievement definitions that do not exist yet."""
    async with async_session_maker() as session:
        result = await session.execute(select(AchievementDefinition.code))
        existing = set(result.scalars().all())

        added = 0
        for data in DEFAULT_ACHIEVEMENTS:
            if data["code"] in existing:
                continue
            session.add(AchievementDefinition(**data))
            added += 1

        await session.commit()
        print(f"Initialized {added} achievement definitions")


async def main() -> None:
    """Main initialization function."""
    print(f"Initializing database: {settings.database_url}")

    # Create tables
    await init_db()
    print("Database tables created")

    # Initialize default data
    await init_achievements()

    print("Database initialization complete!")


if __name__ == "__main__":
    asyncio.run(main())
