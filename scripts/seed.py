"""
Database Seed Script

Creates the tables and inserts sample restaurants with menus and
operating hours. Restaurants whose slug already exists are skipped.
Run from project root: python scripts/seed.py
"""

import asyncio
import os
import sys
import uuid

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select

from food_ordering.core.config import setup_logging
from food_ordering.database import async_session_maker, engine, init_db
from food_ordering.models import Restaurant

logger = setup_logging()

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


def menu_item(name: str, description: str, price: float, category: str, prep: int) -> dict:
    return {
        "id": uuid.uuid4().hex[:24],
        "name": name,
        "description": description,
        "price": price,
        "category": category,
        "is_available": True,
        "preparation_time": prep,
    }


def opening_hours(open_at: str, close_at: str, closed_on: tuple[str, ...] = ()) -> dict:
    return {
        day: {"open": open_at, "close": close_at, "is_closed": day in closed_on}
        for day in WEEKDAYS
    }


SEED_RESTAURANTS = [
    {
        "name": "Mama Put Kitchen",
        "slug": "mama-put-kitchen",
        "description": "Authentic Nigerian home cooking",
        "cuisine": ["Nigerian", "African"],
        "menu": [
            menu_item("Jollof Rice with Chicken", "Smoky party jollof with grilled chicken", 3500, "Main Course", 25),
            menu_item("Moi Moi", "Steamed bean pudding with fish and eggs", 1500, "Sides", 15),
            menu_item("Pounded Yam with Egusi", "Pounded yam served with egusi soup", 4000, "Main Course", 30),
            menu_item("Suya", "Grilled spiced meat skewers", 2000, "Appetizer", 20),
            menu_item("Chapman", "Nigerian cocktail drink", 1000, "Beverages", 5),
        ],
        "operating_hours": opening_hours("09:00", "22:00", closed_on=("sunday",)),
    },
    {
        "name": "Dele Foods",
        "slug": "dele-foods",
        "description": "Premium grilled dishes and continental cuisine",
        "cuisine": ["Continental", "Grilled"],
        "menu": [
            menu_item("Grilled Chicken Breast", "Grilled chicken breast with herbs", 4500, "Main Course", 25),
            menu_item("Beef Steak", "Beef steak cooked to order", 6000, "Main Course", 30),
            menu_item("Caesar Salad", "Romaine lettuce with caesar dressing", 2500, "Salads", 10),
            menu_item("French Fries", "Crispy golden fries", 1500, "Sides", 15),
        ],
        "operating_hours": opening_hours("11:00", "23:00"),
    },
]


async def seed() -> int:
    """Insert missing seed restaurants. Returns how many were added."""
    await init_db()
    added = 0

    async with async_session_maker() as session:
        for data in SEED_RESTAURANTS:
            existing = await session.execute(
                select(Restaurant.id).where(Restaurant.slug == data["slug"])
            )
            if existing.scalar_one_or_none() is not None:
                logger.info(f"Skipping {data['slug']} (already present)")
                continue
            session.add(Restaurant(**data))
            added += 1
        await session.commit()

        result = await session.execute(select(Restaurant.id, Restaurant.name))
        for restaurant_id, name in result.all():
            logger.info(f"   #{restaurant_id}: {name}")

    await engine.dispose()
    return added


if __name__ == "__main__":
    count = asyncio.run(seed())
    logger.info(f"✅ Seed complete, {count} restaurant(s) added")
