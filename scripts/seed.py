#!/usr/bin/env python3
"""Seed database with sample users and stores.

Creates:
- Two demo users (store authors)
- A handful of stores around central London with tags and descriptions

Seed script is idempotent: users are matched by email, stores by slug.

Usage:
    python -m scripts.seed
"""

import asyncio
import os
import sys

# Add parent to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

from app.schemas import StoreFields
from app.services.slugs import slugify
from app.services.store_repository import create_store
from app.settings import Settings
from app.stores.postgres_backend import PostgresBackend

load_dotenv()

USERS = [
    {"email": "wes@example.com", "name": "Wes"},
    {"email": "ada@example.com", "name": "Ada"},
]

SAMPLE_STORES = [
    {
        "author": "wes@example.com",
        "name": "Café A",
        "description": "Small coffee bar with good espresso and pastries",
        "tags": ["Wifi", "Open Late"],
        "location": {"coordinates": [-0.1, 51.5], "address": "1 Southwark St, London"},
    },
    {
        "author": "wes@example.com",
        "name": "Borough Bakery",
        "description": "Sourdough, croissants and coffee to go",
        "tags": ["Vegetarian", "Family Friendly"],
        "location": {"coordinates": [-0.0906, 51.5055], "address": "8 Southwark St, London"},
    },
    {
        "author": "ada@example.com",
        "name": "Green Leaf",
        "description": "Vegan kitchen and juice bar",
        "tags": ["Vegetarian", "Licensed"],
        "location": {"coordinates": [-0.1278, 51.5074], "address": "Trafalgar Sq, London"},
    },
    {
        "author": "ada@example.com",
        "name": "Night Owl Coffee",
        "description": "Coffee until midnight, board games on weekends",
        "tags": ["Open Late", "Wifi", "Family Friendly"],
        "location": {"coordinates": [-0.1426, 51.5154], "address": "Oxford Circus, London"},
    },
]


async def seed_users(backend: PostgresBackend) -> dict[str, int]:
    """Seed users and return mapping of email -> id."""
    user_map: dict[str, int] = {}
    for u in USERS:
        existing = await backend.get_user_by_email(u["email"])
        if existing:
            print(f"  ⏭️  {u['email']} (exists)")
            user_map[u["email"]] = existing.id
            continue
        user = await backend.insert_user(email=u["email"], name=u["name"])
        user_map[u["email"]] = user.id
        print(f"  ✅ {u['email']}")
    return user_map


async def seed_stores(backend: PostgresBackend, user_map: dict[str, int]) -> None:
    """Seed sample stores."""
    for store_def in SAMPLE_STORES:
        if await backend.get_store_by_slug(slugify(store_def["name"])):
            print(f"  ⏭️  {store_def['name']} (exists)")
            continue

        fields = StoreFields.model_validate(
            {k: v for k, v in store_def.items() if k != "author"}
        )
        store = await create_store(backend, fields, user_map[store_def["author"]])
        print(f"  ✅ {store.name} -> /store/{store.slug}")


async def seed_database() -> None:
    settings = Settings()
    backend = PostgresBackend.from_settings(settings)

    try:
        print("Creating tables (if missing)...")
        await backend.create_tables()

        print("Seeding users...")
        user_map = await seed_users(backend)

        print("Seeding stores...")
        await seed_stores(backend, user_map)
    finally:
        await backend.close()

    print("Done.")


if __name__ == "__main__":
    asyncio.run(seed_database())
