#!/usr/bin/env python3
"""Create a demo guest, host, admin and listing, and print access tokens.

Tokens are normally issued by the identity service; these are signed
with the local JWT secret and only work against a development server.

Usage:
    python scripts/seed_demo.py
    python scripts/seed_demo.py --price 1200000 --currency DZD --instant-book
"""

import argparse
import asyncio

from sqlalchemy import select

from baytup.core.security import create_actor_token
from baytup.database import get_db_context, init_db
from baytup.models.listing import Listing
from baytup.models.user import User

DEMO_USERS = {
    "guest": "guest@baytup.test",
    "host": "host@baytup.test",
    "admin": "admin@baytup.test",
}


async def _get_or_create_user(db, role: str, email: str) -> User:
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user is None:
        user = User(email=email, role=role, first_name="Demo", last_name=role.title())
        db.add(user)
        await db.flush()
        print(f"Created {role}: {email}")
    return user


async def seed(price: int, currency: str, instant_book: bool) -> None:
    await init_db()

    async with get_db_context() as db:
        users = {
            role: await _get_or_create_user(db, role, email)
            for role, email in DEMO_USERS.items()
        }
        listing = Listing(
            host_id=users["host"].id,
            title="Demo apartment",
            base_price=price,
            cleaning_fee=0,
            currency=currency,
            instant_book=instant_book,
            max_guests=4,
        )
        db.add(listing)
        await db.flush()

        print(f"\nListing: {listing.id} ({price:,} {currency} minor units per night)")
        for role, user in users.items():
            print(f"{role.upper()}_TOKEN={create_actor_token(str(user.id), role)}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed demo users and a listing")
    parser.add_argument("--price", type=int, default=1200000, help="Nightly price in minor units")
    parser.add_argument("--currency", default="DZD", help="Settlement currency")
    parser.add_argument("--instant-book", action="store_true", help="Skip host approval")
    args = parser.parse_args()

    asyncio.run(seed(args.price, args.currency.upper(), args.instant_book))
