#!/usr/bin/env python3
"""
Demo seed script — populates the database with sample data for demos.

!! NOT FOR PRODUCTION !!
This script creates users with known passwords, a few cards, and fake
payment history. It is intended ONLY for local demos and frontend
development.

Usage:
    # With the API server running on localhost:8000:
    python demo/seed.py

    # Reset the database (then restart the server and seed again):
    python demo/seed.py --reset

    # Custom server URL:
    python demo/seed.py --base-url http://localhost:9000

Login credentials after seeding:
    ┌──────────┬────────────┐
    │ Username │ Password   │
    ├──────────┼────────────┤
    │ admin    │ Admin123*  │
    │ user     │ User123*   │
    └──────────┴────────────┘
"""

import argparse
import asyncio
import os
import random
import sys
import uuid
from datetime import datetime, timedelta, timezone

import httpx

BASE_URL = "http://localhost:8000"

# ---------------------------------------------------------------------------
# Demo users
# ---------------------------------------------------------------------------

USERS = [
    {
        "username": "admin",
        "password": "Admin123*",
        "cards": [
            {"brand": "Visa", "last4": "4242", "nickname": "Corporate"},
        ],
    },
    {
        "username": "user",
        "password": "User123*",
        "cards": [
            {"brand": "Visa", "last4": "1881", "nickname": "Daily"},
            {"brand": "Mastercard", "last4": "5100", "nickname": "Travel"},
        ],
    },
]

DESCRIPTIONS = [
    "Coffee shop", "Grocery store", "Gas station", "Online subscription",
    "Restaurant", "Utility bill", "Phone bill", "Parking", "Bookstore",
    "Pharmacy", "Hardware store", "Clothing store", "Movie tickets",
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def log(msg: str) -> None:
    print(f"  {msg}")


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


async def signup_and_login(client: httpx.AsyncClient, user: dict) -> str:
    """Sign up a user (tolerating an existing one), return an access token."""
    credentials = {"username": user["username"], "password": user["password"]}
    resp = await client.post(f"{BASE_URL}/auth/signup", json=credentials)
    if resp.status_code != 409:
        resp.raise_for_status()

    resp = await client.post(f"{BASE_URL}/auth/login", json=credentials)
    resp.raise_for_status()
    return resp.json()["access_token"]


async def register_card(client: httpx.AsyncClient, token: str, card: dict) -> str:
    resp = await client.post(
        f"{BASE_URL}/cards",
        json={**card, "token": f"tok_demo_{uuid.uuid4().hex}"},
        headers=auth_header(token),
    )
    resp.raise_for_status()
    return resp.json()["id"]


async def pay(client: httpx.AsyncClient, token: str, card_id: str,
              amount: str, description: str) -> dict:
    resp = await client.post(
        f"{BASE_URL}/transactions",
        json={"card_id": card_id, "amount": amount, "description": description},
        headers=auth_header(token),
    )
    resp.raise_for_status()
    return resp.json()


async def reverse(client: httpx.AsyncClient, token: str, txn_id: str) -> None:
    resp = await client.post(
        f"{BASE_URL}/transactions/{txn_id}/reverse",
        headers=auth_header(token),
    )
    resp.raise_for_status()


# ---------------------------------------------------------------------------
# Seed logic
# ---------------------------------------------------------------------------

async def seed_history(client: httpx.AsyncClient, token: str, card_id: str) -> list[str]:
    """
    Create 6-12 approved payments, one declined payment above the approval
    ceiling, and reverse one of the approved payments.

    Returns the created transaction IDs so they can be backdated.
    """
    txn_ids: list[str] = []
    approved: list[str] = []

    for _ in range(random.randint(6, 12)):
        amount = f"{random.randint(3_000, 250_000)}.{random.randint(0, 99):02d}"
        result = await pay(client, token, card_id, amount, random.choice(DESCRIPTIONS))
        txn_ids.append(result["id"])
        approved.append(result["id"])

    declined = await pay(client, token, card_id, "2500000.00", "Jewelry store")
    txn_ids.append(declined["id"])

    await reverse(client, token, random.choice(approved))
    return txn_ids


async def backdate_transactions(txn_ids: list[str], days: int = 60) -> None:
    """
    Spread transaction timestamps across the last `days` days, directly in
    the database, so date-range filters have something to show.
    """
    from sqlalchemy import update
    from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
    from cardapi.config import settings
    from cardapi.models.transaction import Transaction

    engine = create_async_engine(settings.DATABASE_URL)
    session_factory = async_sessionmaker(engine, class_=AsyncSession)

    now = datetime.now(timezone.utc)

    async with session_factory() as session:
        for txn_id in txn_ids:
            ts = now - timedelta(days=random.randint(0, days), minutes=random.randint(0, 24 * 60))
            await session.execute(
                update(Transaction)
                .where(Transaction.id == uuid.UUID(txn_id))
                .values(created_at=ts)
            )
        await session.commit()

    await engine.dispose()


async def seed(base_url: str) -> None:
    global BASE_URL
    BASE_URL = base_url

    print("\n========================================")
    print("  DEMO SEED — NOT FOR PRODUCTION")
    print("========================================\n")

    all_txn_ids: list[str] = []

    async with httpx.AsyncClient(timeout=30.0) as client:
        try:
            health = await client.get(f"{BASE_URL}/health")
            health.raise_for_status()
        except (httpx.ConnectError, httpx.HTTPStatusError):
            print(f"  ERROR: Cannot connect to {BASE_URL}")
            print("  Start the server first: uvicorn cardapi.main:app --reload\n")
            sys.exit(1)

        for user in USERS:
            print(f"Creating {user['username']}...")
            token = await signup_and_login(client, user)
            log(f"Login: {user['username']} / {user['password']}")

            for card in user["cards"]:
                card_id = await register_card(client, token, card)
                log(f"  {card['brand']} ending in {card['last4']} ({card['nickname']})")

                ids = await seed_history(client, token, card_id)
                all_txn_ids.extend(ids)
                log(f"  {len(ids)} transactions")

    print("\nBackdating transactions across 60 days...")
    await backdate_transactions(all_txn_ids)

    print("\n========================================")
    print("  SEED COMPLETE — Login Credentials")
    print("========================================")
    print(f"\n  {'Username':<12s} {'Password'}")
    print(f"  {'─' * 12} {'─' * 12}")
    for user in USERS:
        print(f"  {user['username']:<12s} {user['password']}")
    print()


def reset_database() -> None:
    """Delete the SQLite database file so the server recreates it on restart."""
    db_path = os.path.join(os.path.dirname(__file__), "..", "data", "cards.db")
    db_path = os.path.normpath(db_path)

    if os.path.exists(db_path):
        os.remove(db_path)
        print(f"\n  Deleted {db_path}")
        print("  Restart the server to recreate empty tables.\n")
    else:
        print(f"\n  No database found at {db_path}\n")


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

async def main() -> None:
    parser = argparse.ArgumentParser(
        description="Demo seed script — NOT FOR PRODUCTION",
        epilog="Creates sample users, cards, and transactions for demos.",
    )
    parser.add_argument(
        "--base-url", default="http://localhost:8000",
        help="Base URL of the running API (default: http://localhost:8000)",
    )
    parser.add_argument(
        "--reset", action="store_true",
        help="Delete the local SQLite database instead of seeding",
    )
    args = parser.parse_args()

    if args.reset:
        reset_database()
        return

    await seed(args.base_url)


if __name__ == "__main__":
    asyncio.run(main())
