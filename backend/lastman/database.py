"""
backend/lastman/database.py

Purpose:
    MongoDB connection bootstrap, index management and the transaction
    helper used by every multi-document engine operation.

Dependencies:
    - motor.motor_asyncio
    - pymongo
    - lastman.config
"""

import logging
from typing import Any, Awaitable, Callable

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from lastman.config import settings

client: AsyncIOMotorClient = None
db: AsyncIOMotorDatabase = None

logger = logging.getLogger("lastman.database")


async def connect_db() -> None:
    global client, db
    client = AsyncIOMotorClient(
        settings.MONGO_URI,
        maxPoolSize=25,
        minPoolSize=5,
    )
    db = client[settings.MONGO_DB]
    await _ensure_indexes()


async def close_db() -> None:
    global client
    if client:
        client.close()


async def get_db() -> AsyncIOMotorDatabase:
    return db


async def run_in_transaction(callback: Callable[[Any], Awaitable[Any]]) -> Any:
    """Run ``callback(session)`` inside one MongoDB transaction.

    ``with_transaction`` retries the whole callback on transient errors
    (write conflicts), so callbacks must be safe to re-run from scratch.
    Any other exception aborts the transaction and propagates.
    """
    async with await client.start_session() as session:
        return await session.with_transaction(callback)


async def _ensure_indexes() -> None:
    """Create indexes on startup. Idempotent, safe to run repeatedly."""

    # ---- Competitions ----

    await db.competitions.create_index("organiser_id")
    await db.competitions.create_index("status")

    # ---- Players (competition membership) ----

    await db.competition_players.create_index(
        [("competition_id", 1), ("user_id", 1)], unique=True
    )
    await db.competition_players.create_index([("competition_id", 1), ("status", 1)])
    await db.competition_players.create_index("user_id")

    # ---- Rounds ----

    # Round numbers are never reused within a competition.
    await db.rounds.create_index(
        [("competition_id", 1), ("round_number", 1)], unique=True
    )
    await db.rounds.create_index([("resolved_at", 1), ("lock_time", 1)])

    # ---- Fixtures ----

    await db.fixtures.create_index("round_id")
    # Resolver sweep: results entered but not yet consumed
    await db.fixtures.create_index([("processed_at", 1), ("result", 1)])

    # ---- Picks ----

    # One pick per player per round; the upsert relies on this.
    await db.picks.create_index([("round_id", 1), ("user_id", 1)], unique=True)
    # No-repeat lookups across a competition
    await db.picks.create_index([("competition_id", 1), ("user_id", 1), ("team_id", 1)])
    await db.picks.create_index([("round_id", 1), ("outcome", 1)])
    await db.picks.create_index("fixture_id")

    # ---- Audit Logs ----

    await db.audit_logs.create_index([("competition_id", 1), ("timestamp", -1)])
    await db.audit_logs.create_index([("actor_id", 1), ("timestamp", -1)])
    await db.audit_logs.create_index("timestamp")

    logger.info("Indexes ensured on %s", settings.MONGO_DB)
