"""Scheduled sweep: process every locked, unresolved current round.

Organisers can trigger processing by hand; this sweep catches results that
were entered without a trigger. Both paths go through the same
transactional resolution, so overlapping runs are harmless.

Each sweep leaves a summary in the ``worker_state`` collection; the health
check reports it and smart sleep reads its timestamp.
"""

import logging
from datetime import timedelta

import lastman.database as _db
from lastman.config import settings
from lastman.models.competition import CompetitionStatus
from lastman.services.elimination_service import run_round_resolution
from lastman.services.lock_gate import is_locked
from lastman.services.round_service import get_current_round
from lastman.utils import ensure_utc, utcnow

logger = logging.getLogger("lastman.round_resolver")

STATE_KEY = "round_resolver"


async def last_sweep() -> dict | None:
    """Summary of the previous sweep, or None if none has run."""
    return await _db.db.worker_state.find_one({"_id": STATE_KEY})


async def _record_sweep(processed: int, failed: int) -> None:
    await _db.db.worker_state.update_one(
        {"_id": STATE_KEY},
        {
            "$set": {
                "swept_at": utcnow(),
                "rounds_processed": processed,
                "rounds_failed": failed,
            },
        },
        upsert=True,
    )


async def _has_work() -> bool:
    """Results waiting to be consumed, or a locked round ready to complete.

    A locked round whose fixtures all carry results (or that has none) may
    still need its no-pick penalties and verdict even with nothing left to
    score. Rounds still waiting on a result have nothing to do until it
    arrives.
    """
    pending = await _db.db.fixtures.find_one(
        {"result": {"$ne": None}, "processed_at": None}, {"_id": 1},
    )
    if pending:
        return True
    waiting = await _db.db.rounds.find(
        {"resolved_at": None, "lock_time": {"$lte": utcnow()}}, {"_id": 1},
    ).to_list(length=None)
    for round_doc in waiting:
        unresulted = await _db.db.fixtures.find_one(
            {"round_id": round_doc["_id"], "result": None}, {"_id": 1},
        )
        if not unresulted:
            return True
    return False


async def sweep_locked_rounds() -> int:
    """Returns the number of rounds processed.

    Smart sleep: skips if the last sweep is recent and there is no work.
    """
    previous = await last_sweep()
    max_age = timedelta(hours=settings.RESOLVER_SMART_SLEEP_HOURS)
    if previous and utcnow() - ensure_utc(previous["swept_at"]) < max_age:
        if not await _has_work():
            logger.debug("Smart sleep: no round is waiting on the resolver")
            return 0

    competitions = await _db.db.competitions.find(
        {"status": CompetitionStatus.ACTIVE.value}, {"_id": 1},
    ).to_list(length=None)

    processed = failed = 0
    for competition in competitions:
        current = await get_current_round(competition["_id"])
        if not current or current.get("resolved_at") or not is_locked(current):
            continue
        try:
            await run_round_resolution(current)
        except Exception as e:
            logger.error("Sweep failed for round %s: %s", current["_id"], e)
            failed += 1
            continue
        processed += 1

    if processed or failed:
        logger.info("Sweep processed %d rounds, %d failed", processed, failed)
    await _record_sweep(processed, failed)
    return processed
