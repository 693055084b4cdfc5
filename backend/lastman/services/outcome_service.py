"""Outcome resolver: score unresolved picks against fixture results.

Only picks whose ``outcome`` is still null are read, and each write is
filtered on ``outcome: null`` too, so a pick is scored at most once no
matter how often resolution runs. Fixtures without a result are skipped and
picked up by a later run.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import status

import lastman.database as _db
from lastman.errors import rule_error
from lastman.models.round import DRAW_RESULT, PickOutcome
from lastman.services.lock_gate import is_locked
from lastman.utils import utcnow

logger = logging.getLogger("lastman.outcome_service")


def compute_outcome(team_id: str, fixture_result: Optional[str]) -> Optional[PickOutcome]:
    """WIN/LOSE/DRAW for a pick, or None while the fixture has no result."""
    if fixture_result is None:
        return None
    if fixture_result == DRAW_RESULT:
        return PickOutcome.DRAW
    if team_id == fixture_result:
        return PickOutcome.WIN
    return PickOutcome.LOSE


async def resolve_round(
    round_doc: dict, *, session=None, now: Optional[datetime] = None,
) -> dict:
    """Score every resolvable pick of the round. Returns tallies."""
    if not is_locked(round_doc, now):
        raise rule_error(
            status.HTTP_409_CONFLICT,
            "ROUND_NOT_LOCKED",
            "Picks are still open for this round.",
        )
    now = now or utcnow()
    tallies = {"wins": 0, "losses": 0, "draws": 0, "skipped": 0}

    fixtures = await _db.db.fixtures.find(
        {"round_id": round_doc["_id"]}, session=session,
    ).to_list(length=None)
    results = {f["_id"]: f.get("result") for f in fixtures}

    pending = await _db.db.picks.find(
        {"round_id": round_doc["_id"], "outcome": None}, session=session,
    ).to_list(length=None)

    for pick in pending:
        outcome = compute_outcome(pick["team_id"], results.get(pick["fixture_id"]))
        if outcome is None:
            tallies["skipped"] += 1
            continue

        update = await _db.db.picks.update_one(
            {"_id": pick["_id"], "outcome": None},
            {"$set": {"outcome": outcome.value, "resolved_at": now, "updated_at": now}},
            session=session,
        )
        if not update.modified_count:
            continue
        if outcome is PickOutcome.WIN:
            tallies["wins"] += 1
        elif outcome is PickOutcome.DRAW:
            tallies["draws"] += 1
        else:
            tallies["losses"] += 1

    # Results consumed by this pass are frozen from here on.
    resulted_ids = [fixture_id for fixture_id, result in results.items() if result is not None]
    if resulted_ids:
        await _db.db.fixtures.update_many(
            {"_id": {"$in": resulted_ids}, "processed_at": None},
            {"$set": {"processed_at": now}},
            session=session,
        )

    if pending:
        logger.info(
            "Resolved round %s: wins=%d losses=%d draws=%d skipped=%d",
            round_doc["_id"], tallies["wins"], tallies["losses"],
            tallies["draws"], tallies["skipped"],
        )
    return tallies
