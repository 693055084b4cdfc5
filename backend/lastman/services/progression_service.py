"""Competition progression judge: decide whether a competition goes on."""

import logging
from datetime import datetime
from typing import Optional

from bson import ObjectId

import lastman.database as _db
from lastman.models.competition import Classification, CompetitionStatus, PlayerStatus
from lastman.utils import utcnow

logger = logging.getLogger("lastman.progression")


def judge(active_count: int) -> Classification:
    if active_count == 1:
        return Classification.WINNER
    if active_count == 0:
        return Classification.DRAW
    return Classification.CONTINUE


async def evaluate(
    competition_id, *, session=None, now: Optional[datetime] = None,
) -> dict:
    """Classify the competition from its active-player count.

    WINNER and DRAW complete the competition; CONTINUE leaves it ACTIVE so
    the organiser can open another round. Nothing but the competition's
    status and classification is written.
    """
    now = now or utcnow()
    competition_id = ObjectId(competition_id)
    active = await _db.db.competition_players.find(
        {"competition_id": competition_id, "status": PlayerStatus.active.value},
        {"user_id": 1},
        session=session,
    ).to_list(length=None)
    classification = judge(len(active))
    winner_user_id = active[0]["user_id"] if classification is Classification.WINNER else None

    if classification is Classification.CONTINUE:
        await _db.db.competitions.update_one(
            {"_id": competition_id},
            {"$set": {"classification": classification.value, "updated_at": now}},
            session=session,
        )
    else:
        # Filtered on status so a finished competition is never re-judged.
        result = await _db.db.competitions.update_one(
            {"_id": competition_id, "status": {"$ne": CompetitionStatus.COMPLETE.value}},
            {"$set": {
                "status": CompetitionStatus.COMPLETE.value,
                "classification": classification.value,
                "winner_user_id": winner_user_id,
                "completed_at": now,
                "updated_at": now,
            }},
            session=session,
        )
        if result.modified_count:
            logger.info(
                "Competition complete: id=%s classification=%s winner=%s",
                competition_id, classification.value, winner_user_id,
            )

    return {
        "classification": classification,
        "winner_user_id": winner_user_id,
        "active_players": len(active),
    }
