"""Life ledger, the only code path that writes lives_remaining and status.

Each (player, round) pair is applied exactly once: the player update is
filtered on ``applied_round_ids != round_id`` and adds the round id in the
same write, so a second run finds nothing to match.
"""

import logging
from datetime import datetime
from typing import Optional

import lastman.database as _db
from lastman.models.competition import PlayerStatus
from lastman.models.round import PickOutcome
from lastman.utils import utcnow

logger = logging.getLogger("lastman.life_ledger")


def effective_outcome(pick: Optional[dict], round_fully_resulted: bool) -> Optional[PickOutcome]:
    """Outcome the ledger applies for one player, or None if it must wait.

    No-pick rule: a player without a pick loses a life, but only once every
    fixture of the round has a result.
    """
    if pick is None:
        return PickOutcome.LOSE if round_fully_resulted else None
    if pick.get("outcome") is None:
        return None
    return PickOutcome(pick["outcome"])


def apply_life_change(lives_remaining: int, outcome: PickOutcome) -> tuple[int, PlayerStatus]:
    """New (lives, status) after one outcome. Lives never go below zero."""
    if outcome is PickOutcome.LOSE:
        lives_remaining = max(0, lives_remaining - 1)
    status = PlayerStatus.eliminated if lives_remaining == 0 else PlayerStatus.active
    return lives_remaining, status


async def round_fully_resulted(round_doc: dict, *, session=None) -> bool:
    """True when the round has fixtures and all of them have a result."""
    fixtures = await _db.db.fixtures.find(
        {"round_id": round_doc["_id"]}, {"result": 1}, session=session,
    ).to_list(length=None)
    return bool(fixtures) and all(f.get("result") is not None for f in fixtures)


async def apply_outcomes(
    round_doc: dict, *, session=None, now: Optional[datetime] = None,
) -> dict:
    """Apply resolved outcomes (and the no-pick penalty) to every active player."""
    now = now or utcnow()
    counts = {"lives_lost": 0, "eliminated": 0, "no_pick_penalties": 0, "pending_players": 0}
    fully_resulted = await round_fully_resulted(round_doc, session=session)

    players = await _db.db.competition_players.find(
        {
            "competition_id": round_doc["competition_id"],
            "status": PlayerStatus.active.value,
            "applied_round_ids": {"$ne": round_doc["_id"]},
        },
        session=session,
    ).to_list(length=None)
    picks = await _db.db.picks.find(
        {"round_id": round_doc["_id"]}, session=session,
    ).to_list(length=None)
    picks_by_user = {p["user_id"]: p for p in picks}

    for player in players:
        pick = picks_by_user.get(player["user_id"])
        outcome = effective_outcome(pick, fully_resulted)
        if outcome is None:
            counts["pending_players"] += 1
            continue

        lives, status = apply_life_change(player["lives_remaining"], outcome)
        changes = {"lives_remaining": lives, "status": status.value, "updated_at": now}
        if status is PlayerStatus.eliminated:
            changes["eliminated_round"] = round_doc["round_number"]
        history_entry = {
            "round_id": round_doc["_id"],
            "round_number": round_doc["round_number"],
            "team_id": pick["team_id"] if pick else None,
            "outcome": outcome.value,
            "no_pick": pick is None,
            "lives_after": lives,
        }

        update = await _db.db.competition_players.update_one(
            {
                "_id": player["_id"],
                "status": PlayerStatus.active.value,
                "lives_remaining": player["lives_remaining"],
                "applied_round_ids": {"$ne": round_doc["_id"]},
            },
            {
                "$set": changes,
                "$addToSet": {"applied_round_ids": round_doc["_id"]},
                "$push": {"history": history_entry},
            },
            session=session,
        )
        if not update.modified_count:
            # Another run applied this round for the player first.
            continue

        if pick is None:
            counts["no_pick_penalties"] += 1
        if lives < player["lives_remaining"]:
            counts["lives_lost"] += 1
        if status is PlayerStatus.eliminated:
            counts["eliminated"] += 1
            logger.info(
                "Player eliminated: competition=%s user=%s round=%d no_pick=%s",
                round_doc["competition_id"], player["user_id"],
                round_doc["round_number"], pick is None,
            )

    if fully_resulted and not round_doc.get("no_pick_processed"):
        await _db.db.rounds.update_one(
            {"_id": round_doc["_id"]},
            {"$set": {"no_pick_processed": True, "updated_at": now}},
            session=session,
        )

    return counts
