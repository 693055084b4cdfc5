"""Pick ledger: one team per player per round, chosen before the round locks."""

import logging

from bson import ObjectId
from fastapi import status
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

import lastman.database as _db
from lastman.errors import rule_error
from lastman.models.competition import PlayerStatus
from lastman.services.audit_service import log_audit
from lastman.services.competition_service import (
    get_competition,
    get_player,
    require_open,
    require_organiser,
)
from lastman.services.lock_gate import is_locked
from lastman.services.round_service import get_current_round, get_fixture, get_round
from lastman.utils import utcnow

logger = logging.getLogger("lastman.pick_service")


async def used_team_ids(competition_id, user_id: str, *, exclude_round_id=None) -> set[str]:
    """Teams the player has picked in this competition, optionally ignoring one round."""
    query = {"competition_id": ObjectId(competition_id), "user_id": user_id}
    if exclude_round_id is not None:
        query["round_id"] = {"$ne": ObjectId(exclude_round_id)}
    picks = await _db.db.picks.find(query, {"team_id": 1}).to_list(length=None)
    return {p["team_id"] for p in picks}


async def allowed_team_ids(competition: dict, user_id: str, *, round_id=None) -> list[str]:
    """Derived allowed-team set: team list minus teams already used (no-repeat only).

    The pick held for ``round_id`` itself does not count as used, so a player
    may re-select or swap their current pick.
    """
    team_ids = [team["team_id"] for team in competition.get("teams", [])]
    if not competition.get("no_repeat_teams"):
        return team_ids
    used = await used_team_ids(competition["_id"], user_id, exclude_round_id=round_id)
    return [team_id for team_id in team_ids if team_id not in used]


async def get_allowed_teams(actor_id: str, competition_id: str, user_id: str | None = None) -> list[dict]:
    """Teams the player may still pick in the current round."""
    competition = await get_competition(competition_id)
    user_id = user_id or actor_id
    if user_id != actor_id:
        require_organiser(competition, actor_id)
    if not await get_player(competition["_id"], user_id):
        raise rule_error(
            status.HTTP_403_FORBIDDEN,
            "NOT_A_PARTICIPANT",
            "This user is not part of the competition.",
        )
    current = await get_current_round(competition["_id"])
    # Only an open round's own pick is still replaceable.
    open_round_id = current["_id"] if current and not is_locked(current) else None
    allowed = set(await allowed_team_ids(competition, user_id, round_id=open_round_id))
    return [team for team in competition.get("teams", []) if team["team_id"] in allowed]


async def _resolve_target(competition: dict, actor_id: str, user_id: str | None) -> dict:
    """Load the player a pick is for; organisers may act on a player's behalf."""
    target_id = user_id or actor_id
    if target_id != actor_id:
        require_organiser(competition, actor_id)
    player = await get_player(competition["_id"], target_id)
    if not player or player.get("status") != PlayerStatus.active.value:
        raise rule_error(
            status.HTTP_403_FORBIDDEN,
            "NOT_A_PARTICIPANT",
            "Only active players of this competition can pick.",
        )
    return player


async def _require_pickable_round(round_doc: dict) -> None:
    current = await get_current_round(round_doc["competition_id"])
    if not current or current["_id"] != round_doc["_id"]:
        raise rule_error(
            status.HTTP_409_CONFLICT,
            "NOT_CURRENT_ROUND",
            "Picks are only accepted for the current round.",
        )
    if is_locked(round_doc):
        raise rule_error(
            status.HTTP_409_CONFLICT,
            "ROUND_LOCKED",
            "This round is locked and picks cannot be changed.",
        )


async def submit_pick(
    actor_id: str,
    round_id: str,
    fixture_id: str,
    team_id: str,
    user_id: str | None = None,
) -> dict:
    """Create or replace the player's single pick for a round.

    Validates:
    - Round is current and not locked
    - Fixture belongs to the round and the team plays in it
    - Team is still in the player's allowed set (no-repeat rule)
    - Player is an active member
    """
    round_doc = await get_round(round_id)
    fixture = await get_fixture(fixture_id)
    competition = await get_competition(round_doc["competition_id"])
    require_open(competition)
    player = await _resolve_target(competition, actor_id, user_id)
    await _require_pickable_round(round_doc)

    if fixture["round_id"] != round_doc["_id"]:
        raise rule_error(
            status.HTTP_400_BAD_REQUEST,
            "INVALID_FIXTURE",
            "Fixture does not belong to this round.",
        )
    if team_id not in (fixture["home_team_id"], fixture["away_team_id"]):
        raise rule_error(
            status.HTTP_400_BAD_REQUEST,
            "INVALID_FIXTURE",
            "Team is not playing in this fixture.",
        )
    if competition.get("no_repeat_teams"):
        used = await used_team_ids(
            competition["_id"], player["user_id"], exclude_round_id=round_doc["_id"],
        )
        if team_id in used:
            raise rule_error(
                status.HTTP_409_CONFLICT,
                "TEAM_ALREADY_USED",
                f"'{team_id}' has already been used. Choose a different team.",
            )

    now = utcnow()
    key = {"round_id": round_doc["_id"], "user_id": player["user_id"]}
    update = {
        "$set": {
            "fixture_id": fixture["_id"],
            "team_id": team_id,
            "set_by": actor_id,
            "updated_at": now,
        },
        "$setOnInsert": {
            "competition_id": competition["_id"],
            "round_number": round_doc["round_number"],
            "outcome": None,
            "resolved_at": None,
            "created_at": now,
        },
    }
    try:
        pick = await _db.db.picks.find_one_and_update(
            key, update, upsert=True, return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError:
        # Lost an insert race against a concurrent submit; the row exists now.
        pick = await _db.db.picks.find_one_and_update(
            key, {"$set": update["$set"]}, return_document=ReturnDocument.AFTER,
        )

    logger.info(
        "Pick: competition=%s round=%d user=%s team=%s by=%s",
        competition["_id"], round_doc["round_number"], player["user_id"], team_id, actor_id,
    )
    await log_audit(
        actor_id=actor_id,
        competition_id=competition["_id"],
        action="PICK_MADE",
        metadata={
            "round_number": round_doc["round_number"],
            "user_id": player["user_id"],
            "team_id": team_id,
        },
    )
    return pick


async def remove_pick(actor_id: str, round_id: str, user_id: str | None = None) -> None:
    """Withdraw a pick before the round locks."""
    round_doc = await get_round(round_id)
    competition = await get_competition(round_doc["competition_id"])
    require_open(competition)
    player = await _resolve_target(competition, actor_id, user_id)
    await _require_pickable_round(round_doc)

    result = await _db.db.picks.delete_one(
        {"round_id": round_doc["_id"], "user_id": player["user_id"], "outcome": None},
    )
    if not result.deleted_count:
        raise rule_error(status.HTTP_404_NOT_FOUND, "NO_PICK_FOUND", "No pick to remove.")

    logger.info(
        "Pick removed: competition=%s round=%d user=%s by=%s",
        competition["_id"], round_doc["round_number"], player["user_id"], actor_id,
    )
    await log_audit(
        actor_id=actor_id,
        competition_id=competition["_id"],
        action="PICK_REMOVED",
        metadata={"round_number": round_doc["round_number"], "user_id": player["user_id"]},
    )


async def get_pick(round_id, user_id: str) -> dict | None:
    return await _db.db.picks.find_one({"round_id": ObjectId(round_id), "user_id": user_id})
