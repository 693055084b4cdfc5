"""Competition setup and membership."""

import logging

from bson import ObjectId
from fastapi import status
from pymongo.errors import DuplicateKeyError

import lastman.database as _db
from lastman.config import settings
from lastman.errors import rule_error
from lastman.models.competition import CompetitionCreate, CompetitionStatus, PlayerStatus
from lastman.services.audit_service import log_audit
from lastman.services.lock_gate import is_locked
from lastman.utils import utcnow

logger = logging.getLogger("lastman.competition_service")


async def create_competition(organiser_id: str, body: CompetitionCreate) -> dict:
    """Create a competition in SETUP. ``teams`` comes from the team-list service."""
    if not 1 <= body.lives_per_player <= settings.MAX_LIVES_PER_PLAYER:
        raise rule_error(
            status.HTTP_400_BAD_REQUEST,
            "INVALID_LIVES",
            f"Lives per player must be between 1 and {settings.MAX_LIVES_PER_PLAYER}.",
        )
    team_ids = [team.team_id for team in body.teams]
    if len(team_ids) < 2 or len(set(team_ids)) != len(team_ids):
        raise rule_error(
            status.HTTP_400_BAD_REQUEST,
            "INVALID_TEAM",
            "A competition needs at least two distinct teams.",
        )

    now = utcnow()
    doc = {
        "name": body.name,
        "organiser_id": organiser_id,
        "status": CompetitionStatus.SETUP.value,
        "lives_per_player": body.lives_per_player,
        "no_repeat_teams": body.no_repeat_teams,
        "teams": [team.model_dump() for team in body.teams],
        "classification": None,
        "winner_user_id": None,
        "completed_at": None,
        "created_at": now,
        "updated_at": now,
    }
    result = await _db.db.competitions.insert_one(doc)
    doc["_id"] = result.inserted_id

    logger.info(
        "Competition created: id=%s organiser=%s lives=%d no_repeat=%s",
        doc["_id"], organiser_id, body.lives_per_player, body.no_repeat_teams,
    )
    await log_audit(
        actor_id=organiser_id,
        competition_id=doc["_id"],
        action="COMPETITION_CREATED",
        metadata={"name": body.name, "teams": len(team_ids)},
    )
    return doc


async def get_competition(competition_id, *, session=None) -> dict:
    competition = await _db.db.competitions.find_one(
        {"_id": ObjectId(competition_id)}, session=session,
    )
    if not competition:
        raise rule_error(status.HTTP_404_NOT_FOUND, "COMPETITION_NOT_FOUND", "Competition not found.")
    return competition


def require_organiser(competition: dict, actor_id: str) -> None:
    if competition.get("organiser_id") != actor_id:
        raise rule_error(
            status.HTTP_403_FORBIDDEN,
            "FORBIDDEN",
            "Only the competition organiser can do this.",
        )


def require_open(competition: dict) -> None:
    if competition.get("status") == CompetitionStatus.COMPLETE.value:
        raise rule_error(
            status.HTTP_409_CONFLICT,
            "COMPETITION_COMPLETE",
            "This competition has finished.",
        )


async def get_player(competition_id, user_id: str, *, session=None) -> dict | None:
    return await _db.db.competition_players.find_one(
        {"competition_id": ObjectId(competition_id), "user_id": user_id},
        session=session,
    )


async def require_viewer(competition: dict, actor_id: str) -> None:
    """Organiser or any member, eliminated ones included, may read competition data."""
    if competition.get("organiser_id") == actor_id:
        return
    if not await get_player(competition["_id"], actor_id):
        raise rule_error(
            status.HTTP_403_FORBIDDEN,
            "NOT_A_PARTICIPANT",
            "You are not part of this competition.",
        )


async def add_player(
    actor_id: str, competition_id: str, display_name: str, user_id: str | None = None,
) -> dict:
    """Add a member with a full set of lives.

    Players join themselves; the organiser may add anyone. Joining closes
    once round 1 has locked.
    """
    competition = await get_competition(competition_id)
    user_id = user_id or actor_id
    if user_id != actor_id:
        require_organiser(competition, actor_id)
    require_open(competition)

    first_round = await _db.db.rounds.find_one(
        {"competition_id": competition["_id"], "round_number": 1},
    )
    if first_round and is_locked(first_round):
        raise rule_error(
            status.HTTP_409_CONFLICT,
            "COMPETITION_STARTED",
            "Round 1 has locked; no new players can join.",
        )

    now = utcnow()
    player = {
        "competition_id": competition["_id"],
        "user_id": user_id,
        "display_name": display_name,
        "lives_remaining": competition["lives_per_player"],
        "status": PlayerStatus.active.value,
        "applied_round_ids": [],
        "history": [],
        "eliminated_round": None,
        "joined_at": now,
        "updated_at": now,
    }
    try:
        result = await _db.db.competition_players.insert_one(player)
    except DuplicateKeyError:
        raise rule_error(
            status.HTTP_409_CONFLICT,
            "ALREADY_A_PARTICIPANT",
            "This user is already in the competition.",
        )
    player["_id"] = result.inserted_id

    logger.info("Player joined: competition=%s user=%s by=%s", competition["_id"], user_id, actor_id)
    await log_audit(
        actor_id=actor_id,
        competition_id=competition["_id"],
        action="PLAYER_ADDED",
        metadata={"user_id": user_id},
    )
    return player


async def remove_player(actor_id: str, competition_id: str, user_id: str) -> dict:
    """Organiser removes a member together with every pick they made.

    The player's picks and membership go in one transaction, so the
    used-team history never outlives the member.
    """
    competition = await get_competition(competition_id)
    require_organiser(competition, actor_id)
    require_open(competition)

    async def _apply(session):
        player = await get_player(competition["_id"], user_id, session=session)
        if not player:
            raise rule_error(
                status.HTTP_404_NOT_FOUND,
                "PLAYER_NOT_FOUND",
                "This user is not part of the competition.",
            )
        picks = await _db.db.picks.delete_many(
            {"competition_id": competition["_id"], "user_id": user_id}, session=session,
        )
        await _db.db.competition_players.delete_one({"_id": player["_id"]}, session=session)
        remaining = await _db.db.competition_players.count_documents(
            {"competition_id": competition["_id"]}, session=session,
        )
        return {
            "user_id": user_id,
            "display_name": player["display_name"],
            "picks_deleted": picks.deleted_count,
            "remaining_players": remaining,
        }

    removal = await _db.run_in_transaction(_apply)

    logger.info(
        "Player removed: competition=%s user=%s picks=%d",
        competition["_id"], user_id, removal["picks_deleted"],
    )
    await log_audit(
        actor_id=actor_id,
        competition_id=competition["_id"],
        action="PLAYER_REMOVED",
        metadata={"user_id": user_id, "picks_deleted": removal["picks_deleted"]},
    )
    return removal
