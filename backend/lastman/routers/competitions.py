"""Competition endpoints: setup, membership and standings."""

from fastapi import APIRouter, Depends, Query, status

from lastman.models.competition import CompetitionCreate, PlayerJoin
from lastman.models.round import RoundCreate
from lastman.routers.responses import (
    competition_response,
    player_response,
    removal_response,
    round_list_response,
    round_response,
    standing_response,
    summary_response,
)
from lastman.services import competition_service, pick_service, round_service, standings_service
from lastman.services.auth_service import get_current_user
from lastman.utils import stringify_ids

router = APIRouter(prefix="/api/competitions", tags=["competitions"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_competition(body: CompetitionCreate, user=Depends(get_current_user)):
    competition = await competition_service.create_competition(user["_id"], body)
    return competition_response(competition)


@router.get("/{competition_id}")
async def get_summary(competition_id: str, user=Depends(get_current_user)):
    """Status, verdict and player counts."""
    summary = await standings_service.get_competition_summary(user["_id"], competition_id)
    return summary_response(summary)


@router.post("/{competition_id}/players", status_code=status.HTTP_201_CREATED)
async def add_player(competition_id: str, body: PlayerJoin, user=Depends(get_current_user)):
    player = await competition_service.add_player(
        actor_id=user["_id"],
        competition_id=competition_id,
        display_name=body.display_name,
        user_id=body.user_id,
    )
    return player_response(player)


@router.delete("/{competition_id}/players/{user_id}")
async def remove_player(competition_id: str, user_id: str, user=Depends(get_current_user)):
    """Organiser only. Deletes the member and all of their picks."""
    removal = await competition_service.remove_player(user["_id"], competition_id, user_id)
    return removal_response(removal)


@router.get("/{competition_id}/standings")
async def get_standings(competition_id: str, user=Depends(get_current_user)):
    players = await standings_service.get_standings(user["_id"], competition_id)
    return [standing_response(p) for p in players]


@router.get("/{competition_id}/players/{user_id}/history")
async def get_player_history(competition_id: str, user_id: str, user=Depends(get_current_user)):
    history = await standings_service.get_player_history(user["_id"], competition_id, user_id)
    return stringify_ids(history)


@router.get("/{competition_id}/allowed-teams")
async def get_allowed_teams(
    competition_id: str,
    user_id: str = Query(None),
    user=Depends(get_current_user),
):
    """Teams the player can still pick this round."""
    return await pick_service.get_allowed_teams(user["_id"], competition_id, user_id)


@router.post("/{competition_id}/rounds", status_code=status.HTTP_201_CREATED)
async def create_round(competition_id: str, body: RoundCreate, user=Depends(get_current_user)):
    round_doc = await round_service.create_round(user["_id"], competition_id, body.lock_time)
    return round_response(round_doc)


@router.get("/{competition_id}/rounds")
async def list_rounds(competition_id: str, user=Depends(get_current_user)):
    rounds = await standings_service.list_rounds(user["_id"], competition_id)
    return [round_list_response(r) for r in rounds]


@router.get("/{competition_id}/rounds/current")
async def get_current_round(competition_id: str, user=Depends(get_current_user)):
    round_view = await standings_service.get_current_round_view(user["_id"], competition_id)
    if not round_view:
        return None
    return round_response(round_view)
