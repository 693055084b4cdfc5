"""Read-only reporting: round list, current round, standings, history, summary, pick stats.

Nothing in this module writes.
"""

from fastapi import status

import lastman.database as _db
from lastman.config import settings
from lastman.errors import rule_error
from lastman.models.competition import PlayerStatus
from lastman.services.competition_service import get_competition, get_player, require_viewer
from lastman.services.lock_gate import is_locked
from lastman.services.round_service import get_current_round, get_round, list_fixtures


async def get_round_view(actor_id: str, round_id: str) -> dict:
    round_doc = await get_round(round_id)
    competition = await get_competition(round_doc["competition_id"])
    await require_viewer(competition, actor_id)
    return await _with_fixtures(round_doc)


async def get_current_round_view(actor_id: str, competition_id: str) -> dict | None:
    competition = await get_competition(competition_id)
    await require_viewer(competition, actor_id)
    current = await get_current_round(competition["_id"])
    if not current:
        return None
    return await _with_fixtures(current)


async def list_rounds(actor_id: str, competition_id: str) -> list[dict]:
    """Every round of the competition in order, with its fixture count."""
    competition = await get_competition(competition_id)
    await require_viewer(competition, actor_id)
    rounds = await _db.db.rounds.find(
        {"competition_id": competition["_id"]},
    ).sort("round_number", 1).to_list(length=None)
    for round_doc in rounds:
        round_doc["is_locked"] = is_locked(round_doc)
        round_doc["fixture_count"] = await _db.db.fixtures.count_documents(
            {"round_id": round_doc["_id"]},
        )
    return rounds


async def _with_fixtures(round_doc: dict) -> dict:
    view = dict(round_doc)
    view["is_locked"] = is_locked(round_doc)
    view["fixtures"] = await list_fixtures(round_doc["_id"])
    return view


def _standing_sort_key(player: dict) -> tuple:
    return (
        player.get("status") != PlayerStatus.active.value,
        -player.get("lives_remaining", 0),
        (player.get("display_name") or "").lower(),
    )


async def get_standings(actor_id: str, competition_id: str) -> list[dict]:
    """Active players first, then by lives remaining, then by name."""
    competition = await get_competition(competition_id)
    await require_viewer(competition, actor_id)
    players = await _db.db.competition_players.find(
        {"competition_id": competition["_id"]},
    ).to_list(length=settings.STANDINGS_MAX_PLAYERS)
    return sorted(players, key=_standing_sort_key)


async def get_player_history(actor_id: str, competition_id: str, user_id: str) -> list[dict]:
    competition = await get_competition(competition_id)
    await require_viewer(competition, actor_id)
    player = await get_player(competition["_id"], user_id)
    if not player:
        raise rule_error(
            status.HTTP_404_NOT_FOUND,
            "NOT_A_PARTICIPANT",
            "This user is not part of the competition.",
        )
    return sorted(player.get("history", []), key=lambda entry: entry["round_number"])


async def get_competition_summary(actor_id: str, competition_id: str) -> dict:
    competition = await get_competition(competition_id)
    await require_viewer(competition, actor_id)

    active = await _db.db.competition_players.count_documents(
        {"competition_id": competition["_id"], "status": PlayerStatus.active.value},
    )
    total = await _db.db.competition_players.count_documents(
        {"competition_id": competition["_id"]},
    )
    current = await get_current_round(competition["_id"])
    return {
        "id": str(competition["_id"]),
        "name": competition["name"],
        "status": competition["status"],
        "classification": competition.get("classification"),
        "winner_user_id": competition.get("winner_user_id"),
        "current_round_number": current["round_number"] if current else None,
        "current_round_locked": is_locked(current) if current else None,
        "active_players": active,
        "eliminated_players": total - active,
        "total_players": total,
    }


async def get_pick_statistics(actor_id: str, round_id: str) -> list[dict]:
    """Per-fixture pick counts. Hidden until the round locks."""
    round_doc = await get_round(round_id)
    competition = await get_competition(round_doc["competition_id"])
    await require_viewer(competition, actor_id)
    if not is_locked(round_doc):
        raise rule_error(
            status.HTTP_409_CONFLICT,
            "ROUND_NOT_LOCKED",
            "Pick statistics are available once the round locks.",
        )

    fixtures = await list_fixtures(round_doc["_id"])
    picks = await _db.db.picks.find(
        {"round_id": round_doc["_id"]}, {"fixture_id": 1, "team_id": 1},
    ).to_list(length=None)

    stats = []
    for fixture in fixtures:
        chosen = [p["team_id"] for p in picks if p["fixture_id"] == fixture["_id"]]
        stats.append({
            "fixture_id": str(fixture["_id"]),
            "home_team_id": fixture["home_team_id"],
            "away_team_id": fixture["away_team_id"],
            "home_picks": chosen.count(fixture["home_team_id"]),
            "away_picks": chosen.count(fixture["away_team_id"]),
            "total_picks": len(chosen),
            "result": fixture.get("result"),
        })
    return stats
