"""Shape Mongo documents into API responses (ObjectIds become strings)."""

from lastman.models.competition import (
    CompetitionResponse,
    CompetitionSummary,
    PlayerRemoval,
    PlayerResponse,
    PlayerStanding,
)
from lastman.models.round import FixtureResponse, PickResponse, RoundListEntry, RoundResponse
from lastman.services.lock_gate import is_locked
from lastman.utils import stringify_ids


def competition_response(competition: dict) -> dict:
    return CompetitionResponse(
        id=str(competition["_id"]),
        name=competition["name"],
        organiser_id=competition["organiser_id"],
        status=competition["status"],
        lives_per_player=competition["lives_per_player"],
        no_repeat_teams=competition["no_repeat_teams"],
        teams=competition.get("teams", []),
        classification=competition.get("classification"),
        winner_user_id=competition.get("winner_user_id"),
        completed_at=competition.get("completed_at"),
    ).model_dump()


def player_response(player: dict) -> dict:
    return PlayerResponse(
        user_id=player["user_id"],
        display_name=player["display_name"],
        lives_remaining=player["lives_remaining"],
        status=player["status"],
        eliminated_round=player.get("eliminated_round"),
    ).model_dump()


def standing_response(player: dict) -> dict:
    return PlayerStanding(
        user_id=player["user_id"],
        display_name=player["display_name"],
        lives_remaining=player["lives_remaining"],
        status=player["status"],
        eliminated_round=player.get("eliminated_round"),
        history=stringify_ids(player.get("history", [])),
    ).model_dump()


def summary_response(summary: dict) -> dict:
    return CompetitionSummary(**summary).model_dump()


def fixture_response(fixture: dict) -> dict:
    return FixtureResponse(
        id=str(fixture["_id"]),
        round_id=str(fixture["round_id"]),
        home_team_id=fixture["home_team_id"],
        away_team_id=fixture["away_team_id"],
        kickoff_time=fixture.get("kickoff_time"),
        result=fixture.get("result"),
        processed_at=fixture.get("processed_at"),
    ).model_dump()


def round_response(round_doc: dict) -> dict:
    return RoundResponse(
        id=str(round_doc["_id"]),
        competition_id=str(round_doc["competition_id"]),
        round_number=round_doc["round_number"],
        lock_time=round_doc["lock_time"],
        is_locked=round_doc.get("is_locked", is_locked(round_doc)),
        resolved_at=round_doc.get("resolved_at"),
        fixtures=[fixture_response(f) for f in round_doc.get("fixtures", [])],
    ).model_dump()


def pick_response(pick: dict) -> dict:
    return PickResponse(
        id=str(pick["_id"]),
        round_id=str(pick["round_id"]),
        round_number=pick["round_number"],
        user_id=pick["user_id"],
        fixture_id=str(pick["fixture_id"]),
        team_id=pick["team_id"],
        outcome=pick.get("outcome"),
        set_by=pick.get("set_by"),
        updated_at=pick.get("updated_at"),
    ).model_dump()


def round_list_response(round_doc: dict) -> dict:
    return RoundListEntry(
        id=str(round_doc["_id"]),
        round_number=round_doc["round_number"],
        lock_time=round_doc["lock_time"],
        is_locked=round_doc["is_locked"],
        resolved_at=round_doc.get("resolved_at"),
        fixture_count=round_doc.get("fixture_count", 0),
    ).model_dump()


def removal_response(removal: dict) -> dict:
    return PlayerRemoval(**removal).model_dump()
