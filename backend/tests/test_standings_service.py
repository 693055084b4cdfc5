"""
backend/tests/test_standings_service.py

Purpose:
    Read-only reporting: standings order, history, summary and pick stats.
"""

from __future__ import annotations

import pytest
from fastapi import HTTPException

from conftest import ORGANISER
from lastman.services import pick_service, standings_service


async def _pick(round_doc, fixture, user_id, team_id):
    return await pick_service.submit_pick(
        user_id, str(round_doc["_id"]), str(fixture["_id"]), team_id,
    )


async def _play_first_round(league):
    await league.create(players=("alice", "bob", "carol", "dave"), lives=2)
    round_doc, fixtures = await league.open_round(fixtures=(("ARS", "CHE"), ("LIV", "MCI")))
    await _pick(round_doc, fixtures[0], "alice", "ARS")
    await _pick(round_doc, fixtures[0], "bob", "CHE")
    await _pick(round_doc, fixtures[1], "carol", "MCI")
    await league.lock(round_doc)
    await league.result(fixtures[0], "home_win")
    await league.result(fixtures[1], "draw")
    await league.process(round_doc)
    return round_doc, fixtures


@pytest.mark.asyncio
async def test_standings_order_by_status_lives_then_name(league, fake_db):
    await _play_first_round(league)
    fake_db.competition_players.docs[1].update({"status": "eliminated", "lives_remaining": 0})

    standings = await standings_service.get_standings("alice", league.competition_id)

    assert [p["user_id"] for p in standings] == ["alice", "carol", "dave", "bob"]


@pytest.mark.asyncio
async def test_player_history_lists_rounds(league):
    round_doc, _ = await _play_first_round(league)

    history = await standings_service.get_player_history(ORGANISER, league.competition_id, "dave")

    assert history == [{
        "round_id": round_doc["_id"],
        "round_number": 1,
        "team_id": None,
        "outcome": "LOSE",
        "no_pick": True,
        "lives_after": 1,
    }]


@pytest.mark.asyncio
async def test_history_for_unknown_player_is_404(league):
    await league.create()
    with pytest.raises(HTTPException) as exc:
        await standings_service.get_player_history(ORGANISER, league.competition_id, "zed")
    assert exc.value.status_code == 404


@pytest.mark.asyncio
async def test_outsiders_cannot_read_standings(league):
    await league.create()
    with pytest.raises(HTTPException) as exc:
        await standings_service.get_standings("mallory", league.competition_id)
    assert exc.value.status_code == 403
    assert exc.value.detail["code"] == "NOT_A_PARTICIPANT"


@pytest.mark.asyncio
async def test_summary_counts(league):
    await _play_first_round(league)

    summary = await standings_service.get_competition_summary("bob", league.competition_id)

    assert summary["status"] == "ACTIVE"
    assert summary["classification"] == "CONTINUE"
    assert summary["current_round_number"] == 1
    assert summary["current_round_locked"] is True
    assert summary["total_players"] == 4
    assert summary["active_players"] == 4
    assert summary["eliminated_players"] == 0


@pytest.mark.asyncio
async def test_pick_statistics_hidden_until_lock(league):
    await league.create()
    round_doc, fixtures = await league.open_round(fixtures=(("ARS", "CHE"),))
    await _pick(round_doc, fixtures[0], "alice", "ARS")

    with pytest.raises(HTTPException) as exc:
        await standings_service.get_pick_statistics("alice", str(round_doc["_id"]))
    assert exc.value.detail["code"] == "ROUND_NOT_LOCKED"

    await _pick(round_doc, fixtures[0], "bob", "ARS")
    await league.lock(round_doc)
    stats = await standings_service.get_pick_statistics("alice", str(round_doc["_id"]))

    assert stats == [{
        "fixture_id": str(fixtures[0]["_id"]),
        "home_team_id": "ARS",
        "away_team_id": "CHE",
        "home_picks": 2,
        "away_picks": 0,
        "total_picks": 2,
        "result": None,
    }]


@pytest.mark.asyncio
async def test_current_round_view_includes_fixtures_and_lock_state(league):
    await league.create()
    assert await standings_service.get_current_round_view("alice", league.competition_id) is None

    round_doc, fixtures = await league.open_round()
    view = await standings_service.get_current_round_view("alice", league.competition_id)

    assert view["_id"] == round_doc["_id"]
    assert view["is_locked"] is False
    assert [f["_id"] for f in view["fixtures"]] == [f["_id"] for f in fixtures]


@pytest.mark.asyncio
async def test_round_list_in_order_with_fixture_counts(league):
    round_one, _ = await _play_first_round(league)
    round_two, _ = await league.open_round(fixtures=(("NEW", "TOT"),))

    rounds = await standings_service.list_rounds("dave", league.competition_id)

    assert [r["_id"] for r in rounds] == [round_one["_id"], round_two["_id"]]
    assert [r["fixture_count"] for r in rounds] == [2, 1]
    assert [r["is_locked"] for r in rounds] == [True, False]
    assert rounds[0]["resolved_at"] is not None

    with pytest.raises(HTTPException) as exc:
        await standings_service.list_rounds("mallory", league.competition_id)
    assert exc.value.detail["code"] == "NOT_A_PARTICIPANT"
