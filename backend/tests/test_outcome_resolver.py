"""
backend/tests/test_outcome_resolver.py

Purpose:
    Pick scoring: WIN/LOSE/DRAW mapping, skipping unresulted fixtures, and
    never re-scoring a pick.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from bson import ObjectId
from fastapi import HTTPException

from lastman.models.round import DRAW_RESULT, PickOutcome
from lastman.services.outcome_service import compute_outcome, resolve_round
from lastman.utils import utcnow


def test_compute_outcome_mapping():
    assert compute_outcome("ARS", "ARS") is PickOutcome.WIN
    assert compute_outcome("ARS", "CHE") is PickOutcome.LOSE
    assert compute_outcome("ARS", DRAW_RESULT) is PickOutcome.DRAW
    assert compute_outcome("ARS", None) is None


def _seed(fake_db, results, picks):
    round_doc = {"_id": ObjectId(), "competition_id": ObjectId(), "round_number": 1}
    fixtures = []
    for home, away, result in results:
        fixture = {
            "_id": ObjectId(),
            "round_id": round_doc["_id"],
            "home_team_id": home,
            "away_team_id": away,
            "result": result,
            "processed_at": None,
        }
        fake_db.fixtures.docs.append(fixture)
        fixtures.append(fixture)
    for user_id, fixture_index, team_id in picks:
        fake_db.picks.docs.append({
            "_id": ObjectId(),
            "round_id": round_doc["_id"],
            "user_id": user_id,
            "fixture_id": fixtures[fixture_index]["_id"],
            "team_id": team_id,
            "outcome": None,
        })
    return round_doc, fixtures


def _outcomes(fake_db):
    return {p["user_id"]: p["outcome"] for p in fake_db.picks.docs}


@pytest.mark.asyncio
async def test_resolve_round_scores_each_pick(fake_db):
    round_doc, _ = _seed(
        fake_db,
        results=[("ARS", "CHE", "ARS"), ("LIV", "MCI", DRAW_RESULT)],
        picks=[("alice", 0, "ARS"), ("bob", 0, "CHE"), ("carol", 1, "LIV")],
    )

    tallies = await resolve_round(round_doc)

    assert tallies == {"wins": 1, "losses": 1, "draws": 1, "skipped": 0}
    assert _outcomes(fake_db) == {"alice": "WIN", "bob": "LOSE", "carol": "DRAW"}
    assert all(p["resolved_at"] is not None for p in fake_db.picks.docs)


@pytest.mark.asyncio
async def test_unresulted_fixture_is_skipped_and_resolved_later(fake_db):
    round_doc, fixtures = _seed(
        fake_db,
        results=[("ARS", "CHE", "ARS"), ("LIV", "MCI", None)],
        picks=[("alice", 0, "ARS"), ("bob", 1, "MCI")],
    )

    first = await resolve_round(round_doc)
    assert first == {"wins": 1, "losses": 0, "draws": 0, "skipped": 1}
    assert _outcomes(fake_db)["bob"] is None
    # Only the resulted fixture is consumed.
    assert fake_db.fixtures.docs[0]["processed_at"] is not None
    assert fake_db.fixtures.docs[1]["processed_at"] is None

    fake_db.fixtures.docs[1]["result"] = "LIV"
    second = await resolve_round(round_doc)
    assert second == {"wins": 0, "losses": 1, "draws": 0, "skipped": 0}
    assert _outcomes(fake_db) == {"alice": "WIN", "bob": "LOSE"}


@pytest.mark.asyncio
async def test_scored_picks_are_never_rescored(fake_db):
    round_doc, _ = _seed(
        fake_db,
        results=[("ARS", "CHE", "ARS")],
        picks=[("alice", 0, "ARS")],
    )
    await resolve_round(round_doc)
    scored_at = fake_db.picks.docs[0]["resolved_at"]

    # Even if a result changed underneath, a second pass reads no pending picks.
    fake_db.fixtures.docs[0]["result"] = "CHE"
    again = await resolve_round(round_doc)

    assert again == {"wins": 0, "losses": 0, "draws": 0, "skipped": 0}
    assert fake_db.picks.docs[0]["outcome"] == "WIN"
    assert fake_db.picks.docs[0]["resolved_at"] == scored_at


@pytest.mark.asyncio
async def test_round_with_no_picks_still_consumes_results(fake_db):
    round_doc, _ = _seed(fake_db, results=[("ARS", "CHE", DRAW_RESULT)], picks=[])

    tallies = await resolve_round(round_doc)

    assert tallies == {"wins": 0, "losses": 0, "draws": 0, "skipped": 0}
    assert fake_db.fixtures.docs[0]["processed_at"] is not None


@pytest.mark.asyncio
async def test_open_round_is_not_resolved(fake_db):
    round_doc, _ = _seed(fake_db, results=[("ARS", "CHE", "ARS")], picks=[("alice", 0, "ARS")])
    round_doc["lock_time"] = utcnow() + timedelta(hours=1)

    with pytest.raises(HTTPException) as exc:
        await resolve_round(round_doc)

    assert exc.value.detail["code"] == "ROUND_NOT_LOCKED"
    assert fake_db.picks.docs[0]["outcome"] is None
