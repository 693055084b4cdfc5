"""
backend/tests/test_lock_gate.py

Purpose:
    Lock state derivation and lock-time edits.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from bson import ObjectId
from fastapi import HTTPException

from conftest import ORGANISER
from lastman.services import pick_service, round_service
from lastman.services.lock_gate import is_locked, lock_time_frozen
from lastman.utils import utcnow


def test_is_locked_boundary_is_inclusive():
    lock_time = datetime(2026, 3, 1, 15, 0, tzinfo=timezone.utc)
    round_doc = {"lock_time": lock_time}

    assert is_locked(round_doc, now=lock_time - timedelta(seconds=1)) is False
    assert is_locked(round_doc, now=lock_time) is True
    assert is_locked(round_doc, now=lock_time + timedelta(seconds=1)) is True


def test_is_locked_handles_naive_datetimes_from_mongo():
    naive = datetime(2026, 3, 1, 15, 0)
    assert is_locked({"lock_time": naive}, now=datetime(2026, 3, 1, 14, 0, tzinfo=timezone.utc)) is False
    assert is_locked({"lock_time": naive}, now=datetime(2026, 3, 1, 16, 0)) is True


def test_round_without_lock_time_counts_as_locked():
    assert is_locked({"lock_time": None}) is True
    assert is_locked({}) is True


@pytest.mark.asyncio
async def test_lock_time_frozen_once_any_pick_is_scored(fake_db):
    round_doc = {"_id": ObjectId(), "resolved_at": None, "no_pick_processed": False}
    assert await lock_time_frozen(round_doc) is False

    fake_db.picks.docs.append({"_id": ObjectId(), "round_id": round_doc["_id"], "outcome": None})
    assert await lock_time_frozen(round_doc) is False

    fake_db.picks.docs.append({"_id": ObjectId(), "round_id": round_doc["_id"], "outcome": "WIN"})
    assert await lock_time_frozen(round_doc) is True


@pytest.mark.asyncio
async def test_lock_time_frozen_after_no_pick_processing(fake_db):
    assert await lock_time_frozen({"_id": ObjectId(), "no_pick_processed": True}) is True
    assert await lock_time_frozen({"_id": ObjectId(), "resolved_at": utcnow()}) is True


@pytest.mark.asyncio
async def test_lock_time_can_be_moved_both_ways_before_outcomes(league):
    await league.create()
    round_doc, _ = await league.open_round()

    locked = await league.lock(round_doc)
    assert is_locked(locked) is True

    reopened = await round_service.update_lock_time(
        ORGANISER, str(round_doc["_id"]), utcnow() + timedelta(hours=1),
    )
    assert is_locked(reopened) is False
    stored = await round_service.get_round(round_doc["_id"])
    assert is_locked(stored) is False
    assert stored["version"] == 2


@pytest.mark.asyncio
async def test_lock_time_cannot_move_after_resolution(league):
    await league.create(lives=3)
    round_doc, fixtures = await league.open_round(fixtures=(("ARS", "CHE"),))
    await league.lock(round_doc)
    await league.result(fixtures[0], "home_win")
    await league.process(round_doc)

    with pytest.raises(HTTPException) as exc:
        await round_service.update_lock_time(
            ORGANISER, str(round_doc["_id"]), utcnow() + timedelta(days=1),
        )
    assert exc.value.status_code == 409
    assert exc.value.detail["code"] == "LOCK_TIME_FROZEN"

    stored = await round_service.get_round(round_doc["_id"])
    assert is_locked(stored) is True


@pytest.mark.asyncio
async def test_only_organiser_moves_lock_time(league):
    await league.create()
    round_doc, _ = await league.open_round()

    with pytest.raises(HTTPException) as exc:
        await round_service.update_lock_time("alice", str(round_doc["_id"]), utcnow())
    assert exc.value.status_code == 403
    assert exc.value.detail["code"] == "FORBIDDEN"


@pytest.mark.asyncio
async def test_lock_time_frozen_once_any_result_is_entered(fake_db):
    round_doc = {"_id": ObjectId(), "resolved_at": None, "no_pick_processed": False}
    fake_db.fixtures.docs.append({"_id": ObjectId(), "round_id": round_doc["_id"], "result": None})
    assert await lock_time_frozen(round_doc) is False

    fake_db.fixtures.docs.append({"_id": ObjectId(), "round_id": round_doc["_id"], "result": "CHE"})
    assert await lock_time_frozen(round_doc) is True


@pytest.mark.asyncio
async def test_entered_result_blocks_reopening_the_round(league):
    await league.create(lives=2)
    round_doc, fixtures = await league.open_round(fixtures=(("ARS", "CHE"), ("LIV", "MCI")))
    await pick_service.submit_pick("alice", str(round_doc["_id"]), str(fixtures[0]["_id"]), "ARS")
    await league.lock(round_doc)
    await league.result(fixtures[0], "away_win")

    with pytest.raises(HTTPException) as exc:
        await round_service.update_lock_time(
            ORGANISER, str(round_doc["_id"]), utcnow() + timedelta(hours=1),
        )
    assert exc.value.detail["code"] == "LOCK_TIME_FROZEN"

    # With the round still locked, the known loser cannot switch sides.
    with pytest.raises(HTTPException) as exc:
        await pick_service.submit_pick("alice", str(round_doc["_id"]), str(fixtures[0]["_id"]), "CHE")
    assert exc.value.detail["code"] == "ROUND_LOCKED"

    await league.result(fixtures[1], "draw")
    await league.process(round_doc)
    alice = await league.player("alice")
    assert alice["lives_remaining"] == 1
