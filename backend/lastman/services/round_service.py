"""Rounds and fixtures: sequencing, lock-time edits and result entry."""

import logging
from datetime import datetime

from bson import ObjectId
from fastapi import status
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

import lastman.database as _db
from lastman.errors import rule_error
from lastman.models.competition import CompetitionStatus
from lastman.models.round import DRAW_RESULT, FixtureCreate, FixtureUpdate, ResultInput
from lastman.services.audit_service import log_audit
from lastman.services.competition_service import get_competition, require_open, require_organiser
from lastman.services.lock_gate import is_locked, lock_time_frozen
from lastman.utils import ensure_utc, utcnow

logger = logging.getLogger("lastman.round_service")


async def get_round(round_id, *, session=None) -> dict:
    round_doc = await _db.db.rounds.find_one({"_id": ObjectId(round_id)}, session=session)
    if not round_doc:
        raise rule_error(status.HTTP_404_NOT_FOUND, "ROUND_NOT_FOUND", "Round not found.")
    return round_doc


async def get_current_round(competition_id, *, session=None) -> dict | None:
    """The round with the highest number is the current one."""
    return await _db.db.rounds.find_one(
        {"competition_id": ObjectId(competition_id)},
        sort=[("round_number", -1)],
        session=session,
    )


async def get_fixture(fixture_id, *, session=None) -> dict:
    fixture = await _db.db.fixtures.find_one({"_id": ObjectId(fixture_id)}, session=session)
    if not fixture:
        raise rule_error(status.HTTP_404_NOT_FOUND, "FIXTURE_NOT_FOUND", "Fixture not found.")
    return fixture


async def list_fixtures(round_id, *, session=None) -> list[dict]:
    return await _db.db.fixtures.find(
        {"round_id": ObjectId(round_id)}, session=session,
    ).sort("_id", 1).to_list(length=None)


def translate_result(fixture: dict, result: ResultInput | str) -> str:
    """Map an organiser's home_win/away_win/draw onto the stored result value."""
    try:
        result = ResultInput(result)
    except ValueError:
        raise rule_error(
            status.HTTP_400_BAD_REQUEST,
            "INVALID_RESULT",
            "Result must be one of home_win, away_win or draw.",
        )
    if result is ResultInput.home_win:
        return fixture["home_team_id"]
    if result is ResultInput.away_win:
        return fixture["away_team_id"]
    return DRAW_RESULT


async def create_round(actor_id: str, competition_id: str, lock_time: datetime) -> dict:
    """Open the next sequential round.

    The previous round must be fully resolved first, so rounds are always
    processed in order.
    """
    competition = await get_competition(competition_id)
    require_organiser(competition, actor_id)
    require_open(competition)

    current = await get_current_round(competition["_id"])
    if current and not current.get("resolved_at"):
        raise rule_error(
            status.HTTP_409_CONFLICT,
            "ROUND_NOT_RESOLVED",
            f"Round {current['round_number']} has not been fully resolved yet.",
        )
    round_number = (current["round_number"] if current else 0) + 1

    now = utcnow()
    round_doc = {
        "competition_id": competition["_id"],
        "round_number": round_number,
        "lock_time": ensure_utc(lock_time),
        "no_pick_processed": False,
        "resolved_at": None,
        "version": 0,
        "created_at": now,
        "updated_at": now,
    }
    try:
        result = await _db.db.rounds.insert_one(round_doc)
    except DuplicateKeyError:
        # Double submit: the other request created it first.
        logger.info(
            "Round %d already exists for competition %s", round_number, competition["_id"],
        )
        return await _db.db.rounds.find_one(
            {"competition_id": competition["_id"], "round_number": round_number},
        )
    round_doc["_id"] = result.inserted_id

    if competition["status"] == CompetitionStatus.SETUP.value:
        await _db.db.competitions.update_one(
            {"_id": competition["_id"], "status": CompetitionStatus.SETUP.value},
            {"$set": {"status": CompetitionStatus.ACTIVE.value, "updated_at": now}},
        )

    logger.info(
        "Round created: competition=%s round=%d lock_time=%s",
        competition["_id"], round_number, round_doc["lock_time"].isoformat(),
    )
    await log_audit(
        actor_id=actor_id,
        competition_id=competition["_id"],
        action="ROUND_CREATED",
        metadata={"round_number": round_number, "lock_time": round_doc["lock_time"]},
    )
    return round_doc


async def update_lock_time(actor_id: str, round_id: str, lock_time: datetime) -> dict:
    """Move a round's lock time while no result or outcome has been recorded for it.

    Runs in a transaction that first bumps ``rounds.version``; resolution
    does the same, so the two never interleave on one round.
    """
    round_doc = await get_round(round_id)
    competition = await get_competition(round_doc["competition_id"])
    require_organiser(competition, actor_id)
    require_open(competition)
    new_lock_time = ensure_utc(lock_time)

    async def _apply(session):
        current = await _db.db.rounds.find_one_and_update(
            {"_id": round_doc["_id"]},
            {"$inc": {"version": 1}},
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        if await lock_time_frozen(current, session=session):
            raise rule_error(
                status.HTTP_409_CONFLICT,
                "LOCK_TIME_FROZEN",
                "Results exist for this round; its lock time can no longer change.",
            )
        await _db.db.rounds.update_one(
            {"_id": current["_id"]},
            {"$set": {"lock_time": new_lock_time, "updated_at": utcnow()}},
            session=session,
        )
        current["lock_time"] = new_lock_time
        return current

    updated = await _db.run_in_transaction(_apply)

    logger.info(
        "Lock time moved: round=%s %s -> %s",
        round_doc["_id"], round_doc.get("lock_time"), new_lock_time.isoformat(),
    )
    await log_audit(
        actor_id=actor_id,
        competition_id=competition["_id"],
        action="ROUND_LOCK_TIME_UPDATED",
        metadata={
            "round_number": round_doc["round_number"],
            "before": round_doc.get("lock_time"),
            "after": new_lock_time,
        },
    )
    return updated


def _check_teams(competition: dict, home_team_id: str, away_team_id: str) -> None:
    valid_teams = {team["team_id"] for team in competition.get("teams", [])}
    if (
        home_team_id == away_team_id
        or home_team_id not in valid_teams
        or away_team_id not in valid_teams
    ):
        raise rule_error(
            status.HTTP_400_BAD_REQUEST,
            "INVALID_TEAM",
            "Both teams must be different members of the competition's team list.",
        )


def _new_fixture(round_doc: dict, body: FixtureCreate, now: datetime) -> dict:
    return {
        "round_id": round_doc["_id"],
        "competition_id": round_doc["competition_id"],
        "home_team_id": body.home_team_id,
        "away_team_id": body.away_team_id,
        "kickoff_time": ensure_utc(body.kickoff_time) if body.kickoff_time else None,
        "result": None,
        "processed_at": None,
        "created_at": now,
        "updated_at": now,
    }


async def _editable_round(actor_id: str, round_id) -> tuple[dict, dict]:
    """Round and competition, once the caller may still change its fixtures."""
    round_doc = await get_round(round_id)
    competition = await get_competition(round_doc["competition_id"])
    require_organiser(competition, actor_id)
    require_open(competition)
    if is_locked(round_doc):
        raise rule_error(status.HTTP_409_CONFLICT, "ROUND_LOCKED", "Round is locked.")
    return round_doc, competition


async def add_fixture(actor_id: str, round_id: str, body: FixtureCreate) -> dict:
    round_doc, competition = await _editable_round(actor_id, round_id)
    _check_teams(competition, body.home_team_id, body.away_team_id)

    fixture = _new_fixture(round_doc, body, utcnow())
    result = await _db.db.fixtures.insert_one(fixture)
    fixture["_id"] = result.inserted_id

    await log_audit(
        actor_id=actor_id,
        competition_id=competition["_id"],
        action="FIXTURE_ADDED",
        metadata={
            "round_number": round_doc["round_number"],
            "home": body.home_team_id,
            "away": body.away_team_id,
        },
    )
    return fixture


async def add_fixtures(actor_id: str, round_id: str, bodies: list[FixtureCreate]) -> list[dict]:
    """Add several fixtures at once. Nothing is inserted if any pairing is invalid."""
    round_doc, competition = await _editable_round(actor_id, round_id)
    for body in bodies:
        _check_teams(competition, body.home_team_id, body.away_team_id)

    now = utcnow()
    fixtures = [_new_fixture(round_doc, body, now) for body in bodies]
    result = await _db.db.fixtures.insert_many(fixtures)
    for fixture, inserted_id in zip(fixtures, result.inserted_ids):
        fixture["_id"] = inserted_id

    logger.info("Fixtures added: round=%s count=%d", round_doc["_id"], len(fixtures))
    await log_audit(
        actor_id=actor_id,
        competition_id=competition["_id"],
        action="FIXTURES_ADDED",
        metadata={"round_number": round_doc["round_number"], "count": len(fixtures)},
    )
    return fixtures


async def replace_fixtures(actor_id: str, round_id: str, bodies: list[FixtureCreate]) -> dict:
    """Swap a round's whole fixture list for a new one.

    Refused once any player has picked in the round. The delete and the
    insert happen in one transaction.
    """
    round_doc, competition = await _editable_round(actor_id, round_id)
    for body in bodies:
        _check_teams(competition, body.home_team_id, body.away_team_id)

    now = utcnow()
    fixtures = [_new_fixture(round_doc, body, now) for body in bodies]

    async def _apply(session):
        if await _db.db.picks.count_documents({"round_id": round_doc["_id"]}, session=session):
            raise rule_error(
                status.HTTP_409_CONFLICT,
                "FIXTURE_HAS_PICKS",
                "Players have already picked in this round; its fixtures cannot be replaced.",
            )
        deleted = await _db.db.fixtures.delete_many({"round_id": round_doc["_id"]}, session=session)
        result = await _db.db.fixtures.insert_many(fixtures, session=session)
        for fixture, inserted_id in zip(fixtures, result.inserted_ids):
            fixture["_id"] = inserted_id
        return deleted.deleted_count

    deleted_count = await _db.run_in_transaction(_apply)

    logger.info(
        "Fixtures replaced: round=%s deleted=%d added=%d",
        round_doc["_id"], deleted_count, len(fixtures),
    )
    await log_audit(
        actor_id=actor_id,
        competition_id=competition["_id"],
        action="FIXTURES_REPLACED",
        metadata={
            "round_number": round_doc["round_number"],
            "deleted": deleted_count,
            "added": len(fixtures),
        },
    )
    return {"deleted_count": deleted_count, "added_count": len(fixtures), "fixtures": fixtures}


async def update_fixture(actor_id: str, fixture_id: str, body: FixtureUpdate) -> dict:
    """Edit teams or kickoff time before lock.

    Kickoff changes are always allowed; teams cannot change under a pick.
    """
    fixture = await get_fixture(fixture_id)
    round_doc, competition = await _editable_round(actor_id, fixture["round_id"])

    changes = body.model_dump(exclude_unset=True)
    home = changes.get("home_team_id") or fixture["home_team_id"]
    away = changes.get("away_team_id") or fixture["away_team_id"]
    teams_changed = (home, away) != (fixture["home_team_id"], fixture["away_team_id"])
    if teams_changed:
        _check_teams(competition, home, away)
        if await _db.db.picks.count_documents({"fixture_id": fixture["_id"]}):
            raise rule_error(
                status.HTTP_409_CONFLICT,
                "FIXTURE_HAS_PICKS",
                "Players have picked from this fixture; its teams cannot change.",
            )

    update = {"home_team_id": home, "away_team_id": away, "updated_at": utcnow()}
    if "kickoff_time" in changes:
        kickoff = changes["kickoff_time"]
        update["kickoff_time"] = ensure_utc(kickoff) if kickoff else None
    updated = await _db.db.fixtures.find_one_and_update(
        {"_id": fixture["_id"]},
        {"$set": update},
        return_document=ReturnDocument.AFTER,
    )

    await log_audit(
        actor_id=actor_id,
        competition_id=competition["_id"],
        action="FIXTURE_UPDATED",
        metadata={
            "round_number": round_doc["round_number"],
            "fixture_id": str(fixture["_id"]),
            "before": {"home": fixture["home_team_id"], "away": fixture["away_team_id"]},
            "after": {"home": home, "away": away},
        },
    )
    return updated


async def delete_fixture(actor_id: str, fixture_id: str) -> None:
    fixture = await get_fixture(fixture_id)
    round_doc = await get_round(fixture["round_id"])
    competition = await get_competition(round_doc["competition_id"])
    require_organiser(competition, actor_id)
    if is_locked(round_doc):
        raise rule_error(status.HTTP_409_CONFLICT, "ROUND_LOCKED", "Round is locked.")
    if await _db.db.picks.count_documents({"fixture_id": fixture["_id"]}):
        raise rule_error(
            status.HTTP_409_CONFLICT,
            "FIXTURE_HAS_PICKS",
            "Players have picked from this fixture; it cannot be removed.",
        )

    await _db.db.fixtures.delete_one({"_id": fixture["_id"]})
    await log_audit(
        actor_id=actor_id,
        competition_id=competition["_id"],
        action="FIXTURE_DELETED",
        metadata={"home": fixture["home_team_id"], "away": fixture["away_team_id"]},
    )


async def set_fixture_result(actor_id: str, fixture_id: str, result: ResultInput) -> dict:
    """Record a result on a locked round's fixture.

    Results can be corrected until resolution consumes the fixture; after
    that they are frozen and lives are never re-scored.
    """
    fixture = await get_fixture(fixture_id)
    round_doc = await get_round(fixture["round_id"])
    competition = await get_competition(round_doc["competition_id"])
    require_organiser(competition, actor_id)
    if not is_locked(round_doc):
        raise rule_error(
            status.HTTP_409_CONFLICT,
            "ROUND_NOT_LOCKED",
            "Lock the round before entering results.",
        )
    frozen = rule_error(
        status.HTTP_409_CONFLICT,
        "RESULT_FROZEN",
        "Picks have already been scored against this fixture.",
    )
    if fixture.get("processed_at"):
        raise frozen

    value = translate_result(fixture, result)
    now = utcnow()
    update = await _db.db.fixtures.update_one(
        {"_id": fixture["_id"], "processed_at": None},
        {"$set": {"result": value, "result_set_at": now, "updated_at": now}},
    )
    if not update.matched_count:
        raise frozen
    previous = fixture.get("result")
    fixture["result"] = value

    logger.info(
        "Fixture result: fixture=%s %s v %s -> %s",
        fixture["_id"], fixture["home_team_id"], fixture["away_team_id"], value,
    )
    await log_audit(
        actor_id=actor_id,
        competition_id=competition["_id"],
        action="FIXTURE_RESULT_SET",
        metadata={
            "round_number": round_doc["round_number"],
            "fixture_id": str(fixture["_id"]),
            "before": previous,
            "after": value,
        },
    )
    return fixture
