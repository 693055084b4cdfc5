"""Round processing: resolve outcomes and apply lives, then judge the competition.

Everything for one round runs inside a single MongoDB transaction. The
transaction starts by bumping ``rounds.version``, which makes concurrent
processing (or a concurrent lock-time edit) of the same round conflict and
retry instead of interleaving. A failure anywhere rolls the whole pass
back, so outcomes are never left scored without their lives applied.
"""

import logging

from fastapi import status
from pymongo import ReturnDocument

import lastman.database as _db
from lastman.errors import rule_error
from lastman.models.competition import PlayerStatus
from lastman.models.round import RoundProcessingReport
from lastman.services.audit_service import log_audit
from lastman.services.competition_service import get_competition, require_organiser
from lastman.services.life_ledger_service import apply_outcomes
from lastman.services.lock_gate import is_locked
from lastman.services.outcome_service import resolve_round
from lastman.services.progression_service import evaluate
from lastman.services.round_service import get_round
from lastman.utils import utcnow

logger = logging.getLogger("lastman.elimination_service")


async def round_complete(round_doc: dict, *, session=None) -> bool:
    """All fixtures resulted, all picks scored and every active player applied.

    A round without fixtures has nothing to resolve and counts as complete.
    """
    fixtures = await _db.db.fixtures.find(
        {"round_id": round_doc["_id"]}, {"result": 1}, session=session,
    ).to_list(length=None)
    if not fixtures:
        return True
    if any(f.get("result") is None for f in fixtures):
        return False
    unscored = await _db.db.picks.find_one(
        {"round_id": round_doc["_id"], "outcome": None}, {"_id": 1}, session=session,
    )
    if unscored:
        return False
    unapplied = await _db.db.competition_players.find_one(
        {
            "competition_id": round_doc["competition_id"],
            "status": PlayerStatus.active.value,
            "applied_round_ids": {"$ne": round_doc["_id"]},
        },
        {"_id": 1},
        session=session,
    )
    return unapplied is None


async def run_round_resolution(round_doc: dict) -> RoundProcessingReport:
    """One transactional resolve + apply (+ judge) pass. Safe to re-run."""

    async def _process(session) -> RoundProcessingReport:
        current = await _db.db.rounds.find_one_and_update(
            {"_id": round_doc["_id"]},
            {"$inc": {"version": 1}},
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        report = RoundProcessingReport(
            round_id=str(current["_id"]),
            round_number=current["round_number"],
        )
        if current.get("resolved_at"):
            competition = await _db.db.competitions.find_one(
                {"_id": current["competition_id"]}, session=session,
            )
            report.round_complete = True
            report.classification = competition.get("classification")
            report.winner_user_id = competition.get("winner_user_id")
            return report

        now = utcnow()
        tallies = await resolve_round(current, session=session, now=now)
        counts = await apply_outcomes(current, session=session, now=now)
        for key, value in {**tallies, **counts}.items():
            setattr(report, key, value)

        if await round_complete(current, session=session):
            await _db.db.rounds.update_one(
                {"_id": current["_id"]},
                {"$set": {"resolved_at": now, "updated_at": now}},
                session=session,
            )
            verdict = await evaluate(current["competition_id"], session=session, now=now)
            report.round_complete = True
            report.classification = verdict["classification"].value
            report.winner_user_id = verdict["winner_user_id"]
        return report

    report = await _db.run_in_transaction(_process)
    logger.info(
        "Round processed: round=%s number=%d complete=%s lives_lost=%d eliminated=%d",
        report.round_id, report.round_number, report.round_complete,
        report.lives_lost, report.eliminated,
    )
    return report


async def process_round(actor_id: str, round_id: str) -> RoundProcessingReport:
    """Organiser entry point. Re-running on a processed round changes nothing."""
    round_doc = await get_round(round_id)
    competition = await get_competition(round_doc["competition_id"])
    require_organiser(competition, actor_id)
    if not is_locked(round_doc):
        raise rule_error(
            status.HTTP_409_CONFLICT,
            "ROUND_NOT_LOCKED",
            "Picks are still open for this round.",
        )

    report = await run_round_resolution(round_doc)
    await log_audit(
        actor_id=actor_id,
        competition_id=competition["_id"],
        action="ROUND_PROCESSED",
        metadata=report.model_dump(),
    )
    return report
