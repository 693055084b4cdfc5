"""Round endpoints: lock time, fixtures, picks and processing."""

from fastapi import APIRouter, Depends, Query, Response, status

from lastman.models.round import FixtureBatch, FixtureCreate, LockTimeUpdate, PickCreate
from lastman.routers.responses import fixture_response, pick_response, round_response
from lastman.services import elimination_service, pick_service, round_service, standings_service
from lastman.services.auth_service import get_current_user

router = APIRouter(prefix="/api/rounds", tags=["rounds"])


@router.get("/{round_id}")
async def get_round(round_id: str, user=Depends(get_current_user)):
    round_view = await standings_service.get_round_view(user["_id"], round_id)
    return round_response(round_view)


@router.patch("/{round_id}/lock-time")
async def update_lock_time(round_id: str, body: LockTimeUpdate, user=Depends(get_current_user)):
    """Move the lock time. Rejected once any result or outcome exists for the round."""
    round_doc = await round_service.update_lock_time(user["_id"], round_id, body.lock_time)
    return round_response(round_doc)


@router.post("/{round_id}/fixtures", status_code=status.HTTP_201_CREATED)
async def add_fixture(round_id: str, body: FixtureCreate, user=Depends(get_current_user)):
    fixture = await round_service.add_fixture(user["_id"], round_id, body)
    return fixture_response(fixture)


@router.post("/{round_id}/fixtures/bulk", status_code=status.HTTP_201_CREATED)
async def add_fixtures(round_id: str, body: FixtureBatch, user=Depends(get_current_user)):
    fixtures = await round_service.add_fixtures(user["_id"], round_id, body.fixtures)
    return [fixture_response(f) for f in fixtures]


@router.put("/{round_id}/fixtures")
async def replace_fixtures(round_id: str, body: FixtureBatch, user=Depends(get_current_user)):
    """Replace every fixture of an unlocked round that nobody has picked in yet."""
    replaced = await round_service.replace_fixtures(user["_id"], round_id, body.fixtures)
    return {
        "deleted_count": replaced["deleted_count"],
        "added_count": replaced["added_count"],
        "fixtures": [fixture_response(f) for f in replaced["fixtures"]],
    }


@router.put("/{round_id}/pick")
async def submit_pick(round_id: str, body: PickCreate, user=Depends(get_current_user)):
    """Create or replace the caller's (or, for organisers, a player's) pick."""
    pick = await pick_service.submit_pick(
        actor_id=user["_id"],
        round_id=round_id,
        fixture_id=body.fixture_id,
        team_id=body.team_id,
        user_id=body.user_id,
    )
    return pick_response(pick)


@router.delete("/{round_id}/pick", status_code=status.HTTP_204_NO_CONTENT)
async def remove_pick(
    round_id: str,
    user_id: str = Query(None),
    user=Depends(get_current_user),
):
    await pick_service.remove_pick(user["_id"], round_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{round_id}/pick")
async def get_my_pick(round_id: str, user=Depends(get_current_user)):
    pick = await pick_service.get_pick(round_id, user["_id"])
    return pick_response(pick) if pick else None


@router.post("/{round_id}/process")
async def process_round(round_id: str, user=Depends(get_current_user)):
    """Resolve outcomes and apply lives. Safe to call repeatedly."""
    report = await elimination_service.process_round(user["_id"], round_id)
    return report.model_dump()


@router.get("/{round_id}/statistics")
async def get_pick_statistics(round_id: str, user=Depends(get_current_user)):
    return await standings_service.get_pick_statistics(user["_id"], round_id)
