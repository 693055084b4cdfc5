"""Fixture endpoints for edits, result entry and removal."""

from fastapi import APIRouter, Depends, Response, status

from lastman.models.round import FixtureResultSet, FixtureUpdate
from lastman.routers.responses import fixture_response
from lastman.services import round_service
from lastman.services.auth_service import get_current_user

router = APIRouter(prefix="/api/fixtures", tags=["fixtures"])


@router.post("/{fixture_id}/result")
async def set_result(fixture_id: str, body: FixtureResultSet, user=Depends(get_current_user)):
    """Enter home_win / away_win / draw. Frozen once picks are scored on it."""
    fixture = await round_service.set_fixture_result(user["_id"], fixture_id, body.result)
    return fixture_response(fixture)


@router.patch("/{fixture_id}")
async def update_fixture(fixture_id: str, body: FixtureUpdate, user=Depends(get_current_user)):
    fixture = await round_service.update_fixture(user["_id"], fixture_id, body)
    return fixture_response(fixture)


@router.delete("/{fixture_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_fixture(fixture_id: str, user=Depends(get_current_user)):
    await round_service.delete_fixture(user["_id"], fixture_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
