"""
backend/tests/conftest.py

Purpose:
    Shared pytest bootstrap: import paths, required settings, and an
    in-memory database wired into ``lastman.database`` for every service.
"""

from __future__ import annotations

import os
import sys
from datetime import timedelta
from pathlib import Path

import pytest

_THIS_FILE = Path(__file__).resolve()
_BACKEND_DIR = _THIS_FILE.parents[1]
_TESTS_DIR = _THIS_FILE.parent

for candidate in (str(_BACKEND_DIR), str(_TESTS_DIR)):
    if candidate not in sys.path:
        sys.path.insert(0, candidate)

# Settings are read at import time; tests never talk to a real server.
os.environ.setdefault("MONGO_URI", "mongodb://localhost:27017/?replicaSet=rs0")
os.environ.setdefault("JWT_SECRET", "test-secret-for-the-lastman-suite-0001")
os.environ.setdefault("RESOLVER_SWEEP_ENABLED", "false")

import lastman.database as _db  # noqa: E402
from fake_mongo import FakeClient, FakeDatabase  # noqa: E402
from lastman.models.competition import CompetitionCreate  # noqa: E402
from lastman.models.round import FixtureCreate, ResultInput  # noqa: E402
from lastman.services import competition_service, round_service  # noqa: E402
from lastman.services.elimination_service import process_round  # noqa: E402
from lastman.utils import utcnow  # noqa: E402

ORGANISER = "organiser-1"

TEAMS = [
    {"team_id": "ARS", "name": "Arsenal"},
    {"team_id": "CHE", "name": "Chelsea"},
    {"team_id": "LIV", "name": "Liverpool"},
    {"team_id": "MCI", "name": "Manchester City"},
    {"team_id": "NEW", "name": "Newcastle"},
    {"team_id": "TOT", "name": "Tottenham"},
]

UNIQUE_INDEXES = {
    "competition_players": [("competition_id", "user_id")],
    "rounds": [("competition_id", "round_number")],
    "picks": [("round_id", "user_id")],
}


@pytest.fixture
def fake_db(monkeypatch):
    db = FakeDatabase(unique_indexes=UNIQUE_INDEXES)
    monkeypatch.setattr(_db, "db", db, raising=False)
    monkeypatch.setattr(_db, "client", FakeClient(db), raising=False)
    return db


class League:
    """Drives a competition through the public service calls."""

    def __init__(self, db):
        self.db = db
        self.competition = None

    @property
    def competition_id(self) -> str:
        return str(self.competition["_id"])

    async def create(self, players=("alice", "bob"), lives=1, no_repeat=True, teams=None):
        body = CompetitionCreate(
            name="Office LMS",
            lives_per_player=lives,
            no_repeat_teams=no_repeat,
            teams=teams or TEAMS,
        )
        self.competition = await competition_service.create_competition(ORGANISER, body)
        for user_id in players:
            await competition_service.add_player(user_id, self.competition_id, user_id.title())
        return self.competition

    async def open_round(self, fixtures=(("ARS", "CHE"), ("LIV", "MCI"), ("NEW", "TOT"))):
        round_doc = await round_service.create_round(
            ORGANISER, self.competition_id, utcnow() + timedelta(hours=2),
        )
        created = []
        for home, away in fixtures:
            created.append(await round_service.add_fixture(
                ORGANISER, str(round_doc["_id"]),
                FixtureCreate(home_team_id=home, away_team_id=away),
            ))
        return round_doc, created

    async def lock(self, round_doc):
        """Move the lock time into the past, as the organiser would."""
        return await round_service.update_lock_time(
            ORGANISER, str(round_doc["_id"]), utcnow() - timedelta(minutes=1),
        )

    async def result(self, fixture, result: ResultInput | str):
        return await round_service.set_fixture_result(
            ORGANISER, str(fixture["_id"]), ResultInput(result),
        )

    async def process(self, round_doc):
        return await process_round(ORGANISER, str(round_doc["_id"]))

    async def player(self, user_id):
        return await competition_service.get_player(self.competition["_id"], user_id)

    async def reload(self):
        return await competition_service.get_competition(self.competition["_id"])


@pytest.fixture
def league(fake_db):
    return League(fake_db)
