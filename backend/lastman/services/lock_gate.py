"""Round lock gate: a round accepts picks until its lock time, never after.

Lock state is always derived from ``lock_time``. No locked flag is stored.
"""

from datetime import datetime
from typing import Optional

import lastman.database as _db
from lastman.utils import ensure_utc, utcnow


def is_locked(round_doc: dict, now: Optional[datetime] = None) -> bool:
    """Locked when ``now >= lock_time``. A round without a lock time counts as locked."""
    lock_time = round_doc.get("lock_time")
    if lock_time is None:
        return True
    now = ensure_utc(now) if now else utcnow()
    return now >= ensure_utc(lock_time)


async def lock_time_frozen(round_doc: dict, *, session=None) -> bool:
    """True once any result or outcome has been recorded for the round.

    From then on the lock time may not move, so a round whose results are
    known can never be reopened for picks.
    """
    if round_doc.get("resolved_at") or round_doc.get("no_pick_processed"):
        return True
    resulted = await _db.db.fixtures.find_one(
        {"round_id": round_doc["_id"], "result": {"$ne": None}},
        {"_id": 1},
        session=session,
    )
    if resulted is not None:
        return True
    scored = await _db.db.picks.find_one(
        {"round_id": round_doc["_id"], "outcome": {"$ne": None}},
        {"_id": 1},
        session=session,
    )
    return scored is not None
