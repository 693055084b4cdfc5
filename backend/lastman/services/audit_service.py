"""Insert-only audit trail for organiser and player actions.

This module intentionally exposes NO update or delete operations on the
audit_logs collection.
"""

import logging
from typing import Optional

import lastman.database as _db
from lastman.utils import utcnow

logger = logging.getLogger("lastman.audit")


async def log_audit(
    *,
    actor_id: str,
    competition_id,
    action: str,
    metadata: Optional[dict] = None,
) -> None:
    """Write an audit record.

    Args:
        actor_id: Who performed the action (user id or "SYSTEM").
        competition_id: Competition the action belongs to.
        action: Action identifier, e.g. "PICK_MADE", "ROUND_PROCESSED".
        metadata: Optional dict with before/after values or extra context.
    """
    doc = {
        "timestamp": utcnow(),
        "actor_id": actor_id,
        "competition_id": competition_id,
        "action": action,
        "metadata": metadata or {},
    }

    try:
        await _db.db.audit_logs.insert_one(doc)
    except Exception:
        # Audit logging must never crash the request
        logger.exception("Failed to write audit log: action=%s actor=%s", action, actor_id)
