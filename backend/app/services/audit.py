"""Security event log (``security_logs`` table + application logger)."""

import logging
import uuid

from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.security_log import SecurityLog

logger = logging.getLogger("app.security")


async def log_security_event(
    db: AsyncSession,
    event_type: str,
    user_id: uuid.UUID | None = None,
    **details,
) -> None:
    """Persist a security event in the current transaction.

    Only admins pass the SELECT policy on ``security_logs``, so the row must be
    written without RETURNING. A Core insert on the table with a client-side
    id gives SQLAlchemy nothing to fetch back.
    """
    payload = {k: str(v) if isinstance(v, uuid.UUID) else v for k, v in details.items()}
    stmt = insert(SecurityLog.__table__).values(
        id=uuid.uuid4(), event_type=event_type, user_id=user_id, details=payload or None
    )
    await db.execute(stmt.inline())
    logger.info("security event %s user=%s %s", event_type, user_id, payload)
