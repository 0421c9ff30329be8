"""Sequential order numbering (``SF-1001``, ``SF-1002``, ...).

Uses a PostgreSQL advisory transaction lock so concurrent order creation
serialises safely. The highest existing number is read through the
``app_max_order_sequence`` SECURITY DEFINER function so that RLS on
``orders`` never hides other buyers' numbers from the lookup.
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings


def format_order_number(prefix: str, seq: int) -> str:
    return f"{prefix}-{seq}"


async def get_next_order_number(db: AsyncSession) -> str:
    """Return the next order number, e.g. 'SF-1001'.

    The lock is released automatically when the surrounding transaction
    commits or rolls back.
    """
    prefix = settings.ORDER_NUMBER_PREFIX

    await db.execute(
        text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
        {"key": f"orders:{prefix}"},
    )

    row = await db.execute(
        text("SELECT app_max_order_sequence(:prefix)"),
        {"prefix": prefix},
    )
    current_max = row.scalar()
    next_seq = max((current_max or 0) + 1, settings.ORDER_NUMBER_START)
    return format_order_number(prefix, next_seq)
