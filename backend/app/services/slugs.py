"""Slug generation with collision avoidance.

Mirrors the ``app_slugify`` SQL function used by the default-slug triggers.
"""

import re
import uuid

from sqlalchemy import Uuid, cast, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import InstrumentedAttribute

MAX_SLUG_LENGTH = 63
_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify(value: str) -> str:
    slug = _NON_ALNUM.sub("-", value.lower()).strip("-")
    return slug[:MAX_SLUG_LENGTH].strip("-")


def pick_available_slug(base: str, taken: set[str]) -> str:
    """Return ``base`` or the first free ``base-2``, ``base-3``, ..."""
    if base not in taken:
        return base
    n = 2
    while True:
        suffix = f"-{n}"
        candidate = base[: MAX_SLUG_LENGTH - len(suffix)].rstrip("-") + suffix
        if candidate not in taken:
            return candidate
        n += 1


async def generate_unique_slug(
    db: AsyncSession,
    column: InstrumentedAttribute,
    source: str,
    *criteria,
    fallback: str = "item",
) -> str:
    """Slugify ``source`` and resolve collisions against ``column``.

    Extra ``criteria`` narrow the uniqueness scope (e.g. products per collection).
    """
    base = slugify(source) or fallback
    # Truncated suffixed candidates always share the first 50 characters
    prefix = base[:50]
    result = await db.execute(select(column).where(column.like(f"{prefix}%"), *criteria))
    return pick_available_slug(base, set(result.scalars().all()))


async def collection_slug_taken(
    db: AsyncSession, slug: str, exclude_id: uuid.UUID | None = None
) -> bool:
    """True when any collection, hidden ones included, already uses ``slug``."""
    result = await db.execute(
        select(func.app_collection_slug_taken(slug, cast(exclude_id, Uuid)))
    )
    return bool(result.scalar())


async def generate_collection_slug(db: AsyncSession, name: str) -> str:
    """Collection slugs are global, so collisions are read through a SECURITY
    DEFINER lookup instead of the caller's RLS view of ``collections``."""
    base = slugify(name) or "collection"
    result = await db.execute(select(func.app_collection_slugs_like(base[:50])))
    return pick_available_slug(base, set(result.scalars().all()))
