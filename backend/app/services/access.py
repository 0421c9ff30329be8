"""Collection access rules.

The effective level of a user on a collection is resolved in one place so that
route handlers and the ``app_collection_access_level`` SQL helper agree:

* admins and the owner get ``edit``
* everyone else gets their ``collection_access`` grant, or nothing
* ``edit`` satisfies a ``view`` requirement, never the other way round
"""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AccessDeniedError, ConflictError, DomainError, NotFoundError
from app.models.collection import Collection, CollectionAccess
from app.models.user import User
from app.services.audit import log_security_event

ACCESS_LEVELS = ("view", "edit")
_LEVEL_RANK = {"view": 1, "edit": 2}


def resolve_access_level(role: str, is_owner: bool, granted: str | None) -> str | None:
    """Return the effective access level, or None for no access."""
    if role == "admin" or is_owner:
        return "edit"
    if granted in _LEVEL_RANK:
        return granted
    return None


def satisfies(level: str | None, required: str) -> bool:
    if level is None:
        return False
    return _LEVEL_RANK[level] >= _LEVEL_RANK[required]


async def get_access_level(
    db: AsyncSession, collection: Collection, user: User
) -> str | None:
    granted = None
    if user.role != "admin" and collection.user_id != user.id:
        result = await db.execute(
            select(CollectionAccess.access_type).where(
                CollectionAccess.collection_id == collection.id,
                CollectionAccess.user_id == user.id,
            )
        )
        granted = result.scalar_one_or_none()
    return resolve_access_level(user.role, collection.user_id == user.id, granted)


async def require_collection_access(
    db: AsyncSession,
    collection_id: uuid.UUID,
    user: User,
    required: str = "view",
) -> Collection:
    """Load a collection and check the user's level on it.

    Collections the user cannot see at all are reported as missing.
    """
    collection = await db.get(Collection, collection_id)
    if collection is None:
        raise NotFoundError("Collection not found")

    level = await get_access_level(db, collection, user)
    if satisfies(level, required):
        return collection
    if level is None and not collection.visible:
        raise NotFoundError("Collection not found")
    raise AccessDeniedError(f"Requires {required} access to this collection")


async def accessible_collection_ids(db: AsyncSession, user: User) -> list[uuid.UUID] | None:
    """Ids of collections the user may view. None means every collection (admin)."""
    if user.role == "admin":
        return None
    owned = await db.execute(select(Collection.id).where(Collection.user_id == user.id))
    granted = await db.execute(
        select(CollectionAccess.collection_id).where(CollectionAccess.user_id == user.id)
    )
    return list({*owned.scalars().all(), *granted.scalars().all()})


def _require_owner_or_admin(collection: Collection, actor: User) -> None:
    if actor.role != "admin" and collection.user_id != actor.id:
        raise AccessDeniedError("Only the collection owner or an admin can manage access")


async def grant_access(
    db: AsyncSession,
    collection: Collection,
    grantee_id: uuid.UUID,
    access_type: str,
    actor: User,
) -> CollectionAccess:
    """Grant or change a user's level on a collection (upsert)."""
    _require_owner_or_admin(collection, actor)
    if access_type not in ACCESS_LEVELS:
        raise DomainError(f"access_type must be one of: {', '.join(ACCESS_LEVELS)}")
    if grantee_id == collection.user_id:
        raise ConflictError("The owner already has full access")
    if await db.get(User, grantee_id) is None:
        raise NotFoundError("User not found")

    result = await db.execute(
        select(CollectionAccess).where(
            CollectionAccess.collection_id == collection.id,
            CollectionAccess.user_id == grantee_id,
        )
    )
    grant = result.scalar_one_or_none()
    if grant is None:
        grant = CollectionAccess(
            collection_id=collection.id,
            user_id=grantee_id,
            access_type=access_type,
            granted_by=actor.id,
        )
        db.add(grant)
    else:
        grant.access_type = access_type
        grant.granted_by = actor.id
    await db.flush()
    await log_security_event(
        db,
        "collection_access_granted",
        actor.id,
        collection_id=collection.id,
        grantee_id=grantee_id,
        access_type=access_type,
    )
    return grant


async def revoke_access(
    db: AsyncSession, collection: Collection, grantee_id: uuid.UUID, actor: User
) -> None:
    _require_owner_or_admin(collection, actor)
    result = await db.execute(
        select(CollectionAccess).where(
            CollectionAccess.collection_id == collection.id,
            CollectionAccess.user_id == grantee_id,
        )
    )
    grant = result.scalar_one_or_none()
    if grant is None:
        raise NotFoundError("Access grant not found")
    await db.delete(grant)
    await db.flush()
    await log_security_event(
        db,
        "collection_access_revoked",
        actor.id,
        collection_id=collection.id,
        grantee_id=grantee_id,
    )


async def transfer_ownership(
    db: AsyncSession, collection: Collection, new_owner_id: uuid.UUID, actor: User
) -> Collection:
    """Hand a collection to another merchant; the previous owner keeps edit access."""
    if actor.role != "admin":
        raise AccessDeniedError("Only admins can transfer collections")
    new_owner = await db.get(User, new_owner_id)
    if new_owner is None:
        raise NotFoundError("User not found")
    if new_owner.role not in ("merchant", "admin"):
        raise DomainError("New owner must be a merchant or admin")
    if new_owner.id == collection.user_id:
        return collection

    previous_owner_id = collection.user_id
    result = await db.execute(
        select(CollectionAccess).where(
            CollectionAccess.collection_id == collection.id,
            CollectionAccess.user_id == new_owner.id,
        )
    )
    stale = result.scalar_one_or_none()
    if stale is not None:
        await db.delete(stale)

    collection.user_id = new_owner.id
    db.add(
        CollectionAccess(
            collection_id=collection.id,
            user_id=previous_owner_id,
            access_type="edit",
            granted_by=actor.id,
        )
    )
    await db.flush()
    await log_security_event(
        db,
        "collection_transferred",
        actor.id,
        collection_id=collection.id,
        previous_owner_id=previous_owner_id,
        new_owner_id=new_owner.id,
    )
    return collection
