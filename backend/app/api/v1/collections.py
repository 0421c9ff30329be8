"""Authenticated endpoints for collections and their access grants."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, tuple_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.pagination import DEFAULT_PAGE_SIZE, decode_cursor, encode_cursor
from app.core.dependencies import get_db_with_user, require_role
from app.models.collection import Collection, CollectionAccess
from app.models.user import User
from app.schemas.collection import (
    AccessGrantRequest,
    CollectionAccessResponse,
    CollectionCreate,
    CollectionResponse,
    CollectionTransferRequest,
    CollectionUpdate,
)
from app.schemas.common import PaginatedResponse
from app.services.access import (
    accessible_collection_ids,
    grant_access,
    require_collection_access,
    revoke_access,
    transfer_ownership,
)
from app.services.slugs import collection_slug_taken, generate_collection_slug

router = APIRouter()


async def _ensure_slug_free(
    db: AsyncSession, slug: str, exclude_id: uuid.UUID | None = None
) -> None:
    if await collection_slug_taken(db, slug, exclude_id):
        raise HTTPException(status_code=409, detail="Slug already taken")


async def _flush_collection(db: AsyncSession) -> None:
    try:
        await db.flush()
    except IntegrityError as exc:
        # A concurrent request claimed the slug after our check
        await db.rollback()
        raise HTTPException(status_code=409, detail="Slug already taken") from exc


@router.get("", response_model=PaginatedResponse[CollectionResponse])
async def list_collections(
    cursor: str | None = Query(None),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=100),
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> PaginatedResponse[CollectionResponse]:
    """Collections the caller owns or was granted (all of them for admins)."""
    db, user = db_user

    stmt = select(Collection).order_by(Collection.created_at.desc(), Collection.id.desc())
    ids = await accessible_collection_ids(db, user)
    if ids is not None:
        stmt = stmt.where(Collection.id.in_(ids))
    if cursor is not None:
        cursor_dt, cursor_id = decode_cursor(cursor)
        stmt = stmt.where(
            tuple_(Collection.created_at, Collection.id) < tuple_(cursor_dt, cursor_id)
        )

    result = await db.execute(stmt.limit(limit + 1))
    rows = list(result.scalars().all())

    has_more = len(rows) > limit
    items = rows[:limit]

    return PaginatedResponse(
        items=[CollectionResponse.model_validate(c) for c in items],
        next_cursor=encode_cursor(items[-1].created_at, items[-1].id) if has_more else None,
        has_more=has_more,
    )


@router.post("", response_model=CollectionResponse, status_code=201)
async def create_collection(
    body: CollectionCreate,
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> CollectionResponse:
    db, user = db_user
    require_role("merchant", user)

    if body.slug:
        await _ensure_slug_free(db, body.slug)
        slug = body.slug
    else:
        slug = await generate_collection_slug(db, body.name)

    collection = Collection(
        user_id=user.id,
        name=body.name,
        slug=slug,
        description=body.description,
        image_url=body.image_url,
        launch_date=body.launch_date,
        visible=body.visible,
        featured=body.featured,
    )
    db.add(collection)
    await _flush_collection(db)
    await db.refresh(collection)
    return CollectionResponse.model_validate(collection)


@router.get("/{collection_id}", response_model=CollectionResponse)
async def get_collection(
    collection_id: uuid.UUID,
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> CollectionResponse:
    db, user = db_user
    collection = await require_collection_access(db, collection_id, user, "view")
    return CollectionResponse.model_validate(collection)


@router.patch("/{collection_id}", response_model=CollectionResponse)
async def update_collection(
    collection_id: uuid.UUID,
    body: CollectionUpdate,
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> CollectionResponse:
    db, user = db_user
    collection = await require_collection_access(db, collection_id, user, "edit")

    update_data = body.model_dump(exclude_unset=True)
    if update_data.get("slug") and update_data["slug"] != collection.slug:
        await _ensure_slug_free(db, update_data["slug"], exclude_id=collection.id)
    for field, value in update_data.items():
        if value is None and field in ("name", "slug", "visible", "featured", "sale_ended"):
            continue
        setattr(collection, field, value)

    await _flush_collection(db)
    await db.refresh(collection)
    return CollectionResponse.model_validate(collection)


@router.delete("/{collection_id}", status_code=204)
async def delete_collection(
    collection_id: uuid.UUID,
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> None:
    db, user = db_user
    collection = await require_collection_access(db, collection_id, user, "edit")
    await db.delete(collection)
    await db.flush()


@router.post("/{collection_id}/transfer", response_model=CollectionResponse)
async def transfer_collection(
    collection_id: uuid.UUID,
    body: CollectionTransferRequest,
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> CollectionResponse:
    db, user = db_user
    require_role("admin", user)
    collection = await require_collection_access(db, collection_id, user, "edit")

    await transfer_ownership(db, collection, body.new_owner_id, user)
    await db.refresh(collection)
    return CollectionResponse.model_validate(collection)


# ---------------------------------------------------------------------------
# Access grants
# ---------------------------------------------------------------------------


@router.get("/{collection_id}/access", response_model=list[CollectionAccessResponse])
async def list_collection_access(
    collection_id: uuid.UUID,
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> list[CollectionAccessResponse]:
    db, user = db_user
    collection = await require_collection_access(db, collection_id, user, "view")
    if user.role != "admin" and collection.user_id != user.id:
        raise HTTPException(status_code=403, detail="Only the owner or an admin can list access")

    result = await db.execute(
        select(CollectionAccess)
        .where(CollectionAccess.collection_id == collection.id)
        .order_by(CollectionAccess.created_at, CollectionAccess.id)
    )
    return [CollectionAccessResponse.model_validate(a) for a in result.scalars().all()]


@router.put(
    "/{collection_id}/access/{user_id}",
    response_model=CollectionAccessResponse,
)
async def grant_collection_access(
    collection_id: uuid.UUID,
    user_id: uuid.UUID,
    body: AccessGrantRequest,
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> CollectionAccessResponse:
    db, user = db_user
    collection = await require_collection_access(db, collection_id, user, "view")

    grant = await grant_access(db, collection, user_id, body.access_type, user)
    await db.refresh(grant)
    return CollectionAccessResponse.model_validate(grant)


@router.delete("/{collection_id}/access/{user_id}", status_code=204)
async def revoke_collection_access(
    collection_id: uuid.UUID,
    user_id: uuid.UUID,
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> None:
    db, user = db_user
    collection = await require_collection_access(db, collection_id, user, "view")
    await revoke_access(db, collection, user_id, user)
