"""Authenticated CRUD endpoints for a collection's categories."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, tuple_
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.pagination import DEFAULT_PAGE_SIZE, decode_cursor, encode_cursor
from app.core.dependencies import get_db_with_user
from app.models.category import Category
from app.models.user import User
from app.schemas.category import CategoryCreate, CategoryResponse, CategoryUpdate
from app.schemas.common import PaginatedResponse
from app.services.access import require_collection_access

router = APIRouter()


async def _get_category(
    db: AsyncSession, collection_id: uuid.UUID, category_id: uuid.UUID
) -> Category:
    result = await db.execute(
        select(Category).where(
            Category.id == category_id, Category.collection_id == collection_id
        )
    )
    category = result.scalar_one_or_none()
    if category is None:
        raise HTTPException(status_code=404, detail="Category not found")
    return category


@router.get("", response_model=PaginatedResponse[CategoryResponse])
async def list_categories(
    collection_id: uuid.UUID,
    visible: bool | None = Query(None),
    cursor: str | None = Query(None),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=100),
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> PaginatedResponse[CategoryResponse]:
    db, user = db_user
    await require_collection_access(db, collection_id, user, "view")

    stmt = (
        select(Category)
        .where(Category.collection_id == collection_id)
        .order_by(Category.created_at.desc(), Category.id.desc())
    )
    if visible is not None:
        stmt = stmt.where(Category.visible == visible)
    if cursor is not None:
        cursor_dt, cursor_id = decode_cursor(cursor)
        stmt = stmt.where(tuple_(Category.created_at, Category.id) < tuple_(cursor_dt, cursor_id))

    result = await db.execute(stmt.limit(limit + 1))
    rows = list(result.scalars().all())

    has_more = len(rows) > limit
    items = rows[:limit]

    return PaginatedResponse(
        items=[CategoryResponse.model_validate(c) for c in items],
        next_cursor=encode_cursor(items[-1].created_at, items[-1].id) if has_more else None,
        has_more=has_more,
    )


@router.post("", response_model=CategoryResponse, status_code=201)
async def create_category(
    collection_id: uuid.UUID,
    body: CategoryCreate,
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> CategoryResponse:
    db, user = db_user
    await require_collection_access(db, collection_id, user, "edit")

    data = body.model_dump()
    category = Category(collection_id=collection_id, **data)
    db.add(category)
    await db.flush()
    await db.refresh(category)
    return CategoryResponse.model_validate(category)


@router.get("/{category_id}", response_model=CategoryResponse)
async def get_category(
    collection_id: uuid.UUID,
    category_id: uuid.UUID,
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> CategoryResponse:
    db, user = db_user
    await require_collection_access(db, collection_id, user, "view")
    category = await _get_category(db, collection_id, category_id)
    return CategoryResponse.model_validate(category)


@router.patch("/{category_id}", response_model=CategoryResponse)
async def update_category(
    collection_id: uuid.UUID,
    category_id: uuid.UUID,
    body: CategoryUpdate,
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> CategoryResponse:
    db, user = db_user
    await require_collection_access(db, collection_id, user, "edit")
    category = await _get_category(db, collection_id, category_id)

    update_data = body.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        if value is None and field in ("name", "type", "visible", "sort_order"):
            continue
        setattr(category, field, value)

    await db.flush()
    await db.refresh(category)
    return CategoryResponse.model_validate(category)


@router.delete("/{category_id}", status_code=204)
async def delete_category(
    collection_id: uuid.UUID,
    category_id: uuid.UUID,
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> None:
    db, user = db_user
    await require_collection_access(db, collection_id, user, "edit")
    category = await _get_category(db, collection_id, category_id)

    await db.delete(category)
    await db.flush()
