"""Authenticated CRUD endpoints for a collection's products."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, tuple_
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.pagination import DEFAULT_PAGE_SIZE, decode_cursor, encode_cursor
from app.core.dependencies import get_db_with_user
from app.models.category import Category
from app.models.product import Product
from app.models.user import User
from app.schemas.common import PaginatedResponse
from app.schemas.product import (
    ProductCreate,
    ProductOrderCountsResponse,
    ProductResponse,
    ProductUpdate,
)
from app.services.access import require_collection_access
from app.services.orders import get_order_counts_by_status
from app.services.slugs import generate_unique_slug

router = APIRouter()


async def _get_product(
    db: AsyncSession, collection_id: uuid.UUID, product_id: uuid.UUID
) -> Product:
    result = await db.execute(
        select(Product).where(Product.id == product_id, Product.collection_id == collection_id)
    )
    product = result.scalar_one_or_none()
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


async def _check_category(
    db: AsyncSession, collection_id: uuid.UUID, category_id: uuid.UUID | None
) -> None:
    """Products may only reference categories of their own collection."""
    if category_id is None:
        return
    result = await db.execute(
        select(Category.id).where(
            Category.id == category_id, Category.collection_id == collection_id
        )
    )
    if result.first() is None:
        raise HTTPException(status_code=422, detail="Category does not belong to this collection")


async def _ensure_slug_free(
    db: AsyncSession,
    collection_id: uuid.UUID,
    slug: str,
    exclude_id: uuid.UUID | None = None,
) -> None:
    stmt = select(Product.id).where(Product.collection_id == collection_id, Product.slug == slug)
    if exclude_id is not None:
        stmt = stmt.where(Product.id != exclude_id)
    if (await db.execute(stmt)).first() is not None:
        raise HTTPException(status_code=409, detail="Slug already taken in this collection")


@router.get("", response_model=PaginatedResponse[ProductResponse])
async def list_products(
    collection_id: uuid.UUID,
    category_id: uuid.UUID | None = Query(None),
    visible: bool | None = Query(None),
    cursor: str | None = Query(None),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=100),
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> PaginatedResponse[ProductResponse]:
    db, user = db_user
    await require_collection_access(db, collection_id, user, "view")

    stmt = (
        select(Product)
        .where(Product.collection_id == collection_id)
        .order_by(Product.created_at.desc(), Product.id.desc())
    )
    if category_id is not None:
        stmt = stmt.where(Product.category_id == category_id)
    if visible is not None:
        stmt = stmt.where(Product.visible == visible)
    if cursor is not None:
        cursor_dt, cursor_id = decode_cursor(cursor)
        stmt = stmt.where(tuple_(Product.created_at, Product.id) < tuple_(cursor_dt, cursor_id))

    result = await db.execute(stmt.limit(limit + 1))
    rows = list(result.scalars().all())

    has_more = len(rows) > limit
    items = rows[:limit]

    return PaginatedResponse(
        items=[ProductResponse.model_validate(p) for p in items],
        next_cursor=encode_cursor(items[-1].created_at, items[-1].id) if has_more else None,
        has_more=has_more,
    )


@router.post("", response_model=ProductResponse, status_code=201)
async def create_product(
    collection_id: uuid.UUID,
    body: ProductCreate,
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> ProductResponse:
    db, user = db_user
    await require_collection_access(db, collection_id, user, "edit")
    await _check_category(db, collection_id, body.category_id)

    data = body.model_dump()
    if data["slug"]:
        await _ensure_slug_free(db, collection_id, data["slug"])
    else:
        data["slug"] = await generate_unique_slug(
            db,
            Product.slug,
            body.name,
            Product.collection_id == collection_id,
            fallback="product",
        )

    product = Product(collection_id=collection_id, **data)
    db.add(product)
    await db.flush()
    await db.refresh(product)
    return ProductResponse.model_validate(product)


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    collection_id: uuid.UUID,
    product_id: uuid.UUID,
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> ProductResponse:
    db, user = db_user
    await require_collection_access(db, collection_id, user, "view")
    product = await _get_product(db, collection_id, product_id)
    return ProductResponse.model_validate(product)


@router.get("/{product_id}/order-counts", response_model=ProductOrderCountsResponse)
async def get_product_order_counts(
    collection_id: uuid.UUID,
    product_id: uuid.UUID,
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> ProductOrderCountsResponse:
    """Paid orders of the product per fulfilment status."""
    db, user = db_user
    await require_collection_access(db, collection_id, user, "view")
    product = await _get_product(db, collection_id, product_id)

    counts = await get_order_counts_by_status(db, product.id)
    return ProductOrderCountsResponse(
        product_id=product.id, counts=counts, total=sum(counts.values())
    )


@router.patch("/{product_id}", response_model=ProductResponse)
async def update_product(
    collection_id: uuid.UUID,
    product_id: uuid.UUID,
    body: ProductUpdate,
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> ProductResponse:
    db, user = db_user
    await require_collection_access(db, collection_id, user, "edit")
    product = await _get_product(db, collection_id, product_id)

    update_data = body.model_dump(exclude_unset=True)
    if "category_id" in update_data:
        await _check_category(db, collection_id, update_data["category_id"])
    if update_data.get("slug") and update_data["slug"] != product.slug:
        await _ensure_slug_free(db, collection_id, update_data["slug"], exclude_id=product.id)

    required = ("name", "slug", "price", "currency", "minimum_order_quantity", "images",
                "visible", "sort_order")
    for field, value in update_data.items():
        if value is None and field in required:
            continue
        setattr(product, field, value)

    await db.flush()
    await db.refresh(product)
    return ProductResponse.model_validate(product)


@router.delete("/{product_id}", status_code=204)
async def delete_product(
    collection_id: uuid.UUID,
    product_id: uuid.UUID,
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> None:
    db, user = db_user
    await require_collection_access(db, collection_id, user, "edit")
    product = await _get_product(db, collection_id, product_id)

    await db.delete(product)
    await db.flush()
