"""Public read-only storefront endpoints (anonymous, collection-scoped by slug).

Flow: slug -> visible collection -> query its visible rows. RLS enforces the same
visibility for anonymous sessions. Owner ids are not exposed in responses.
"""

import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import Integer, cast, or_, select, tuple_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import (
    get_db,
    get_db_with_slug,
    get_wallet_identity,
    set_request_identity,
)
from app.models.category import Category
from app.models.collection import Collection
from app.models.media_asset import MediaAsset
from app.models.product import Product
from app.schemas.category import PublicCategoryResponse
from app.schemas.collection import PublicCollectionResponse
from app.schemas.common import PaginatedResponse
from app.schemas.coupon import CouponValidateRequest, CouponValidateResponse
from app.schemas.product import BestSellerResponse, PublicProductResponse
from app.services.coupons import CouponError, normalize_code, quote_coupon
from app.services.eligibility import EligibilityError
from app.services.orders import get_best_sellers, get_order_counts
from app.services.storage import presign_get
from app.services.wallet_auth import WalletIdentity

router = APIRouter()

DEFAULT_PAGE_SIZE = 20


def _encode_cursor(sort_order: int, item_id: uuid.UUID) -> str:
    return f"{sort_order}:{item_id}"


def _decode_cursor(cursor: str) -> tuple[int, uuid.UUID]:
    try:
        sort_str, id_str = cursor.split(":", 1)
        return int(sort_str), uuid.UUID(id_str)
    except (ValueError, AttributeError) as exc:
        raise HTTPException(status_code=400, detail="Invalid cursor") from exc


def _encode_collection_cursor(collection: Collection) -> str:
    return f"{int(collection.featured)}|{collection.created_at.isoformat()}|{collection.id}"


def _decode_collection_cursor(cursor: str) -> tuple[int, datetime, uuid.UUID]:
    try:
        featured_str, dt_str, id_str = cursor.split("|", 2)
        return int(featured_str), datetime.fromisoformat(dt_str), uuid.UUID(id_str)
    except (ValueError, AttributeError) as exc:
        raise HTTPException(status_code=400, detail="Invalid cursor") from exc


@router.get("/collections", response_model=PaginatedResponse[PublicCollectionResponse])
async def list_public_collections(
    featured: bool | None = Query(None),
    cursor: str | None = Query(None),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
) -> PaginatedResponse[PublicCollectionResponse]:
    """Visible collections, featured first, newest first within each group."""
    featured_rank = cast(Collection.featured, Integer)
    stmt = (
        select(Collection)
        .where(Collection.visible.is_(True))
        .order_by(featured_rank.desc(), Collection.created_at.desc(), Collection.id.desc())
    )

    if featured is not None:
        stmt = stmt.where(Collection.featured == featured)
    if cursor is not None:
        cursor_rank, cursor_dt, cursor_id = _decode_collection_cursor(cursor)
        stmt = stmt.where(
            tuple_(featured_rank, Collection.created_at, Collection.id)
            < tuple_(cursor_rank, cursor_dt, cursor_id)
        )

    result = await db.execute(stmt.limit(limit + 1))
    rows = list(result.scalars().all())

    has_more = len(rows) > limit
    items = rows[:limit]

    return PaginatedResponse(
        items=[PublicCollectionResponse.model_validate(c) for c in items],
        next_cursor=_encode_collection_cursor(items[-1]) if has_more else None,
        has_more=has_more,
    )


@router.get("/collections/{slug}", response_model=PublicCollectionResponse)
async def get_public_collection(
    slug: str,
    db_collection: tuple[AsyncSession, Collection] = Depends(get_db_with_slug),
) -> PublicCollectionResponse:
    _db, collection = db_collection
    return PublicCollectionResponse.model_validate(collection)


@router.get(
    "/collections/{slug}/categories",
    response_model=PaginatedResponse[PublicCategoryResponse],
)
async def list_public_categories(
    slug: str,
    cursor: str | None = Query(None),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=100),
    db_collection: tuple[AsyncSession, Collection] = Depends(get_db_with_slug),
) -> PaginatedResponse[PublicCategoryResponse]:
    db, collection = db_collection

    stmt = (
        select(Category)
        .where(Category.collection_id == collection.id, Category.visible.is_(True))
        .order_by(Category.sort_order, Category.id)
    )

    if cursor is not None:
        cursor_sort, cursor_id = _decode_cursor(cursor)
        stmt = stmt.where(
            tuple_(Category.sort_order, Category.id) > tuple_(cursor_sort, cursor_id)
        )

    result = await db.execute(stmt.limit(limit + 1))
    rows = list(result.scalars().all())

    has_more = len(rows) > limit
    items = rows[:limit]

    return PaginatedResponse(
        items=[PublicCategoryResponse.model_validate(c) for c in items],
        next_cursor=_encode_cursor(items[-1].sort_order, items[-1].id) if has_more else None,
        has_more=has_more,
    )


@router.get(
    "/collections/{slug}/products",
    response_model=PaginatedResponse[PublicProductResponse],
)
async def list_public_products(
    slug: str,
    category_id: uuid.UUID | None = Query(None),
    cursor: str | None = Query(None),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=100),
    db_collection: tuple[AsyncSession, Collection] = Depends(get_db_with_slug),
) -> PaginatedResponse[PublicProductResponse]:
    db, collection = db_collection

    # Products of hidden categories are hidden too
    stmt = (
        select(Product)
        .outerjoin(Category, Category.id == Product.category_id)
        .where(
            Product.collection_id == collection.id,
            Product.visible.is_(True),
            or_(Product.category_id.is_(None), Category.visible.is_(True)),
        )
        .order_by(Product.sort_order, Product.id)
    )

    if category_id is not None:
        stmt = stmt.where(Product.category_id == category_id)
    if cursor is not None:
        cursor_sort, cursor_id = _decode_cursor(cursor)
        stmt = stmt.where(tuple_(Product.sort_order, Product.id) > tuple_(cursor_sort, cursor_id))

    result = await db.execute(stmt.limit(limit + 1))
    rows = list(result.scalars().all())

    has_more = len(rows) > limit
    items = rows[:limit]

    # Batch-query primary image for each product (avoids N+1 DB queries)
    image_urls: dict[uuid.UUID, str] = {}
    if items:
        media_result = await db.execute(
            select(MediaAsset)
            .where(MediaAsset.product_id.in_([p.id for p in items]))
            .order_by(MediaAsset.sort_order, MediaAsset.created_at, MediaAsset.id)
        )
        for asset in media_result.scalars().all():
            if asset.product_id not in image_urls:
                image_urls[asset.product_id] = presign_get(asset.s3_key)
    order_counts = await get_order_counts(db, [p.id for p in items])

    return PaginatedResponse(
        items=[
            PublicProductResponse.model_validate(p).model_copy(
                update={
                    "image_url": image_urls.get(p.id) or (p.images[0] if p.images else None),
                    "order_count": order_counts.get(p.id, 0),
                }
            )
            for p in items
        ],
        next_cursor=_encode_cursor(items[-1].sort_order, items[-1].id) if has_more else None,
        has_more=has_more,
    )


@router.get("/best-sellers", response_model=list[BestSellerResponse])
async def list_best_sellers(
    collection_slug: str | None = Query(None),
    limit: int = Query(10, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
) -> list[BestSellerResponse]:
    """Most ordered products across open collections, or within one by slug."""
    collection_id = None
    if collection_slug is not None:
        _db, collection = await get_db_with_slug(collection_slug, db)
        collection_id = collection.id

    ranked = await get_best_sellers(db, limit, collection_id)
    return [
        BestSellerResponse.model_validate(product).model_copy(
            update={
                "image_url": product.images[0] if product.images else None,
                "order_count": total,
            }
        )
        for product, total in ranked
    ]


@router.post("/coupons/validate", response_model=CouponValidateResponse)
async def validate_coupon(
    body: CouponValidateRequest,
    wallet: WalletIdentity = Depends(get_wallet_identity),
    db: AsyncSession = Depends(get_db),
) -> CouponValidateResponse:
    """Quote a coupon for an amount without redeeming it.

    Eligibility rules are checked against the verified wallet, so a
    ``wallet_address`` in the body must match the wallet headers or token.
    """
    if body.wallet_address and not wallet.matches(body.wallet_address):
        raise HTTPException(status_code=403, detail="Wallet address is not verified")
    buyer_wallet = body.wallet_address or wallet.verified_wallet
    await set_request_identity(db, None, buyer_wallet)

    try:
        _coupon, quote = await quote_coupon(
            db, body.code, body.collection_id, body.amount, buyer_wallet
        )
    except (CouponError, EligibilityError) as exc:
        return CouponValidateResponse(
            valid=False,
            code=normalize_code(body.code),
            final_amount=body.amount,
            reason=exc.message,
        )

    return CouponValidateResponse(
        valid=True,
        code=quote.code,
        discount_amount=quote.discount_amount,
        final_amount=quote.final_amount,
    )
