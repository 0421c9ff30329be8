"""Coupon management endpoints (collection editors; admins for global coupons)."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, tuple_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.pagination import DEFAULT_PAGE_SIZE, decode_cursor, encode_cursor
from app.core.dependencies import get_db_with_user, require_role
from app.models.coupon import Coupon
from app.models.user import User
from app.schemas.common import PaginatedResponse
from app.schemas.coupon import CouponCreate, CouponResponse, CouponUpdate
from app.services.access import require_collection_access

router = APIRouter()


async def _authorize(
    db: AsyncSession, collection_id: uuid.UUID | None, user: User, required: str
) -> None:
    """Global coupons belong to admins; scoped ones to the collection's editors."""
    if collection_id is None:
        require_role("admin", user)
    else:
        await require_collection_access(db, collection_id, user, required)


async def _get_coupon(db: AsyncSession, coupon_id: uuid.UUID) -> Coupon:
    coupon = await db.get(Coupon, coupon_id)
    if coupon is None:
        raise HTTPException(status_code=404, detail="Coupon not found")
    return coupon


@router.get("", response_model=PaginatedResponse[CouponResponse])
async def list_coupons(
    collection_id: uuid.UUID | None = Query(None),
    status: str | None = Query(None),
    cursor: str | None = Query(None),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=100),
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> PaginatedResponse[CouponResponse]:
    """Coupons of one collection, or every coupon for admins when no collection is given."""
    db, user = db_user
    await _authorize(db, collection_id, user, "edit")

    stmt = select(Coupon).order_by(Coupon.created_at.desc(), Coupon.id.desc())
    if collection_id is not None:
        stmt = stmt.where(Coupon.collection_id == collection_id)
    if status is not None:
        stmt = stmt.where(Coupon.status == status)
    if cursor is not None:
        cursor_dt, cursor_id = decode_cursor(cursor)
        stmt = stmt.where(tuple_(Coupon.created_at, Coupon.id) < tuple_(cursor_dt, cursor_id))

    result = await db.execute(stmt.limit(limit + 1))
    rows = list(result.scalars().all())

    has_more = len(rows) > limit
    items = rows[:limit]

    return PaginatedResponse(
        items=[CouponResponse.model_validate(c) for c in items],
        next_cursor=encode_cursor(items[-1].created_at, items[-1].id) if has_more else None,
        has_more=has_more,
    )


@router.post("", response_model=CouponResponse, status_code=201)
async def create_coupon(
    body: CouponCreate,
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> CouponResponse:
    db, user = db_user
    await _authorize(db, body.collection_id, user, "edit")

    existing = await db.execute(select(Coupon.id).where(Coupon.code == body.code))
    if existing.first() is not None:
        raise HTTPException(status_code=409, detail="Coupon code already exists")

    coupon = Coupon(**body.model_dump(), created_by=user.id)
    db.add(coupon)

    # Codes of inactive coupons elsewhere are hidden by RLS
    try:
        await db.flush()
    except IntegrityError as exc:
        await db.rollback()
        raise HTTPException(status_code=409, detail="Coupon code already exists") from exc

    await db.refresh(coupon)
    return CouponResponse.model_validate(coupon)


@router.get("/{coupon_id}", response_model=CouponResponse)
async def get_coupon(
    coupon_id: uuid.UUID,
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> CouponResponse:
    db, user = db_user
    coupon = await _get_coupon(db, coupon_id)
    await _authorize(db, coupon.collection_id, user, "edit")
    return CouponResponse.model_validate(coupon)


@router.patch("/{coupon_id}", response_model=CouponResponse)
async def update_coupon(
    coupon_id: uuid.UUID,
    body: CouponUpdate,
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> CouponResponse:
    db, user = db_user
    coupon = await _get_coupon(db, coupon_id)
    await _authorize(db, coupon.collection_id, user, "edit")

    update_data = body.model_dump(exclude_unset=True)
    if coupon.discount_type == "percentage" and (update_data.get("discount_value") or 0) > 100:
        raise HTTPException(status_code=422, detail="Percentage discounts cannot exceed 100")
    for field, value in update_data.items():
        if value is None and field in ("discount_value", "status"):
            continue
        setattr(coupon, field, value)

    starts_at, expires_at = coupon.starts_at, coupon.expires_at
    if starts_at is not None and expires_at is not None and expires_at <= starts_at:
        raise HTTPException(status_code=422, detail="expires_at must be after starts_at")

    await db.flush()
    await db.refresh(coupon)
    return CouponResponse.model_validate(coupon)


@router.delete("/{coupon_id}", status_code=204)
async def delete_coupon(
    coupon_id: uuid.UUID,
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> None:
    db, user = db_user
    coupon = await _get_coupon(db, coupon_id)
    await _authorize(db, coupon.collection_id, user, "edit")

    await db.delete(coupon)
    await db.flush()
