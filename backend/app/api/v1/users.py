"""User profile and admin role management endpoints."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, tuple_
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.pagination import DEFAULT_PAGE_SIZE, decode_cursor, encode_cursor
from app.core.dependencies import get_db_with_user, require_role
from app.models.user import User
from app.schemas.common import PaginatedResponse
from app.schemas.user import MerchantTierUpdateRequest, RoleUpdateRequest, UserResponse
from app.services.audit import log_security_event

router = APIRouter()


async def _get_user(db: AsyncSession, user_id: uuid.UUID) -> User:
    target = await db.get(User, user_id)
    if target is None:
        raise HTTPException(status_code=404, detail="User not found")
    return target


@router.get("/me", response_model=UserResponse)
async def get_me(
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> UserResponse:
    _db, user = db_user
    return UserResponse.model_validate(user)


@router.get("", response_model=PaginatedResponse[UserResponse])
async def list_users(
    role: str | None = Query(None),
    cursor: str | None = Query(None),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=100),
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> PaginatedResponse[UserResponse]:
    db, user = db_user
    require_role("admin", user)

    stmt = select(User).order_by(User.created_at.desc(), User.id.desc())
    if role is not None:
        stmt = stmt.where(User.role == role)
    if cursor is not None:
        cursor_dt, cursor_id = decode_cursor(cursor)
        stmt = stmt.where(tuple_(User.created_at, User.id) < tuple_(cursor_dt, cursor_id))

    result = await db.execute(stmt.limit(limit + 1))
    rows = list(result.scalars().all())

    has_more = len(rows) > limit
    items = rows[:limit]

    return PaginatedResponse(
        items=[UserResponse.model_validate(u) for u in items],
        next_cursor=encode_cursor(items[-1].created_at, items[-1].id) if has_more else None,
        has_more=has_more,
    )


@router.patch("/{user_id}/role", response_model=UserResponse)
async def update_user_role(
    user_id: uuid.UUID,
    body: RoleUpdateRequest,
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> UserResponse:
    db, user = db_user
    require_role("admin", user)

    if user_id == user.id and body.role != "admin":
        raise HTTPException(status_code=409, detail="Admins cannot demote themselves")

    target = await _get_user(db, user_id)
    previous = target.role
    target.role = body.role
    await db.flush()
    await db.refresh(target)

    await log_security_event(
        db, "user_role_changed", user.id, target_id=target.id, previous=previous, role=body.role
    )
    return UserResponse.model_validate(target)


@router.patch("/{user_id}/merchant-tier", response_model=UserResponse)
async def update_merchant_tier(
    user_id: uuid.UUID,
    body: MerchantTierUpdateRequest,
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> UserResponse:
    db, user = db_user
    require_role("admin", user)

    target = await _get_user(db, user_id)
    target.merchant_tier = body.merchant_tier
    await db.flush()
    await db.refresh(target)

    await log_security_event(
        db, "merchant_tier_changed", user.id, target_id=target.id, tier=body.merchant_tier
    )
    return UserResponse.model_validate(target)
