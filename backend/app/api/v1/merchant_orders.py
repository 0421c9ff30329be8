"""Merchant order endpoints.

GET   /merchant/orders
GET   /merchant/orders/{id}
PATCH /merchant/orders/{id}/status

Status changes follow the merchant transition table in
``services.order_lifecycle``; payment states are never touched here.
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, tuple_
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.pagination import DEFAULT_PAGE_SIZE, decode_cursor, encode_cursor
from app.core.dependencies import get_db_with_user
from app.models.order import Order
from app.models.user import User
from app.schemas.common import PaginatedResponse
from app.schemas.order import OrderResponse, OrderStatusRequest, OrderStatusResponse
from app.services.access import accessible_collection_ids, require_collection_access
from app.services.orders import get_order_for_update, merchant_update_status

router = APIRouter()


async def _get_order(db: AsyncSession, order_id: uuid.UUID) -> Order:
    order = await db.get(Order, order_id)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@router.get("", response_model=PaginatedResponse[OrderResponse])
async def list_collection_orders(
    collection_id: uuid.UUID | None = Query(None),
    status: str | None = Query(None),
    cursor: str | None = Query(None),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=100),
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> PaginatedResponse[OrderResponse]:
    """Orders of the collections the caller can view (every order for admins)."""
    db, user = db_user

    stmt = select(Order).order_by(Order.created_at.desc(), Order.id.desc())
    if collection_id is not None:
        await require_collection_access(db, collection_id, user, "view")
        stmt = stmt.where(Order.collection_id == collection_id)
    else:
        ids = await accessible_collection_ids(db, user)
        if ids is not None:
            stmt = stmt.where(Order.collection_id.in_(ids))
    if status is not None:
        stmt = stmt.where(Order.status == status)
    if cursor is not None:
        cursor_dt, cursor_id = decode_cursor(cursor)
        stmt = stmt.where(tuple_(Order.created_at, Order.id) < tuple_(cursor_dt, cursor_id))

    result = await db.execute(stmt.limit(limit + 1))
    rows = list(result.scalars().all())

    has_more = len(rows) > limit
    items = rows[:limit]

    return PaginatedResponse(
        items=[OrderResponse.model_validate(o) for o in items],
        next_cursor=encode_cursor(items[-1].created_at, items[-1].id) if has_more else None,
        has_more=has_more,
    )


@router.get("/{order_id}", response_model=OrderResponse)
async def get_collection_order(
    order_id: uuid.UUID,
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> OrderResponse:
    db, user = db_user
    order = await _get_order(db, order_id)
    await require_collection_access(db, order.collection_id, user, "view")
    return OrderResponse.model_validate(order)


@router.patch("/{order_id}/status", response_model=OrderStatusResponse)
async def transition_order_status(
    order_id: uuid.UUID,
    body: OrderStatusRequest,
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> OrderStatusResponse:
    db, user = db_user
    order = await _get_order(db, order_id)
    await require_collection_access(db, order.collection_id, user, "edit")

    order = await get_order_for_update(db, order_id)
    await merchant_update_status(db, order, body.status.strip().lower(), user)
    await db.refresh(order)

    return OrderStatusResponse.model_validate(order)
