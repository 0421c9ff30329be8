"""Buyer order endpoints.

A buyer is a signed-in user, a verified wallet, or both. Orders are readable by
the user that placed them and by whoever proves the order's wallet.
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy import or_, select, tuple_

from app.api.v1.pagination import DEFAULT_PAGE_SIZE, decode_cursor, encode_cursor
from app.core.dependencies import BuyerContext, get_buyer_context
from app.models.order import Order
from app.schemas.common import PaginatedResponse
from app.schemas.order import (
    BatchOrderCreateRequest,
    BatchOrderCreateResponse,
    BatchOrderResponse,
    OrderCreateRequest,
    OrderCreateResponse,
    OrderResponse,
)
from app.services.orders import (
    BatchLine,
    buyer_owns,
    cancel_order,
    create_batch_order,
    create_order,
    get_batch_orders,
)

router = APIRouter()


def _buyer_filter(buyer: BuyerContext):
    clauses = []
    if buyer.user is not None:
        clauses.append(Order.user_id == buyer.user.id)
    if buyer.wallet_address is not None:
        clauses.append(Order.wallet_address == buyer.wallet_address)
    return or_(*clauses)


@router.post("", response_model=OrderCreateResponse, status_code=201)
async def place_order(
    body: OrderCreateRequest,
    response: Response,
    buyer: BuyerContext = Depends(get_buyer_context),
) -> OrderCreateResponse:
    """Create a draft order. A repeated ``payment_metadata.transactionId`` returns
    the existing order with ``is_duplicate`` set and status 200."""
    placement = await create_order(
        buyer.db,
        product_id=body.product_id,
        quantity=body.quantity,
        user=buyer.user,
        wallet=buyer.wallet,
        wallet_address=body.wallet_address,
        variant_selections=body.variant_selections,
        shipping_address=body.shipping_address,
        contact_info=body.contact_info,
        payment_metadata=body.payment_metadata,
        coupon_code=body.coupon_code,
    )
    if placement.is_duplicate:
        response.status_code = 200

    return OrderCreateResponse.model_validate(placement.order).model_copy(
        update={"is_duplicate": placement.is_duplicate}
    )


@router.post("/batch", response_model=BatchOrderCreateResponse, status_code=201)
async def place_batch_order(
    body: BatchOrderCreateRequest,
    response: Response,
    buyer: BuyerContext = Depends(get_buyer_context),
) -> BatchOrderCreateResponse:
    """Create one draft line per cart item under a shared order number."""
    placement = await create_batch_order(
        buyer.db,
        items=[BatchLine(**item.model_dump()) for item in body.items],
        user=buyer.user,
        wallet=buyer.wallet,
        wallet_address=body.wallet_address,
        shipping_address=body.shipping_address,
        contact_info=body.contact_info,
        payment_metadata=body.payment_metadata,
    )
    if placement.is_duplicate:
        response.status_code = 200

    return BatchOrderCreateResponse(
        batch_order_id=placement.batch_order_id,
        order_number=placement.order_number,
        total_amount=placement.total_amount,
        items=[OrderResponse.model_validate(o) for o in placement.orders],
        is_duplicate=placement.is_duplicate,
    )


@router.get("/batches/{batch_order_id}", response_model=BatchOrderResponse)
async def get_my_batch_order(
    batch_order_id: uuid.UUID,
    buyer: BuyerContext = Depends(get_buyer_context),
) -> BatchOrderResponse:
    orders = [
        o
        for o in await get_batch_orders(buyer.db, batch_order_id)
        if buyer_owns(o, buyer.user, buyer.wallet)
    ]
    if not orders:
        raise HTTPException(status_code=404, detail="Batch order not found")
    return BatchOrderResponse(
        batch_order_id=batch_order_id,
        order_number=orders[0].order_number,
        total_amount=sum(o.total_amount for o in orders),
        items=[OrderResponse.model_validate(o) for o in orders],
    )


@router.get("/me", response_model=PaginatedResponse[OrderResponse])
async def list_my_orders(
    status: str | None = Query(None),
    cursor: str | None = Query(None),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=100),
    buyer: BuyerContext = Depends(get_buyer_context),
) -> PaginatedResponse[OrderResponse]:
    db = buyer.db

    stmt = (
        select(Order)
        .where(_buyer_filter(buyer))
        .order_by(Order.created_at.desc(), Order.id.desc())
    )
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
async def get_my_order(
    order_id: uuid.UUID,
    buyer: BuyerContext = Depends(get_buyer_context),
) -> OrderResponse:
    order = await buyer.db.get(Order, order_id)
    if order is None or not buyer_owns(order, buyer.user, buyer.wallet):
        raise HTTPException(status_code=404, detail="Order not found")
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_my_order(
    order_id: uuid.UUID,
    buyer: BuyerContext = Depends(get_buyer_context),
) -> OrderResponse:
    db = buyer.db
    # Plain read: FOR UPDATE would hide orders the buyer can no longer modify
    order = await db.get(Order, order_id)
    if order is None or not buyer_owns(order, buyer.user, buyer.wallet):
        raise HTTPException(status_code=404, detail="Order not found")
    await cancel_order(db, order, buyer.user, buyer.wallet)
    await db.refresh(order)
    return OrderResponse.model_validate(order)
