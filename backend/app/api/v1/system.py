"""Trusted payment-system endpoints, authenticated by ``X-Service-Key``.

The payment webhook handlers live outside this service; they call these routes
to move orders through the payment states and to issue wallet auth tokens after
verifying a signed wallet message.
"""

import logging
import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import get_service_db
from app.core.security import create_wallet_token
from app.models.order import Order
from app.schemas.order import (
    BatchOrderResponse,
    OrderResponse,
    PaymentStatusRequest,
    TransactionAttachRequest,
    WalletTokenRequest,
    WalletTokenResponse,
)
from app.services.orders import (
    attach_batch_transaction,
    attach_transaction,
    confirm_batch,
    confirm_order,
    confirm_payment,
    get_batch_for_update,
    get_order_for_update,
)
from app.services.wallets import validate_wallet_address

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/orders/{order_id}/transaction", response_model=OrderResponse)
async def attach_order_transaction(
    order_id: uuid.UUID,
    body: TransactionAttachRequest,
    db: AsyncSession = Depends(get_service_db),
) -> OrderResponse:
    order = await get_order_for_update(db, order_id)
    await attach_transaction(db, order, body.transaction_signature, body.amount)
    await db.refresh(order)
    return OrderResponse.model_validate(order)


@router.post("/orders/{order_id}/confirm", response_model=OrderResponse)
async def confirm_order_payment(
    order_id: uuid.UUID,
    db: AsyncSession = Depends(get_service_db),
) -> OrderResponse:
    order = await get_order_for_update(db, order_id)
    await confirm_order(db, order)
    await db.refresh(order)
    return OrderResponse.model_validate(order)


async def _batch_response(db: AsyncSession, orders: list[Order]) -> BatchOrderResponse:
    for order in orders:
        await db.refresh(order)
    return BatchOrderResponse(
        batch_order_id=orders[0].batch_order_id,
        order_number=orders[0].order_number,
        total_amount=sum(o.total_amount for o in orders),
        items=[OrderResponse.model_validate(o) for o in orders],
    )


@router.post("/batches/{batch_order_id}/transaction", response_model=BatchOrderResponse)
async def attach_batch_order_transaction(
    batch_order_id: uuid.UUID,
    body: TransactionAttachRequest,
    db: AsyncSession = Depends(get_service_db),
) -> BatchOrderResponse:
    orders = await get_batch_for_update(db, batch_order_id)
    await attach_batch_transaction(db, orders, body.transaction_signature, body.amount)
    return await _batch_response(db, orders)


@router.post("/batches/{batch_order_id}/confirm", response_model=BatchOrderResponse)
async def confirm_batch_order_payment(
    batch_order_id: uuid.UUID,
    db: AsyncSession = Depends(get_service_db),
) -> BatchOrderResponse:
    orders = await get_batch_for_update(db, batch_order_id)
    await confirm_batch(db, orders)
    return await _batch_response(db, orders)


@router.post("/payments/status", response_model=list[OrderResponse])
async def report_payment_status(
    body: PaymentStatusRequest,
    db: AsyncSession = Depends(get_service_db),
) -> list[OrderResponse]:
    """Apply a confirmed/failed outcome to every order paid by the signature.

    A single order comes back as a one-element list, a batch as all of its lines.
    """
    orders = await confirm_payment(db, body.transaction_signature, body.status)
    for order in orders:
        await db.refresh(order)
    logger.info("Payment %s reported as %s", body.transaction_signature, body.status)
    return [OrderResponse.model_validate(o) for o in orders]


@router.post("/wallet-tokens", response_model=WalletTokenResponse, status_code=201)
async def issue_wallet_token(
    body: WalletTokenRequest,
    db: AsyncSession = Depends(get_service_db),
) -> WalletTokenResponse:
    wallet_address = validate_wallet_address(body.wallet_address)
    return WalletTokenResponse(
        wallet_address=wallet_address,
        token=create_wallet_token(wallet_address, expires_in=body.expires_in),
        expires_in=body.expires_in,
    )
