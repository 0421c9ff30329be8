"""Order request/response schemas."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

MAX_BATCH_ITEMS = 20


class OrderCreateRequest(BaseModel):
    product_id: uuid.UUID
    quantity: int = Field(1, ge=1)
    wallet_address: str | None = Field(None, min_length=32, max_length=44)
    variant_selections: list | None = None
    shipping_address: dict | None = None
    contact_info: dict | None = None
    payment_metadata: dict | None = None
    coupon_code: str | None = Field(None, min_length=1, max_length=50)


class OrderResponse(BaseModel):
    id: uuid.UUID
    order_number: str
    collection_id: uuid.UUID
    product_id: uuid.UUID | None = None
    user_id: uuid.UUID | None = None
    wallet_address: str | None = None
    quantity: int
    unit_price: Decimal
    subtotal: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    currency: str
    status: str
    variant_selections: list | None = None
    shipping_address: dict | None = None
    contact_info: dict | None = None
    transaction_signature: str | None = None
    payment_metadata: dict | None = None
    batch_order_id: uuid.UUID | None = None
    item_index: int | None = None
    total_items_in_batch: int | None = None
    confirmed_at: datetime | None = None
    shipped_at: datetime | None = None
    created_at: datetime
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class OrderCreateResponse(OrderResponse):
    is_duplicate: bool = False


class BatchItemRequest(BaseModel):
    product_id: uuid.UUID
    quantity: int = Field(1, ge=1)
    variant_selections: list | None = None


class BatchOrderCreateRequest(BaseModel):
    items: list[BatchItemRequest] = Field(..., min_length=1, max_length=MAX_BATCH_ITEMS)
    wallet_address: str | None = Field(None, min_length=32, max_length=44)
    shipping_address: dict | None = None
    contact_info: dict | None = None
    payment_metadata: dict | None = None


class BatchOrderResponse(BaseModel):
    batch_order_id: uuid.UUID
    order_number: str
    total_amount: Decimal
    items: list[OrderResponse]


class BatchOrderCreateResponse(BatchOrderResponse):
    is_duplicate: bool = False


class OrderStatusRequest(BaseModel):
    status: str = Field(..., min_length=1, max_length=50)


class OrderStatusResponse(BaseModel):
    id: uuid.UUID
    order_number: str
    status: str
    total_amount: Decimal
    currency: str
    confirmed_at: datetime | None = None
    shipped_at: datetime | None = None
    updated_at: datetime | None

    model_config = {"from_attributes": True}


class TransactionAttachRequest(BaseModel):
    transaction_signature: str | None = Field(None, max_length=128)
    amount: Decimal | None = Field(None, ge=0)


class PaymentStatusRequest(BaseModel):
    transaction_signature: str = Field(..., min_length=1, max_length=128)
    status: Literal["confirmed", "failed"]


class WalletTokenRequest(BaseModel):
    wallet_address: str = Field(..., min_length=32, max_length=44)
    expires_in: int = Field(3600, ge=60, le=86400)


class WalletTokenResponse(BaseModel):
    wallet_address: str
    token: str
    expires_in: int
