import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import CollectionScopedBase

ORDER_STATUSES = (
    "draft",
    "pending_payment",
    "confirmed",
    "preparing",
    "shipped",
    "delivered",
    "cancelled",
)


class Order(CollectionScopedBase):
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'pending_payment', 'confirmed', 'preparing', "
            "'shipped', 'delivered', 'cancelled')",
            name="ck_orders_status",
        ),
        CheckConstraint("quantity >= 1", name="ck_orders_quantity"),
        CheckConstraint(
            "user_id IS NOT NULL OR wallet_address IS NOT NULL", name="ck_orders_buyer"
        ),
        CheckConstraint(
            "(batch_order_id IS NULL AND item_index IS NULL AND total_items_in_batch IS NULL) "
            "OR (batch_order_id IS NOT NULL AND item_index BETWEEN 1 AND total_items_in_batch)",
            name="ck_orders_batch_position",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True, server_default=func.gen_random_uuid()
    )
    # collection_id inherited from CollectionScopedBase
    # Shared by the lines of a batch; unique together with item_index
    order_number: Mapped[str] = mapped_column(Text, nullable=False)
    product_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    wallet_address: Mapped[str | None] = mapped_column(String(44), nullable=True, index=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, server_default="1")
    unit_price: Mapped[Decimal] = mapped_column(Numeric(18, 9), nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(18, 9), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(
        Numeric(18, 9), nullable=False, server_default="0"
    )
    total_amount: Mapped[Decimal] = mapped_column(Numeric(18, 9), nullable=False)
    currency: Mapped[str] = mapped_column(String(10), nullable=False, server_default="SOL")
    status: Mapped[str] = mapped_column(String(20), nullable=False, server_default="draft")
    variant_selections: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    shipping_address: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    contact_info: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    transaction_signature: Mapped[str | None] = mapped_column(Text, nullable=True)
    payment_metadata: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    batch_order_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True, index=True)
    item_index: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_items_in_batch: Mapped[int | None] = mapped_column(Integer, nullable=True)
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    shipped_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now()
    )
