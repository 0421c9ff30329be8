import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import CollectionScopedBase


class Product(CollectionScopedBase):
    __tablename__ = "products"
    __table_args__ = (
        UniqueConstraint("collection_id", "slug", name="uq_products_collection_slug"),
        CheckConstraint("price >= 0", name="ck_products_price"),
        CheckConstraint("quantity IS NULL OR quantity >= 0", name="ck_products_quantity"),
        CheckConstraint("minimum_order_quantity >= 1", name="ck_products_min_order_qty"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, server_default=func.gen_random_uuid())
    # collection_id inherited from CollectionScopedBase
    category_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(63), nullable=False)
    sku: Mapped[str | None] = mapped_column(String(100), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    price: Mapped[Decimal] = mapped_column(Numeric(18, 9), nullable=False)
    currency: Mapped[str] = mapped_column(String(10), nullable=False, server_default="SOL")
    # NULL means unlimited stock
    quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    minimum_order_quantity: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default="1"
    )
    images: Mapped[list[str]] = mapped_column(
        ARRAY(Text), nullable=False, server_default="{}"
    )
    variants: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    notes: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    visible: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="true")
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now()
    )
