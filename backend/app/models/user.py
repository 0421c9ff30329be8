import uuid
from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base

USER_ROLES = ("admin", "merchant", "user")
MERCHANT_TIERS = (
    "starter_merchant",
    "verified_merchant",
    "trusted_merchant",
    "elite_merchant",
)


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("role IN ('admin', 'merchant', 'user')", name="ck_users_role"),
        CheckConstraint(
            "merchant_tier IN ('starter_merchant', 'verified_merchant', "
            "'trusted_merchant', 'elite_merchant')",
            name="ck_users_merchant_tier",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, server_default=func.gen_random_uuid())
    auth_sub: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, server_default="user")
    merchant_tier: Mapped[str] = mapped_column(
        String(30), nullable=False, server_default="starter_merchant"
    )
    successful_sales_count: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default="0"
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="true")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now()
    )
