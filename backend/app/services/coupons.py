"""Coupon redemption rules and discount calculation."""

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import DomainError
from app.models.coupon import Coupon, OrderCoupon
from app.services.eligibility import HoldingsVerifier, deny_holdings, ensure_eligible

_AMOUNT_QUANT = Decimal("0.000000001")


class CouponError(DomainError):
    title = "Coupon not applicable"


@dataclass
class CouponQuote:
    coupon_id: uuid.UUID
    code: str
    discount_amount: Decimal
    final_amount: Decimal


def normalize_code(code: str) -> str:
    return code.strip().upper()


def check_redeemable(
    coupon: Coupon,
    collection_id: uuid.UUID,
    amount: Decimal,
    now: datetime | None = None,
) -> None:
    """Raise CouponError with the first reason the coupon cannot be used."""
    now = now or datetime.now(UTC)
    if coupon.status != "active":
        raise CouponError("Coupon is not active")
    if coupon.starts_at is not None and now < coupon.starts_at:
        raise CouponError("Coupon is not valid yet")
    if coupon.expires_at is not None and now >= coupon.expires_at:
        raise CouponError("Coupon has expired")
    if coupon.max_uses is not None and coupon.current_uses >= coupon.max_uses:
        raise CouponError("Coupon usage limit reached")
    if coupon.collection_id is not None and coupon.collection_id != collection_id:
        raise CouponError("Coupon does not apply to this collection")
    if coupon.min_purchase_amount is not None and amount < coupon.min_purchase_amount:
        raise CouponError(f"Minimum purchase of {coupon.min_purchase_amount} required")


def calculate_discount(coupon: Coupon, amount: Decimal) -> Decimal:
    if coupon.discount_type == "percentage":
        discount = amount * coupon.discount_value / Decimal(100)
        if coupon.max_discount_amount is not None:
            discount = min(discount, coupon.max_discount_amount)
    else:
        discount = coupon.discount_value
    discount = max(Decimal(0), min(discount, amount))
    return discount.quantize(_AMOUNT_QUANT, rounding=ROUND_HALF_UP)


async def get_coupon_by_code(db: AsyncSession, code: str) -> Coupon | None:
    result = await db.execute(select(Coupon).where(Coupon.code == normalize_code(code)))
    return result.scalar_one_or_none()


async def quote_coupon(
    db: AsyncSession,
    code: str,
    collection_id: uuid.UUID,
    amount: Decimal,
    wallet: str | None,
    holdings_verifier: HoldingsVerifier = deny_holdings,
) -> tuple[Coupon, CouponQuote]:
    """Validate a coupon for an order amount without redeeming it."""
    coupon = await get_coupon_by_code(db, code)
    if coupon is None:
        raise CouponError("Coupon not found")
    check_redeemable(coupon, collection_id, amount)
    await ensure_eligible(db, coupon.eligibility_rules, wallet, holdings_verifier)

    discount = calculate_discount(coupon, amount)
    return coupon, CouponQuote(
        coupon_id=coupon.id,
        code=coupon.code,
        discount_amount=discount,
        final_amount=amount - discount,
    )


async def redeem_coupon(
    db: AsyncSession,
    coupon: Coupon,
    order_id: uuid.UUID,
    discount_amount: Decimal,
) -> OrderCoupon:
    """Count one use of the coupon and link it to the order.

    ``app_redeem_coupon`` increments ``current_uses`` only while it is below
    ``max_uses``, so concurrent redemptions never exceed the limit. It runs as
    SECURITY DEFINER because buyers have no UPDATE policy on coupons.
    """
    result = await db.execute(select(func.app_redeem_coupon(coupon.id)))
    if result.scalar() is None:
        raise CouponError("Coupon usage limit reached")

    link = OrderCoupon(order_id=order_id, coupon_id=coupon.id, discount_amount=discount_amount)
    db.add(link)
    await db.flush()
    return link
