"""Order processing: placement, payment steps and merchant fulfilment.

Buyers create ``draft`` orders, one product per order or a cart of products
placed as a batch. The payment system attaches a transaction
(``pending_payment``) and confirms or fails it. Merchants then move confirmed
orders through fulfilment. Status changes go through ``order_lifecycle`` and
are re-checked by the ``orders_validate_status`` trigger.

Lines of a batch share ``order_number``, ``batch_order_id`` and, once paid,
the transaction signature. Each line keeps its own status.
"""

import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import Integer, Uuid, column, func, or_, select, table, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import enable_service_context, set_request_identity
from app.core.exceptions import AccessDeniedError, ConflictError, DomainError, NotFoundError
from app.models.category import Category
from app.models.collection import Collection
from app.models.order import Order
from app.models.product import Product
from app.models.user import User
from app.services.access import get_access_level, satisfies
from app.services.audit import log_security_event
from app.services.coupons import quote_coupon, redeem_coupon
from app.services.eligibility import HoldingsVerifier, deny_holdings, ensure_eligible
from app.services.numbering import get_next_order_number
from app.services.order_lifecycle import (
    FULFILLMENT_STATUSES,
    counts_as_sale,
    validate_merchant_transition,
    validate_payment_transition,
)
from app.services.wallet_auth import WalletIdentity
from app.services.wallets import resolve_payout_wallet

logger = logging.getLogger(__name__)

TRUSTED_MERCHANT_SALES = 10
REJECTED_SIGNATURE = "rejected"
PAYMENT_OUTCOMES = {"confirmed": "confirmed", "failed": "cancelled"}

# Owner-level view, see migration 008
public_order_counts = table(
    "public_order_counts",
    column("product_id", Uuid),
    column("collection_id", Uuid),
    column("total_orders", Integer),
)


class OrderError(DomainError):
    title = "Order rejected"


@dataclass
class OrderPlacement:
    order: Order
    is_duplicate: bool = False


@dataclass
class BatchPlacement:
    orders: list[Order] = field(default_factory=list)
    is_duplicate: bool = False

    @property
    def batch_order_id(self) -> uuid.UUID:
        return self.orders[0].batch_order_id

    @property
    def order_number(self) -> str:
        return self.orders[0].order_number

    @property
    def total_amount(self) -> Decimal:
        return sum((o.total_amount for o in self.orders), Decimal(0))


@dataclass
class BatchLine:
    product_id: uuid.UUID
    quantity: int = 1
    variant_selections: list | None = None


def _buyer_wallet(wallet: WalletIdentity, requested: str | None) -> str | None:
    if requested:
        if not wallet.matches(requested):
            raise AccessDeniedError("Wallet address is not verified for this request")
        return requested
    return wallet.verified_wallet


async def _resolve_buyer(
    db: AsyncSession, user: User | None, wallet: WalletIdentity, requested: str | None
) -> str | None:
    buyer_wallet = _buyer_wallet(wallet, requested)
    if user is None and buyer_wallet is None:
        raise AccessDeniedError("Sign in or verify a wallet to place an order")
    if buyer_wallet != wallet.verified_wallet:
        # Whitelist reads and the order row are checked against app.current_wallet
        await set_request_identity(db, user.id if user else None, buyer_wallet)
    return buyer_wallet


async def _find_by_transaction_id(
    db: AsyncSession, product_id: uuid.UUID, transaction_id: str
) -> Order | None:
    result = await db.execute(
        select(Order).where(
            Order.product_id == product_id,
            Order.batch_order_id.is_(None),
            Order.payment_metadata["transactionId"].astext == transaction_id,
        )
    )
    return result.scalars().first()


async def _load_orderable(
    db: AsyncSession,
    product_id: uuid.UUID,
    quantity: int,
    buyer_wallet: str | None,
    holdings_verifier: HoldingsVerifier,
) -> tuple[Product, Collection]:
    """Check that ``quantity`` of the product may be ordered by the buyer."""
    if quantity < 1:
        raise OrderError("Quantity must be at least 1")

    product = await db.get(Product, product_id)
    if product is None or not product.visible:
        raise NotFoundError("Product not found")
    collection = await db.get(Collection, product.collection_id)
    if collection is None or not collection.visible:
        raise NotFoundError("Product not found")
    if collection.sale_ended:
        raise OrderError("Sales have ended for this collection")
    if quantity < product.minimum_order_quantity:
        raise OrderError(f"Minimum order quantity is {product.minimum_order_quantity}")
    if product.quantity is not None and quantity > product.quantity:
        raise OrderError("Not enough stock for this order")

    if product.category_id is not None:
        category = await db.get(Category, product.category_id)
        if category is None or not category.visible:
            raise NotFoundError("Product not found")
        await ensure_eligible(db, category.eligibility_rules, buyer_wallet, holdings_verifier)
    return product, collection


async def _auto_confirm(db: AsyncSession, orders: list[Order], actor_id: uuid.UUID | None) -> None:
    """Free orders skip the payment system."""
    await enable_service_context(db)
    for order in orders:
        validate_payment_transition(order.status, "pending_payment")
        order.status = "pending_payment"
    await db.flush()
    for order in orders:
        await confirm_order(db, order, actor_id=actor_id)


async def create_order(
    db: AsyncSession,
    *,
    product_id: uuid.UUID,
    quantity: int,
    user: User | None,
    wallet: WalletIdentity,
    wallet_address: str | None = None,
    variant_selections: list | None = None,
    shipping_address: dict | None = None,
    contact_info: dict | None = None,
    payment_metadata: dict | None = None,
    coupon_code: str | None = None,
    holdings_verifier: HoldingsVerifier = deny_holdings,
) -> OrderPlacement:
    if quantity < 1:
        raise OrderError("Quantity must be at least 1")

    buyer_wallet = await _resolve_buyer(db, user, wallet, wallet_address)

    transaction_id = (payment_metadata or {}).get("transactionId")
    if transaction_id:
        existing = await _find_by_transaction_id(db, product_id, str(transaction_id))
        if existing is not None:
            logger.info(
                "Duplicate order for transaction %s, returning %s",
                transaction_id,
                existing.order_number,
            )
            return OrderPlacement(order=existing, is_duplicate=True)

    product, collection = await _load_orderable(
        db, product_id, quantity, buyer_wallet, holdings_verifier
    )

    subtotal = product.price * quantity
    discount = Decimal(0)
    coupon = None
    if coupon_code:
        coupon, quote = await quote_coupon(
            db, coupon_code, collection.id, subtotal, buyer_wallet, holdings_verifier
        )
        discount = quote.discount_amount

    metadata = dict(payment_metadata or {})
    payout_wallet = await resolve_payout_wallet(db, collection.id)
    if payout_wallet:
        metadata["payoutWallet"] = payout_wallet

    order = Order(
        order_number=await get_next_order_number(db),
        collection_id=collection.id,
        product_id=product.id,
        user_id=user.id if user else None,
        wallet_address=buyer_wallet,
        quantity=quantity,
        unit_price=product.price,
        subtotal=subtotal,
        discount_amount=discount,
        total_amount=subtotal - discount,
        currency=product.currency,
        status="draft",
        variant_selections=variant_selections,
        shipping_address=shipping_address,
        contact_info=contact_info,
        payment_metadata=metadata or None,
    )
    db.add(order)
    await db.flush()

    if coupon is not None:
        await redeem_coupon(db, coupon, order.id, discount)

    if order.total_amount == 0:
        await _auto_confirm(db, [order], user.id if user else None)

    await db.refresh(order)
    logger.info("Order %s created for product %s", order.order_number, product.id)
    return OrderPlacement(order=order)


async def get_batch_orders(db: AsyncSession, batch_order_id: uuid.UUID) -> list[Order]:
    result = await db.execute(
        select(Order)
        .where(Order.batch_order_id == batch_order_id)
        .order_by(Order.item_index)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def _find_batch_by_transaction_id(
    db: AsyncSession, transaction_id: str
) -> list[Order]:
    result = await db.execute(
        select(Order.batch_order_id)
        .where(
            Order.batch_order_id.is_not(None),
            Order.payment_metadata["transactionId"].astext == transaction_id,
        )
        .limit(1)
    )
    batch_order_id = result.scalar_one_or_none()
    if batch_order_id is None:
        return []
    return await get_batch_orders(db, batch_order_id)


async def create_batch_order(
    db: AsyncSession,
    *,
    items: list[BatchLine],
    user: User | None,
    wallet: WalletIdentity,
    wallet_address: str | None = None,
    shipping_address: dict | None = None,
    contact_info: dict | None = None,
    payment_metadata: dict | None = None,
    holdings_verifier: HoldingsVerifier = deny_holdings,
) -> BatchPlacement:
    """Place a cart as one order line per item under a shared order number.

    Every line is validated before any row is written. Stock is checked
    against the summed quantity of lines for the same product. The lines are
    paid with one transaction, see ``attach_batch_transaction``.
    """
    if not items:
        raise OrderError("A batch order needs at least one item")

    buyer_wallet = await _resolve_buyer(db, user, wallet, wallet_address)

    transaction_id = (payment_metadata or {}).get("transactionId")
    if transaction_id:
        existing = await _find_batch_by_transaction_id(db, str(transaction_id))
        if existing:
            logger.info(
                "Duplicate batch for transaction %s, returning %s",
                transaction_id,
                existing[0].order_number,
            )
            return BatchPlacement(orders=existing, is_duplicate=True)

    lines = []
    for item in items:
        product, collection = await _load_orderable(
            db, item.product_id, item.quantity, buyer_wallet, holdings_verifier
        )
        lines.append((item, product, collection))

    requested: dict[uuid.UUID, int] = defaultdict(int)
    for item, _product, _collection in lines:
        requested[item.product_id] += item.quantity
    for _item, product, _collection in lines:
        if product.quantity is not None and requested[product.id] > product.quantity:
            raise OrderError(f"Not enough stock for {product.name}")

    batch_order_id = uuid.uuid4()
    order_number = await get_next_order_number(db)
    payout_wallets: dict[uuid.UUID, str | None] = {}
    orders = []
    for index, (item, product, collection) in enumerate(lines, start=1):
        if collection.id not in payout_wallets:
            payout_wallets[collection.id] = await resolve_payout_wallet(db, collection.id)

        metadata = dict(payment_metadata or {})
        metadata["batchOrderId"] = str(batch_order_id)
        metadata["isBatchOrder"] = True
        if payout_wallets[collection.id]:
            metadata["payoutWallet"] = payout_wallets[collection.id]

        subtotal = product.price * item.quantity
        order = Order(
            order_number=order_number,
            batch_order_id=batch_order_id,
            item_index=index,
            total_items_in_batch=len(lines),
            collection_id=collection.id,
            product_id=product.id,
            user_id=user.id if user else None,
            wallet_address=buyer_wallet,
            quantity=item.quantity,
            unit_price=product.price,
            subtotal=subtotal,
            discount_amount=Decimal(0),
            total_amount=subtotal,
            currency=product.currency,
            status="draft",
            variant_selections=item.variant_selections,
            shipping_address=shipping_address,
            contact_info=contact_info,
            payment_metadata=metadata,
        )
        db.add(order)
        orders.append(order)
    await db.flush()

    placement = BatchPlacement(orders=orders)
    if placement.total_amount == 0:
        await _auto_confirm(db, orders, user.id if user else None)

    for order in orders:
        await db.refresh(order)
    logger.info("Batch %s created with %d items", order_number, len(orders))
    return placement


async def get_order_for_update(db: AsyncSession, order_id: uuid.UUID) -> Order:
    result = await db.execute(
        select(Order)
        .where(Order.id == order_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    order = result.scalar_one_or_none()
    if order is None:
        raise NotFoundError("Order not found")
    return order


async def get_batch_for_update(db: AsyncSession, batch_order_id: uuid.UUID) -> list[Order]:
    result = await db.execute(
        select(Order)
        .where(Order.batch_order_id == batch_order_id)
        .order_by(Order.item_index)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    orders = list(result.scalars().all())
    if not orders:
        raise NotFoundError("Batch order not found")
    return orders


async def attach_transaction(
    db: AsyncSession,
    order: Order,
    signature: str | None,
    amount: Decimal | None = None,
) -> Order:
    """Record the payment transaction and move the order to pending_payment."""
    validate_payment_transition(order.status, "pending_payment")

    if signature == REJECTED_SIGNATURE:
        signature = None
    if signature:
        stmt = select(Order.id).where(
            Order.transaction_signature == signature, Order.id != order.id
        )
        if order.batch_order_id is not None:
            # Lines of the same batch share one transaction
            stmt = stmt.where(Order.batch_order_id.is_distinct_from(order.batch_order_id))
        clash = await db.execute(stmt)
        if clash.first() is not None:
            raise ConflictError("Transaction signature is already used by another order")

    metadata = dict(order.payment_metadata or {})
    if amount is not None:
        metadata["paidAmount"] = str(amount)

    order.transaction_signature = signature
    order.payment_metadata = metadata or None
    order.status = "pending_payment"
    await db.flush()
    return order


async def attach_batch_transaction(
    db: AsyncSession,
    orders: list[Order],
    signature: str | None,
    amount: Decimal | None = None,
) -> list[Order]:
    """Attach one payment transaction to every line of a batch."""
    for order in orders:
        await attach_transaction(db, order, signature, amount)
    return orders


async def confirm_order(
    db: AsyncSession, order: Order, actor_id: uuid.UUID | None = None
) -> Order:
    """pending_payment -> confirmed; takes the ordered quantity out of stock.

    Stock is only decremented while enough is left, so two confirmations
    racing for the last units cannot both succeed.
    """
    validate_payment_transition(order.status, "confirmed")

    if order.product_id is not None:
        result = await db.execute(
            update(Product)
            .where(
                Product.id == order.product_id,
                or_(Product.quantity.is_(None), Product.quantity >= order.quantity),
            )
            .values(quantity=Product.quantity - order.quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.warning(
                "Order %s cannot be confirmed, product %s is out of stock",
                order.order_number,
                order.product_id,
            )
            raise OrderError("Not enough stock to confirm this order")

    order.status = "confirmed"
    order.confirmed_at = datetime.now(UTC)
    await db.flush()
    await log_security_event(
        db,
        "order_confirmed",
        actor_id,
        order_id=order.id,
        order_number=order.order_number,
        transaction_signature=order.transaction_signature,
    )
    return order


async def confirm_batch(db: AsyncSession, orders: list[Order]) -> list[Order]:
    """Confirm every line of a batch that is not confirmed yet."""
    for order in orders:
        if order.status != "confirmed":
            await confirm_order(db, order)
    return orders


async def confirm_payment(db: AsyncSession, signature: str, status: str) -> list[Order]:
    """Apply a payment outcome to every order paid by a transaction signature.

    A single order yields one element; a batch yields all of its lines.
    """
    target = PAYMENT_OUTCOMES.get(status)
    if target is None:
        raise OrderError(f"Unknown payment status '{status}'")

    result = await db.execute(
        select(Order)
        .where(Order.transaction_signature == signature)
        .order_by(Order.item_index)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    orders = list(result.scalars().all())
    if not orders:
        raise NotFoundError("No order for this transaction signature")

    for order in orders:
        if order.status == target:
            continue
        if target == "confirmed":
            await confirm_order(db, order)
        else:
            validate_payment_transition(order.status, "cancelled")
            order.status = "cancelled"
            await db.flush()
            await log_security_event(
                db, "order_payment_failed", None, order_id=order.id, signature=signature
            )
    return orders


def buyer_owns(order: Order, user: User | None, wallet: WalletIdentity) -> bool:
    if user is not None and order.user_id == user.id:
        return True
    return wallet.matches(order.wallet_address)


async def cancel_order(
    db: AsyncSession, order: Order, user: User | None, wallet: WalletIdentity
) -> Order:
    if not buyer_owns(order, user, wallet):
        raise NotFoundError("Order not found")
    validate_payment_transition(order.status, "cancelled")
    order.status = "cancelled"
    await db.flush()
    return order


async def record_sale(db: AsyncSession, merchant_id: uuid.UUID) -> None:
    """Count a completed sale and promote starter merchants at the threshold."""
    result = await db.execute(
        update(User)
        .where(User.id == merchant_id)
        .values(successful_sales_count=User.successful_sales_count + 1)
        .returning(User.successful_sales_count, User.merchant_tier)
        .execution_options(synchronize_session=False)
    )
    row = result.one_or_none()
    if row is None:
        return
    count, tier = row
    if tier == "starter_merchant" and count >= TRUSTED_MERCHANT_SALES:
        await db.execute(
            update(User)
            .where(User.id == merchant_id)
            .values(merchant_tier="trusted_merchant")
            .execution_options(synchronize_session=False)
        )
        await log_security_event(
            db, "merchant_tier_promoted", merchant_id, tier="trusted_merchant", sales=count
        )


async def merchant_update_status(
    db: AsyncSession, order: Order, requested: str, actor: User
) -> Order:
    collection = await db.get(Collection, order.collection_id)
    if collection is None:
        raise NotFoundError("Order not found")
    level = await get_access_level(db, collection, actor)
    if not satisfies(level, "edit"):
        if level is None:
            raise NotFoundError("Order not found")
        raise AccessDeniedError("Requires edit access to this collection")

    previous = order.status
    validate_merchant_transition(previous, requested, order.confirmed_at is not None)

    order.status = requested
    if counts_as_sale(previous, requested, order.shipped_at is not None):
        order.shipped_at = datetime.now(UTC)
        await record_sale(db, collection.user_id)
    await db.flush()

    logger.info(
        "Order %s moved %s -> %s by %s", order.order_number, previous, requested, actor.id
    )
    return order


# ---------------------------------------------------------------------------
# Order counts
# ---------------------------------------------------------------------------


async def get_order_counts(
    db: AsyncSession, product_ids: list[uuid.UUID]
) -> dict[uuid.UUID, int]:
    """Paid order counts per product, readable by anonymous callers."""
    if not product_ids:
        return {}
    result = await db.execute(
        select(public_order_counts.c.product_id, public_order_counts.c.total_orders).where(
            public_order_counts.c.product_id.in_(product_ids)
        )
    )
    return {product_id: total for product_id, total in result.all()}


async def get_best_sellers(
    db: AsyncSession, limit: int, collection_id: uuid.UUID | None = None
) -> list[tuple[Product, int]]:
    """Visible products of open collections ordered by paid order count."""
    stmt = (
        select(Product, public_order_counts.c.total_orders)
        .join(public_order_counts, public_order_counts.c.product_id == Product.id)
        .join(Collection, Collection.id == Product.collection_id)
        .outerjoin(Category, Category.id == Product.category_id)
        .where(
            Product.visible.is_(True),
            Collection.visible.is_(True),
            Collection.sale_ended.is_(False),
            or_(Product.category_id.is_(None), Category.visible.is_(True)),
        )
        .order_by(public_order_counts.c.total_orders.desc(), Product.id)
        .limit(limit)
    )
    if collection_id is not None:
        stmt = stmt.where(Product.collection_id == collection_id)
    result = await db.execute(stmt)
    return [(product, total) for product, total in result.all()]


async def get_order_counts_by_status(
    db: AsyncSession, product_id: uuid.UUID
) -> dict[str, int]:
    """Fulfilment-status counts of a product's orders visible to the caller."""
    result = await db.execute(
        select(Order.status, func.count(Order.id))
        .where(Order.product_id == product_id, Order.status.in_(FULFILLMENT_STATUSES))
        .group_by(Order.status)
    )
    counts = dict.fromkeys(FULFILLMENT_STATUSES, 0)
    counts.update({status: total for status, total in result.all()})
    return counts
