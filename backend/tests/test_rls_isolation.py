"""Row level security tests.

These connect as app_user (RLS enforced) and switch the request identity
GUCs to prove who can see and change which rows.
"""

import uuid
from decimal import Decimal

import pytest
from sqlalchemy import func, select, text, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import enable_service_context, set_request_identity
from app.models.category import Category
from app.models.collection import Collection, CollectionAccess
from app.models.coupon import Coupon
from app.models.order import Order
from app.models.product import Product
from app.models.security_log import SecurityLog
from app.models.user import User
from app.services.audit import log_security_event
from tests.helpers import random_wallet

pytestmark = pytest.mark.integration


async def _user(db: AsyncSession, role: str = "user") -> User:
    user = User(
        auth_sub=f"rls-{uuid.uuid4().hex}",
        email=f"rls-{uuid.uuid4().hex[:12]}@test.com",
        display_name=f"RLS {role}",
        role=role,
    )
    db.add(user)
    await db.flush()
    return user


async def _as(db: AsyncSession, user: User | None = None, wallet: str | None = None) -> None:
    await set_request_identity(db, user.id if user else None, wallet)
    await db.execute(text("SELECT set_config('app.service_role', '', true)"))


async def _collection(db: AsyncSession, owner: User, visible: bool = True) -> Collection:
    await _as(db, owner)
    collection = Collection(
        user_id=owner.id,
        name="RLS collection",
        slug=f"rls-{uuid.uuid4().hex[:10]}",
        visible=visible,
    )
    db.add(collection)
    await db.flush()
    return collection


async def _visible_collection_ids(db: AsyncSession) -> set[uuid.UUID]:
    result = await db.execute(select(Collection.id))
    return set(result.scalars().all())


async def _order(db: AsyncSession, collection: Collection, **buyer) -> Order:
    order = Order(
        order_number=f"RLS-{uuid.uuid4().hex[:12]}",
        collection_id=collection.id,
        quantity=1,
        unit_price=Decimal("2"),
        subtotal=Decimal("2"),
        total_amount=Decimal("2"),
        status="draft",
        **buyer,
    )
    db.add(order)
    await db.flush()
    return order


async def _visible_order_ids(db: AsyncSession) -> set[uuid.UUID]:
    result = await db.execute(select(Order.id))
    return set(result.scalars().all())


# ── Collections ──────────────────────────────────────────────────────


async def test_hidden_collection_only_visible_to_owner_and_grantees(rls_db: AsyncSession):
    db = rls_db
    owner = await _user(db, "merchant")
    viewer = await _user(db)
    stranger = await _user(db)
    hidden = await _collection(db, owner, visible=False)
    public = await _collection(db, owner, visible=True)

    db.add(CollectionAccess(collection_id=hidden.id, user_id=viewer.id, access_type="view"))
    await db.flush()

    await _as(db, stranger)
    ids = await _visible_collection_ids(db)
    assert public.id in ids
    assert hidden.id not in ids

    await _as(db, viewer)
    assert hidden.id in await _visible_collection_ids(db)

    await _as(db)
    assert hidden.id not in await _visible_collection_ids(db)


async def test_view_grant_cannot_update_collection(rls_db: AsyncSession):
    db = rls_db
    owner = await _user(db, "merchant")
    viewer = await _user(db)
    collection = await _collection(db, owner)
    db.add(CollectionAccess(collection_id=collection.id, user_id=viewer.id, access_type="view"))
    await db.flush()

    await _as(db, viewer)
    result = await db.execute(
        update(Collection)
        .where(Collection.id == collection.id)
        .values(name="Hijacked")
        .execution_options(synchronize_session=False)
    )
    assert result.rowcount == 0

    await _as(db, owner)
    result = await db.execute(
        update(Collection)
        .where(Collection.id == collection.id)
        .values(name="Renamed")
        .execution_options(synchronize_session=False)
    )
    assert result.rowcount == 1


async def test_plain_user_cannot_create_collection(rls_db: AsyncSession):
    db = rls_db
    user = await _user(db)
    await _as(db, user)
    db.add(Collection(user_id=user.id, name="Nope", slug=f"nope-{uuid.uuid4().hex[:8]}"))
    with pytest.raises(DBAPIError):
        await db.flush()


# ── Catalog ──────────────────────────────────────────────────────────


async def test_hidden_catalog_rows_are_private(rls_db: AsyncSession):
    db = rls_db
    owner = await _user(db, "merchant")
    collection = await _collection(db, owner)
    hidden_category = Category(collection_id=collection.id, name="Secret", visible=False)
    db.add(hidden_category)
    await db.flush()
    shown = Product(collection_id=collection.id, name="Shown", slug="shown", price=Decimal("1"))
    hidden = Product(
        collection_id=collection.id,
        name="Hidden",
        slug="hidden",
        price=Decimal("1"),
        visible=False,
    )
    db.add_all([shown, hidden])
    await db.flush()

    await _as(db)
    product_ids = set(
        (await db.execute(select(Product.id).where(Product.collection_id == collection.id)))
        .scalars()
        .all()
    )
    assert product_ids == {shown.id}
    category = await db.execute(select(Category.id).where(Category.id == hidden_category.id))
    assert category.first() is None


# ── Orders ───────────────────────────────────────────────────────────


async def test_buyers_only_see_their_own_orders(rls_db: AsyncSession):
    db = rls_db
    owner = await _user(db, "merchant")
    buyer_a = await _user(db)
    buyer_b = await _user(db)
    wallet = random_wallet()
    collection = await _collection(db, owner)

    await _as(db, buyer_a)
    order_a = await _order(db, collection, user_id=buyer_a.id)
    await _as(db, wallet=wallet)
    order_w = await _order(db, collection, wallet_address=wallet)

    await _as(db, buyer_b)
    assert not {order_a.id, order_w.id} & await _visible_order_ids(db)

    await _as(db, buyer_a)
    visible = await _visible_order_ids(db)
    assert order_a.id in visible
    assert order_w.id not in visible

    await _as(db, wallet=wallet)
    visible = await _visible_order_ids(db)
    assert order_w.id in visible
    assert order_a.id not in visible

    await _as(db, owner)
    assert {order_a.id, order_w.id} <= await _visible_order_ids(db)

    await _as(db)
    await enable_service_context(db)
    assert {order_a.id, order_w.id} <= await _visible_order_ids(db)


async def test_buyer_cannot_insert_order_for_someone_else(rls_db: AsyncSession):
    db = rls_db
    owner = await _user(db, "merchant")
    buyer = await _user(db)
    victim = await _user(db)
    collection = await _collection(db, owner)

    await _as(db, buyer)
    with pytest.raises(DBAPIError):
        await _order(db, collection, user_id=victim.id)


async def test_buyer_cannot_confirm_own_order(rls_db: AsyncSession):
    db = rls_db
    owner = await _user(db, "merchant")
    buyer = await _user(db)
    collection = await _collection(db, owner)
    await _as(db, buyer)
    order = await _order(db, collection, user_id=buyer.id)

    await db.execute(
        update(Order)
        .where(Order.id == order.id)
        .values(status="pending_payment")
        .execution_options(synchronize_session=False)
    )
    with pytest.raises(DBAPIError):
        await db.execute(
            update(Order)
            .where(Order.id == order.id)
            .values(status="confirmed")
            .execution_options(synchronize_session=False)
        )


async def test_status_trigger_rejects_invalid_transition(db: AsyncSession):
    owner = await _user(db, "merchant")
    collection = Collection(user_id=owner.id, name="Trigger", slug=f"t-{uuid.uuid4().hex[:8]}")
    db.add(collection)
    await db.flush()
    order = await _order(db, collection, user_id=owner.id)

    with pytest.raises(DBAPIError, match="Invalid order status transition"):
        await db.execute(
            update(Order)
            .where(Order.id == order.id)
            .values(status="shipped")
            .execution_options(synchronize_session=False)
        )


# ── Coupons, security log ────────────────────────────────────────────


async def test_coupon_redemption_stops_at_max_uses(rls_db: AsyncSession):
    db = rls_db
    admin = await _user(db, "admin")
    buyer = await _user(db)
    await _as(db, admin)
    coupon = Coupon(
        code=f"ONCE{uuid.uuid4().hex[:8].upper()}",
        discount_type="fixed",
        discount_value=Decimal("1"),
        max_uses=1,
    )
    db.add(coupon)
    await db.flush()

    await _as(db, buyer)
    first = await db.execute(select(func.app_redeem_coupon(coupon.id)))
    assert first.scalar() == 1
    second = await db.execute(select(func.app_redeem_coupon(coupon.id)))
    assert second.scalar() is None


async def test_buyer_cannot_edit_coupons(rls_db: AsyncSession):
    db = rls_db
    admin = await _user(db, "admin")
    buyer = await _user(db)
    await _as(db, admin)
    coupon = Coupon(
        code=f"FIXED{uuid.uuid4().hex[:8].upper()}",
        discount_type="fixed",
        discount_value=Decimal("1"),
    )
    db.add(coupon)
    await db.flush()

    await _as(db, buyer)
    result = await db.execute(
        update(Coupon)
        .where(Coupon.id == coupon.id)
        .values(current_uses=0, discount_value=Decimal("1000"))
        .execution_options(synchronize_session=False)
    )
    assert result.rowcount == 0


async def test_security_log_is_write_only_for_non_admins(rls_db: AsyncSession):
    db = rls_db
    admin = await _user(db, "admin")
    user = await _user(db)
    event = f"test_event_{uuid.uuid4().hex[:8]}"

    await _as(db, user)
    await log_security_event(db, event, user.id, reason="test")
    rows = await db.execute(select(SecurityLog.id).where(SecurityLog.event_type == event))
    assert rows.first() is None

    await _as(db, admin)
    rows = await db.execute(select(SecurityLog.details).where(SecurityLog.event_type == event))
    assert rows.scalar_one() == {"reason": "test"}
