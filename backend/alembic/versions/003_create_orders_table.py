"""Create orders table, status transition trigger and numbering helper

Revision ID: 003
Revises: 002
Create Date: 2026-09-15

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

GRANT_APP_USER = """
    DO $$
    BEGIN
        IF EXISTS (SELECT 1 FROM pg_roles WHERE rolname = 'app_user') THEN
            GRANT SELECT, INSERT, UPDATE, DELETE ON ALL TABLES IN SCHEMA public TO app_user;
            GRANT EXECUTE ON ALL FUNCTIONS IN SCHEMA public TO app_user;
        END IF;
    END
    $$
"""

_BUYER = (
    "(user_id = app_current_user_id() "
    "OR (wallet_address IS NOT NULL AND wallet_address = app_current_wallet()))"
)

# Union of the payment and merchant transition tables in services.order_lifecycle
_STATUS_TRIGGER = """
    CREATE OR REPLACE FUNCTION orders_validate_status() RETURNS trigger
    LANGUAGE plpgsql AS $$
    BEGIN
        IF NEW.status = OLD.status THEN
            RETURN NEW;
        END IF;
        IF (OLD.status, NEW.status) IN (
            ('draft', 'pending_payment'),
            ('draft', 'cancelled'),
            ('pending_payment', 'confirmed'),
            ('pending_payment', 'cancelled')
        ) THEN
            RETURN NEW;
        END IF;
        IF OLD.status IN ('confirmed', 'preparing', 'shipped', 'delivered')
           AND NEW.status IN ('confirmed', 'preparing', 'shipped', 'delivered', 'cancelled') THEN
            RETURN NEW;
        END IF;
        IF OLD.status = 'cancelled' AND OLD.confirmed_at IS NOT NULL
           AND NEW.status IN ('confirmed', 'preparing', 'shipped', 'delivered') THEN
            RETURN NEW;
        END IF;
        RAISE EXCEPTION 'Invalid order status transition from % to %', OLD.status, NEW.status
            USING ERRCODE = 'check_violation';
    END
    $$
"""

# Order numbers must be unique across every collection, so the maximum is
# computed as the owner instead of through the caller's RLS view.
_MAX_SEQUENCE_FUNCTION = """
    CREATE OR REPLACE FUNCTION app_max_order_sequence(prefix text) RETURNS integer
    LANGUAGE sql STABLE SECURITY DEFINER SET search_path = public AS $$
        SELECT COALESCE(
            MAX(SUBSTRING(order_number FROM '^' || prefix || '-([0-9]+)$')::integer),
            0
        )
        FROM orders
    $$
"""


def upgrade() -> None:
    op.create_table(
        "orders",
        sa.Column(
            "id",
            sa.UUID(),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column("order_number", sa.Text(), nullable=False, unique=True),
        sa.Column(
            "collection_id",
            sa.UUID(),
            sa.ForeignKey("collections.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "product_id",
            sa.UUID(),
            sa.ForeignKey("products.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "user_id",
            sa.UUID(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("wallet_address", sa.String(44), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("unit_price", sa.Numeric(18, 9), nullable=False),
        sa.Column("subtotal", sa.Numeric(18, 9), nullable=False),
        sa.Column("discount_amount", sa.Numeric(18, 9), nullable=False, server_default="0"),
        sa.Column("total_amount", sa.Numeric(18, 9), nullable=False),
        sa.Column("currency", sa.String(10), nullable=False, server_default="SOL"),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("variant_selections", postgresql.JSONB(), nullable=True),
        sa.Column("shipping_address", postgresql.JSONB(), nullable=True),
        sa.Column("contact_info", postgresql.JSONB(), nullable=True),
        sa.Column("transaction_signature", sa.Text(), nullable=True, unique=True),
        sa.Column("payment_metadata", postgresql.JSONB(), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("shipped_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('draft', 'pending_payment', 'confirmed', 'preparing', "
            "'shipped', 'delivered', 'cancelled')",
            name="ck_orders_status",
        ),
        sa.CheckConstraint("quantity >= 1", name="ck_orders_quantity"),
        sa.CheckConstraint(
            "user_id IS NOT NULL OR wallet_address IS NOT NULL", name="ck_orders_buyer"
        ),
    )
    op.create_index("ix_orders_collection_id", "orders", ["collection_id"])
    op.create_index("ix_orders_product_id", "orders", ["product_id"])
    op.create_index("ix_orders_user_id", "orders", ["user_id"])
    op.create_index("ix_orders_wallet_address", "orders", ["wallet_address"])

    op.execute(_STATUS_TRIGGER)
    op.execute("""
        CREATE TRIGGER orders_validate_status
        BEFORE UPDATE OF status ON orders
        FOR EACH ROW EXECUTE FUNCTION orders_validate_status()
    """)
    op.execute(_MAX_SEQUENCE_FUNCTION)

    # --- RLS on orders ---
    op.execute("ALTER TABLE orders ENABLE ROW LEVEL SECURITY")
    op.execute(f"""
        CREATE POLICY orders_select ON orders
        FOR SELECT
        USING (
            {_BUYER}
            OR app_can_access_collection(collection_id, 'view')
            OR app_is_service()
        )
    """)
    op.execute(f"""
        CREATE POLICY orders_insert ON orders
        FOR INSERT
        WITH CHECK ({_BUYER} OR app_is_service())
    """)
    # Buyers may only touch unpaid orders, and only to cancel them
    op.execute(f"""
        CREATE POLICY orders_update ON orders
        FOR UPDATE
        USING (
            app_can_access_collection(collection_id, 'edit')
            OR app_is_service()
            OR ({_BUYER} AND status IN ('draft', 'pending_payment'))
        )
        WITH CHECK (
            app_can_access_collection(collection_id, 'edit')
            OR app_is_service()
            OR ({_BUYER} AND status IN ('draft', 'pending_payment', 'cancelled'))
        )
    """)
    op.execute("""
        CREATE POLICY orders_delete ON orders
        FOR DELETE
        USING (app_is_admin())
    """)

    op.execute(GRANT_APP_USER)


def downgrade() -> None:
    for action in ("select", "insert", "update", "delete"):
        op.execute(f"DROP POLICY IF EXISTS orders_{action} ON orders")
    op.execute("DROP TRIGGER IF EXISTS orders_validate_status ON orders")
    op.execute("DROP FUNCTION IF EXISTS orders_validate_status()")
    op.execute("DROP FUNCTION IF EXISTS app_max_order_sequence(text)")
    op.drop_table("orders")
