"""Create coupons, order_coupons and whitelist_entries

Revision ID: 005
Revises: 004
Create Date: 2026-09-16

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "005"
down_revision: Union[str, None] = "004"
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

_COUPON_MANAGER = (
    "((collection_id IS NULL AND app_is_admin()) "
    "OR (collection_id IS NOT NULL AND app_can_access_collection(collection_id, 'edit')))"
)

# Buyers have no UPDATE policy on coupons; redemption runs as the owner and
# never pushes current_uses past max_uses.
_REDEEM_FUNCTION = """
    CREATE OR REPLACE FUNCTION app_redeem_coupon(cid uuid) RETURNS integer
    LANGUAGE sql VOLATILE SECURITY DEFINER SET search_path = public AS $$
        UPDATE coupons
        SET current_uses = current_uses + 1, updated_at = now()
        WHERE id = cid
          AND status = 'active'
          AND (max_uses IS NULL OR current_uses < max_uses)
        RETURNING current_uses
    $$
"""


def upgrade() -> None:
    # --- coupons (NULL collection_id = global) ---
    op.create_table(
        "coupons",
        sa.Column(
            "id",
            sa.UUID(),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column(
            "collection_id",
            sa.UUID(),
            sa.ForeignKey("collections.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("code", sa.String(50), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("discount_type", sa.String(20), nullable=False),
        sa.Column("discount_value", sa.Numeric(18, 9), nullable=False),
        sa.Column("min_purchase_amount", sa.Numeric(18, 9), nullable=True),
        sa.Column("max_discount_amount", sa.Numeric(18, 9), nullable=True),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("max_uses", sa.Integer(), nullable=True),
        sa.Column("current_uses", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("eligibility_rules", postgresql.JSONB(), nullable=True),
        sa.Column(
            "created_by",
            sa.UUID(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "discount_type IN ('percentage', 'fixed')", name="ck_coupons_discount_type"
        ),
        sa.CheckConstraint("discount_value > 0", name="ck_coupons_discount_value"),
        sa.CheckConstraint(
            "status IN ('active', 'inactive', 'expired')", name="ck_coupons_status"
        ),
        sa.CheckConstraint("code = upper(code)", name="ck_coupons_code_upper"),
    )
    op.create_index("ix_coupons_collection_id", "coupons", ["collection_id"])

    # --- order_coupons ---
    op.create_table(
        "order_coupons",
        sa.Column(
            "id",
            sa.UUID(),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column(
            "order_id",
            sa.UUID(),
            sa.ForeignKey("orders.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "coupon_id",
            sa.UUID(),
            sa.ForeignKey("coupons.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("discount_amount", sa.Numeric(18, 9), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
        ),
        sa.UniqueConstraint("order_id", name="uq_order_coupons_order"),
    )
    op.create_index("ix_order_coupons_coupon_id", "order_coupons", ["coupon_id"])

    # --- whitelist_entries ---
    op.create_table(
        "whitelist_entries",
        sa.Column(
            "id",
            sa.UUID(),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column("list_name", sa.String(100), nullable=False),
        sa.Column("wallet_address", sa.String(44), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
        ),
        sa.UniqueConstraint(
            "list_name", "wallet_address", name="uq_whitelist_entries_list_wallet"
        ),
    )
    op.create_index("ix_whitelist_entries_list_name", "whitelist_entries", ["list_name"])

    op.execute(_REDEEM_FUNCTION)

    # --- RLS on coupons ---
    op.execute("ALTER TABLE coupons ENABLE ROW LEVEL SECURITY")
    op.execute(f"""
        CREATE POLICY coupons_select ON coupons
        FOR SELECT
        USING (status = 'active' OR {_COUPON_MANAGER} OR app_is_admin() OR app_is_service())
    """)
    op.execute(f"""
        CREATE POLICY coupons_insert ON coupons
        FOR INSERT
        WITH CHECK ({_COUPON_MANAGER})
    """)
    op.execute(f"""
        CREATE POLICY coupons_update ON coupons
        FOR UPDATE
        USING ({_COUPON_MANAGER})
        WITH CHECK ({_COUPON_MANAGER})
    """)
    op.execute(f"""
        CREATE POLICY coupons_delete ON coupons
        FOR DELETE
        USING ({_COUPON_MANAGER})
    """)

    # --- RLS on order_coupons: follows the order's visibility ---
    op.execute("ALTER TABLE order_coupons ENABLE ROW LEVEL SECURITY")
    op.execute("""
        CREATE POLICY order_coupons_select ON order_coupons
        FOR SELECT
        USING (EXISTS (SELECT 1 FROM orders o WHERE o.id = order_id))
    """)
    op.execute("""
        CREATE POLICY order_coupons_insert ON order_coupons
        FOR INSERT
        WITH CHECK (
            app_is_service()
            OR EXISTS (
                SELECT 1 FROM orders o
                WHERE o.id = order_id
                  AND (
                      o.user_id = app_current_user_id()
                      OR (o.wallet_address IS NOT NULL
                          AND o.wallet_address = app_current_wallet())
                  )
            )
        )
    """)

    # --- RLS on whitelist_entries: a wallet sees its own entries ---
    op.execute("ALTER TABLE whitelist_entries ENABLE ROW LEVEL SECURITY")
    op.execute("""
        CREATE POLICY whitelist_entries_select ON whitelist_entries
        FOR SELECT
        USING (wallet_address = app_current_wallet() OR app_is_admin() OR app_is_service())
    """)
    op.execute("""
        CREATE POLICY whitelist_entries_insert ON whitelist_entries
        FOR INSERT
        WITH CHECK (app_is_admin())
    """)
    op.execute("""
        CREATE POLICY whitelist_entries_delete ON whitelist_entries
        FOR DELETE
        USING (app_is_admin())
    """)

    op.execute(GRANT_APP_USER)


def downgrade() -> None:
    for action in ("select", "insert", "update", "delete"):
        op.execute(f"DROP POLICY IF EXISTS coupons_{action} ON coupons")
        op.execute(f"DROP POLICY IF EXISTS order_coupons_{action} ON order_coupons")
        op.execute(f"DROP POLICY IF EXISTS whitelist_entries_{action} ON whitelist_entries")
    op.execute("DROP FUNCTION IF EXISTS app_redeem_coupon(uuid)")

    op.drop_table("whitelist_entries")
    op.drop_table("order_coupons")
    op.drop_table("coupons")
