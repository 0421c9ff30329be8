"""Create merchant_wallets and collection_wallets

Revision ID: 004
Revises: 003
Create Date: 2026-09-16

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

GRANT_APP_USER = """
    DO $$
    BEGIN
        IF EXISTS (SELECT 1 FROM pg_roles WHERE rolname = 'app_user') THEN
            GRANT SELECT, INSERT, UPDATE, DELETE ON ALL TABLES IN SCHEMA public TO app_user;
        END IF;
    END
    $$
"""

_WALLET_TABLES = ["merchant_wallets", "collection_wallets"]


def _create_admin_write_policies(table: str) -> None:
    op.execute(f"""
        CREATE POLICY {table}_insert ON {table}
        FOR INSERT
        WITH CHECK (app_is_admin())
    """)
    op.execute(f"""
        CREATE POLICY {table}_update ON {table}
        FOR UPDATE
        USING (app_is_admin())
        WITH CHECK (app_is_admin())
    """)
    op.execute(f"""
        CREATE POLICY {table}_delete ON {table}
        FOR DELETE
        USING (app_is_admin())
    """)


def upgrade() -> None:
    # --- merchant_wallets ---
    op.create_table(
        "merchant_wallets",
        sa.Column(
            "id",
            sa.UUID(),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column("address", sa.String(44), nullable=False, unique=True),
        sa.Column("label", sa.String(255), nullable=True),
        sa.Column("is_main", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "address ~ '^[1-9A-HJ-NP-Za-km-z]{32,44}$'", name="ck_merchant_wallets_address"
        ),
    )
    # At most one main wallet
    op.create_index(
        "uq_merchant_wallets_single_main",
        "merchant_wallets",
        ["is_main"],
        unique=True,
        postgresql_where=sa.text("is_main"),
    )

    # --- collection_wallets ---
    op.create_table(
        "collection_wallets",
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
            nullable=False,
            unique=True,
        ),
        sa.Column(
            "wallet_id",
            sa.UUID(),
            sa.ForeignKey("merchant_wallets.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
        ),
    )

    # --- RLS: payout addresses are public, only admins manage them ---
    for table in _WALLET_TABLES:
        op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
        _create_admin_write_policies(table)

    op.execute("""
        CREATE POLICY merchant_wallets_select ON merchant_wallets
        FOR SELECT
        USING (is_active OR app_is_admin() OR app_is_service())
    """)
    op.execute("""
        CREATE POLICY collection_wallets_select ON collection_wallets
        FOR SELECT
        USING (true)
    """)

    op.execute(GRANT_APP_USER)


def downgrade() -> None:
    for table in _WALLET_TABLES:
        for action in ("select", "insert", "update", "delete"):
            op.execute(f"DROP POLICY IF EXISTS {table}_{action} ON {table}")

    op.drop_table("collection_wallets")
    op.drop_index("uq_merchant_wallets_single_main", table_name="merchant_wallets")
    op.drop_table("merchant_wallets")
