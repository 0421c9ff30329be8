"""Create categories and products tables with RLS

Revision ID: 002
Revises: 001
Create Date: 2026-09-14

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "002"
down_revision: Union[str, None] = "001"
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

_CATALOG_TABLES = ["categories", "products"]

# Per-collection slug default, same collision loop as collections_default_slug
_PRODUCT_SLUG_TRIGGER = """
    CREATE OR REPLACE FUNCTION products_default_slug() RETURNS trigger
    LANGUAGE plpgsql SECURITY DEFINER SET search_path = public AS $$
    DECLARE
        base text;
        candidate text;
        n integer := 2;
    BEGIN
        IF NEW.slug IS NOT NULL AND NEW.slug <> '' THEN
            RETURN NEW;
        END IF;
        base := COALESCE(NULLIF(app_slugify(NEW.name), ''), 'product');
        candidate := base;
        WHILE EXISTS (
            SELECT 1 FROM products WHERE collection_id = NEW.collection_id AND slug = candidate
        ) LOOP
            candidate := rtrim(left(base, 63 - length('-' || n)), '-') || '-' || n;
            n := n + 1;
        END LOOP;
        NEW.slug := candidate;
        RETURN NEW;
    END
    $$
"""


def _create_catalog_policies(table: str, service_can_update: bool = False) -> None:
    """Public rows of visible collections; view access reads all, edit access writes."""
    op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
    op.execute(f"""
        CREATE POLICY {table}_select ON {table}
        FOR SELECT
        USING (
            (visible AND app_collection_is_public(collection_id))
            OR app_can_access_collection(collection_id, 'view')
            OR app_is_service()
        )
    """)
    op.execute(f"""
        CREATE POLICY {table}_insert ON {table}
        FOR INSERT
        WITH CHECK (app_can_access_collection(collection_id, 'edit'))
    """)
    update_check = "app_can_access_collection(collection_id, 'edit')"
    if service_can_update:
        update_check += " OR app_is_service()"
    op.execute(f"""
        CREATE POLICY {table}_update ON {table}
        FOR UPDATE
        USING ({update_check})
        WITH CHECK ({update_check})
    """)
    op.execute(f"""
        CREATE POLICY {table}_delete ON {table}
        FOR DELETE
        USING (app_can_access_collection(collection_id, 'edit'))
    """)


def upgrade() -> None:
    # --- categories ---
    op.create_table(
        "categories",
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
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("type", sa.String(20), nullable=False, server_default="blank"),
        sa.Column("eligibility_rules", postgresql.JSONB(), nullable=True),
        sa.Column("visible", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "type IN ('blank', 'whitelist', 'rules-based')", name="ck_categories_type"
        ),
    )
    op.create_index("ix_categories_collection_id", "categories", ["collection_id"])

    # --- products ---
    op.create_table(
        "products",
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
        ),
        sa.Column(
            "category_id",
            sa.UUID(),
            sa.ForeignKey("categories.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(63), nullable=False),
        sa.Column("sku", sa.String(100), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("price", sa.Numeric(18, 9), nullable=False),
        sa.Column("currency", sa.String(10), nullable=False, server_default="SOL"),
        sa.Column("quantity", sa.Integer(), nullable=True),
        sa.Column("minimum_order_quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "images",
            postgresql.ARRAY(sa.Text()),
            nullable=False,
            server_default="{}",
        ),
        sa.Column("variants", postgresql.JSONB(), nullable=True),
        sa.Column("notes", postgresql.JSONB(), nullable=True),
        sa.Column("visible", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("collection_id", "slug", name="uq_products_collection_slug"),
        sa.CheckConstraint("price >= 0", name="ck_products_price"),
        sa.CheckConstraint("quantity IS NULL OR quantity >= 0", name="ck_products_quantity"),
        sa.CheckConstraint("minimum_order_quantity >= 1", name="ck_products_min_order_qty"),
    )
    op.create_index("ix_products_collection_id", "products", ["collection_id"])
    op.create_index("ix_products_category_id", "products", ["category_id"])

    op.execute(_PRODUCT_SLUG_TRIGGER)
    op.execute("""
        CREATE TRIGGER products_default_slug
        BEFORE INSERT ON products
        FOR EACH ROW EXECUTE FUNCTION products_default_slug()
    """)

    _create_catalog_policies("categories")
    # Payment confirmation decrements stock under the service context
    _create_catalog_policies("products", service_can_update=True)

    op.execute(GRANT_APP_USER)


def downgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS products_default_slug ON products")
    op.execute("DROP FUNCTION IF EXISTS products_default_slug()")

    for table in _CATALOG_TABLES:
        for action in ("select", "insert", "update", "delete"):
            op.execute(f"DROP POLICY IF EXISTS {table}_{action} ON {table}")
        op.execute(f"ALTER TABLE {table} DISABLE ROW LEVEL SECURITY")

    op.drop_table("products")
    op.drop_table("categories")
