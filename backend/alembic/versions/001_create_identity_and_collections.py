"""Create users, collections and collection_access with RLS helpers

Revision ID: 001
Revises:
Create Date: 2026-09-14

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

GRANT_APP_USER = """
    DO $$
    BEGIN
        IF EXISTS (SELECT 1 FROM pg_roles WHERE rolname = 'app_user') THEN
            GRANT SELECT, INSERT, UPDATE, DELETE ON ALL TABLES IN SCHEMA public TO app_user;
            GRANT USAGE, SELECT ON ALL SEQUENCES IN SCHEMA public TO app_user;
            GRANT EXECUTE ON ALL FUNCTIONS IN SCHEMA public TO app_user;
        END IF;
    END
    $$
"""

# Identity helpers. Empty GUCs ('' after a previous request) read as NULL.
_IDENTITY_FUNCTIONS = [
    """
    CREATE OR REPLACE FUNCTION app_current_user_id() RETURNS uuid
    LANGUAGE sql STABLE AS $$
        SELECT NULLIF(current_setting('app.current_user_id', true), '')::uuid
    $$
    """,
    """
    CREATE OR REPLACE FUNCTION app_current_wallet() RETURNS text
    LANGUAGE sql STABLE AS $$
        SELECT NULLIF(current_setting('app.current_wallet', true), '')
    $$
    """,
    """
    CREATE OR REPLACE FUNCTION app_is_service() RETURNS boolean
    LANGUAGE sql STABLE AS $$
        SELECT COALESCE(current_setting('app.service_role', true), '') = 'on'
    $$
    """,
    """
    CREATE OR REPLACE FUNCTION app_is_admin() RETURNS boolean
    LANGUAGE sql STABLE SECURITY DEFINER SET search_path = public AS $$
        SELECT EXISTS (
            SELECT 1 FROM users
            WHERE id = app_current_user_id() AND role = 'admin' AND is_active
        )
    $$
    """,
    """
    CREATE OR REPLACE FUNCTION app_is_merchant() RETURNS boolean
    LANGUAGE sql STABLE SECURITY DEFINER SET search_path = public AS $$
        SELECT EXISTS (
            SELECT 1 FROM users
            WHERE id = app_current_user_id() AND role IN ('merchant', 'admin') AND is_active
        )
    $$
    """,
]

# Collection helpers run as the table owner so that policy lookups on
# collections and collection_access never re-enter RLS.
_COLLECTION_FUNCTIONS = [
    """
    CREATE OR REPLACE FUNCTION app_is_collection_owner(cid uuid) RETURNS boolean
    LANGUAGE sql STABLE SECURITY DEFINER SET search_path = public AS $$
        SELECT EXISTS (
            SELECT 1 FROM collections WHERE id = cid AND user_id = app_current_user_id()
        )
    $$
    """,
    """
    CREATE OR REPLACE FUNCTION app_collection_access_level(cid uuid) RETURNS text
    LANGUAGE sql STABLE SECURITY DEFINER SET search_path = public AS $$
        SELECT CASE
            WHEN app_current_user_id() IS NULL THEN NULL
            WHEN app_is_admin() THEN 'edit'
            WHEN app_is_collection_owner(cid) THEN 'edit'
            ELSE (
                SELECT access_type FROM collection_access
                WHERE collection_id = cid AND user_id = app_current_user_id()
            )
        END
    $$
    """,
    """
    CREATE OR REPLACE FUNCTION app_can_access_collection(cid uuid, required text DEFAULT 'view')
    RETURNS boolean
    LANGUAGE sql STABLE SECURITY DEFINER SET search_path = public AS $$
        SELECT CASE app_collection_access_level(cid)
            WHEN 'edit' THEN true
            WHEN 'view' THEN required = 'view'
            ELSE false
        END
    $$
    """,
    """
    CREATE OR REPLACE FUNCTION app_collection_is_public(cid uuid) RETURNS boolean
    LANGUAGE sql STABLE SECURITY DEFINER SET search_path = public AS $$
        SELECT EXISTS (SELECT 1 FROM collections WHERE id = cid AND visible)
    $$
    """,
    """
    CREATE OR REPLACE FUNCTION app_slugify(value text) RETURNS text
    LANGUAGE sql IMMUTABLE AS $$
        SELECT btrim(
            left(
                btrim(regexp_replace(lower(COALESCE(value, '')), '[^a-z0-9]+', '-', 'g'), '-'),
                63
            ),
            '-'
        )
    $$
    """,
]

_COLLECTION_SLUG_TRIGGER = """
    CREATE OR REPLACE FUNCTION collections_default_slug() RETURNS trigger
    LANGUAGE plpgsql SECURITY DEFINER SET search_path = public AS $$
    DECLARE
        base text;
        candidate text;
        n integer := 2;
    BEGIN
        IF NEW.slug IS NOT NULL AND NEW.slug <> '' THEN
            RETURN NEW;
        END IF;
        base := COALESCE(NULLIF(app_slugify(NEW.name), ''), 'collection');
        candidate := base;
        WHILE EXISTS (SELECT 1 FROM collections WHERE slug = candidate) LOOP
            candidate := rtrim(left(base, 63 - length('-' || n)), '-') || '-' || n;
            n := n + 1;
        END LOOP;
        NEW.slug := candidate;
        RETURN NEW;
    END
    $$
"""


def upgrade() -> None:
    # --- users (global, no RLS: role lookups inside policies must not recurse) ---
    op.create_table(
        "users",
        sa.Column(
            "id",
            sa.UUID(),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column("auth_sub", sa.String(255), nullable=False, unique=True),
        sa.Column("email", sa.String(320), nullable=False, unique=True),
        sa.Column("display_name", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="user"),
        sa.Column(
            "merchant_tier", sa.String(30), nullable=False, server_default="starter_merchant"
        ),
        sa.Column("successful_sales_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("role IN ('admin', 'merchant', 'user')", name="ck_users_role"),
        sa.CheckConstraint(
            "merchant_tier IN ('starter_merchant', 'verified_merchant', "
            "'trusted_merchant', 'elite_merchant')",
            name="ck_users_merchant_tier",
        ),
    )

    # --- collections ---
    op.create_table(
        "collections",
        sa.Column(
            "id",
            sa.UUID(),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column("user_id", sa.UUID(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(63), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("launch_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("visible", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("featured", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("sale_ended", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_collections_user_id", "collections", ["user_id"])

    # --- collection_access ---
    op.create_table(
        "collection_access",
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
            "user_id",
            sa.UUID(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("access_type", sa.String(10), nullable=False),
        sa.Column(
            "granted_by",
            sa.UUID(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
        ),
        sa.UniqueConstraint(
            "collection_id", "user_id", name="uq_collection_access_collection_user"
        ),
        sa.CheckConstraint("access_type IN ('view', 'edit')", name="ck_collection_access_type"),
    )
    op.create_index(
        "ix_collection_access_collection_id", "collection_access", ["collection_id"]
    )
    op.create_index("ix_collection_access_user_id", "collection_access", ["user_id"])

    for sql in _IDENTITY_FUNCTIONS + _COLLECTION_FUNCTIONS:
        op.execute(sql)

    op.execute(_COLLECTION_SLUG_TRIGGER)
    op.execute("""
        CREATE TRIGGER collections_default_slug
        BEFORE INSERT ON collections
        FOR EACH ROW EXECUTE FUNCTION collections_default_slug()
    """)

    # --- RLS on collections ---
    # Not FORCEd: the SECURITY DEFINER helpers run as the owner and must see every row
    op.execute("ALTER TABLE collections ENABLE ROW LEVEL SECURITY")
    op.execute("""
        CREATE POLICY collections_select ON collections
        FOR SELECT
        USING (
            visible
            OR user_id = app_current_user_id()
            OR app_can_access_collection(id, 'view')
            OR app_is_service()
        )
    """)
    op.execute("""
        CREATE POLICY collections_insert ON collections
        FOR INSERT
        WITH CHECK (user_id = app_current_user_id() AND app_is_merchant())
    """)
    op.execute("""
        CREATE POLICY collections_update ON collections
        FOR UPDATE
        USING (app_can_access_collection(id, 'edit'))
        WITH CHECK (app_can_access_collection(id, 'edit') OR app_is_admin())
    """)
    op.execute("""
        CREATE POLICY collections_delete ON collections
        FOR DELETE
        USING (app_can_access_collection(id, 'edit'))
    """)

    # --- RLS on collection_access ---
    op.execute("ALTER TABLE collection_access ENABLE ROW LEVEL SECURITY")
    op.execute("""
        CREATE POLICY collection_access_select ON collection_access
        FOR SELECT
        USING (
            user_id = app_current_user_id()
            OR app_is_collection_owner(collection_id)
            OR app_is_admin()
        )
    """)
    for action in ("insert", "update", "delete"):
        clause = "WITH CHECK" if action == "insert" else "USING"
        op.execute(f"""
            CREATE POLICY collection_access_{action} ON collection_access
            FOR {action.upper()}
            {clause} (app_is_collection_owner(collection_id) OR app_is_admin())
        """)

    op.execute(GRANT_APP_USER)


def downgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS collections_default_slug ON collections")
    op.execute("DROP FUNCTION IF EXISTS collections_default_slug()")

    for action in ("select", "insert", "update", "delete"):
        op.execute(f"DROP POLICY IF EXISTS collections_{action} ON collections")
        op.execute(f"DROP POLICY IF EXISTS collection_access_{action} ON collection_access")

    op.drop_table("collection_access")
    op.drop_table("collections")
    op.drop_table("users")

    for signature in (
        "app_slugify(text)",
        "app_collection_is_public(uuid)",
        "app_can_access_collection(uuid, text)",
        "app_collection_access_level(uuid)",
        "app_is_collection_owner(uuid)",
        "app_is_merchant()",
        "app_is_admin()",
        "app_is_service()",
        "app_current_wallet()",
        "app_current_user_id()",
    ):
        op.execute(f"DROP FUNCTION IF EXISTS {signature}")
