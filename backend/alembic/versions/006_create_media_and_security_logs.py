"""Create media_assets (with filename sanitizing trigger) and security_logs

Revision ID: 006
Revises: 005
Create Date: 2026-09-17

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "006"
down_revision: Union[str, None] = "005"
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

# Same rule as app.services.storage.sanitize_filename
_SANITIZE_FUNCTION = """
    CREATE OR REPLACE FUNCTION app_sanitize_filename(file_name text) RETURNS text
    LANGUAGE plpgsql IMMUTABLE AS $$
    DECLARE
        cleaned text := btrim(COALESCE(file_name, ''));
        stem text := cleaned;
        ext text := '';
        dot integer;
    BEGIN
        IF position('.' IN cleaned) > 0 THEN
            dot := length(cleaned) - position('.' IN reverse(cleaned)) + 1;
            stem := left(cleaned, dot - 1);
            ext := lower(substr(cleaned, dot + 1));
        END IF;
        stem := left(regexp_replace(stem, '[^A-Za-z0-9_-]', '', 'g'), 50);
        IF stem = '' THEN
            stem := 'image';
        END IF;
        IF ext NOT IN ('jpg', 'jpeg', 'png', 'gif', 'webp', 'svg', 'avif') THEN
            ext := 'jpg';
        END IF;
        RETURN stem || '.' || ext;
    END
    $$
"""

_CLEAN_FILENAME_TRIGGER = """
    CREATE OR REPLACE FUNCTION media_assets_clean_filename() RETURNS trigger
    LANGUAGE plpgsql AS $$
    BEGIN
        IF NEW.file_name IS NOT NULL THEN
            NEW.file_name := app_sanitize_filename(NEW.file_name);
        END IF;
        RETURN NEW;
    END
    $$
"""


def upgrade() -> None:
    # --- media_assets ---
    op.create_table(
        "media_assets",
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
            "product_id",
            sa.UUID(),
            sa.ForeignKey("products.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("kind", sa.Text(), nullable=False),
        sa.Column("s3_key", sa.Text(), nullable=False),
        sa.Column("file_name", sa.Text(), nullable=True),
        sa.Column("content_type", sa.Text(), nullable=True),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "uploaded_by",
            sa.UUID(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
        ),
        sa.CheckConstraint("kind IN ('collection', 'product')", name="ck_media_assets_kind"),
    )
    op.create_index("ix_media_assets_collection_id", "media_assets", ["collection_id"])
    op.create_index("ix_media_assets_product_id", "media_assets", ["product_id"])

    op.execute(_SANITIZE_FUNCTION)
    op.execute(_CLEAN_FILENAME_TRIGGER)
    op.execute("""
        CREATE TRIGGER media_assets_clean_filename
        BEFORE INSERT OR UPDATE OF file_name ON media_assets
        FOR EACH ROW EXECUTE FUNCTION media_assets_clean_filename()
    """)

    # --- RLS on media_assets ---
    op.execute("ALTER TABLE media_assets ENABLE ROW LEVEL SECURITY")
    op.execute("""
        CREATE POLICY media_assets_select ON media_assets
        FOR SELECT
        USING (
            app_collection_is_public(collection_id)
            OR app_can_access_collection(collection_id, 'view')
            OR app_is_service()
        )
    """)
    op.execute("""
        CREATE POLICY media_assets_insert ON media_assets
        FOR INSERT
        WITH CHECK (app_can_access_collection(collection_id, 'edit'))
    """)
    op.execute("""
        CREATE POLICY media_assets_update ON media_assets
        FOR UPDATE
        USING (app_can_access_collection(collection_id, 'edit'))
        WITH CHECK (app_can_access_collection(collection_id, 'edit'))
    """)
    op.execute("""
        CREATE POLICY media_assets_delete ON media_assets
        FOR DELETE
        USING (app_can_access_collection(collection_id, 'edit'))
    """)

    # --- security_logs (append-only; admins read) ---
    op.create_table(
        "security_logs",
        sa.Column(
            "id",
            sa.UUID(),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column(
            "user_id",
            sa.UUID(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("details", postgresql.JSONB(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
        ),
    )
    op.create_index("ix_security_logs_event_type", "security_logs", ["event_type"])

    op.execute("ALTER TABLE security_logs ENABLE ROW LEVEL SECURITY")
    op.execute("""
        CREATE POLICY security_logs_select ON security_logs
        FOR SELECT
        USING (app_is_admin())
    """)
    op.execute("""
        CREATE POLICY security_logs_insert ON security_logs
        FOR INSERT
        WITH CHECK (true)
    """)

    op.execute(GRANT_APP_USER)


def downgrade() -> None:
    op.execute("DROP POLICY IF EXISTS security_logs_select ON security_logs")
    op.execute("DROP POLICY IF EXISTS security_logs_insert ON security_logs")
    op.drop_table("security_logs")

    for action in ("select", "insert", "update", "delete"):
        op.execute(f"DROP POLICY IF EXISTS media_assets_{action} ON media_assets")
    op.execute("DROP TRIGGER IF EXISTS media_assets_clean_filename ON media_assets")
    op.execute("DROP FUNCTION IF EXISTS media_assets_clean_filename()")
    op.execute("DROP FUNCTION IF EXISTS app_sanitize_filename(text)")
    op.drop_table("media_assets")
