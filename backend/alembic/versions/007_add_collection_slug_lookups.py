"""Add owner-level collection slug lookups

Revision ID: 007
Revises: 006
Create Date: 2026-10-18

"""

from typing import Sequence, Union

from alembic import op

revision: str = "007"
down_revision: Union[str, None] = "006"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

GRANT_APP_USER = """
    DO $$
    BEGIN
        IF EXISTS (SELECT 1 FROM pg_roles WHERE rolname = 'app_user') THEN
            GRANT EXECUTE ON ALL FUNCTIONS IN SCHEMA public TO app_user;
        END IF;
    END
    $$
"""

# Slugs are unique across every collection, hidden ones included, so the
# lookups run as the owner. They expose slugs only, never rows.
_SLUG_FUNCTIONS = [
    """
    CREATE OR REPLACE FUNCTION app_collection_slug_taken(candidate text, exclude uuid DEFAULT NULL)
    RETURNS boolean
    LANGUAGE sql STABLE SECURITY DEFINER SET search_path = public AS $$
        SELECT EXISTS (
            SELECT 1 FROM collections
            WHERE slug = candidate AND (exclude IS NULL OR id <> exclude)
        )
    $$
    """,
    """
    CREATE OR REPLACE FUNCTION app_collection_slugs_like(prefix text) RETURNS SETOF text
    LANGUAGE sql STABLE SECURITY DEFINER SET search_path = public AS $$
        SELECT slug FROM collections WHERE slug LIKE prefix || '%'
    $$
    """,
]


def upgrade() -> None:
    for sql in _SLUG_FUNCTIONS:
        op.execute(sql)
    op.execute(GRANT_APP_USER)


def downgrade() -> None:
    op.execute("DROP FUNCTION IF EXISTS app_collection_slugs_like(text)")
    op.execute("DROP FUNCTION IF EXISTS app_collection_slug_taken(text, uuid)")
