"""Add cart batches to orders and the public_order_counts view

Revision ID: 008
Revises: 007
Create Date: 2026-10-18

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "008"
down_revision: Union[str, None] = "007"
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

# Orders paid (or being fulfilled) per product of visible collections. The view
# runs as its owner, so anonymous callers get counts without seeing orders.
_ORDER_COUNTS_VIEW = """
    CREATE OR REPLACE VIEW public_order_counts AS
    SELECT o.product_id, p.collection_id, COUNT(o.id) AS total_orders
    FROM orders o
    JOIN products p ON p.id = o.product_id
    JOIN collections c ON c.id = p.collection_id AND c.visible
    WHERE o.status IN ('confirmed', 'preparing', 'shipped', 'delivered')
    GROUP BY o.product_id, p.collection_id
"""


def upgrade() -> None:
    op.add_column("orders", sa.Column("batch_order_id", sa.UUID(), nullable=True))
    op.add_column("orders", sa.Column("item_index", sa.Integer(), nullable=True))
    op.add_column("orders", sa.Column("total_items_in_batch", sa.Integer(), nullable=True))
    op.create_index("ix_orders_batch_order_id", "orders", ["batch_order_id"])
    op.create_check_constraint(
        "ck_orders_batch_position",
        "orders",
        "(batch_order_id IS NULL AND item_index IS NULL AND total_items_in_batch IS NULL) "
        "OR (batch_order_id IS NOT NULL AND item_index BETWEEN 1 AND total_items_in_batch)",
    )

    # Lines of one batch share the order number and the payment transaction
    op.drop_constraint("orders_order_number_key", "orders", type_="unique")
    op.drop_constraint("orders_transaction_signature_key", "orders", type_="unique")
    op.execute(
        "CREATE UNIQUE INDEX uq_orders_order_number_item "
        "ON orders (order_number, COALESCE(item_index, 0))"
    )
    op.execute(
        "CREATE UNIQUE INDEX uq_orders_transaction_signature_item "
        "ON orders (transaction_signature, COALESCE(item_index, 0)) "
        "WHERE transaction_signature IS NOT NULL"
    )

    op.execute(_ORDER_COUNTS_VIEW)
    op.execute(GRANT_APP_USER)


def downgrade() -> None:
    op.execute("DROP VIEW IF EXISTS public_order_counts")
    op.execute("DROP INDEX IF EXISTS uq_orders_transaction_signature_item")
    op.execute("DROP INDEX IF EXISTS uq_orders_order_number_item")
    op.create_unique_constraint(
        "orders_transaction_signature_key", "orders", ["transaction_signature"]
    )
    op.create_unique_constraint("orders_order_number_key", "orders", ["order_number"])
    op.drop_constraint("ck_orders_batch_position", "orders", type_="check")
    op.drop_index("ix_orders_batch_order_id", table_name="orders")
    op.drop_column("orders", "total_items_in_batch")
    op.drop_column("orders", "item_index")
    op.drop_column("orders", "batch_order_id")
