"""Add unique constraint on affiliate_sales.stripe_session_id.

Reconciliation checks for an existing sale before inserting, but two runs
over overlapping windows can both pass that check. This removes duplicate
sales (and their commissions), keeping the earliest row per checkout
session, then adds the constraint so the database rejects the second insert.

Revision ID: 001_affiliate_sales_session_unique
Revises:
Create Date: 2026-09-02
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "001_affiliate_sales_session_unique"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

CONSTRAINT_NAME = "uq_affiliate_sales_stripe_session_id"


def upgrade() -> None:
    conn = op.get_bind()

    duplicates = conn.execute(sa.text("""
        SELECT stripe_session_id, COUNT(*) AS count
        FROM affiliate_sales
        GROUP BY stripe_session_id
        HAVING COUNT(*) > 1
    """)).fetchall()

    if duplicates:
        print(f"⚠️ Found {len(duplicates)} checkout sessions with duplicate affiliate sales")

        for session_id, count in duplicates:
            sales = conn.execute(sa.text("""
                SELECT id
                FROM affiliate_sales
                WHERE stripe_session_id = :session_id
                ORDER BY created_at ASC, id ASC
            """), {"session_id": session_id}).fetchall()

            delete_ids = [row[0] for row in sales[1:]]
            for delete_id in delete_ids:
                conn.execute(
                    sa.text("DELETE FROM affiliate_commissions WHERE sale_id = :sale_id"),
                    {"sale_id": delete_id},
                )
                conn.execute(
                    sa.text("DELETE FROM affiliate_sales WHERE id = :sale_id"),
                    {"sale_id": delete_id},
                )
            print(f"✅ Removed {len(delete_ids)} duplicate sales for session {session_id}")

    existing = conn.execute(sa.text("""
        SELECT constraint_name
        FROM information_schema.table_constraints
        WHERE table_name = 'affiliate_sales'
          AND constraint_type = 'UNIQUE'
          AND constraint_name = :name
    """), {"name": CONSTRAINT_NAME}).fetchone()

    if not existing:
        op.create_unique_constraint(CONSTRAINT_NAME, "affiliate_sales", ["stripe_session_id"])
        print("✅ Added unique constraint on affiliate_sales.stripe_session_id")
    else:
        print("✅ Unique constraint already exists")


def downgrade() -> None:
    op.drop_constraint(CONSTRAINT_NAME, "affiliate_sales", type_="unique")
