"""Backfill customer links on debts and payment history

Rows recorded before sales were linked to customers carry a NULL
customer_id. Copy it from the sale (debts) and then from the debt
(payment_history). Buyers without any customer row are left to
`flask debts backfill-customers`, which can create customers.

Revision ID: 20261019_backfill_customers
Revises: 20261019_initial
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_backfill_customers"
down_revision = "20261019_initial"
branch_labels = None
depends_on = None


def upgrade():
    conn = op.get_bind()

    conn.execute(sa.text(
        """
        UPDATE debts
        SET customer_id = (SELECT s.customer_id FROM sales s WHERE s.id = debts.sale_id)
        WHERE customer_id IS NULL
          AND EXISTS (
              SELECT 1 FROM sales s
              WHERE s.id = debts.sale_id AND s.customer_id IS NOT NULL
          )
        """
    ))

    conn.execute(sa.text(
        """
        UPDATE payment_history
        SET customer_id = (SELECT d.customer_id FROM debts d WHERE d.sale_id = payment_history.sale_id)
        WHERE customer_id IS NULL
          AND EXISTS (
              SELECT 1 FROM debts d
              WHERE d.sale_id = payment_history.sale_id AND d.customer_id IS NOT NULL
          )
        """
    ))


def downgrade():
    # Data-only migration; links are left in place
    pass
