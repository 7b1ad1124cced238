"""create_invoices

Revision ID: 3f9a1c7e2b40
Revises:
Create Date: 2025-10-20 09:12:44.118206+00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '3f9a1c7e2b40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table('invoices',
    sa.Column('id', sa.UUID(), server_default=sa.text('gen_random_uuid()'), nullable=False),
    sa.Column('invoice_number', sa.String(length=32), nullable=False),
    sa.Column('organization_id', sa.String(length=64), nullable=False),
    sa.Column('user_id', sa.String(length=64), nullable=False),
    sa.Column('customer_name', sa.String(length=255), nullable=False),
    sa.Column('customer_email', sa.String(length=255), nullable=True),
    sa.Column('amount', sa.Numeric(precision=10, scale=2), nullable=False),
    sa.Column('status', sa.String(length=20), server_default='pending', nullable=False),
    sa.Column('issue_date', sa.Date(), nullable=False),
    sa.Column('due_date', sa.Date(), nullable=False),
    sa.Column('items', postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'[]'::jsonb"), nullable=False),
    sa.Column('payment_method', sa.String(length=20), nullable=True),
    sa.Column('notes', sa.Text(), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.CheckConstraint("status IN ('paid', 'pending', 'overdue', 'cancelled')", name='chk_invoice_status'),
    sa.CheckConstraint(
        "payment_method IS NULL OR payment_method IN "
        "('credit_card', 'bank_transfer', 'paypal', 'cash', 'other')",
        name='chk_invoice_payment_method',
    ),
    sa.CheckConstraint('amount > 0', name='chk_invoice_amount'),
    sa.CheckConstraint('due_date >= issue_date', name='chk_invoice_dates'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('organization_id', 'invoice_number', name='uq_invoice_org_number')
    )
    op.create_index('idx_invoices_org', 'invoices', ['organization_id'], unique=False)
    op.create_index('idx_invoices_user', 'invoices', ['user_id'], unique=False)
    op.create_index('idx_invoices_status', 'invoices', ['status'], unique=False)
    op.execute(
        "CREATE INDEX idx_invoices_org_created "
        "ON invoices(organization_id, created_at DESC)"
    )


def downgrade() -> None:
    op.drop_index('idx_invoices_org_created', table_name='invoices')
    op.drop_index('idx_invoices_status', table_name='invoices')
    op.drop_index('idx_invoices_user', table_name='invoices')
    op.drop_index('idx_invoices_org', table_name='invoices')
    op.drop_table('invoices')
