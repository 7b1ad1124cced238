"""enable_invoice_rls

Revision ID: 8d41e6b0a3c2
Revises: 3f9a1c7e2b40
Create Date: 2025-10-20 09:31:02.547113+00:00

"""
from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = '8d41e6b0a3c2'
down_revision: Union[str, None] = '3f9a1c7e2b40'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("ALTER TABLE invoices ENABLE ROW LEVEL SECURITY")
    # FORCE so the table owner (the app role) is also subject to the policy.
    op.execute("ALTER TABLE invoices FORCE ROW LEVEL SECURITY")
    # missing_ok=true: an unset setting yields NULL, which matches no rows.
    op.execute(
        "CREATE POLICY org_isolation ON invoices "
        "USING (organization_id = current_setting('app.current_org_id', true)) "
        "WITH CHECK (organization_id = current_setting('app.current_org_id', true))"
    )


def downgrade() -> None:
    op.execute("DROP POLICY IF EXISTS org_isolation ON invoices")
    op.execute("ALTER TABLE invoices NO FORCE ROW LEVEL SECURITY")
    op.execute("ALTER TABLE invoices DISABLE ROW LEVEL SECURITY")
