import uuid
from datetime import datetime, date, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    String,
    Numeric,
    DateTime,
    Date,
    Text,
    UniqueConstraint,
    CheckConstraint,
    Index,
)
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column

from invoicehub.database import Base

INVOICE_STATUSES = ("paid", "pending", "overdue", "cancelled")
PAYMENT_METHODS = ("credit_card", "bank_transfer", "paypal", "cash", "other")

INVOICE_NUMBER_CONSTRAINT = "uq_invoice_org_number"

# Columns copied verbatim when an invoice is duplicated.
CONTENT_FIELDS = (
    "customer_name",
    "customer_email",
    "amount",
    "issue_date",
    "due_date",
    "items",
    "payment_method",
    "notes",
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Invoice(Base):
    __tablename__ = "invoices"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    invoice_number: Mapped[str] = mapped_column(String(32), nullable=False)
    organization_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_email: Mapped[Optional[str]] = mapped_column(String(255))
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    items: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    payment_method: Mapped[Optional[str]] = mapped_column(String(20))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        UniqueConstraint(
            "organization_id",
            "invoice_number",
            name=INVOICE_NUMBER_CONSTRAINT,
        ),
        CheckConstraint(
            "status IN ('paid', 'pending', 'overdue', 'cancelled')",
            name="chk_invoice_status",
        ),
        CheckConstraint(
            "payment_method IS NULL OR payment_method IN "
            "('credit_card', 'bank_transfer', 'paypal', 'cash', 'other')",
            name="chk_invoice_payment_method",
        ),
        CheckConstraint("amount > 0", name="chk_invoice_amount"),
        CheckConstraint("due_date >= issue_date", name="chk_invoice_dates"),
        Index("idx_invoices_org", "organization_id"),
        Index("idx_invoices_user", "user_id"),
        Index("idx_invoices_status", "status"),
        Index("idx_invoices_org_created", "organization_id", "created_at"),
    )

    def content(self) -> dict:
        return {field: getattr(self, field) for field in CONTENT_FIELDS}
