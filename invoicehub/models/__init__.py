"""Model registry imported by Alembic autogenerate."""

from invoicehub.database import Base  # noqa: F401

from invoicehub.models.invoice import Invoice  # noqa: F401
