from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from invoicehub.database import get_db, set_tenant_context
from invoicehub.middleware.auth import get_current_user


async def get_db_with_tenant(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> AsyncSession:
    """FastAPI dependency: get DB session with the RLS organization context set."""
    await set_tenant_context(db, current_user["org_id"])
    return db
