import re

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    AsyncEngine,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy import text
from invoicehub.config import settings
import structlog

logger = structlog.get_logger()

# Identity-provider organization ids, e.g. "org_2abcXYZ" or a UUID.
_ORG_ID_RE = re.compile(r"^[A-Za-z0-9_\-]{1,64}$")


class Base(DeclarativeBase):
    pass


def _get_db_url() -> str:
    """Strip sslmode from URL since asyncpg uses connect_args for SSL."""
    url = settings.DATABASE_URL
    url = url.replace("?sslmode=require", "").replace("&sslmode=require", "")
    return url


engine: AsyncEngine = create_async_engine(
    _get_db_url(),
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_timeout=30,
    pool_recycle=settings.DB_POOL_RECYCLE,
    pool_pre_ping=True,
    echo=settings.DEBUG,
    connect_args={"ssl": "require"} if settings.DB_SSL else {},
)

AsyncSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


async def get_db():
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def is_valid_org_id(org_id: str) -> bool:
    return bool(org_id) and bool(_ORG_ID_RE.match(str(org_id)))


async def set_tenant_context(session: AsyncSession, org_id: str):
    # set_config(..., true) is transaction-local (SET LOCAL); the RLS policy
    # on invoices reads app.current_org_id.
    if not is_valid_org_id(org_id):
        raise ValueError(f"Invalid organization id: {org_id!r}")
    await session.execute(
        text("SELECT set_config('app.current_org_id', :oid, true)"),
        {"oid": str(org_id)},
    )


async def init_db():
    async with engine.begin() as conn:
        await conn.execute(text("SELECT 1"))
        logger.info("db_connected")


async def close_db():
    await engine.dispose()
    logger.info("db_disconnected")
