"""
View invalidation signals.

Each (organization, route) pair has a version counter in the cache. Mutating
handlers bump it; list responses carry the current value so clients know
their cached rendering of that route is stale. Fire-and-forget: cache
failures are logged and never fail the mutation.
"""

import structlog

from invoicehub.services.cache import cache

logger = structlog.get_logger()

DASHBOARD_PATH = "/dashboard"
BILLING_PATH = "/billing"

# Versions outlive any reasonable client cache.
_VERSION_TTL = 60 * 60 * 24 * 7


def _view_key(org_id: str, path: str) -> str:
    return f"view:{org_id}:{path}"


async def revalidate_paths(org_id: str, *paths: str) -> None:
    for path in paths:
        key = _view_key(org_id, path)
        try:
            await cache.incr(key)
            await cache.expire(key, _VERSION_TTL)
        except Exception as e:
            logger.warning("view_revalidate_failed", org_id=org_id, path=path, error=str(e))
            continue
        logger.debug("view_revalidated", org_id=org_id, path=path)


async def get_view_version(org_id: str, path: str) -> int:
    try:
        value = await cache.get(_view_key(org_id, path))
        return int(value) if value else 0
    except Exception as e:
        logger.warning("view_version_unavailable", org_id=org_id, path=path, error=str(e))
        return 0
