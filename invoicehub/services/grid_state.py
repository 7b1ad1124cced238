"""
Per-user grid presentation state.

State is keyed by (organization, user, grid id) and tagged with a version.
Bumping the version when a grid's columns change makes older saved layouts
unusable: a load with a different version deletes the stored copy and
returns None. Storage problems degrade to "no saved state" and never fail
the request.
"""

import re
from datetime import datetime, timezone
from typing import Optional

from pydantic import ValidationError
import structlog

from invoicehub.config import settings
from invoicehub.schemas.grid_state import GridState
from invoicehub.services.cache import cache

logger = structlog.get_logger()

GRID_STATE_VERSION = 1
_GRID_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_\-]{0,63}$")


def is_valid_grid_id(grid_id: str) -> bool:
    return bool(_GRID_ID_RE.match(grid_id or ""))


def grid_state_key(org_id: str, user_id: str, grid_id: str) -> str:
    if not is_valid_grid_id(grid_id):
        raise ValueError(f"Invalid grid id: {grid_id!r}")
    return f"grid_state:{org_id}:{user_id}:{grid_id}"


async def load_grid_state(
    org_id: str,
    user_id: str,
    grid_id: str,
    version: int = GRID_STATE_VERSION,
) -> Optional[GridState]:
    key = grid_state_key(org_id, user_id, grid_id)
    try:
        raw = await cache.get(key)
    except Exception as e:
        logger.warning("grid_state_load_failed", grid_id=grid_id, error=str(e))
        return None
    if not raw:
        return None

    try:
        state = GridState.model_validate_json(raw)
    except ValidationError:
        logger.warning("grid_state_corrupt", grid_id=grid_id)
        await clear_grid_state(org_id, user_id, grid_id)
        return None

    if state.version != version:
        logger.info(
            "grid_state_version_mismatch",
            grid_id=grid_id,
            stored=state.version,
            expected=version,
        )
        await clear_grid_state(org_id, user_id, grid_id)
        return None
    return state


async def save_grid_state(
    org_id: str, user_id: str, grid_id: str, state: GridState
) -> bool:
    key = grid_state_key(org_id, user_id, grid_id)
    stamped = state.model_copy(update={"saved_at": datetime.now(timezone.utc).isoformat()})
    try:
        await cache.set(key, stamped.model_dump_json(), ex=settings.GRID_STATE_TTL_SECONDS)
    except Exception as e:
        logger.warning("grid_state_save_failed", grid_id=grid_id, error=str(e))
        return False
    return True


async def clear_grid_state(org_id: str, user_id: str, grid_id: str) -> bool:
    key = grid_state_key(org_id, user_id, grid_id)
    try:
        await cache.delete(key)
    except Exception as e:
        logger.warning("grid_state_clear_failed", grid_id=grid_id, error=str(e))
        return False
    return True
