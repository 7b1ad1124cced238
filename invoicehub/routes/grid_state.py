from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from invoicehub.middleware.auth import get_current_user
from invoicehub.schemas.common import error_detail
from invoicehub.schemas.grid_state import GridState, GridStateSaved
from invoicehub.services.grid_state import (
    GRID_STATE_VERSION,
    clear_grid_state,
    is_valid_grid_id,
    load_grid_state,
    save_grid_state,
)

router = APIRouter()


def _check_grid_id(grid_id: str):
    if not is_valid_grid_id(grid_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_detail("INVALID_GRID_ID", "Grid id must be 1-64 letters, digits, '-' or '_'"),
        )


@router.get("/{grid_id}", response_model=Optional[GridState])
async def get_grid_state(
    grid_id: str,
    version: int = Query(GRID_STATE_VERSION, ge=1),
    current_user: dict = Depends(get_current_user),
):
    """Saved state for this grid, or null when nothing (current) is stored."""
    _check_grid_id(grid_id)
    return await load_grid_state(current_user["org_id"], current_user["user_id"], grid_id, version)


@router.put("/{grid_id}", response_model=GridStateSaved)
async def put_grid_state(
    grid_id: str,
    body: GridState,
    current_user: dict = Depends(get_current_user),
):
    _check_grid_id(grid_id)
    saved = await save_grid_state(current_user["org_id"], current_user["user_id"], grid_id, body)
    return GridStateSaved(saved=saved, state=body)


@router.delete("/{grid_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_grid_state(
    grid_id: str,
    current_user: dict = Depends(get_current_user),
):
    _check_grid_id(grid_id)
    await clear_grid_state(current_user["org_id"], current_user["user_id"], grid_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
