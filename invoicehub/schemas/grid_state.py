from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class GridState(BaseModel):
    """Persisted presentation state of one data grid (columns, filters, sort, paging)."""

    column_state: List[Dict[str, Any]] = Field(default_factory=list)
    filter_model: Dict[str, Any] = Field(default_factory=dict)
    sort_model: List[Dict[str, Any]] = Field(default_factory=list)
    search: Optional[str] = Field(None, max_length=255)
    page: int = Field(1, ge=1)
    page_size: int = Field(20, ge=1, le=100)
    saved_at: Optional[str] = None
    version: int = Field(1, ge=1)


class GridStateSaved(BaseModel):
    saved: bool
    state: GridState
