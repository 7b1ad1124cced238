from typing import List, Optional
from pydantic import BaseModel


class UsageResponse(BaseModel):
    plan_id: str
    plan_name: str
    current_usage: int
    limit: Optional[int] = None  # null on unbounded plans
    remaining: Optional[int] = None
    can_create: bool
    features: List[str] = []
