from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from invoicehub.middleware.auth import get_current_user
from invoicehub.middleware.tenant import get_db_with_tenant
from invoicehub.schemas.billing import UsageResponse
from invoicehub.services.invoice_service import check_monthly_limit
from invoicehub.services.subscription_limits import get_current_plan

router = APIRouter()


@router.get("/usage", response_model=UsageResponse)
async def get_usage(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_with_tenant),
):
    plan = get_current_plan()
    check = await check_monthly_limit(db, current_user["org_id"])
    remaining = None if check.limit is None else max(0, check.limit - check.current_usage)
    return UsageResponse(
        plan_id=plan.id,
        plan_name=plan.name,
        current_usage=check.current_usage,
        limit=check.limit,
        remaining=remaining,
        can_create=check.allowed,
        features=list(plan.features),
    )
