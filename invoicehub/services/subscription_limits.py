"""
Subscription plans and monthly invoice limits.

The plan is a single configured identifier (DEFAULT_PLAN) until per-org
billing exists. Limit checks are a hard precondition of invoice creation:
the create and duplicate handlers short-circuit on a denied result.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional

from invoicehub.config import settings


@dataclass(frozen=True)
class SubscriptionPlan:
    id: str
    name: str
    invoice_limit: float  # per calendar month; math.inf for unbounded
    features: tuple = field(default_factory=tuple)

    @property
    def is_unlimited(self) -> bool:
        return math.isinf(self.invoice_limit)


_BASE_FEATURES = ("basic_templates",)
_PRO_FEATURES = _BASE_FEATURES + (
    "advanced_templates",
    "priority_support",
    "export_csv",
    "export_pdf",
    "custom_branding",
    "api_access",
)

PLANS = {
    "free": SubscriptionPlan(
        id="free",
        name="Free",
        invoice_limit=10,
        features=_BASE_FEATURES + ("email_support",),
    ),
    "pro": SubscriptionPlan(
        id="pro",
        name="Pro",
        invoice_limit=100,
        features=_PRO_FEATURES,
    ),
    "enterprise": SubscriptionPlan(
        id="enterprise",
        name="Enterprise",
        invoice_limit=math.inf,
        features=_PRO_FEATURES + ("dedicated_support", "custom_integrations", "sla"),
    ),
}


@dataclass
class LimitCheckResult:
    allowed: bool
    current_usage: int
    limit: Optional[int]  # None when the plan is unbounded
    plan_name: str
    reason: Optional[str] = None


def get_current_plan(plan_id: Optional[str] = None) -> SubscriptionPlan:
    return PLANS[plan_id or settings.DEFAULT_PLAN]


def start_of_month(now: datetime) -> datetime:
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def _as_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def get_monthly_invoice_count(
    created_ats: Iterable[datetime], now: Optional[datetime] = None
) -> int:
    """Count creation timestamps between day 1 00:00 UTC of this month and now."""
    now = _as_utc(now or datetime.now(timezone.utc))
    month_start = start_of_month(now)
    return sum(1 for ts in created_ats if month_start <= _as_utc(ts) <= now)


def can_create_invoice(
    created_ats: Iterable[datetime],
    plan: Optional[SubscriptionPlan] = None,
    now: Optional[datetime] = None,
) -> LimitCheckResult:
    plan = plan or get_current_plan()
    usage = get_monthly_invoice_count(created_ats, now)
    allowed = usage < plan.invoice_limit
    return LimitCheckResult(
        allowed=allowed,
        current_usage=usage,
        limit=None if plan.is_unlimited else int(plan.invoice_limit),
        plan_name=plan.name,
        reason=None
        if allowed
        else (
            f"You've reached your {plan.name} plan limit of {int(plan.invoice_limit)} "
            "invoices per month. Upgrade to Pro for more invoices."
        ),
    )


def has_feature(feature: str, plan: Optional[SubscriptionPlan] = None) -> bool:
    plan = plan or get_current_plan()
    return feature in plan.features
