"""
Invoice handlers: list, get, create, update, delete, duplicate.

Every handler is scoped by the caller's organization id and returns a
ServiceResult; none of them raise across their boundary. Raw database errors
are logged here and replaced by a fixed user-facing message.

Mutating handlers commit their own change before signalling view
invalidation, so a client that sees the bumped version reads the new rows.
get_db() still closes the request transaction.
"""

import copy
import functools
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from invoicehub.config import settings
from invoicehub.exceptions import InvoiceHubError
from invoicehub.models.invoice import INVOICE_NUMBER_CONSTRAINT, Invoice
from invoicehub.schemas.invoice import (
    InvoiceListQuery,
    check_date_order,
    validate_create_invoice,
    validate_update_invoice,
)
from invoicehub.services.invoice_numbering import generate_invoice_number
from invoicehub.services.subscription_limits import (
    LimitCheckResult,
    can_create_invoice,
    start_of_month,
)
from invoicehub.services.view_cache import BILLING_PATH, DASHBOARD_PATH, revalidate_paths

logger = structlog.get_logger()

VALIDATION_FAILED = "VALIDATION_FAILED"
NOT_FOUND = "NOT_FOUND"
PLAN_LIMIT_REACHED = "PLAN_LIMIT_REACHED"
NUMBER_CONFLICT = "NUMBER_CONFLICT"
PERSISTENCE_ERROR = "PERSISTENCE_ERROR"
UNEXPECTED_ERROR = "UNEXPECTED_ERROR"

ERROR_MESSAGES = {
    VALIDATION_FAILED: "Invalid invoice data. Please check your inputs.",
    NOT_FOUND: "Invoice not found",
    PLAN_LIMIT_REACHED: "Subscription limit reached",
    NUMBER_CONFLICT: "Could not allocate a unique invoice number. Please retry.",
    PERSISTENCE_ERROR: "The invoice store is unavailable. Please try again.",
    UNEXPECTED_ERROR: "Something went wrong. Please try again.",
}


@dataclass
class ServiceResult:
    success: bool
    data: Any = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    validation_errors: Optional[Dict[str, str]] = None
    details: Optional[Dict[str, Any]] = None

    @classmethod
    def ok(cls, data: Any = None) -> "ServiceResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(
        cls,
        error_code: str,
        message: Optional[str] = None,
        validation_errors: Optional[Dict[str, str]] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> "ServiceResult":
        return cls(
            success=False,
            error=message or ERROR_MESSAGES[error_code],
            error_code=error_code,
            validation_errors=validation_errors,
            details=details,
        )


@dataclass
class InvoicePage:
    items: List[Invoice] = field(default_factory=list)
    total: int = 0


class InvoiceNumberExhausted(InvoiceHubError):
    """Every generated invoice number collided with an existing one."""


async def _rollback_quietly(session: AsyncSession, operation: str) -> None:
    try:
        await session.rollback()
    except Exception as e:
        logger.error("invoice_rollback_failed", operation=operation, error=str(e))


def invoice_handler(operation: str):
    """Outer boundary: convert any escaping exception into a failure result."""

    def decorator(fn: Callable):
        @functools.wraps(fn)
        async def wrapper(session: AsyncSession, *args, **kwargs) -> ServiceResult:
            try:
                return await fn(session, *args, **kwargs)
            except SQLAlchemyError as e:
                logger.error(
                    "invoice_persistence_failed",
                    operation=operation,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                await _rollback_quietly(session, operation)
                return ServiceResult.fail(PERSISTENCE_ERROR)
            except Exception:
                logger.exception("invoice_handler_failed", operation=operation)
                await _rollback_quietly(session, operation)
                return ServiceResult.fail(UNEXPECTED_ERROR)

        return wrapper

    return decorator


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _parse_id(invoice_id: Any) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(invoice_id))
    except (ValueError, TypeError):
        return None


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


async def _get_scoped(session: AsyncSession, org_id: str, invoice_id: Any, for_update: bool = False) -> Optional[Invoice]:
    inv_id = _parse_id(invoice_id)
    if inv_id is None:
        return None
    q = select(Invoice).where(Invoice.id == inv_id, Invoice.organization_id == org_id)
    if for_update:
        q = q.with_for_update()
    result = await session.execute(q)
    return result.scalar_one_or_none()


async def check_monthly_limit(session: AsyncSession, org_id: str) -> LimitCheckResult:
    now = datetime.now(timezone.utc)
    result = await session.execute(
        select(Invoice.created_at).where(
            Invoice.organization_id == org_id,
            Invoice.created_at >= start_of_month(now),
        )
    )
    return can_create_invoice(result.scalars().all(), now=now)


def _limit_failure(org_id: str, check: LimitCheckResult) -> ServiceResult:
    logger.warning(
        "invoice_limit_reached",
        org_id=org_id,
        usage=check.current_usage,
        limit=check.limit,
        plan=check.plan_name,
    )
    return ServiceResult.fail(
        PLAN_LIMIT_REACHED,
        message=check.reason,
        details={
            "current_usage": check.current_usage,
            "limit": check.limit,
            "plan": check.plan_name,
        },
    )


async def _commit_and_revalidate(session: AsyncSession, org_id: str, *paths: str) -> None:
    await session.commit()
    await revalidate_paths(org_id, *paths)


def _is_number_collision(exc: IntegrityError) -> bool:
    return INVOICE_NUMBER_CONSTRAINT in str(exc.orig)


async def _insert_with_fresh_number(
    session: AsyncSession, build: Callable[[str], Invoice]
) -> Invoice:
    """
    Insert inside a savepoint, regenerating the number on a unique-constraint
    collision. Other integrity errors propagate.
    """
    attempts = settings.INVOICE_NUMBER_MAX_ATTEMPTS
    for attempt in range(1, attempts + 1):
        inv = build(generate_invoice_number())
        try:
            async with session.begin_nested():
                session.add(inv)
                await session.flush()
        except IntegrityError as e:
            if not _is_number_collision(e):
                raise
            logger.warning(
                "invoice_number_collision",
                invoice_number=inv.invoice_number,
                attempt=attempt,
            )
            continue
        return inv
    raise InvoiceNumberExhausted()


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


@invoice_handler("list")
async def list_invoices(
    session: AsyncSession,
    org_id: str,
    query: Optional[InvoiceListQuery] = None,
) -> ServiceResult:
    """All invoices of the organization, newest first unless the query sorts otherwise."""
    query = query or InvoiceListQuery()

    q = select(Invoice).where(Invoice.organization_id == org_id)
    count_q = select(func.count(Invoice.id)).where(Invoice.organization_id == org_id)

    if query.search:
        pattern = f"%{_escape_like(query.search)}%"
        match = or_(
            Invoice.customer_name.ilike(pattern, escape="\\"),
            Invoice.customer_email.ilike(pattern, escape="\\"),
            Invoice.invoice_number.ilike(pattern, escape="\\"),
        )
        q = q.where(match)
        count_q = count_q.where(match)
    if query.status:
        q = q.where(Invoice.status == query.status)
        count_q = count_q.where(Invoice.status == query.status)

    sort_col = getattr(Invoice, query.sort)
    ordering = sort_col.desc() if query.order == "desc" else sort_col.asc()
    q = q.order_by(ordering, Invoice.id)

    if query.limit:
        total = (await session.execute(count_q)).scalar() or 0
        q = q.offset((query.page - 1) * query.limit).limit(query.limit)
        rows = list((await session.execute(q)).scalars().all())
    else:
        rows = list((await session.execute(q)).scalars().all())
        total = len(rows)

    return ServiceResult.ok(InvoicePage(items=rows, total=total))


@invoice_handler("get")
async def get_invoice(session: AsyncSession, org_id: str, invoice_id: Any) -> ServiceResult:
    """
    Success with data=None when the invoice does not exist in this
    organization, whether or not it exists elsewhere.
    """
    return ServiceResult.ok(await _get_scoped(session, org_id, invoice_id))


@invoice_handler("create")
async def create_invoice(
    session: AsyncSession, org_id: str, user_id: str, payload: Any
) -> ServiceResult:
    validation = validate_create_invoice(payload)
    if not validation.success:
        logger.info("invoice_validation_failed", operation="create", fields=sorted(validation.errors))
        return ServiceResult.fail(VALIDATION_FAILED, validation_errors=validation.errors)

    check = await check_monthly_limit(session, org_id)
    if not check.allowed:
        return _limit_failure(org_id, check)

    record = validation.data.model_dump()

    def build(number: str) -> Invoice:
        return Invoice(
            id=uuid.uuid4(),
            invoice_number=number,
            organization_id=org_id,
            user_id=user_id,
            **copy.deepcopy(record),
        )

    try:
        inv = await _insert_with_fresh_number(session, build)
    except InvoiceNumberExhausted:
        logger.error("invoice_number_exhausted", operation="create", org_id=org_id)
        return ServiceResult.fail(NUMBER_CONFLICT)

    logger.info("invoice_created", invoice_id=str(inv.id), invoice_number=inv.invoice_number)
    await _commit_and_revalidate(session, org_id, DASHBOARD_PATH, BILLING_PATH)
    return ServiceResult.ok(inv)


@invoice_handler("update")
async def update_invoice(session: AsyncSession, org_id: str, payload: Any) -> ServiceResult:
    validation = validate_update_invoice(payload)
    if not validation.success:
        logger.info("invoice_validation_failed", operation="update", fields=sorted(validation.errors))
        return ServiceResult.fail(VALIDATION_FAILED, validation_errors=validation.errors)

    data = validation.data
    inv = await _get_scoped(session, org_id, data.id, for_update=True)
    if inv is None:
        logger.info("invoice_not_found", operation="update", invoice_id=str(data.id))
        return ServiceResult.fail(NOT_FOUND)

    changes = data.changes()
    date_errors = check_date_order(
        changes.get("issue_date", inv.issue_date),
        changes.get("due_date", inv.due_date),
    )
    if date_errors:
        return ServiceResult.fail(VALIDATION_FAILED, validation_errors=date_errors)

    for key, value in changes.items():
        setattr(inv, key, value)
    inv.updated_at = datetime.now(timezone.utc)
    await session.flush()

    logger.info("invoice_updated", invoice_id=str(inv.id), fields=sorted(changes))
    await _commit_and_revalidate(session, org_id, DASHBOARD_PATH)
    return ServiceResult.ok(inv)


@invoice_handler("delete")
async def delete_invoice(session: AsyncSession, org_id: str, invoice_id: Any) -> ServiceResult:
    inv_id = _parse_id(invoice_id)
    if inv_id is None:
        return ServiceResult.fail(NOT_FOUND)

    result = await session.execute(
        delete(Invoice).where(Invoice.id == inv_id, Invoice.organization_id == org_id)
    )
    if not result.rowcount:
        logger.info("invoice_not_found", operation="delete", invoice_id=str(inv_id))
        return ServiceResult.fail(NOT_FOUND)

    logger.info("invoice_deleted", invoice_id=str(inv_id))
    await _commit_and_revalidate(session, org_id, DASHBOARD_PATH, BILLING_PATH)
    return ServiceResult.ok()


@invoice_handler("duplicate")
async def duplicate_invoice(
    session: AsyncSession, org_id: str, user_id: str, invoice_id: Any
) -> ServiceResult:
    source = await _get_scoped(session, org_id, invoice_id)
    if source is None:
        logger.info("invoice_not_found", operation="duplicate", invoice_id=str(invoice_id))
        return ServiceResult.fail(NOT_FOUND)

    check = await check_monthly_limit(session, org_id)
    if not check.allowed:
        return _limit_failure(org_id, check)

    content = source.content()

    def build(number: str) -> Invoice:
        return Invoice(
            id=uuid.uuid4(),
            invoice_number=number,
            status="pending",
            organization_id=org_id,
            user_id=user_id,
            **copy.deepcopy(content),
        )

    try:
        inv = await _insert_with_fresh_number(session, build)
    except InvoiceNumberExhausted:
        logger.error("invoice_number_exhausted", operation="duplicate", org_id=org_id)
        return ServiceResult.fail(NUMBER_CONFLICT)

    logger.info(
        "invoice_duplicated",
        source_id=str(source.id),
        invoice_id=str(inv.id),
        invoice_number=inv.invoice_number,
    )
    await _commit_and_revalidate(session, org_id, DASHBOARD_PATH, BILLING_PATH)
    return ServiceResult.ok(inv)
