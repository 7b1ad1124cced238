import csv
import io
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from invoicehub.middleware.auth import get_current_user
from invoicehub.middleware.tenant import get_db_with_tenant
from invoicehub.models.invoice import Invoice
from invoicehub.schemas.common import PaginatedResponse, build_pagination, error_detail
from invoicehub.schemas.invoice import (
    InvoiceListQuery,
    InvoiceResponse,
    InvoiceStatus,
    SortField,
)
from invoicehub.services import invoice_service
from invoicehub.services.formatting import csv_cell, format_currency, format_date
from invoicehub.services.subscription_limits import has_feature
from invoicehub.services.view_cache import DASHBOARD_PATH, get_view_version

logger = structlog.get_logger()
router = APIRouter()

_STATUS_BY_CODE = {
    invoice_service.VALIDATION_FAILED: 422,
    invoice_service.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    invoice_service.PLAN_LIMIT_REACHED: status.HTTP_403_FORBIDDEN,
    invoice_service.NUMBER_CONFLICT: status.HTTP_409_CONFLICT,
    invoice_service.PERSISTENCE_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    invoice_service.UNEXPECTED_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def _to_response(inv: Invoice) -> InvoiceResponse:
    return InvoiceResponse(
        id=str(inv.id),
        invoice_number=inv.invoice_number,
        organization_id=inv.organization_id,
        user_id=inv.user_id,
        customer_name=inv.customer_name,
        customer_email=inv.customer_email,
        amount=float(inv.amount),
        status=inv.status,
        issue_date=inv.issue_date.isoformat() if inv.issue_date else "",
        due_date=inv.due_date.isoformat() if inv.due_date else "",
        items=inv.items or [],
        payment_method=inv.payment_method,
        notes=inv.notes,
        created_at=inv.created_at.isoformat() if inv.created_at else "",
        updated_at=inv.updated_at.isoformat() if inv.updated_at else "",
    )


def _raise_for(result: invoice_service.ServiceResult):
    code = result.error_code or invoice_service.UNEXPECTED_ERROR
    if code == invoice_service.VALIDATION_FAILED:
        details = result.validation_errors
    else:
        details = result.details
    raise HTTPException(
        status_code=_STATUS_BY_CODE.get(code, status.HTTP_500_INTERNAL_SERVER_ERROR),
        detail=error_detail(code, result.error, details),
    )


@router.get("", response_model=PaginatedResponse[InvoiceResponse])
async def list_invoices(
    response: Response,
    search: Optional[str] = Query(None, max_length=255),
    inv_status: Optional[InvoiceStatus] = Query(None, alias="status"),
    sort: SortField = Query("created_at"),
    order: str = Query("desc", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=100),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_with_tenant),
):
    org_id = current_user["org_id"]
    query = InvoiceListQuery(
        search=search, status=inv_status, sort=sort, order=order, page=page, limit=limit
    )
    result = await invoice_service.list_invoices(db, org_id, query)
    if not result.success:
        _raise_for(result)

    invoice_page = result.data
    response.headers["X-View-Version"] = str(await get_view_version(org_id, DASHBOARD_PATH))
    return PaginatedResponse(
        data=[_to_response(inv) for inv in invoice_page.items],
        pagination=build_pagination(
            query.page if query.limit else 1,
            query.limit or max(invoice_page.total, 1),
            invoice_page.total,
        ),
    )


@router.get("/export")
async def export_invoices(
    search: Optional[str] = Query(None, max_length=255),
    inv_status: Optional[InvoiceStatus] = Query(None, alias="status"),
    sort: SortField = Query("created_at"),
    order: str = Query("desc", pattern="^(asc|desc)$"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_with_tenant),
):
    """Export the organization's invoices as CSV (plans with export_csv only)."""
    if not has_feature("export_csv"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=error_detail(
                "FEATURE_NOT_AVAILABLE", "CSV export is not included in your plan"
            ),
        )

    query = InvoiceListQuery(search=search, status=inv_status, sort=sort, order=order)
    result = await invoice_service.list_invoices(db, current_user["org_id"], query)
    if not result.success:
        _raise_for(result)

    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow([
        "invoice_number", "customer_name", "customer_email", "amount", "status",
        "issue_date", "due_date", "payment_method", "items", "notes",
    ])
    for inv in result.data.items:
        writer.writerow([
            inv.invoice_number,
            csv_cell(inv.customer_name),
            csv_cell(inv.customer_email),
            format_currency(inv.amount),
            inv.status,
            format_date(inv.issue_date),
            format_date(inv.due_date),
            inv.payment_method or "",
            len(inv.items or []),
            csv_cell(inv.notes),
        ])

    logger.info("invoices_exported", count=len(result.data.items))
    filename = f"invoices_{datetime.now(timezone.utc).strftime('%Y%m%d_%H%M%S')}.csv"
    return Response(
        content=output.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    invoice_id: str,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_with_tenant),
):
    result = await invoice_service.get_invoice(db, current_user["org_id"], invoice_id)
    if not result.success:
        _raise_for(result)
    if result.data is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=error_detail(
                invoice_service.NOT_FOUND,
                invoice_service.ERROR_MESSAGES[invoice_service.NOT_FOUND],
            ),
        )
    return _to_response(result.data)


@router.post("", response_model=InvoiceResponse, status_code=status.HTTP_201_CREATED)
async def create_invoice(
    body: Dict[str, Any] = Body(...),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_with_tenant),
):
    result = await invoice_service.create_invoice(
        db, current_user["org_id"], current_user["user_id"], body
    )
    if not result.success:
        _raise_for(result)
    return _to_response(result.data)


@router.patch("/{invoice_id}", response_model=InvoiceResponse)
async def update_invoice(
    invoice_id: str,
    body: Dict[str, Any] = Body(...),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_with_tenant),
):
    # The path wins over any id in the body.
    payload = {**body, "id": invoice_id}
    result = await invoice_service.update_invoice(db, current_user["org_id"], payload)
    if not result.success:
        _raise_for(result)
    return _to_response(result.data)


@router.delete("/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_invoice(
    invoice_id: str,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_with_tenant),
):
    result = await invoice_service.delete_invoice(db, current_user["org_id"], invoice_id)
    if not result.success:
        _raise_for(result)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{invoice_id}/duplicate",
    response_model=InvoiceResponse,
    status_code=status.HTTP_201_CREATED,
)
async def duplicate_invoice(
    invoice_id: str,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_with_tenant),
):
    result = await invoice_service.duplicate_invoice(
        db, current_user["org_id"], current_user["user_id"], invoice_id
    )
    if not result.success:
        _raise_for(result)
    return _to_response(result.data)
