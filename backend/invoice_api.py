"""
Invoice API Endpoints
Listing, detail, PDF download, delivery and manual status changes
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from api_response import paginated, pdf, success
from auth import require_roles
from invoice_service import invoice_service
from models import InvoiceStatus, UserRole
from schemas import InvoiceDetailResponse, InvoiceResponse, InvoiceSendRequest, InvoiceStatusUpdate
from tenant_scope import TenantScope

router = APIRouter(prefix="/api/invoices", tags=["invoices"])

invoice_readers = require_roles(UserRole.OWNER, UserRole.ADMIN, UserRole.MANAGER, UserRole.CASHIER)


@router.get("")
async def list_invoices(
    status: Optional[InvoiceStatus] = None,
    customer_id: Optional[int] = None,
    subscription_id: Optional[int] = None,
    from_date: Optional[datetime] = None,
    to_date: Optional[datetime] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    scope: TenantScope = Depends(invoice_readers)
):
    invoices, total = await invoice_service.list(
        scope, status, customer_id, subscription_id, from_date, to_date, page, limit
    )
    return paginated(invoices, page, limit, total, InvoiceResponse)


@router.get("/{invoice_id}")
async def get_invoice(invoice_id: int, scope: TenantScope = Depends(invoice_readers)):
    invoice = await invoice_service.get_by_id(scope, invoice_id)
    return success(InvoiceDetailResponse.model_validate(invoice))


@router.get("/{invoice_id}/pdf")
async def download_invoice_pdf(invoice_id: int, scope: TenantScope = Depends(invoice_readers)):
    content, filename = await invoice_service.generate_pdf(scope, invoice_id)
    return pdf(content, filename)


@router.post("/{invoice_id}/send")
async def send_invoice(
    invoice_id: int,
    request: InvoiceSendRequest,
    scope: TenantScope = Depends(require_roles(UserRole.OWNER, UserRole.ADMIN, UserRole.MANAGER))
):
    delivery = await invoice_service.send(scope, invoice_id, request.method, request.recipient)
    return success(delivery, f"Invoice sent via {request.method}")


@router.patch("/{invoice_id}/status")
async def update_invoice_status(
    invoice_id: int,
    request: InvoiceStatusUpdate,
    scope: TenantScope = Depends(require_roles(UserRole.OWNER, UserRole.ADMIN))
):
    invoice = await invoice_service.update_status(scope, invoice_id, request.status)
    return success(InvoiceDetailResponse.model_validate(invoice), "Invoice status updated")
