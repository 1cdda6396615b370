"""
Payment API Endpoints
Recording payments, refunds and receipt downloads
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from api_response import paginated, pdf, success
from auth import require_roles
from models import PaymentMethod, PaymentStatus, UserRole
from payment_service import payment_service
from schemas import PaymentCreate, PaymentResponse, RefundRequest
from tenant_scope import TenantScope

router = APIRouter(prefix="/api/payments", tags=["payments"])

cashiers = require_roles(UserRole.OWNER, UserRole.ADMIN, UserRole.MANAGER, UserRole.CASHIER)


@router.get("")
async def list_payments(
    status: Optional[PaymentStatus] = None,
    method: Optional[PaymentMethod] = None,
    customer_id: Optional[int] = None,
    from_date: Optional[datetime] = None,
    to_date: Optional[datetime] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    scope: TenantScope = Depends(cashiers)
):
    payments, total = await payment_service.list(
        scope, page, limit, status=status, method=method,
        from_date=from_date, to_date=to_date, customer_id=customer_id
    )
    return paginated(payments, page, limit, total, PaymentResponse)


@router.post("", status_code=status.HTTP_201_CREATED)
async def record_payment(request: PaymentCreate, scope: TenantScope = Depends(cashiers)):
    payment = await payment_service.record(scope, request)
    return success(PaymentResponse.model_validate(payment), "Payment recorded")


@router.post("/{payment_id}/refund")
async def refund_payment(
    payment_id: int,
    request: RefundRequest,
    scope: TenantScope = Depends(require_roles(UserRole.OWNER, UserRole.ADMIN))
):
    refund = await payment_service.refund(scope, payment_id, request.amount, request.reason)
    return success(PaymentResponse.model_validate(refund), "Refund processed")


@router.get("/{payment_id}/receipt")
async def download_receipt(payment_id: int, scope: TenantScope = Depends(cashiers)):
    content, filename = await payment_service.generate_receipt(scope, payment_id)
    return pdf(content, filename)
