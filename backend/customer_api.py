"""
Customer API Endpoints
Customer CRUD, document uploads and the per-customer subscription, invoice, payment and ticket lists
"""

from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile, status

from api_response import paginated, success
from auth import require_roles
from customer_service import customer_service
from models import CustomerStatus, UserRole
from schemas import (
    CustomerCreate, CustomerDetailResponse, CustomerListItem, CustomerResponse, CustomerUpdate,
    InvoiceResponse, PaymentResponse, SubscriptionResponse, TicketResponse
)
from tenant_scope import TenantScope

router = APIRouter(prefix="/api/customers", tags=["customers"])

staff = require_roles(UserRole.OWNER, UserRole.ADMIN, UserRole.MANAGER, UserRole.SUPPORT)
editors = require_roles(UserRole.OWNER, UserRole.ADMIN, UserRole.MANAGER)
billing_staff = require_roles(UserRole.OWNER, UserRole.ADMIN, UserRole.MANAGER, UserRole.SUPPORT, UserRole.CASHIER)


@router.get("")
async def list_customers(
    q: Optional[str] = None,
    status: Optional[CustomerStatus] = None,
    tag: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    sort_by: Literal["name", "created_at", "phone"] = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
    scope: TenantScope = Depends(staff)
):
    rows, total = await customer_service.list(scope, q, status, tag, page, limit, sort_by, sort_order)
    items = [
        CustomerListItem.model_validate(customer).model_copy(
            update={"subscription_count": subscription_count, "ticket_count": ticket_count}
        )
        for customer, subscription_count, ticket_count in rows
    ]
    return paginated(items, page, limit, total)


@router.get("/{customer_id}")
async def get_customer(customer_id: int, scope: TenantScope = Depends(staff)):
    customer, subscriptions, tickets = await customer_service.get_detail(scope, customer_id)
    # Built from the summary fields; Customer.subscriptions is not eagerly loaded
    detail = CustomerDetailResponse(
        **CustomerResponse.model_validate(customer).model_dump(),
        subscriptions=[SubscriptionResponse.model_validate(s) for s in subscriptions],
        open_tickets=[TicketResponse.model_validate(t) for t in tickets],
    )
    return success(detail)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_customer(request: CustomerCreate, scope: TenantScope = Depends(editors)):
    customer = await customer_service.create(scope, request)
    return success(CustomerResponse.model_validate(customer), "Customer created successfully")


@router.patch("/{customer_id}")
async def update_customer(customer_id: int, request: CustomerUpdate, scope: TenantScope = Depends(editors)):
    customer = await customer_service.update(scope, customer_id, request)
    return success(CustomerResponse.model_validate(customer), "Customer updated successfully")


@router.delete("/{customer_id}")
async def delete_customer(
    customer_id: int,
    scope: TenantScope = Depends(require_roles(UserRole.OWNER, UserRole.ADMIN))
):
    await customer_service.delete(scope, customer_id)
    return success(message="Customer deleted successfully")


@router.get("/{customer_id}/subscriptions")
async def customer_subscriptions(customer_id: int, scope: TenantScope = Depends(staff)):
    subscriptions = await customer_service.get_subscriptions(scope, customer_id)
    return success([SubscriptionResponse.model_validate(s) for s in subscriptions])


@router.get("/{customer_id}/invoices")
async def customer_invoices(customer_id: int, scope: TenantScope = Depends(billing_staff)):
    invoices = await customer_service.get_invoices(scope, customer_id)
    return success([InvoiceResponse.model_validate(i) for i in invoices])


@router.get("/{customer_id}/payments")
async def customer_payments(customer_id: int, scope: TenantScope = Depends(billing_staff)):
    payments = await customer_service.get_payments(scope, customer_id)
    return success([PaymentResponse.model_validate(p) for p in payments])


@router.get("/{customer_id}/tickets")
async def customer_tickets(customer_id: int, scope: TenantScope = Depends(staff)):
    tickets = await customer_service.get_tickets(scope, customer_id)
    return success([TicketResponse.model_validate(t) for t in tickets])


@router.post("/{customer_id}/documents")
async def upload_customer_documents(
    customer_id: int,
    documents: List[UploadFile] = File(..., description="Up to 5 files (PDF, PNG, JPG, WebP, max 10MB each)"),
    scope: TenantScope = Depends(editors)
):
    saved = await customer_service.upload_documents(scope, customer_id, documents)
    return success(saved, "Documents uploaded successfully")
