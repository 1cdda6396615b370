"""
Customer Portal API Endpoints
Self-service access for subscribers using a portal token
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from api_response import pdf, success
from auth import get_portal_customer
from database import get_db
from models import Customer
from portal_service import portal_service
from schemas import (
    CustomerResponse, PortalAuthRequest, PortalInvoiceResponse, PortalTicketCreate,
    SubscriptionResponse, TicketDetailResponse, TicketResponse
)
from tenant_scope import TenantScope

router = APIRouter(prefix="/api/portal", tags=["portal"])


async def get_portal_scope(
    customer: Customer = Depends(get_portal_customer),
    db: AsyncSession = Depends(get_db)
) -> TenantScope:
    return TenantScope(db, customer.tenant_id)


@router.post("/auth")
async def portal_auth(request: PortalAuthRequest, db: AsyncSession = Depends(get_db)):
    result = await portal_service.authenticate(db, request)
    return success({
        "token": result["token"],
        "customer": CustomerResponse.model_validate(result["customer"]),
    }, "Authentication successful")


@router.get("/dashboard")
async def portal_dashboard(
    customer: Customer = Depends(get_portal_customer),
    scope: TenantScope = Depends(get_portal_scope)
):
    dashboard = await portal_service.dashboard(scope, customer)
    subscription = dashboard["subscription"]
    return success({
        "customer": CustomerResponse.model_validate(dashboard["customer"]),
        "subscription": SubscriptionResponse.model_validate(subscription) if subscription else None,
        "usage": dashboard["usage"],
        "invoices": [PortalInvoiceResponse.model_validate(i) for i in dashboard["invoices"]],
        "tickets": [TicketResponse.model_validate(t) for t in dashboard["tickets"]],
    })


@router.get("/invoices")
async def portal_invoices(
    customer: Customer = Depends(get_portal_customer),
    scope: TenantScope = Depends(get_portal_scope)
):
    invoices = await portal_service.invoices(scope, customer)
    return success([PortalInvoiceResponse.model_validate(i) for i in invoices])


@router.get("/invoices/{invoice_id}/pdf")
async def portal_invoice_pdf(
    invoice_id: int,
    customer: Customer = Depends(get_portal_customer),
    scope: TenantScope = Depends(get_portal_scope)
):
    content, filename = await portal_service.invoice_pdf(scope, customer, invoice_id)
    return pdf(content, filename)


@router.get("/tickets")
async def portal_tickets(
    customer: Customer = Depends(get_portal_customer),
    scope: TenantScope = Depends(get_portal_scope)
):
    tickets = await portal_service.tickets(scope, customer)
    return success([TicketResponse.model_validate(t) for t in tickets])


@router.post("/tickets", status_code=status.HTTP_201_CREATED)
async def portal_create_ticket(
    request: PortalTicketCreate,
    customer: Customer = Depends(get_portal_customer),
    scope: TenantScope = Depends(get_portal_scope)
):
    ticket = await portal_service.create_ticket(scope, customer, request)
    return success(TicketDetailResponse.model_validate(ticket), "Ticket created successfully")


@router.get("/usage/{subscription_id}")
async def portal_usage(
    subscription_id: int,
    customer: Customer = Depends(get_portal_customer),
    scope: TenantScope = Depends(get_portal_scope)
):
    return success(await portal_service.usage(scope, customer, subscription_id))
