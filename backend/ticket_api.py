"""
Ticket API Endpoints
Support tickets with SLA deadlines and staff replies
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from api_response import paginated, success
from auth import require_roles
from models import TicketCategory, TicketPriority, TicketStatus, UserRole
from schemas import (
    TicketAssign, TicketCreate, TicketDetailResponse, TicketMessageResponse, TicketReply,
    TicketResponse, TicketStatusUpdate
)
from tenant_scope import TenantScope
from ticket_service import ticket_service

router = APIRouter(prefix="/api/tickets", tags=["tickets"])

support = require_roles(UserRole.OWNER, UserRole.ADMIN, UserRole.MANAGER, UserRole.SUPPORT, UserRole.ENGINEER)


@router.get("")
async def list_tickets(
    status: Optional[TicketStatus] = None,
    priority: Optional[TicketPriority] = None,
    category: Optional[TicketCategory] = None,
    assigned_user_id: Optional[int] = None,
    customer_id: Optional[int] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    scope: TenantScope = Depends(support)
):
    tickets, total = await ticket_service.list(
        scope, page, limit, status, priority, category, assigned_user_id, customer_id
    )
    return paginated(tickets, page, limit, total, TicketResponse)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_ticket(
    request: TicketCreate,
    scope: TenantScope = Depends(require_roles(UserRole.OWNER, UserRole.ADMIN, UserRole.MANAGER, UserRole.SUPPORT))
):
    ticket = await ticket_service.create(
        scope,
        subject=request.subject,
        message=request.message,
        category=request.category,
        priority=request.priority,
        customer_id=request.customer_id,
        subscription_id=request.subscription_id
    )
    return success(TicketDetailResponse.model_validate(ticket), "Ticket created successfully")


@router.get("/{ticket_id}")
async def get_ticket(ticket_id: int, scope: TenantScope = Depends(support)):
    ticket = await ticket_service.get_by_id(scope, ticket_id)
    return success(TicketDetailResponse.model_validate(ticket))


@router.post("/{ticket_id}/reply", status_code=status.HTTP_201_CREATED)
async def reply_to_ticket(ticket_id: int, request: TicketReply, scope: TenantScope = Depends(support)):
    message = await ticket_service.reply(scope, ticket_id, request.body, request.attachments)
    return success(TicketMessageResponse.model_validate(message), "Reply added")


@router.patch("/{ticket_id}/assign")
async def assign_ticket(
    ticket_id: int,
    request: TicketAssign,
    scope: TenantScope = Depends(require_roles(UserRole.OWNER, UserRole.ADMIN, UserRole.MANAGER))
):
    ticket = await ticket_service.assign(scope, ticket_id, request.user_id)
    return success(TicketResponse.model_validate(ticket), "Ticket assigned")


@router.patch("/{ticket_id}/status")
async def update_ticket_status(ticket_id: int, request: TicketStatusUpdate, scope: TenantScope = Depends(support)):
    ticket = await ticket_service.update_status(scope, ticket_id, request.status)
    return success(TicketResponse.model_validate(ticket), "Ticket status updated")
