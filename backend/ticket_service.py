import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy.orm import selectinload

from errors import NotFoundError
from models import (
    Customer, MessageAuthorType, Subscription, Ticket, TicketCategory, TicketMessage,
    TicketPriority, TicketStatus, User
)
from tenant_scope import TenantScope

logger = logging.getLogger(__name__)

# Hours until the SLA is breached, by priority
SLA_HOURS = {
    TicketPriority.LOW: 72,
    TicketPriority.MEDIUM: 24,
    TicketPriority.HIGH: 8,
    TicketPriority.URGENT: 4,
}


def sla_due_at(priority: TicketPriority, opened_at: datetime = None) -> datetime:
    return (opened_at or datetime.utcnow()) + timedelta(hours=SLA_HOURS[priority])


class TicketService:

    async def list(
        self,
        scope: TenantScope,
        page: int = 1,
        limit: int = 20,
        status: Optional[TicketStatus] = None,
        priority: Optional[TicketPriority] = None,
        category: Optional[TicketCategory] = None,
        assigned_user_id: Optional[int] = None,
        customer_id: Optional[int] = None
    ) -> Tuple[List[Ticket], int]:
        criteria = []
        if status:
            criteria.append(Ticket.status == status)
        if priority:
            criteria.append(Ticket.priority == priority)
        if category:
            criteria.append(Ticket.category == category)
        if assigned_user_id:
            criteria.append(Ticket.assigned_user_id == assigned_user_id)
        if customer_id:
            criteria.append(Ticket.customer_id == customer_id)

        total = await scope.db.scalar(scope.count(Ticket, *criteria))
        result = await scope.db.execute(
            scope.select(Ticket, *criteria)
            .order_by(Ticket.created_at.desc(), Ticket.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total or 0

    async def get_by_id(self, scope: TenantScope, ticket_id: int) -> Ticket:
        return await scope.get(
            Ticket, ticket_id,
            options=[selectinload(Ticket.customer), selectinload(Ticket.messages)],
            message="Ticket not found",
            reload=True
        )

    async def create(
        self,
        scope: TenantScope,
        subject: str,
        message: str,
        category: TicketCategory = TicketCategory.TECHNICAL,
        priority: TicketPriority = TicketPriority.MEDIUM,
        customer_id: Optional[int] = None,
        subscription_id: Optional[int] = None
    ) -> Ticket:
        """Open a ticket with its SLA deadline and the customer's first message"""
        if customer_id and await scope.find(Customer, customer_id) is None:
            raise NotFoundError("Customer not found")
        if subscription_id and await scope.find(Subscription, subscription_id) is None:
            raise NotFoundError("Subscription not found")

        ticket = scope.add(
            Ticket,
            customer_id=customer_id,
            subscription_id=subscription_id,
            subject=subject,
            category=category,
            priority=priority,
            status=TicketStatus.OPEN,
            sla_due_at=sla_due_at(priority)
        )
        await scope.db.flush()

        scope.db.add(TicketMessage(
            ticket_id=ticket.id,
            author_type=MessageAuthorType.CUSTOMER,
            body=message
        ))
        await scope.db.commit()
        logger.info(f"Ticket {ticket.id} opened ({priority.value}, due {ticket.sla_due_at}) for tenant {scope.tenant_id}")
        return await self.get_by_id(scope, ticket.id)

    async def reply(self, scope: TenantScope, ticket_id: int, body: str, attachments: Optional[List[str]] = None) -> TicketMessage:
        """Staff reply. A CLOSED ticket is reopened."""
        ticket = await scope.get(Ticket, ticket_id, message="Ticket not found")

        message = TicketMessage(
            ticket_id=ticket.id,
            author_id=scope.user_id,
            author_type=MessageAuthorType.STAFF,
            body=body,
            attachments=attachments
        )
        scope.db.add(message)

        if ticket.status == TicketStatus.CLOSED:
            ticket.status = TicketStatus.OPEN
            ticket.resolved_at = None

        await scope.db.commit()
        await scope.db.refresh(message)
        return message

    async def assign(self, scope: TenantScope, ticket_id: int, user_id: int) -> Ticket:
        ticket = await scope.get(Ticket, ticket_id, message="Ticket not found")
        if await scope.find(User, user_id) is None:
            raise NotFoundError("User not found")

        ticket.assigned_user_id = user_id
        ticket.status = TicketStatus.IN_PROGRESS
        await scope.db.commit()
        await scope.db.refresh(ticket)
        logger.info(f"Ticket {ticket.id} assigned to user {user_id}")
        return ticket

    async def update_status(self, scope: TenantScope, ticket_id: int, status: TicketStatus) -> Ticket:
        ticket = await scope.get(Ticket, ticket_id, message="Ticket not found")
        ticket.status = status
        if status in (TicketStatus.RESOLVED, TicketStatus.CLOSED):
            ticket.resolved_at = datetime.utcnow()

        await scope.db.commit()
        await scope.db.refresh(ticket)
        return ticket


ticket_service = TicketService()
