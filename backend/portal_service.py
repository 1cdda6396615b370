"""
Customer self-service portal.

Portal requests carry a portal token instead of a staff token; every query
is still tenant scoped, and additionally restricted to the one customer.
"""

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from auth import create_portal_token
from errors import BadRequestError, NotFoundError
from invoice_service import invoice_service
from models import Customer, CustomerStatus, Invoice, Subscription, SubscriptionStatus, Tenant, Ticket
from schemas import PortalAuthRequest, PortalTicketCreate
from tenant_scope import TenantScope
from ticket_service import ticket_service
from usage_service import month_period, usage_service

logger = logging.getLogger(__name__)


class PortalService:

    async def authenticate(self, db: AsyncSession, data: PortalAuthRequest) -> dict:
        """Find the ACTIVE customer by phone (and national id when given) and issue a portal token"""
        stmt = select(Customer).where(Customer.phone == data.phone, Customer.status == CustomerStatus.ACTIVE)
        if data.cnic:
            stmt = stmt.where(Customer.cnic == data.cnic)
        if data.tenant_slug:
            stmt = stmt.join(Tenant, Tenant.id == Customer.tenant_id).where(Tenant.slug == data.tenant_slug)

        customers = list((await db.execute(stmt)).scalars().all())
        if not customers:
            raise NotFoundError("Customer not found or inactive")
        if len(customers) > 1:
            raise BadRequestError("Several accounts match this phone number. Please specify your provider.")

        customer = customers[0]
        logger.info(f"Portal login for customer {customer.id} (tenant {customer.tenant_id})")
        return {
            "token": create_portal_token(customer.id, customer.tenant_id),
            "customer": customer,
        }

    async def active_subscription(self, scope: TenantScope, customer: Customer) -> Optional[Subscription]:
        result = await scope.db.execute(
            scope.select(
                Subscription,
                Subscription.customer_id == customer.id,
                Subscription.status == SubscriptionStatus.ACTIVE
            )
            .order_by(Subscription.id.asc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def dashboard(self, scope: TenantScope, customer: Customer, now: datetime = None) -> dict:
        now = now or datetime.utcnow()
        subscription = await self.active_subscription(scope, customer)

        usage = {"up_bytes": 0, "down_bytes": 0, "total_bytes": 0, "sessions": 0}
        history = []
        if subscription is not None:
            history = await usage_service.history(scope, subscription.id, months=6, now=now)
            current = month_period(now)
            usage = next(({k: v for k, v in row.items() if k != "period"} for row in history if row["period"] == current), usage)

        invoices = await self.invoices(scope, customer, limit=5)
        tickets = await self.tickets(scope, customer, limit=5)

        return {
            "customer": customer,
            "subscription": subscription,
            "usage": {"current_month": usage, "history": history},
            "invoices": invoices,
            "tickets": tickets,
        }

    async def invoices(self, scope: TenantScope, customer: Customer, limit: Optional[int] = None) -> List[Invoice]:
        stmt = (
            scope.select(Invoice, Invoice.customer_id == customer.id)
            .order_by(Invoice.created_at.desc(), Invoice.id.desc())
        )
        if limit:
            stmt = stmt.limit(limit)
        return list((await scope.db.execute(stmt)).scalars().all())

    async def invoice_pdf(self, scope: TenantScope, customer: Customer, invoice_id: int) -> Tuple[bytes, str]:
        """PDF of one of the customer's own invoices; other invoices are reported as missing"""
        invoice = await invoice_service.get_by_id(scope, invoice_id)
        if invoice.customer_id != customer.id:
            raise NotFoundError("Invoice not found")
        return await invoice_service.generate_pdf(scope, invoice.id, invoice=invoice)

    async def tickets(self, scope: TenantScope, customer: Customer, limit: Optional[int] = None) -> List[Ticket]:
        stmt = (
            scope.select(Ticket, Ticket.customer_id == customer.id)
            .order_by(Ticket.created_at.desc(), Ticket.id.desc())
        )
        if limit:
            stmt = stmt.limit(limit)
        return list((await scope.db.execute(stmt)).scalars().all())

    async def create_ticket(self, scope: TenantScope, customer: Customer, data: PortalTicketCreate) -> Ticket:
        """Open a ticket attached to the customer's active subscription, if any"""
        subscription = await self.active_subscription(scope, customer)
        return await ticket_service.create(
            scope,
            subject=data.subject,
            message=data.message,
            category=data.category,
            priority=data.priority,
            customer_id=customer.id,
            subscription_id=subscription.id if subscription else None
        )

    async def usage(self, scope: TenantScope, customer: Customer, subscription_id: int) -> List[dict]:
        subscription = await scope.find(Subscription, subscription_id)
        if subscription is None or subscription.customer_id != customer.id:
            raise NotFoundError("Subscription not found")
        return await usage_service.history(scope, subscription.id, months=6)


portal_service = PortalService()
