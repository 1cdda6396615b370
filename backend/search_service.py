from typing import List

from sqlalchemy import func, or_
from sqlalchemy.orm import selectinload

from models import Customer, Invoice, Ticket
from tenant_scope import TenantScope

RESULTS_PER_TYPE = 5


class SearchService:
    """Global search box: customers, invoices and tickets of the tenant"""

    async def search(self, scope: TenantScope, query: str) -> List[dict]:
        term = query.strip()
        if not term:
            return []
        pattern = f"%{term.lower()}%"
        results = []

        customers = await scope.db.execute(
            scope.select(Customer, or_(
                func.lower(Customer.name).like(pattern),
                Customer.phone.contains(term),
                func.lower(Customer.email).like(pattern),
            ))
            .order_by(Customer.name)
            .limit(RESULTS_PER_TYPE)
        )
        for customer in customers.scalars().all():
            results.append({
                "id": customer.id,
                "type": "customer",
                "title": customer.name,
                "subtitle": customer.phone,
                "url": f"/customers/{customer.id}",
            })

        invoices = await scope.db.execute(
            scope.select(Invoice, func.lower(Invoice.number).like(pattern))
            .options(selectinload(Invoice.customer))
            .order_by(Invoice.created_at.desc())
            .limit(RESULTS_PER_TYPE)
        )
        for invoice in invoices.scalars().all():
            customer_name = invoice.customer.name if invoice.customer else "Unknown"
            results.append({
                "id": invoice.id,
                "type": "invoice",
                "title": invoice.number,
                "subtitle": f"{customer_name} - {invoice.total:.2f}",
                "url": f"/invoices/{invoice.id}",
            })

        tickets = await scope.db.execute(
            scope.select(Ticket, func.lower(Ticket.subject).like(pattern))
            .options(selectinload(Ticket.customer))
            .order_by(Ticket.created_at.desc())
            .limit(RESULTS_PER_TYPE)
        )
        for ticket in tickets.scalars().all():
            customer_name = ticket.customer.name if ticket.customer else "Internal"
            results.append({
                "id": ticket.id,
                "type": "ticket",
                "title": ticket.subject,
                "subtitle": f"{customer_name} - {ticket.status.value}",
                "url": f"/tickets/{ticket.id}",
            })

        return results


search_service = SearchService()
