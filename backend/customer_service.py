import logging
from typing import List, Optional, Tuple

from fastapi import UploadFile
from sqlalchemy import String, cast, func, or_, select
from sqlalchemy.orm import selectinload

from errors import BadRequestError
from file_utils import MAX_FILES_PER_UPLOAD, save_customer_document, validate_document_file
from models import (
    Customer, CustomerStatus, Invoice, Payment, Subscription, SubscriptionStatus,
    Ticket, TicketStatus
)
from schemas import CustomerCreate, CustomerDocument, CustomerUpdate
from tenant_scope import TenantScope

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    "name": Customer.name,
    "created_at": Customer.created_at,
    "phone": Customer.phone,
}


class CustomerService:

    async def list(
        self,
        scope: TenantScope,
        q: Optional[str] = None,
        status: Optional[CustomerStatus] = None,
        tag: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
        sort_by: str = "created_at",
        sort_order: str = "desc"
    ) -> Tuple[List[Tuple[Customer, int, int]], int]:
        """
        Search customers by name, phone, email or national id.

        Returns (customer, subscription_count, ticket_count) rows and the total.
        """
        criteria = []
        if status:
            criteria.append(Customer.status == status)
        if q:
            pattern = f"%{q.lower()}%"
            criteria.append(or_(
                func.lower(Customer.name).like(pattern),
                Customer.phone.contains(q),
                func.lower(Customer.email).like(pattern),
                Customer.cnic.contains(q),
            ))
        if tag:
            # Tags are a JSON list; match the quoted element in its text form
            criteria.append(cast(Customer.tags, String).contains(f'"{tag}"'))

        column = SORT_COLUMNS.get(sort_by, Customer.created_at)
        order = column.asc() if sort_order == "asc" else column.desc()

        subscription_count = (
            select(func.count(Subscription.id))
            .where(Subscription.customer_id == Customer.id)
            .correlate(Customer)
            .scalar_subquery()
        )
        ticket_count = (
            select(func.count(Ticket.id))
            .where(Ticket.customer_id == Customer.id)
            .correlate(Customer)
            .scalar_subquery()
        )

        total = await scope.db.scalar(scope.count(Customer, *criteria))
        result = await scope.db.execute(
            select(Customer, subscription_count, ticket_count)
            .where(scope.where(Customer), *criteria)
            .order_by(order, Customer.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return [tuple(row) for row in result.all()], total or 0

    async def get_by_id(self, scope: TenantScope, customer_id: int) -> Customer:
        return await scope.get(Customer, customer_id, message="Customer not found")

    async def get_detail(self, scope: TenantScope, customer_id: int) -> Tuple[Customer, List[Subscription], List[Ticket]]:
        """Customer with all subscriptions and the tickets that are not CLOSED"""
        customer = await self.get_by_id(scope, customer_id)
        subscriptions = await self.get_subscriptions(scope, customer_id)
        result = await scope.db.execute(
            scope.select(Ticket, Ticket.customer_id == customer_id, Ticket.status != TicketStatus.CLOSED)
            .order_by(Ticket.created_at.desc())
        )
        return customer, subscriptions, list(result.scalars().all())

    async def _ensure_phone_free(self, scope: TenantScope, phone: str, exclude_id: Optional[int] = None):
        criteria = [Customer.phone == phone]
        if exclude_id:
            criteria.append(Customer.id != exclude_id)
        if await scope.db.scalar(scope.count(Customer, *criteria)):
            raise BadRequestError("Phone number already exists")

    async def create(self, scope: TenantScope, data: CustomerCreate) -> Customer:
        await self._ensure_phone_free(scope, data.phone)

        customer = scope.add(
            Customer,
            name=data.name,
            cnic=data.cnic,
            phone=data.phone,
            email=data.email,
            address=data.address.model_dump(by_alias=True, exclude_none=True) if data.address else None,
            tags=data.tags,
            documents=[],
            status=CustomerStatus.ACTIVE
        )
        await scope.db.commit()
        await scope.db.refresh(customer)
        logger.info(f"Created customer {customer.id} ({customer.phone}) for tenant {scope.tenant_id}")
        return customer

    async def update(self, scope: TenantScope, customer_id: int, data: CustomerUpdate) -> Customer:
        customer = await self.get_by_id(scope, customer_id)
        update_data = data.model_dump(exclude_unset=True)

        if update_data.get("phone") and update_data["phone"] != customer.phone:
            await self._ensure_phone_free(scope, update_data["phone"], exclude_id=customer.id)

        if "address" in update_data:
            update_data["address"] = (
                data.address.model_dump(by_alias=True, exclude_none=True) if data.address else None
            )

        for field, value in update_data.items():
            setattr(customer, field, value)

        await scope.db.commit()
        await scope.db.refresh(customer)
        return customer

    async def delete(self, scope: TenantScope, customer_id: int) -> None:
        """Soft delete: the customer becomes TERMINATED"""
        customer = await self.get_by_id(scope, customer_id)

        active = await scope.db.scalar(scope.count(
            Subscription,
            Subscription.customer_id == customer.id,
            Subscription.status == SubscriptionStatus.ACTIVE
        ))
        if active:
            raise BadRequestError("Cannot delete customer with active subscriptions")

        customer.status = CustomerStatus.TERMINATED
        await scope.db.commit()
        logger.info(f"Customer {customer.id} terminated (tenant {scope.tenant_id})")

    async def upload_documents(self, scope: TenantScope, customer_id: int, files: List[UploadFile]) -> List[CustomerDocument]:
        """Store uploaded files and append them to the customer's documents"""
        customer = await self.get_by_id(scope, customer_id)
        if not files:
            raise BadRequestError("No documents uploaded")
        if len(files) > MAX_FILES_PER_UPLOAD:
            raise BadRequestError(f"At most {MAX_FILES_PER_UPLOAD} documents per upload")
        for file in files:
            validate_document_file(file)

        documents = [await save_customer_document(file, customer.id) for file in files]
        customer.documents = [*(customer.documents or []), *(d.model_dump(by_alias=True, mode="json") for d in documents)]
        await scope.db.commit()
        logger.info(f"Added {len(documents)} document(s) to customer {customer.id} (tenant {scope.tenant_id})")
        return documents

    async def get_subscriptions(self, scope: TenantScope, customer_id: int) -> List[Subscription]:
        await self.get_by_id(scope, customer_id)
        result = await scope.db.execute(
            scope.select(Subscription, Subscription.customer_id == customer_id)
            .order_by(Subscription.created_at.desc(), Subscription.id.desc())
        )
        return list(result.scalars().all())

    async def get_invoices(self, scope: TenantScope, customer_id: int) -> List[Invoice]:
        await self.get_by_id(scope, customer_id)
        result = await scope.db.execute(
            scope.select(Invoice, Invoice.customer_id == customer_id)
            .options(selectinload(Invoice.customer))
            .order_by(Invoice.created_at.desc(), Invoice.id.desc())
        )
        return list(result.scalars().all())

    async def get_payments(self, scope: TenantScope, customer_id: int) -> List[Payment]:
        await self.get_by_id(scope, customer_id)
        result = await scope.db.execute(
            scope.select(Payment, Payment.customer_id == customer_id)
            .options(selectinload(Payment.customer))
            .order_by(Payment.received_at.desc(), Payment.id.desc())
        )
        return list(result.scalars().all())

    async def get_tickets(self, scope: TenantScope, customer_id: int) -> List[Ticket]:
        await self.get_by_id(scope, customer_id)
        result = await scope.db.execute(
            scope.select(Ticket, Ticket.customer_id == customer_id)
            .order_by(Ticket.created_at.desc(), Ticket.id.desc())
        )
        return list(result.scalars().all())


customer_service = CustomerService()
