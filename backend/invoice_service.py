import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy.orm import selectinload

import pdf_service
from email_service import email_service
from errors import ApiError, BadRequestError, NotImplementedFeatureError, NotFoundError
from models import Invoice, InvoiceStatus, Subscription, Tenant
from sms_service import sms_service
from tenant_scope import TenantScope

logger = logging.getLogger(__name__)

DATE_FORMAT = "%B %d, %Y"


class InvoiceService:

    @staticmethod
    def _detail_options():
        return [
            selectinload(Invoice.items),
            selectinload(Invoice.payments),
            selectinload(Invoice.customer),
            selectinload(Invoice.subscription).selectinload(Subscription.plan),
        ]

    async def list(
        self,
        scope: TenantScope,
        status: Optional[InvoiceStatus] = None,
        customer_id: Optional[int] = None,
        subscription_id: Optional[int] = None,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
        page: int = 1,
        limit: int = 20
    ) -> Tuple[List[Invoice], int]:
        """Invoices of the tenant, newest first"""
        criteria = []
        if status:
            criteria.append(Invoice.status == status)
        if customer_id:
            criteria.append(Invoice.customer_id == customer_id)
        if subscription_id:
            criteria.append(Invoice.subscription_id == subscription_id)
        if from_date:
            criteria.append(Invoice.created_at >= from_date)
        if to_date:
            criteria.append(Invoice.created_at <= to_date)

        total = await scope.db.scalar(scope.count(Invoice, *criteria))
        result = await scope.db.execute(
            scope.select(Invoice, *criteria)
            .options(selectinload(Invoice.customer))
            .order_by(Invoice.created_at.desc(), Invoice.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total or 0

    async def get_by_id(self, scope: TenantScope, invoice_id: int) -> Invoice:
        return await scope.get(Invoice, invoice_id, options=self._detail_options(), message="Invoice not found", reload=True)

    async def _tenant(self, scope: TenantScope) -> Tenant:
        tenant = await scope.db.get(Tenant, scope.tenant_id)
        if tenant is None:
            raise NotFoundError("Tenant not found")
        return tenant

    async def generate_pdf(self, scope: TenantScope, invoice_id: int, invoice: Invoice = None) -> Tuple[bytes, str]:
        """
        Render the invoice PDF. The file is stored and pdf_url set on the
        first generation only.
        """
        if invoice is None:
            invoice = await self.get_by_id(scope, invoice_id)
        tenant = await self._tenant(scope)

        pdf_bytes = pdf_service.generate_invoice_pdf(invoice, tenant)
        filename = f"invoice-{invoice.number}.pdf"

        if not invoice.pdf_url:
            invoice.pdf_url = pdf_service.save_pdf(pdf_bytes, f"invoices/{invoice.id}.pdf")
            await scope.db.commit()

        return pdf_bytes, filename

    async def send(self, scope: TenantScope, invoice_id: int, method: str, recipient: Optional[str] = None) -> dict:
        """Deliver the invoice by email or SMS to the recipient override or the customer's contact"""
        invoice = await self.get_by_id(scope, invoice_id)
        customer = invoice.customer or (invoice.subscription.customer if invoice.subscription else None)

        if customer is None:
            raise BadRequestError("Customer not found for invoice")

        if method == "whatsapp":
            raise NotImplementedFeatureError("WhatsApp integration not implemented")

        if method == "email":
            destination = recipient or customer.email
            if not destination:
                raise BadRequestError("Customer email not available")
        elif method == "sms":
            destination = recipient or customer.phone
            if not destination:
                raise BadRequestError("Customer phone not available")
        else:
            raise BadRequestError(f"Unsupported delivery method '{method}'")

        tenant = await self._tenant(scope)
        due_date = invoice.due_date.strftime(DATE_FORMAT)

        if method == "email":
            pdf_bytes, filename = await self.generate_pdf(scope, invoice_id, invoice=invoice)
            sent = await email_service.send_invoice_email(
                to_email=destination,
                customer_name=customer.name,
                tenant_name=tenant.name,
                invoice_number=invoice.number,
                total=invoice.total,
                due_date=due_date,
                html_content=pdf_service.invoice_html(invoice, tenant),
                pdf_bytes=pdf_bytes,
                pdf_filename=filename
            )
        else:
            sent = await sms_service.send_invoice_notification(
                to_phone=destination,
                customer_name=customer.name,
                tenant_name=tenant.name,
                invoice_number=invoice.number,
                total=invoice.total,
                due_date=due_date
            )

        if not sent:
            raise ApiError(f"Failed to send invoice by {method}", 502)

        logger.info(f"Invoice {invoice.number} sent by {method} to {destination}")
        return {"invoice_id": invoice.id, "method": method, "recipient": destination}

    async def update_status(self, scope: TenantScope, invoice_id: int, status: InvoiceStatus) -> Invoice:
        invoice = await self.get_by_id(scope, invoice_id)
        invoice.status = status
        if status == InvoiceStatus.PAID and invoice.paid_at is None:
            invoice.paid_at = datetime.utcnow()
        await scope.db.commit()
        logger.info(f"Invoice {invoice.number} status set to {status.value}")
        return invoice


invoice_service = InvoiceService()
