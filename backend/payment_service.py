import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy.orm import selectinload

import pdf_service
from billing_service import to_money, to_naive_utc
from errors import BadRequestError, NotFoundError
from models import Customer, Invoice, InvoiceStatus, Payment, PaymentMethod, PaymentStatus, Tenant
from schemas import PaymentCreate
from tenant_scope import TenantScope

logger = logging.getLogger(__name__)


class PaymentService:

    async def list(
        self,
        scope: TenantScope,
        page: int = 1,
        limit: int = 20,
        status: Optional[PaymentStatus] = None,
        method: Optional[PaymentMethod] = None,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
        customer_id: Optional[int] = None
    ) -> Tuple[List[Payment], int]:
        criteria = []
        if status:
            criteria.append(Payment.status == status)
        if method:
            criteria.append(Payment.method == method)
        if from_date:
            criteria.append(Payment.received_at >= from_date)
        if to_date:
            criteria.append(Payment.received_at <= to_date)
        if customer_id:
            criteria.append(Payment.customer_id == customer_id)

        total = await scope.db.scalar(scope.count(Payment, *criteria))
        result = await scope.db.execute(
            scope.select(Payment, *criteria)
            .options(selectinload(Payment.customer))
            .order_by(Payment.received_at.desc(), Payment.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total or 0

    async def get_by_id(self, scope: TenantScope, payment_id: int) -> Payment:
        return await scope.get(
            Payment, payment_id,
            options=[selectinload(Payment.customer), selectinload(Payment.invoice)],
            message="Payment not found",
            reload=True
        )

    async def record(self, scope: TenantScope, data: PaymentCreate) -> Payment:
        """
        Record a COMPLETED payment. When the payment alone covers the invoice
        total the invoice becomes PAID. Earlier partial payments are not
        added up.
        """
        invoice = None
        customer_id = data.customer_id

        if data.invoice_id:
            invoice = await scope.find(Invoice, data.invoice_id)
            if invoice is None:
                raise NotFoundError("Invoice not found")
            customer_id = customer_id or invoice.customer_id

        if customer_id and await scope.find(Customer, customer_id) is None:
            raise NotFoundError("Customer not found")

        payment = scope.add(
            Payment,
            invoice_id=data.invoice_id,
            customer_id=customer_id,
            method=data.method,
            reference=data.reference,
            amount=float(to_money(data.amount)),
            status=PaymentStatus.COMPLETED,
            received_at=to_naive_utc(data.received_at),
            notes=data.notes
        )

        if invoice is not None and to_money(data.amount) >= to_money(invoice.total):
            invoice.status = InvoiceStatus.PAID
            invoice.paid_at = datetime.utcnow()

        await scope.db.commit()
        logger.info(
            f"Recorded payment {payment.id} of {payment.amount:.2f} for tenant {scope.tenant_id}"
            + (f" on invoice {invoice.number} ({invoice.status.value})" if invoice else "")
        )
        return await self.get_by_id(scope, payment.id)

    async def refund(self, scope: TenantScope, payment_id: int, amount: float, reason: str) -> Payment:
        """
        Refund all or part of a completed payment as a new negative payment.
        A full refund marks the original REFUNDED. The invoice status is left as is.
        """
        original = await scope.find(Payment, payment_id)
        if original is None:
            raise NotFoundError("Payment not found")

        if original.status != PaymentStatus.COMPLETED:
            raise BadRequestError("Can only refund completed payments")

        # Checked against this payment alone; earlier partial refunds are not subtracted
        refund_amount = to_money(amount)
        original_amount = to_money(original.amount)
        if refund_amount > original_amount:
            raise BadRequestError("Refund amount cannot exceed payment amount")

        refund = scope.add(
            Payment,
            invoice_id=original.invoice_id,
            customer_id=original.customer_id,
            method=original.method,
            reference=f"REFUND-{original.reference or original.id}",
            amount=float(-refund_amount),
            status=PaymentStatus.COMPLETED,
            received_at=datetime.utcnow(),
            notes=f"Refund: {reason}"
        )

        if refund_amount == original_amount:
            original.status = PaymentStatus.REFUNDED

        await scope.db.commit()
        logger.info(f"Refunded {refund_amount} of payment {original.id} (tenant {scope.tenant_id})")
        return await self.get_by_id(scope, refund.id)

    async def generate_receipt(self, scope: TenantScope, payment_id: int) -> Tuple[bytes, str]:
        payment = await self.get_by_id(scope, payment_id)
        tenant = await scope.db.get(Tenant, scope.tenant_id)

        customer_name = payment.customer.name if payment.customer else "Customer"
        invoice_number = payment.invoice.number if payment.invoice else None

        pdf_bytes = pdf_service.generate_receipt_pdf(payment, tenant, customer_name, invoice_number)
        filename = f"receipt-{payment.reference or payment.id}.pdf"

        if not payment.receipt_url:
            payment.receipt_url = pdf_service.save_pdf(pdf_bytes, f"receipts/{payment.id}.pdf")
            await scope.db.commit()

        return pdf_bytes, filename


payment_service = PaymentService()
