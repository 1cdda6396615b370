from datetime import datetime

import pytest
from sqlalchemy import select

from billing_service import billing_service
from conftest import subscription_by_username
from errors import BadRequestError, NotFoundError
from models import Invoice, InvoiceStatus, PaymentMethod, PaymentStatus
from payment_service import payment_service
from schemas import PaymentCreate


@pytest.fixture
async def john_invoice(scope, db) -> Invoice:
    """PENDING invoice of 58.99 for john_smith"""
    await billing_service.run_billing(scope, billing_date=datetime(2024, 2, 1))
    john = await subscription_by_username(db, "john_smith")
    return (await db.execute(select(Invoice).where(Invoice.subscription_id == john.id))).scalar_one()


async def test_full_payment_marks_invoice_paid(scope, john_invoice):
    payment = await payment_service.record(scope, PaymentCreate(
        invoice_id=john_invoice.id, method=PaymentMethod.CASH, amount=58.99, reference="CASH-1"
    ))

    assert payment.status == PaymentStatus.COMPLETED
    assert payment.customer_id == john_invoice.customer_id
    assert payment.customer.name == "John Smith"
    assert john_invoice.status == InvoiceStatus.PAID
    assert john_invoice.paid_at is not None


async def test_partial_payment_leaves_invoice_pending(scope, john_invoice):
    await payment_service.record(scope, PaymentCreate(
        invoice_id=john_invoice.id, method=PaymentMethod.BANK_TRANSFER, amount=20
    ))
    await payment_service.record(scope, PaymentCreate(
        invoice_id=john_invoice.id, method=PaymentMethod.BANK_TRANSFER, amount=38.99
    ))

    assert john_invoice.status == InvoiceStatus.PENDING
    assert john_invoice.paid_at is None


async def test_payment_for_unknown_invoice(scope):
    with pytest.raises(NotFoundError):
        await payment_service.record(scope, PaymentCreate(invoice_id=999, method=PaymentMethod.CASH, amount=10))


async def test_full_refund(scope, john_invoice):
    payment = await payment_service.record(scope, PaymentCreate(
        invoice_id=john_invoice.id, method=PaymentMethod.CASH, amount=58.99, reference="CASH-1"
    ))

    refund = await payment_service.refund(scope, payment.id, 58.99, "Duplicate charge")

    assert refund.amount == pytest.approx(-58.99)
    assert refund.reference == "REFUND-CASH-1"
    assert refund.notes == "Refund: Duplicate charge"
    assert refund.invoice_id == john_invoice.id
    assert payment.status == PaymentStatus.REFUNDED
    # The invoice keeps its status
    assert john_invoice.status == InvoiceStatus.PAID

    with pytest.raises(BadRequestError, match="Can only refund completed payments"):
        await payment_service.refund(scope, payment.id, 1, "Again")


async def test_partial_refund_keeps_payment_completed(scope, john_invoice):
    payment = await payment_service.record(scope, PaymentCreate(
        invoice_id=john_invoice.id, method=PaymentMethod.CASH, amount=58.99
    ))

    refund = await payment_service.refund(scope, payment.id, 10, "Outage credit")

    assert refund.amount == pytest.approx(-10)
    assert refund.reference == f"REFUND-{payment.id}"
    assert payment.status == PaymentStatus.COMPLETED


async def test_refund_cannot_exceed_payment(scope, john_invoice):
    payment = await payment_service.record(scope, PaymentCreate(
        invoice_id=john_invoice.id, method=PaymentMethod.CASH, amount=58.99
    ))

    with pytest.raises(BadRequestError, match="Refund amount cannot exceed payment amount"):
        await payment_service.refund(scope, payment.id, 59, "Too much")


async def test_receipt_is_stored_once(scope, john_invoice):
    payment = await payment_service.record(scope, PaymentCreate(
        invoice_id=john_invoice.id, method=PaymentMethod.CHEQUE, amount=58.99, reference="CHQ-42"
    ))

    content, filename = await payment_service.generate_receipt(scope, payment.id)

    assert content.startswith(b"%PDF")
    assert filename == "receipt-CHQ-42.pdf"
    assert payment.receipt_url == f"pdfs/receipts/{payment.id}.pdf"


async def test_each_partial_refund_is_checked_against_the_original_amount(scope, john_invoice):
    payment = await payment_service.record(scope, PaymentCreate(
        invoice_id=john_invoice.id, method=PaymentMethod.CASH, amount=58.99
    ))

    first = await payment_service.refund(scope, payment.id, 40, "Outage credit")
    second = await payment_service.refund(scope, payment.id, 40, "Second outage credit")

    assert (first.amount, second.amount) == (pytest.approx(-40), pytest.approx(-40))
    original = await payment_service.get_by_id(scope, payment.id)
    assert original.status == PaymentStatus.COMPLETED
