"""
PDF generation service for invoices and payment receipts.
Uses WeasyPrint to convert the HTML documents to PDF format.
"""

import io
import logging
from pathlib import Path

from config import settings
from email_service import generate_invoice_html, generate_payment_receipt_html

logger = logging.getLogger(__name__)

DATE_FORMAT = "%B %d, %Y"


def render_pdf(html_content: str) -> bytes:
    """Convert an HTML document to PDF bytes"""
    # Imported on use: WeasyPrint needs the Pango system libraries
    from weasyprint import HTML

    pdf_buffer = io.BytesIO()
    HTML(string=html_content).write_pdf(pdf_buffer)
    return pdf_buffer.getvalue()


def save_pdf(pdf_bytes: bytes, relative_path: str) -> str:
    """Write a PDF under PDF_STORAGE_DIR and return its public path"""
    target = Path(settings.PDF_STORAGE_DIR) / relative_path
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(pdf_bytes)
    logger.info(f"Stored PDF {target} ({len(pdf_bytes)} bytes)")
    return f"pdfs/{relative_path}"


def _branding(tenant) -> tuple:
    branding = tenant.branding or {}
    return branding.get("companyInfo") or {}, branding.get("primaryColor") or "#3B82F6"


def invoice_html(invoice, tenant) -> str:
    """
    Invoice document for an invoice with items and customer loaded.
    """
    company, color = _branding(tenant)
    customer = invoice.customer
    period = ""
    if invoice.period_start and invoice.period_end:
        period = f"{invoice.period_start.strftime(DATE_FORMAT)} - {invoice.period_end.strftime(DATE_FORMAT)}"

    return generate_invoice_html(
        invoice_number=invoice.number,
        issue_date=invoice.created_at.strftime(DATE_FORMAT),
        due_date=invoice.due_date.strftime(DATE_FORMAT),
        period=period,
        status=invoice.status.value,
        tenant_name=tenant.name,
        company=company,
        primary_color=color,
        customer_name=customer.name if customer else "Customer",
        customer_phone=customer.phone if customer else "",
        customer_email=customer.email if customer else "",
        items=[
            {
                'label': item.label,
                'quantity': item.quantity,
                'unit_price': item.unit_price,
                'amount': item.amount
            }
            for item in invoice.items
        ],
        subtotal=invoice.subtotal,
        tax_amount=invoice.tax_amount,
        total=invoice.total
    )


def generate_invoice_pdf(invoice, tenant) -> bytes:
    try:
        pdf_bytes = render_pdf(invoice_html(invoice, tenant))
        logger.info(f"Generated PDF invoice {invoice.number} ({len(pdf_bytes)} bytes)")
        return pdf_bytes
    except Exception as e:
        logger.error(f"Failed to generate PDF invoice {invoice.number}: {str(e)}")
        raise


def generate_receipt_pdf(payment, tenant, customer_name: str, invoice_number: str = None) -> bytes:
    """Receipt PDF for a recorded payment"""
    company, color = _branding(tenant)
    receipt_number = f"RCPT-{payment.id:08d}"

    html_content = generate_payment_receipt_html(
        receipt_number=receipt_number,
        received_date=payment.received_at.strftime(DATE_FORMAT),
        tenant_name=tenant.name,
        company=company,
        primary_color=color,
        customer_name=customer_name,
        invoice_number=invoice_number or "",
        method=payment.method.value.replace("_", " ").title(),
        reference=payment.reference or "",
        amount=payment.amount,
        notes=payment.notes or ""
    )

    try:
        pdf_bytes = render_pdf(html_content)
        logger.info(f"Generated PDF receipt {receipt_number} ({len(pdf_bytes)} bytes)")
        return pdf_bytes
    except Exception as e:
        logger.error(f"Failed to generate PDF receipt {receipt_number}: {str(e)}")
        raise
