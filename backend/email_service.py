"""
Email service for invoices, payment receipts and password resets.
Uses Postmark HTTP API for email delivery.

The HTML document templates here are shared with pdf_service, which
renders the same markup to PDF.
"""

import base64
import httpx
import logging
from html import escape
from config import settings

logger = logging.getLogger(__name__)


def _money(value: float) -> str:
    return f"{value:,.2f}"


def _company_lines(company: dict) -> str:
    lines = []
    for key in ("address", "phone", "email", "website"):
        if company.get(key):
            lines.append(f"<p>{escape(str(company[key]))}</p>")
    return "\n".join(lines)


DOCUMENT_STYLE = """
        body {{ font-family: Arial, sans-serif; line-height: 1.5; color: #333; margin: 0; padding: 20px; }}
        .container {{ max-width: 720px; margin: 0 auto; }}
        .header {{ display: flex; justify-content: space-between; border-bottom: 3px solid {color}; padding-bottom: 16px; margin-bottom: 20px; }}
        .header h1 {{ margin: 0; font-size: 26px; color: {color}; }}
        .header p {{ margin: 2px 0; font-size: 12px; color: #6b7280; }}
        .meta {{ text-align: right; font-size: 13px; }}
        .meta div {{ margin: 3px 0; }}
        .bill-to {{ margin: 20px 0; font-size: 14px; }}
        .items-table {{ width: 100%; border-collapse: collapse; margin: 20px 0; }}
        .items-table th {{ background: #f3f4f6; padding: 10px; text-align: left; border-bottom: 2px solid {color}; font-size: 13px; }}
        .items-table td {{ padding: 8px 10px; border-bottom: 1px solid #e5e7eb; font-size: 13px; }}
        .totals {{ width: 280px; margin-left: auto; font-size: 14px; }}
        .totals div {{ display: flex; justify-content: space-between; padding: 4px 0; }}
        .totals .grand-total {{ font-weight: bold; font-size: 17px; border-top: 2px solid #333; margin-top: 6px; padding-top: 8px; }}
        .status {{ display: inline-block; padding: 3px 10px; border-radius: 10px; background: {color}; color: white; font-size: 12px; font-weight: bold; }}
        .footer {{ text-align: center; margin-top: 40px; padding-top: 16px; border-top: 1px solid #e5e7eb; color: #6b7280; font-size: 12px; }}
"""


def generate_invoice_html(
    invoice_number: str,
    issue_date: str,
    due_date: str,
    period: str,
    status: str,
    tenant_name: str,
    company: dict,
    primary_color: str,
    customer_name: str,
    customer_phone: str,
    customer_email: str,
    items: list,
    subtotal: float,
    tax_amount: float,
    total: float
) -> str:
    """Generate the invoice document (used for the PDF and the email body)"""

    tenant_name = escape(tenant_name)
    customer_name = escape(customer_name)
    customer_phone = escape(customer_phone or "")
    customer_email = escape(customer_email or "")

    items_html = ""
    for item in items:
        items_html += f"""
            <tr>
                <td>{escape(item['label'])}</td>
                <td style="text-align: center;">{item['quantity']:g}</td>
                <td style="text-align: right;">{_money(item['unit_price'])}</td>
                <td style="text-align: right; font-weight: bold;">{_money(item['amount'])}</td>
            </tr>"""

    style = DOCUMENT_STYLE.format(color=escape(primary_color))
    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <style>{style}</style>
</head>
<body>
    <div class="container">
        <div class="header">
            <div>
                <h1>{tenant_name}</h1>
                {_company_lines(company)}
            </div>
            <div class="meta">
                <h2 style="margin: 0;">INVOICE</h2>
                <div><strong>No:</strong> {escape(invoice_number)}</div>
                <div><strong>Date:</strong> {issue_date}</div>
                <div><strong>Due:</strong> {due_date}</div>
                <div><span class="status">{escape(status)}</span></div>
            </div>
        </div>

        <div class="bill-to">
            <strong>Bill To:</strong><br>
            {customer_name}<br>
            {customer_phone}{'<br>' + customer_email if customer_email else ''}
            {f'<p><strong>Service period:</strong> {period}</p>' if period else ''}
        </div>

        <table class="items-table">
            <thead>
                <tr>
                    <th>Description</th>
                    <th style="text-align: center;">Qty</th>
                    <th style="text-align: right;">Unit Price</th>
                    <th style="text-align: right;">Amount</th>
                </tr>
            </thead>
            <tbody>{items_html}
            </tbody>
        </table>

        <div class="totals">
            <div><span>Subtotal:</span><span>{_money(subtotal)}</span></div>
            <div><span>Tax:</span><span>{_money(tax_amount)}</span></div>
            <div class="grand-total"><span>TOTAL:</span><span>{_money(total)}</span></div>
        </div>

        <div class="footer">
            <p><strong>Thank you for your business!</strong></p>
            <p>Please pay by {due_date} quoting invoice {escape(invoice_number)}.</p>
        </div>
    </div>
</body>
</html>"""


def generate_invoice_plain(
    invoice_number: str,
    customer_name: str,
    tenant_name: str,
    total: float,
    due_date: str
) -> str:
    """Plain text invoice notification (fallback)"""

    return f"""Invoice {invoice_number}

Hello {customer_name},

Your invoice {invoice_number} from {tenant_name} is attached.

Amount due: {_money(total)}
Due date: {due_date}

Thank you for your business!

---
{tenant_name}
This is an automated message, please do not reply to this email.
"""


def generate_payment_receipt_html(
    receipt_number: str,
    received_date: str,
    tenant_name: str,
    company: dict,
    primary_color: str,
    customer_name: str,
    invoice_number: str,
    method: str,
    reference: str,
    amount: float,
    notes: str
) -> str:
    """Generate the payment receipt document"""

    tenant_name = escape(tenant_name)
    customer_name = escape(customer_name)
    style = DOCUMENT_STYLE.format(color=escape(primary_color))

    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <style>{style}</style>
</head>
<body>
    <div class="container">
        <div class="header">
            <div>
                <h1>{tenant_name}</h1>
                {_company_lines(company)}
            </div>
            <div class="meta">
                <h2 style="margin: 0;">RECEIPT</h2>
                <div><strong>No:</strong> {escape(receipt_number)}</div>
                <div><strong>Date:</strong> {received_date}</div>
            </div>
        </div>

        <div class="bill-to">
            <div><strong>Received from:</strong> {customer_name}</div>
            {f'<div><strong>Invoice:</strong> {escape(invoice_number)}</div>' if invoice_number else ''}
            <div><strong>Payment method:</strong> {escape(method)}</div>
            {f'<div><strong>Reference:</strong> {escape(reference)}</div>' if reference else ''}
            {f'<div><strong>Notes:</strong> {escape(notes)}</div>' if notes else ''}
        </div>

        <div class="totals">
            <div class="grand-total"><span>AMOUNT:</span><span>{_money(amount)}</span></div>
        </div>

        <div class="footer">
            <p><strong>Thank you for your payment!</strong></p>
        </div>
    </div>
</body>
</html>"""


def generate_password_reset_html(
    full_name: str,
    reset_url: str,
    expires_minutes: int
) -> str:
    """Generate HTML email for password reset"""

    full_name = escape(full_name)

    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <style>
        body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; margin: 0; padding: 20px; background: #f9fafb; }}
        .container {{ max-width: 600px; margin: 0 auto; background: white; padding: 30px; border-radius: 8px; }}
        .button {{ display: inline-block; padding: 14px 28px; background: #3B82F6; color: white; text-decoration: none; border-radius: 6px; margin: 20px 0; font-weight: bold; }}
        .warning-box {{ background: #fef3c7; border-left: 4px solid #f59e0b; padding: 12px; margin: 20px 0; border-radius: 4px; }}
        .footer {{ text-align: center; padding: 20px; color: #6b7280; font-size: 12px; margin-top: 30px; border-top: 1px solid #e5e7eb; }}
    </style>
</head>
<body>
    <div class="container">
        <h1 style="color: #3B82F6;">Password Reset Request</h1>
        <p>Hello <strong>{full_name}</strong>,</p>
        <p>We received a request to reset the password of your billing account.</p>

        <div style="text-align: center;">
            <a href="{reset_url}" class="button">Reset Password</a>
        </div>
        <p style="font-size: 14px; color: #6b7280; text-align: center;">Or copy this link: {reset_url}</p>

        <div class="warning-box">
            <p style="margin: 0;">This link will expire in {expires_minutes} minutes. If you didn't request a password reset, please ignore this email.</p>
        </div>

        <div class="footer">
            <p>This is an automated message, please do not reply to this email.</p>
        </div>
    </div>
</body>
</html>"""


def generate_password_reset_plain(
    full_name: str,
    reset_url: str,
    expires_minutes: int
) -> str:
    """Generate plain text email for password reset (fallback)"""

    return f"""Password Reset Request

Hello {full_name},

We received a request to reset the password of your billing account.

Open the link below to choose a new password:
{reset_url}

This link will expire in {expires_minutes} minutes. If you didn't request a password reset, please ignore this email.

---
This is an automated message, please do not reply to this email.
"""


class EmailService:
    """Async email service using Postmark HTTP API"""

    POSTMARK_API_URL = "https://api.postmarkapp.com/email"

    def __init__(self):
        self.server_token = settings.POSTMARK_SERVER_TOKEN
        self.from_email = settings.POSTMARK_FROM_EMAIL
        self.from_name = settings.POSTMARK_FROM_NAME
        self.enabled = settings.POSTMARK_ENABLED
        self.test_mode = settings.EMAIL_TEST_MODE

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        plain_content: str,
        pdf_attachment: bytes = None,
        pdf_filename: str = None
    ) -> bool:
        """
        Send email via Postmark HTTP API.

        Returns:
            True if email sent successfully, False otherwise
        """

        # Test mode - log email instead of sending
        if self.test_mode:
            logger.info(f"[TEST MODE] Email to {to_email}: {subject}\n{plain_content}")
            return True

        if not self.enabled:
            logger.warning(f"Postmark disabled - email not sent to {to_email}")
            return False

        if not self.server_token:
            logger.error(f"POSTMARK_SERVER_TOKEN not configured - email not sent to {to_email}")
            return False

        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "X-Postmark-Server-Token": self.server_token
        }

        payload = {
            "From": f"{self.from_name} <{self.from_email}>",
            "To": to_email,
            "Subject": subject,
            "HtmlBody": html_content,
            "TextBody": plain_content,
            "MessageStream": "outbound"
        }

        if pdf_attachment and pdf_filename:
            payload["Attachments"] = [
                {
                    "Name": pdf_filename,
                    "Content": base64.b64encode(pdf_attachment).decode('utf-8'),
                    "ContentType": "application/pdf"
                }
            ]

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    self.POSTMARK_API_URL,
                    headers=headers,
                    json=payload,
                    timeout=30.0
                )

            if response.status_code == 200:
                logger.info(f"Email sent successfully to {to_email}")
                return True

            logger.error(f"Postmark API error for {to_email}: {response.status_code} - {response.text}")
            return False

        except httpx.TimeoutException:
            logger.error(f"Timeout sending email to {to_email}")
            return False

        except httpx.HTTPError as e:
            logger.error(f"Failed to send email to {to_email}: {str(e)}")
            return False

    async def send_invoice_email(
        self,
        to_email: str,
        customer_name: str,
        tenant_name: str,
        invoice_number: str,
        total: float,
        due_date: str,
        html_content: str,
        pdf_bytes: bytes,
        pdf_filename: str
    ) -> bool:
        """Send an invoice with its PDF attached"""

        plain_content = generate_invoice_plain(
            invoice_number=invoice_number,
            customer_name=customer_name,
            tenant_name=tenant_name,
            total=total,
            due_date=due_date
        )

        logger.info(f"Preparing invoice email {invoice_number} for {to_email}")

        return await self.send_email(
            to_email=to_email,
            subject=f"Invoice {invoice_number} - {tenant_name}",
            html_content=html_content,
            plain_content=plain_content,
            pdf_attachment=pdf_bytes,
            pdf_filename=pdf_filename
        )

    async def send_password_reset_email(
        self,
        user_email: str,
        user_full_name: str,
        reset_url: str
    ) -> bool:
        """
        Send password reset email to user.

        Args:
            user_email: User's email address
            user_full_name: User's full name
            reset_url: Link to the reset page, carrying the token

        Returns:
            True if email sent successfully, False otherwise
        """
        expires = settings.PASSWORD_RESET_EXPIRE_MINUTES

        html_content = generate_password_reset_html(
            full_name=user_full_name,
            reset_url=reset_url,
            expires_minutes=expires
        )
        plain_content = generate_password_reset_plain(
            full_name=user_full_name,
            reset_url=reset_url,
            expires_minutes=expires
        )

        logger.info(f"Preparing password reset email for {user_email}")

        return await self.send_email(
            to_email=user_email,
            subject="Password Reset Request",
            html_content=html_content,
            plain_content=plain_content
        )


email_service = EmailService()
