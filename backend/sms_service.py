"""
SMS delivery.

SMS_PROVIDER=mock logs the message; SMS_PROVIDER=http posts it as JSON to
SMS_API_URL with a bearer API key.
"""

import logging
import httpx
from config import settings

logger = logging.getLogger(__name__)


class SmsService:
    """Async SMS gateway client"""

    def __init__(self):
        self.provider = settings.SMS_PROVIDER
        self.api_url = settings.SMS_API_URL
        self.api_key = settings.SMS_API_KEY
        self.sender_id = settings.SMS_SENDER_ID

    async def send_sms(self, to_phone: str, message: str) -> bool:
        """Returns True if the gateway accepted the message"""
        if self.provider == "mock":
            logger.info(f"[MOCK SMS] to {to_phone} from {self.sender_id}: {message}")
            return True

        if not self.api_url:
            logger.error(f"SMS_API_URL not configured - SMS not sent to {to_phone}")
            return False

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    self.api_url,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json={"to": to_phone, "from": self.sender_id, "message": message},
                    timeout=15.0
                )
            if response.is_success:
                logger.info(f"SMS sent to {to_phone}")
                return True
            logger.error(f"SMS gateway error for {to_phone}: {response.status_code} - {response.text}")
            return False
        except httpx.HTTPError as e:
            logger.error(f"Failed to send SMS to {to_phone}: {str(e)}")
            return False

    async def send_invoice_notification(
        self,
        to_phone: str,
        customer_name: str,
        tenant_name: str,
        invoice_number: str,
        total: float,
        due_date: str
    ) -> bool:
        message = (
            f"Dear {customer_name}, your {tenant_name} invoice {invoice_number} "
            f"for {total:,.2f} is due on {due_date}. Thank you."
        )
        return await self.send_sms(to_phone, message)


sms_service = SmsService()
