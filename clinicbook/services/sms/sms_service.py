# ============================================================================
# clinicbook/services/sms/sms_service.py
# ============================================================================
"""Service for SMS operations"""
from typing import Dict, Optional
import logging

from twilio.rest import Client

from clinicbook.config.settings import settings

logger = logging.getLogger(__name__)


class SMSNotConfiguredError(RuntimeError):
    """Raised when Twilio credentials are missing"""


class SMSService:
    """Handles SMS sending operations"""

    def __init__(self, client: Optional[Client] = None, from_phone: Optional[str] = None):
        if client is None and settings.TWILIO_ACCOUNT_SID:
            client = Client(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN)
        self.client = client
        self.from_phone = from_phone or settings.TWILIO_FROM_NUMBER

    def send_sms(self, to_phone: str, message_body: str) -> Dict[str, str]:
        """Send SMS message via Twilio, returning the message SID as providerMessageId"""
        if not self.client:
            logger.error("Twilio client not initialized")
            raise SMSNotConfiguredError("Twilio credentials are not configured.")

        try:
            message = self.client.messages.create(
                to=to_phone,
                from_=self.from_phone,
                body=message_body
            )
        except Exception as e:
            logger.error(f"Error sending SMS: {str(e)}")
            raise

        logger.info(f"SMS {message.sid} sent to {to_phone}")
        return {"providerMessageId": message.sid}
