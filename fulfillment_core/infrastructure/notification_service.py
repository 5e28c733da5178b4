from twilio.base.exceptions import TwilioException
from twilio.rest import Client
import logging
from fulfillment_core.core.config import settings
from fulfillment_core.domain.messages import PICKUP_CODE_SMS, SETTLEMENT_ADMIN_SMS
from fulfillment_core.interfaces.INotificationService import INotificationService

logger = logging.getLogger(__name__)

def _whatsapp(number: str) -> str:
    # Twilio requires the "whatsapp:" prefix
    return number if number.startswith("whatsapp:") else f"whatsapp:{number}"

class NotificationService(INotificationService):
    def __init__(self, account_sid=None, auth_token=None, from_number=None, admin_number=None):
        self.client = None
        self.enabled = False
        self.from_number = from_number or settings.TWILIO_FROM_NUMBER
        self.admin_number = admin_number or settings.ADMIN_PHONE_NUMBER

        account_sid = account_sid or settings.TWILIO_ACCOUNT_SID
        auth_token = auth_token or settings.TWILIO_AUTH_TOKEN

        # Only initialize if credentials exist in .env
        if account_sid and auth_token and self.from_number:
            try:
                self.client = Client(account_sid, auth_token)
                self.enabled = True
                logger.info("✅ NotificationService: Twilio Client Initialized")
            except TwilioException as e:
                logger.error(f"❌ Failed to initialize Twilio Client: {e}")
        else:
            logger.warning("⚠️ NotificationService: Credentials missing in .env. Notifications disabled.")

    def send_pickup_code(self, phone: str, order_number: str, code: str, ttl_minutes: int) -> bool:
        """Sends the pickup code to the customer. The code itself is never logged."""
        if not self.enabled or not phone:
            logger.warning(f"⚠️ Pickup code for {order_number} not sent (notifications disabled or no phone).")
            return False

        body = PICKUP_CODE_SMS.format(order_number=order_number, code=code, ttl_minutes=ttl_minutes)
        return self._send(phone, body, f"pickup code for {order_number}")

    def notify_admin_settlement(self, summary: str) -> bool:
        if not self.enabled or not self.admin_number:
            logger.warning("⚠️ NotificationService disabled or Admin number missing.")
            return False

        return self._send(self.admin_number, SETTLEMENT_ADMIN_SMS.format(summary=summary), "settlement summary")

    def _send(self, to: str, body: str, what: str) -> bool:
        try:
            self.client.messages.create(
                from_=_whatsapp(self.from_number),
                body=body,
                to=_whatsapp(to)
            )
            logger.info(f"✅ Sent {what}")
            return True
        except TwilioException as e:
            logger.error(f"❌ Failed to send {what}: {e}")
            return False
