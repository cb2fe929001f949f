import os
from twilio.rest import Client
import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

# --- Twilio Configuration ---
TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
TWILIO_PHONE_NUMBER = os.getenv("TWILIO_PHONE_NUMBER")
TWILIO_WHATSAPP_NUMBER = os.getenv("TWILIO_WHATSAPP_NUMBER")

SUPPORTED_CHANNELS = ("sms", "whatsapp")


class TwilioMessenger:
    """Outbound SMS / WhatsApp through Twilio. Failures are reported, never raised."""

    def __init__(self):
        self._client = None

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = Client(TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN)
        return self._client

    def _sender(self, channel: str) -> Optional[str]:
        if channel == "whatsapp":
            return f"whatsapp:{TWILIO_WHATSAPP_NUMBER}" if TWILIO_WHATSAPP_NUMBER else None
        return TWILIO_PHONE_NUMBER

    def send_message(self, to_phone_number: str, body: str, channel: str = "sms") -> Dict[str, Any]:
        """Send one message, returns {message_id, status}"""
        if channel not in SUPPORTED_CHANNELS:
            logger.error(f"Unsupported messaging channel: {channel}")
            return {"message_id": None, "status": "unsupported_channel"}

        sender = self._sender(channel)
        if not all([TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, sender]):
            logger.error(f"Twilio settings are not fully configured. Cannot send {channel} message.")
            return {"message_id": None, "status": "not_configured"}

        recipient = f"whatsapp:{to_phone_number}" if channel == "whatsapp" else to_phone_number

        try:
            message = self.client.messages.create(
                body=body,
                from_=sender,
                to=recipient
            )
            logger.info(f"{channel} message sent successfully to {to_phone_number}, SID: {message.sid}")
            return {"message_id": message.sid, "status": message.status or "queued"}
        except Exception as e:
            logger.error(f"Failed to send {channel} message to {to_phone_number}: {e}")
            return {"message_id": None, "status": "failed"}


messenger = TwilioMessenger()


# Message templates
def get_order_status_message(order_data: dict, new_status: str, quoted_amount: Optional[float] = None) -> str:
    """Short text sent to the vendor when their order moves forward"""
    order_number = order_data.get("order_number", order_data.get("id"))

    if new_status == "quoted":
        amount = quoted_amount if quoted_amount is not None else order_data.get("quoted_amount")
        return f"VendorConnect: Your order #{order_number} has been quoted at ₹{amount}. Open the app to confirm."
    if new_status == "shipped":
        return f"VendorConnect: Your order #{order_number} has been shipped."
    if new_status == "delivered":
        return f"VendorConnect: Your order #{order_number} has been delivered. Please report quality issues within 2 hours."
    if new_status == "cancelled":
        return f"VendorConnect: Your order #{order_number} has been cancelled."
    return f"VendorConnect: Your order #{order_number} is now {new_status.replace('_', ' ')}."