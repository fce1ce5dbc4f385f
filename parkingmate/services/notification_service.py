# parkingmate/services/notification_service.py
"""
Outbound customer notifications (SendGrid dynamic templates).
Used by the session reconciler when an unregistered customer's car is seen.

Delivery is fire-and-forget: failures are logged and reported as False,
never raised, so camera-event processing is not affected by mail outages.
"""

from typing import Optional

import httpx

from parkingmate.config import settings
from parkingmate.utils.logger import get_logger

logger = get_logger(__name__)


class EmailNotifier:
    def __init__(self, api_key: Optional[str] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key if api_key is not None else settings.SENDGRID_API_KEY
        self._transport = transport

    def registration_link(self, token: str) -> str:
        return f"{settings.APP_BASE_URL.rstrip('/')}/customer/register?token={token}"

    async def send_vehicle_detection_email(self, email: str, name: str, token: str) -> bool:
        if not self.api_key:
            logger.warning(f"[EMAIL] SendGrid API key not configured — vehicle detection mail to {email} not sent")
            return False

        payload = {
            "personalizations": [{
                "to": [{"email": email, "name": name}],
                "dynamic_template_data": {
                    "customer_name": name,
                    "registration_link": self.registration_link(token),
                    "expires_hours": settings.REGISTRATION_TOKEN_EXPIRY_HOURS,
                },
            }],
            "from": {"email": settings.SENDGRID_FROM_EMAIL, "name": settings.SENDGRID_FROM_NAME},
            "template_id": settings.SENDGRID_VEHICLE_DETECTION_TEMPLATE_ID,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}

        try:
            async with httpx.AsyncClient(timeout=settings.SENDGRID_TIMEOUT_SECONDS, transport=self._transport) as client:
                response = await client.post(settings.SENDGRID_API_URL, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"[EMAIL] Vehicle detection mail to {email} failed: {e}")
            return False

        if response.status_code != 202:
            logger.warning(f"[EMAIL] SendGrid returned HTTP {response.status_code} for {email}")
            return False
        logger.info(f"[EMAIL] Vehicle detection mail sent to {email}")
        return True


email_notifier = EmailNotifier()
