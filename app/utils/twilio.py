import asyncio
import re
from typing import Final, Mapping, Optional

import httpx
from twilio.request_validator import RequestValidator as TwilioRequestValidator

from app.config import settings
from app.obs.logger import log_event

TWILIO_API_BASE: Final[str] = "https://api.twilio.com/2010-04-01"

_NON_DIGIT = re.compile(r"\D")


def format_phone_number(phone_number: Optional[str]) -> Optional[str]:
    """
    Normalise a US number to E.164 (+1XXXXXXXXXX). Returns None if it can't.
    """
    if not phone_number:
        return None
    cleaned = _NON_DIGIT.sub("", phone_number)
    if len(cleaned) == 10:
        return f"+1{cleaned}"
    if len(cleaned) == 11 and cleaned.startswith("1"):
        return f"+{cleaned}"
    if len(cleaned) == 11:
        return f"+1{cleaned}"
    return None


def validate_twilio_signature(
    url: str,
    params: Mapping[str, str],
    signature: Optional[str],
    auth_token: Optional[str] = None,
) -> bool:
    """
    Check the X-Twilio-Signature header of an inbound webhook.
    """
    token = auth_token if auth_token is not None else settings.TWILIO_AUTH_TOKEN
    if not token or not signature:
        return False
    try:
        return TwilioRequestValidator(token).validate(url, dict(params), signature)
    except Exception as e:
        log_event("signature_validation_error", level="ERROR", error=str(e))
        return False


class SmsTransport:
    """Outbound SMS over Twilio's Messages REST API.

    ``deliver`` returns False when Twilio rejects the message and raises on
    network errors or when the per-delivery timeout elapses.
    """

    def __init__(
        self,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        from_number: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.account_sid = account_sid if account_sid is not None else settings.TWILIO_ACCOUNT_SID
        self.auth_token = auth_token if auth_token is not None else settings.TWILIO_AUTH_TOKEN
        self.from_number = from_number if from_number is not None else settings.TWILIO_PHONE_NUMBER
        self.timeout = timeout if timeout is not None else settings.DELIVERY_TIMEOUT_SECONDS
        self._client = client

    def is_configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    @property
    def messages_url(self) -> str:
        return f"{TWILIO_API_BASE}/Accounts/{self.account_sid}/Messages.json"

    async def deliver(self, recipient: str, text: str) -> bool:
        return await asyncio.wait_for(self._post(recipient, text), timeout=self.timeout)

    async def _post(self, recipient: str, text: str) -> bool:
        data = {"From": self.from_number, "To": recipient, "Body": text}
        auth = (self.account_sid, self.auth_token)
        if self._client is not None:
            response = await self._client.post(self.messages_url, auth=auth, data=data)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.messages_url, auth=auth, data=data)

        if response.status_code in (200, 201):
            log_event("sms_sent", recipient=recipient)
            return True
        log_event("sms_rejected", level="WARNING", recipient=recipient, status=response.status_code)
        return False
