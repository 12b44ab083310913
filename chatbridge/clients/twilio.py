"""Twilio REST client and webhook helpers."""

import base64
import hashlib
import hmac
from dataclasses import dataclass
from urllib.parse import parse_qsl

import httpx

from chatbridge.utils.logging import get_logger

logger = get_logger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"


@dataclass
class TwilioConfig:
    """Credentials and numbers for outbound SMS."""

    account_sid: str
    auth_token: str
    from_number: str
    to_number: str

    @property
    def configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number and self.to_number)


@dataclass
class SMSSendResult:
    """Outcome of an outbound SMS."""

    success: bool
    sid: str | None = None
    error: str | None = None


class TwilioClient:
    """Minimal Twilio Messages API client."""

    def __init__(self, config: TwilioConfig, http_client: httpx.AsyncClient | None = None, timeout: float = 15.0):
        """Initialize Twilio client.

        Args:
            config: Account credentials and phone numbers
            http_client: Optional shared client (tests inject a mock transport here)
            timeout: Request timeout in seconds
        """
        self.config = config
        self._http_client = http_client
        self.timeout = timeout

    @property
    def messages_url(self) -> str:
        return f"{TWILIO_API_BASE}/Accounts/{self.config.account_sid}/Messages.json"

    async def send_sms(self, body: str, to: str | None = None) -> SMSSendResult:
        """Send an SMS to the configured owner number (or `to`).

        Transport errors and non-2xx responses are returned as failures, never raised.
        """
        form = {
            "To": to or self.config.to_number,
            "From": self.config.from_number,
            "Body": body,
        }
        auth = (self.config.account_sid, self.config.auth_token)

        try:
            if self._http_client is not None:
                response = await self._http_client.post(self.messages_url, data=form, auth=auth)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.messages_url, data=form, auth=auth)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error(f"Error sending SMS: {e}")
            return SMSSendResult(success=False, error=str(e) or type(e).__name__)

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if not response.is_success:
            logger.error(f"Twilio API error ({response.status_code}): {data}")
            return SMSSendResult(success=False, error=data.get("message") or "Failed to send SMS")

        logger.info(f"SMS sent, sid: {data.get('sid')}")
        return SMSSendResult(success=True, sid=data.get("sid"))


def compute_twilio_signature(auth_token: str, url: str, params: dict[str, str]) -> str:
    """Compute the X-Twilio-Signature value for a request.

    Parameters are sorted by key and appended to the URL as key+value pairs,
    so the result does not depend on the order they were received in.
    """
    payload = url + "".join(key + params[key] for key in sorted(params))
    digest = hmac.new(auth_token.encode("utf-8"), payload.encode("utf-8"), hashlib.sha1).digest()
    return base64.b64encode(digest).decode("ascii")


def validate_twilio_signature(auth_token: str, signature: str, url: str, params: dict[str, str]) -> bool:
    """Check a webhook signature against the expected value."""
    if not signature:
        return False
    expected = compute_twilio_signature(auth_token, url, params)
    return hmac.compare_digest(expected, signature)


def parse_twilio_webhook(body: str) -> dict[str, str]:
    """Parse an application/x-www-form-urlencoded webhook body."""
    return dict(parse_qsl(body, keep_blank_values=True))
