from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from pharmacare import MessagingError, UnsupportedChannelError
from shared.config import Settings
from shared.contracts.enums import ChannelType

logger = logging.getLogger(__name__)

WHATSAPP_PREFIX = "whatsapp:"
MESSAGES_PATH = "/2010-04-01/Accounts/{account_sid}/Messages.json"


@dataclass(frozen=True)
class OutboundMessage:
    channel: ChannelType
    to: str
    from_: str
    body: str

    def form(self) -> Dict[str, str]:
        return {"To": self.to, "From": self.from_, "Body": self.body}


class TwilioMessenger:
    """Messaging provider client for SMS and WhatsApp.

    Both channels go through the same Messages endpoint; WhatsApp addresses
    carry the ``whatsapp:`` scheme on both sides.
    """

    def __init__(
        self,
        account_sid: Optional[str],
        auth_token: Optional[str],
        sms_from: Optional[str],
        whatsapp_from: Optional[str],
        base_url: str = "https://api.twilio.com",
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.account_sid = account_sid
        self.sms_from = sms_from
        self.whatsapp_from = whatsapp_from
        auth = (account_sid, auth_token) if account_sid and auth_token else None
        self.client = httpx.Client(base_url=base_url, auth=auth, timeout=timeout, transport=transport)

    @classmethod
    def from_settings(cls, settings: Settings, transport: Optional[httpx.BaseTransport] = None) -> "TwilioMessenger":
        return cls(
            account_sid=settings.twilio_account_sid,
            auth_token=settings.twilio_auth_token,
            sms_from=settings.twilio_phone_number,
            whatsapp_from=settings.twilio_whatsapp_number,
            base_url=settings.twilio_api_base_url,
            timeout=settings.messaging_timeout_seconds,
            transport=transport,
        )

    @property
    def configured(self) -> bool:
        return self.client.auth is not None

    def build_message(self, channel: ChannelType | str, to: str, body: str) -> OutboundMessage:
        try:
            channel = ChannelType(channel)
        except ValueError:
            raise UnsupportedChannelError(f"unsupported delivery channel: {channel}") from None

        if channel == ChannelType.SMS:
            sender = self.sms_from
            recipient = to
        else:
            sender = f"{WHATSAPP_PREFIX}{self.whatsapp_from}" if self.whatsapp_from else None
            recipient = f"{WHATSAPP_PREFIX}{to}"

        if not sender:
            raise MessagingError(f"no sender number configured for {channel.value}")
        return OutboundMessage(channel=channel, to=recipient, from_=sender, body=body)

    def send(self, channel: ChannelType | str, to: str, body: str) -> Dict[str, Any]:
        if not self.configured:
            raise MessagingError("messaging provider credentials are not configured")

        message = self.build_message(channel, to, body)
        path = MESSAGES_PATH.format(account_sid=self.account_sid)
        try:
            response = self.client.post(path, data=message.form())
        except httpx.HTTPError as exc:
            raise MessagingError(f"messaging provider unreachable: {exc}") from exc

        payload = self._json(response)
        if response.is_error:
            detail = payload.get("message") or response.reason_phrase
            raise MessagingError(f"provider rejected message ({response.status_code}): {detail}")

        logger.debug("Provider accepted %s message sid=%s", message.channel.value, payload.get("sid"))
        return payload

    def close(self) -> None:
        self.client.close()

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        try:
            payload = response.json()
        except ValueError:
            return {}
        return payload if isinstance(payload, dict) else {"data": payload}
