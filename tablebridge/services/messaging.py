"""SMS delivery and caller lookup through the Twilio REST API.

The Twilio SDK is synchronous, so every call runs in a worker thread to
keep the event loop free for audio relay.
"""

from __future__ import annotations

import asyncio
from typing import Protocol

from loguru import logger
from twilio.rest import Client as TwilioClient

from tablebridge.config import TwilioConfig
from tablebridge.services.menu import MenuLine


class MenuLookup(Protocol):
    async def search(self, query: str, limit: int = 8) -> list[MenuLine]: ...


class Messenger(Protocol):
    async def deliver(self, to: str, body: str) -> None: ...

    async def resolve_caller_address(self, call_id: str) -> str: ...


def with_sms_suffix(body: str, suffix: str) -> str:
    """Append the compliance suffix unless the body already ends with it."""
    if not suffix or body.endswith(suffix):
        return body
    return body + suffix


class TwilioMessenger:
    """Messenger backed by the Twilio REST client."""

    def __init__(self, config: TwilioConfig, client: TwilioClient | None = None) -> None:
        self.config = config
        self._client = client

    @property
    def client(self) -> TwilioClient:
        if self._client is None:
            self._client = TwilioClient(self.config.account_sid, self.config.auth_token)
        return self._client

    async def deliver(self, to: str, body: str) -> None:
        """Send one SMS. Raises the SDK's exception on failure."""
        if not to:
            raise ValueError("No destination number")
        final_body = with_sms_suffix(body, self.config.sms_suffix)

        kwargs = {"to": to, "body": final_body}
        if self.config.messaging_service_sid:
            kwargs["messaging_service_sid"] = self.config.messaging_service_sid
        else:
            kwargs["from_"] = self.config.from_number

        message = await asyncio.to_thread(self.client.messages.create, **kwargs)
        logger.info(f"SMS sent to {to}: sid={message.sid}")

    async def resolve_caller_address(self, call_id: str) -> str:
        """Look up the number that placed ``call_id``."""
        call = await asyncio.to_thread(self.client.calls(call_id).fetch)
        return call.from_
