"""Twilio Media Streams WebSocket serializer.

Translates between Twilio's Media Streams WebSocket protocol and
TableBridge's event model. Twilio streams audio as base64-encoded mu-law at
8kHz over JSON WebSocket messages.

Protocol reference:
    https://www.twilio.com/docs/voice/media-streams/websocket-messages
"""

from __future__ import annotations

import base64
import binascii
import json
from typing import Any

from tablebridge.core.events import (
    AudioFrame,
    CallEnded,
    CallStarted,
    Codec,
    CustomEvent,
    TelephonyEvent,
)


class TwilioSerializer:
    """Serializer for the Twilio Media Streams WebSocket protocol.

    Twilio sends JSON messages with an ``event`` field that indicates the
    message type.  Audio payloads arrive as base64-encoded mu-law in
    ``media`` events and are decoded before being wrapped in an
    :class:`AudioFrame`.

    The serializer is stateless: the stream id needed for outbound media
    lives on the CallSession and is passed to :meth:`media_message`.
    """

    # ------------------------------------------------------------------
    # Deserialization (provider -> events)
    # ------------------------------------------------------------------

    def deserialize(self, raw: bytes | str | dict) -> list[TelephonyEvent]:
        """Parse a Twilio Media Streams message into events.

        Message types handled:
            * ``connected`` -- initial handshake acknowledgement (ignored).
            * ``start``     -- stream metadata; produces :class:`CallStarted`.
            * ``media``     -- audio payload; produces :class:`AudioFrame`.
            * ``stop``      -- stream ended; produces :class:`CallEnded`.

        Anything else (``mark``, ``dtmf``) is surfaced as a :class:`CustomEvent`.

        Raises:
            ValueError: the frame is not JSON, not an object, or carries a
                payload that is not valid base64.
        """
        msg = self._parse_message(raw)
        event_type = msg.get("event", "")

        if event_type == "connected":
            return []

        if event_type == "start":
            return [self._handle_start(msg)]

        if event_type == "media":
            frame = self._handle_media(msg)
            return [frame] if frame else []

        if event_type == "stop":
            stop = msg.get("stop") or {}
            return [CallEnded(call_id=stop.get("callSid", ""), reason="stop")]

        return [
            CustomEvent(
                custom_type=f"twilio.{event_type}",
                payload=msg,
            )
        ]

    # ------------------------------------------------------------------
    # Serialization (events -> provider wire format)
    # ------------------------------------------------------------------

    def media_message(self, stream_id: str, mulaw: bytes) -> str:
        """Build an outbound ``media`` message carrying mu-law audio."""
        return json.dumps(
            {
                "event": "media",
                "streamSid": stream_id,
                "media": {
                    "payload": base64.b64encode(mulaw).decode("ascii"),
                },
            }
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_message(raw: bytes | str | dict) -> dict[str, Any]:
        """Normalise the raw WebSocket frame into a dict."""
        if isinstance(raw, dict):
            return raw
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        msg = json.loads(raw)
        if not isinstance(msg, dict):
            raise ValueError(f"Expected a JSON object, got {type(msg).__name__}")
        return msg

    @staticmethod
    def _handle_start(msg: dict) -> CallStarted:
        start_data = msg.get("start") or {}
        stream_sid = start_data.get("streamSid") or msg.get("streamSid", "")
        custom_params = start_data.get("customParameters") or {}

        return CallStarted(
            call_id=start_data.get("callSid", ""),
            stream_id=stream_sid,
            custom_parameters={k: str(v) for k, v in custom_params.items()},
            metadata={
                "account_sid": start_data.get("accountSid", ""),
                "media_format": start_data.get("mediaFormat", {}),
            },
        )

    @staticmethod
    def _handle_media(msg: dict) -> AudioFrame | None:
        media_data = msg.get("media") or {}
        track = media_data.get("track")
        if track and track != "inbound":
            return None
        payload_b64 = media_data.get("payload")
        if not payload_b64:
            return None
        try:
            audio_bytes = base64.b64decode(payload_b64, validate=True)
        except binascii.Error as e:
            raise ValueError(f"Invalid media payload: {e}") from e

        return AudioFrame(codec=Codec.MULAW, sample_rate=8000, data=audio_bytes)
