"""OpenAI Realtime WebSocket serializer.

Builds the client messages TableBridge sends to the speech-to-speech agent
and parses the server messages it consumes. Audio in both directions is
base64-encoded PCM16 little-endian.

Several generations of the Realtime protocol are in the wild, so a few
server message names map onto the same event (e.g. ``response.audio.delta``,
``response.output_audio.delta`` and ``output_audio.delta`` are all audio).

Protocol reference:
    https://platform.openai.com/docs/api-reference/realtime
"""

from __future__ import annotations

import base64
import json
from typing import Any

from tablebridge.core.events import (
    AgentError,
    AgentEvent,
    AudioDelta,
    SessionReady,
    TextDelta,
    TurnEnded,
    TurnStarted,
)

SESSION_READY_TYPES = frozenset({"session.created", "session.updated"})

TEXT_DELTA_TYPES = frozenset({
    "response.text.delta",
    "response.output_text.delta",
    "output_text.delta",
    "response.audio_transcript.delta",
    "response.output_audio_transcript.delta",
})

AUDIO_DELTA_TYPES = frozenset({
    "response.audio.delta",
    "response.output_audio.delta",
    "output_audio.delta",
})


class RealtimeSerializer:
    """Serializer for the OpenAI Realtime event protocol."""

    # ------------------------------------------------------------------
    # Client -> agent messages
    # ------------------------------------------------------------------

    @staticmethod
    def session_update(
        *,
        voice: str,
        instructions: str,
        input_sample_rate: int,
        output_sample_rate: int,
        server_vad: bool,
    ) -> str:
        """Build the ``session.update`` sent as soon as the agent leg opens."""
        session: dict[str, Any] = {
            "voice": voice,
            "modalities": ["audio", "text"],
            "input_audio_format": {"type": "pcm16", "sample_rate_hz": input_sample_rate},
            "output_audio_format": {"type": "pcm16", "sample_rate_hz": output_sample_rate},
            "instructions": instructions,
            "turn_detection": {"type": "server_vad"} if server_vad else None,
        }
        return json.dumps({"type": "session.update", "session": session})

    @staticmethod
    def response_create(instructions: str | None = None) -> str:
        """Build a ``response.create`` turn request, optionally with instructions."""
        msg: dict[str, Any] = {"type": "response.create"}
        if instructions is not None:
            msg["response"] = {"instructions": instructions}
        return json.dumps(msg)

    @staticmethod
    def input_audio_append(pcm: bytes) -> str:
        return json.dumps({
            "type": "input_audio_buffer.append",
            "audio": base64.b64encode(pcm).decode("ascii"),
        })

    @staticmethod
    def input_audio_commit() -> str:
        return json.dumps({"type": "input_audio_buffer.commit"})

    # ------------------------------------------------------------------
    # Agent -> client messages
    # ------------------------------------------------------------------

    def deserialize(self, raw: bytes | str | dict) -> AgentEvent | None:
        """Parse one agent message. Returns None for message types the bridge ignores.

        Raises:
            ValueError: the frame is not a JSON object or carries invalid base64.
        """
        msg = self._parse_message(raw)
        msg_type = msg.get("type", "")

        if msg_type in SESSION_READY_TYPES:
            return SessionReady(source=msg_type)

        if msg_type == "response.created":
            response = msg.get("response") or {}
            return TurnStarted(response_id=response.get("id", ""))

        if msg_type == "response.done":
            response = msg.get("response") or {}
            return TurnEnded(
                response_id=response.get("id", ""),
                status=response.get("status", ""),
            )

        if msg_type in TEXT_DELTA_TYPES:
            delta = msg.get("delta")
            return TextDelta(text=delta) if isinstance(delta, str) and delta else None

        if msg_type in AUDIO_DELTA_TYPES:
            payload = msg.get("delta") or msg.get("audio")
            if not isinstance(payload, str) or not payload:
                return None
            return AudioDelta(data=base64.b64decode(payload, validate=True))

        if msg_type == "error":
            error = msg.get("error") or {}
            return AgentError(
                code=str(error.get("code") or error.get("type") or ""),
                message=str(error.get("message", "")),
            )

        return None

    @staticmethod
    def _parse_message(raw: bytes | str | dict) -> dict[str, Any]:
        if isinstance(raw, dict):
            return raw
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        msg = json.loads(raw)
        if not isinstance(msg, dict):
            raise ValueError(f"Expected a JSON object, got {type(msg).__name__}")
        return msg
