"""Unified event model for TableBridge.

Both legs of a call speak their own JSON dialect. The serializers translate
each dialect into these canonical events so the bridge can drive one state
machine without caring about wire details.

Telephony-side events: CallStarted, AudioFrame, CallEnded, CustomEvent.
Agent-side events: SessionReady, TurnStarted, TurnEnded, TextDelta,
AudioDelta, AgentError.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Codec(str, Enum):
    MULAW = "mulaw"
    PCM16 = "pcm16"


class EventType(str, Enum):
    # Telephony leg
    AUDIO_FRAME = "audio_frame"
    CALL_STARTED = "call_started"
    CALL_ENDED = "call_ended"
    CUSTOM = "custom"
    # Agent leg
    SESSION_READY = "session_ready"
    TURN_STARTED = "turn_started"
    TURN_ENDED = "turn_ended"
    TEXT_DELTA = "text_delta"
    AUDIO_DELTA = "audio_delta"
    AGENT_ERROR = "agent_error"


class Event(BaseModel):
    """Base event that all TableBridge events inherit from."""

    event_type: EventType
    call_id: str = ""
    timestamp: float = Field(default_factory=time.time)


# ---------------------------------------------------------------------------
# Telephony leg
# ---------------------------------------------------------------------------


class AudioFrame(Event):
    """A chunk of caller or agent audio flowing through the bridge."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    event_type: EventType = EventType.AUDIO_FRAME
    codec: Codec = Codec.MULAW
    sample_rate: int = 8000
    data: bytes = b""


class CallStarted(Event):
    """Fired by the telephony ``start`` message.

    Carries the stream identifier (needed to address outbound media) and
    the call identifier (needed to look up the caller's number).
    """

    event_type: EventType = EventType.CALL_STARTED
    stream_id: str = ""
    custom_parameters: dict[str, str] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)


class CallEnded(Event):
    """Fired when the telephony leg signals the stream has stopped."""

    event_type: EventType = EventType.CALL_ENDED
    reason: str = "normal"


class CustomEvent(Event):
    """Provider messages that carry no meaning for the bridge (marks, dtmf)."""

    event_type: EventType = EventType.CUSTOM
    custom_type: str = ""
    payload: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Agent leg
# ---------------------------------------------------------------------------


class SessionReady(Event):
    """The agent acknowledged the session (``session.created``/``session.updated``)."""

    event_type: EventType = EventType.SESSION_READY
    source: str = ""


class TurnStarted(Event):
    """The agent began a spoken response."""

    event_type: EventType = EventType.TURN_STARTED
    response_id: str = ""


class TurnEnded(Event):
    """The agent finished (or cancelled) a spoken response."""

    event_type: EventType = EventType.TURN_ENDED
    response_id: str = ""
    status: str = ""


class TextDelta(Event):
    """A UTF-8 text fragment of the agent's output (text or transcript)."""

    event_type: EventType = EventType.TEXT_DELTA
    text: str = ""


class AudioDelta(Event):
    """A chunk of agent speech as PCM16 little-endian at the agent output rate."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    event_type: EventType = EventType.AUDIO_DELTA
    data: bytes = b""


class AgentError(Event):
    """An ``error`` message reported by the agent endpoint."""

    event_type: EventType = EventType.AGENT_ERROR
    code: str = ""
    message: str = ""


TelephonyEvent = AudioFrame | CallStarted | CallEnded | CustomEvent

AgentEvent = SessionReady | TurnStarted | TurnEnded | TextDelta | AudioDelta | AgentError
