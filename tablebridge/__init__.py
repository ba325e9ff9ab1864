"""TableBridge - AI phone host for restaurants.

Bridges Twilio Media Streams calls to an OpenAI Realtime voice agent,
transcoding audio both ways and turning inline agent tokens into menu
lookups and SMS links.

Quick start (config-driven):
    $ pip install tablebridge
    $ tablebridge init        # generates tablebridge.yaml
    $ tablebridge run --config tablebridge.yaml

Quick start (programmatic):
    from tablebridge import BridgeConfig
    from tablebridge.server import create_app

    app = create_app(BridgeConfig.from_dict({
        "openai_api_key": "sk-...",
        "dinner_menu_link": "https://example.com/dinner.pdf",
    }))
"""

__version__ = "0.1.0"

# Core
from tablebridge.bridge import CallBridge
from tablebridge.config import BridgeConfig, load_config
from tablebridge.session import CallerRegistry, CallSession, SessionState, SessionStore

# Events
from tablebridge.core.events import (
    AgentError,
    AudioDelta,
    AudioFrame,
    CallEnded,
    CallStarted,
    Codec,
    CustomEvent,
    Event,
    EventType,
    SessionReady,
    TextDelta,
    TurnEnded,
    TurnStarted,
)

# Audio
from tablebridge.audio.codecs import (
    linear_to_ulaw,
    mulaw_b64_to_pcm16,
    mulaw_decode,
    mulaw_encode,
    pcm16_to_mulaw_b64,
    ulaw_to_linear,
)
from tablebridge.audio.resampler import Resampler, decimate, upsample

# Serializers
from tablebridge.serializers.realtime import RealtimeSerializer
from tablebridge.serializers.twilio import TwilioSerializer

# Transports
from tablebridge.transports.base import BaseTransport, TransportClosed
from tablebridge.transports.websocket import WebSocketClientTransport

# Agent text pipeline
from tablebridge.pipeline import Command, CommandDispatcher, CommandKind, CommandScanner, LinkKind

# Services
from tablebridge.services import MenuIndex, MenuLine, TwilioMessenger, format_menu_answer

__all__ = [
    # Core
    "CallBridge",
    "BridgeConfig",
    "load_config",
    "CallSession",
    "CallerRegistry",
    "SessionState",
    "SessionStore",
    # Events
    "Event",
    "EventType",
    "AudioFrame",
    "CallStarted",
    "CallEnded",
    "CustomEvent",
    "SessionReady",
    "TurnStarted",
    "TurnEnded",
    "TextDelta",
    "AudioDelta",
    "AgentError",
    "Codec",
    # Audio
    "ulaw_to_linear",
    "linear_to_ulaw",
    "mulaw_decode",
    "mulaw_encode",
    "mulaw_b64_to_pcm16",
    "pcm16_to_mulaw_b64",
    "Resampler",
    "decimate",
    "upsample",
    # Serializers
    "TwilioSerializer",
    "RealtimeSerializer",
    # Transports
    "BaseTransport",
    "TransportClosed",
    "WebSocketClientTransport",
    # Agent text pipeline
    "Command",
    "CommandKind",
    "CommandScanner",
    "CommandDispatcher",
    "LinkKind",
    # Services
    "MenuIndex",
    "MenuLine",
    "format_menu_answer",
    "TwilioMessenger",
]
