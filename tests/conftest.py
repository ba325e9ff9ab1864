"""Shared fakes for TableBridge tests. Nothing here touches the network."""

import asyncio
import base64
import json

import pytest

from tablebridge.config import BridgeConfig
from tablebridge.services.menu import MenuLine, search_lines
from tablebridge.transports.base import BaseTransport, TransportClosed

_PEER_CLOSED = object()


class FakeTransport(BaseTransport):
    """In-memory transport: tests push inbound frames and inspect what was sent."""

    def __init__(self, connected: bool = False, fail_connect: bool = False):
        self.inbox: asyncio.Queue = asyncio.Queue()
        self.sent: list = []
        self.connected = connected
        self.closed = False
        self.fail_connect = fail_connect

    async def connect(self, **kwargs):
        if self.fail_connect:
            raise OSError("connection refused")
        self.connected = True

    async def send(self, data):
        if not self.connected:
            raise TransportClosed("not connected")
        self.sent.append(data)

    async def recv(self):
        item = await self.inbox.get()
        if item is _PEER_CLOSED:
            self.connected = False
            raise TransportClosed("peer closed")
        return item

    async def disconnect(self):
        self.connected = False
        self.closed = True

    def is_connected(self):
        return self.connected

    # -- test helpers ---------------------------------------------------

    def push(self, msg):
        self.inbox.put_nowait(json.dumps(msg) if isinstance(msg, dict) else msg)

    def close_from_peer(self):
        self.inbox.put_nowait(_PEER_CLOSED)

    def sent_json(self):
        return [json.loads(m) for m in self.sent]

    def sent_types(self):
        return [m.get("type") or m.get("event") for m in self.sent_json()]


class FakeMenu:
    def __init__(self, lines=None, fail=False):
        self.lines = list(lines or [])
        self.queries: list[str] = []
        self.fail = fail

    async def ingest(self):
        return len(self.lines)

    async def search(self, query, limit=8):
        self.queries.append(query)
        if self.fail:
            raise RuntimeError("index unavailable")
        return search_lines(self.lines, query, limit)


class FakeMessenger:
    def __init__(self, caller="+15550001111", fail=False):
        self.caller = caller
        self.fail = fail
        self.delivered: list[tuple[str, str]] = []
        self.lookups: list[str] = []

    async def deliver(self, to, body):
        if self.fail:
            raise RuntimeError("twilio down")
        self.delivered.append((to, body))

    async def resolve_caller_address(self, call_id):
        self.lookups.append(call_id)
        return self.caller


# ---------------------------------------------------------------------------
# Wire message builders
# ---------------------------------------------------------------------------


def twilio_start(stream_sid="MZ100", call_sid="CA100", **params):
    return {
        "event": "start",
        "streamSid": stream_sid,
        "start": {
            "streamSid": stream_sid,
            "callSid": call_sid,
            "accountSid": "AC1",
            "customParameters": params,
            "mediaFormat": {"encoding": "audio/x-mulaw", "sampleRate": 8000, "channels": 1},
        },
    }


def twilio_media(mulaw: bytes, track="inbound"):
    return {
        "event": "media",
        "media": {"track": track, "payload": base64.b64encode(mulaw).decode()},
    }


def twilio_stop(call_sid="CA100"):
    return {"event": "stop", "stop": {"callSid": call_sid}}


def agent_audio(pcm: bytes, msg_type="response.output_audio.delta"):
    return {"type": msg_type, "delta": base64.b64encode(pcm).decode()}


def agent_text(text: str, msg_type="response.output_text.delta"):
    return {"type": msg_type, "delta": text}


async def wait_until(predicate, timeout=1.0):
    """Yield to the event loop until ``predicate()`` holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.001)


async def settle(rounds=50):
    """Let every runnable task make progress."""
    for _ in range(rounds):
        await asyncio.sleep(0)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def config():
    return BridgeConfig.from_dict({
        "openai_api_key": "sk-test",
        "restaurant_name": "Sip & Sizzle",
        "day_menu_link": "https://example.com/day.pdf",
        "dinner_menu_link": "https://example.com/dinner.pdf",
        "reservations_link": "https://example.com/reserve",
        "ordering_link": "https://example.com/order",
    })


@pytest.fixture
def menu_lines():
    return [
        MenuLine("Dinner", "Ribeye 14oz, garlic butter $42"),
        MenuLine("Dinner", "Grilled Salmon, lemon caper $31"),
        MenuLine("Beverage", "Old Fashioned $14"),
        MenuLine("Day", "Ribeye Steak Sandwich $19"),
        MenuLine("Day", "House salad"),
    ]


@pytest.fixture
def fake_menu(menu_lines):
    return FakeMenu(menu_lines)


@pytest.fixture
def fake_messenger():
    return FakeMessenger()
