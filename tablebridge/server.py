"""HTTP/WebSocket server for TableBridge.

Provides a FastAPI application that:

* answers Twilio's voice webhook with TwiML pointing the call's media
  stream back at this server,
* accepts the Media Streams WebSocket and hands it to the CallBridge,
* auto-replies to inbound SMS with the restaurant's links,
* exposes root, health and static-file endpoints.

Menus are ingested once, in the application lifespan, before the first
call is accepted.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Form, Request, Response, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.staticfiles import StaticFiles
from loguru import logger
from twilio.twiml.voice_response import VoiceResponse

from tablebridge.bridge import CallBridge
from tablebridge.config import BridgeConfig, load_config
from tablebridge.services.menu import MenuIndex
from tablebridge.services.messaging import TwilioMessenger
from tablebridge.transports.base import BaseTransport, TransportClosed

EMPTY_TWIML = '<?xml version="1.0" encoding="UTF-8"?><Response/>'


def stream_url(config: BridgeConfig, host: str) -> str:
    """WebSocket URL Twilio should stream the call to."""
    base = config.provider.public_base_url.rstrip("/")
    if base:
        base = base.replace("https://", "wss://").replace("http://", "ws://")
        if "://" not in base:
            base = f"wss://{base}"
    else:
        base = f"wss://{host}"
    return f"{base}{config.provider.listen_path}"


def sms_reply_body(config: BridgeConfig) -> str:
    """Body of the automatic reply to an inbound SMS."""
    links = config.links
    parts = [f"Thanks for contacting {config.restaurant.name}!"]
    if links.reservations:
        parts.append(f"Reservations: {links.reservations}")
    if links.ordering:
        parts.append(f"Pickup: {links.ordering}")
    if links.day_menu:
        parts.append(f"Day Menu: {links.day_menu}")
    if links.dinner_menu:
        parts.append(f"Dinner Menu: {links.dinner_menu}")
    if links.beverage_menu:
        parts.append(f"Beverage Menu: {links.beverage_menu}")
    return "  |  ".join(parts)


def create_app(
    config: BridgeConfig | dict | str | Path | None = None,
    *,
    bridge: CallBridge | None = None,
    menu: MenuIndex | None = None,
    messenger: TwilioMessenger | None = None,
    static_dir: str | Path | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        config: Bridge configuration (YAML path, dict, BridgeConfig, or None
            for the environment).
        bridge: Pre-built bridge. Built from ``menu`` and ``messenger`` if omitted.
        menu: Menu index, ingested at startup.
        messenger: SMS sender used for link delivery and the SMS auto-reply.
        static_dir: Directory served under ``/public`` (default ``./public``).
    """
    bridge_config = load_config(config)
    menu = menu if menu is not None else MenuIndex(bridge_config.menu_sources)
    messenger = messenger if messenger is not None else TwilioMessenger(bridge_config.twilio)
    if bridge is None:
        bridge = CallBridge(bridge_config, menu=menu, messenger=messenger)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await menu.ingest()
        yield

    app = FastAPI(
        title="TableBridge",
        description="Twilio to OpenAI Realtime voice host for restaurants",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.bridge = bridge
    app.state.menu = menu

    static_path = Path(static_dir) if static_dir is not None else Path.cwd() / "public"
    if static_path.is_dir():
        app.mount("/public", StaticFiles(directory=static_path), name="public")

    @app.get("/")
    async def root():
        return PlainTextResponse("OK")

    @app.get("/health")
    async def health():
        return JSONResponse({"status": "ok", "active_calls": bridge.sessions.active_count})

    @app.api_route("/voice-test", methods=["GET", "POST"])
    async def voice_test():
        twiml = VoiceResponse()
        twiml.say(
            f"{bridge_config.restaurant.name} test line. If you hear this, webhooks are good.",
            voice="alice",
        )
        return Response(content=str(twiml), media_type="text/xml")

    @app.api_route("/voice", methods=["GET", "POST"])
    async def voice(request: Request):
        logger.info("Voice webhook hit")
        try:
            host = request.headers.get("host", "")
            twiml = VoiceResponse()
            connect = twiml.connect()
            connect.stream(url=stream_url(bridge_config, host))
            body = str(twiml)
        except Exception as e:
            logger.error(f"Voice webhook failed, returning empty TwiML: {e}")
            body = EMPTY_TWIML
        return Response(content=body, media_type="text/xml")

    @app.post("/sms")
    async def sms(From: str = Form("")):
        try:
            await messenger.deliver(From, sms_reply_body(bridge_config))
        except Exception as e:
            logger.error(f"SMS auto-reply failed: {e}")
        return Response(status_code=204)

    @app.websocket(bridge_config.provider.listen_path)
    async def twilio_stream(websocket: WebSocket):
        await websocket.accept()
        logger.info(f"Telephony WebSocket connected: {websocket.client}")
        transport = FastAPIWebSocketTransport(websocket)
        try:
            await bridge.handle_telephony_connection(transport)
        except Exception as e:
            logger.error(f"WebSocket handler error: {e}")

    return app


class FastAPIWebSocketTransport(BaseTransport):
    """Adapts an accepted FastAPI WebSocket to the transport interface."""

    def __init__(self, ws: WebSocket) -> None:
        self._ws = ws
        self._connected = True

    async def connect(self, **kwargs) -> None:
        pass  # Already accepted by FastAPI

    async def send(self, data: bytes | str) -> None:
        if not self._connected:
            raise TransportClosed("WebSocket closed")
        try:
            if isinstance(data, bytes):
                await self._ws.send_bytes(data)
            else:
                await self._ws.send_text(data)
        except (WebSocketDisconnect, RuntimeError) as e:
            self._connected = False
            raise TransportClosed(str(e)) from e

    async def recv(self) -> bytes | str:
        if not self._connected:
            raise TransportClosed("WebSocket closed")
        try:
            msg = await self._ws.receive()
        except RuntimeError as e:
            self._connected = False
            raise TransportClosed(str(e)) from e
        if msg["type"] == "websocket.disconnect":
            self._connected = False
            raise TransportClosed(f"code={msg.get('code')}")
        if msg.get("text") is not None:
            return msg["text"]
        if msg.get("bytes") is not None:
            return msg["bytes"]
        raise ValueError("Unexpected WebSocket message type")

    async def disconnect(self) -> None:
        if not self._connected:
            return
        self._connected = False
        try:
            await self._ws.close()
        except RuntimeError as e:
            logger.debug(f"WebSocket already closed: {e}")

    def is_connected(self) -> bool:
        return self._connected


def run_server(
    config: BridgeConfig | dict | str | Path | None = None,
    host: str | None = None,
    port: int | None = None,
) -> None:
    """Run the TableBridge server with uvicorn.

    Args:
        config: Bridge configuration.
        host: Override the listen host.
        port: Override the listen port.
    """
    import uvicorn

    bridge_config = load_config(config)
    app = create_app(bridge_config)

    uvicorn.run(
        app,
        host=host or bridge_config.provider.listen_host,
        port=port or bridge_config.provider.listen_port,
    )
