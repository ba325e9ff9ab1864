"""TableBridge - per-call bridge between Twilio and the Realtime agent.

The CallBridge owns the lifecycle of every call. For each accepted
telephony connection it:

1. dials the agent and sends ``session.update`` right away,
2. starts one reader task per leg, both feeding a single inbox,
3. runs one control loop that handles inbox messages one at a time,
4. tears both legs down when either closes, errors or Twilio sends ``stop``.

Audio paths:
    caller:  Twilio mu-law 8k -> PCM16 -> upsample -> input_audio_buffer.append
    agent:   PCM16 delta -> decimate -> mu-law 8k -> Twilio media

Agent text deltas go through the CommandScanner; recognised tokens are
dispatched as background tasks so a slow lookup or SMS never stalls audio.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, Callable

from loguru import logger

from tablebridge.audio.codecs import mulaw_decode, mulaw_encode
from tablebridge.audio.resampler import Resampler, integer_ratio
from tablebridge.config import BridgeConfig
from tablebridge.core.events import (
    AgentError,
    AudioDelta,
    AudioFrame,
    CallEnded,
    CallStarted,
    CustomEvent,
    SessionReady,
    TextDelta,
    TurnEnded,
    TurnStarted,
)
from tablebridge.pipeline import CommandDispatcher, CommandKind
from tablebridge.prompts import agent_instructions, greeting_script
from tablebridge.serializers.realtime import RealtimeSerializer
from tablebridge.serializers.twilio import TwilioSerializer
from tablebridge.services.messaging import MenuLookup, Messenger
from tablebridge.session import CallerRegistry, CallSession, SessionState, SessionStore
from tablebridge.transports.base import BaseTransport, TransportClosed
from tablebridge.transports.websocket import WebSocketClientTransport

AgentTransportFactory = Callable[[], BaseTransport]


class Leg(str, Enum):
    TELEPHONY = "telephony"
    AGENT = "agent"


# Inbox item meaning "this leg is gone"
_CLOSED = None

_RELAY_STATES = (SessionState.GREETING, SessionState.ACTIVE)


class CallBridge:
    """Bridges Twilio Media Streams calls to an OpenAI Realtime agent.

    Usage:
        config = BridgeConfig.from_env()
        bridge = CallBridge(
            config,
            menu=MenuIndex(config.menu_sources),
            messenger=TwilioMessenger(config.twilio),
        )
        # for every accepted Twilio WebSocket:
        await bridge.handle_telephony_connection(transport)
    """

    def __init__(
        self,
        config: BridgeConfig,
        *,
        menu: MenuLookup,
        messenger: Messenger,
        agent_transport_factory: AgentTransportFactory | None = None,
        callers: CallerRegistry | None = None,
    ) -> None:
        self.config = config
        self.sessions = SessionStore()
        self.callers = callers or CallerRegistry(messenger.resolve_caller_address)
        self.dispatcher = CommandDispatcher(
            config, menu=menu, messenger=messenger, callers=self.callers
        )
        self.telephony_serializer = TwilioSerializer()
        self.agent_serializer = RealtimeSerializer()
        self._agent_transport_factory = agent_transport_factory or self._default_agent_transport

        # Both agent rates must be integer multiples of the telephony rate
        integer_ratio(config.audio.sample_rate, config.agent.input_sample_rate)
        integer_ratio(config.agent.output_sample_rate, config.audio.sample_rate)

    def _default_agent_transport(self) -> BaseTransport:
        return WebSocketClientTransport(
            url=self.config.agent.ws_url,
            headers=self.config.agent.headers,
        )

    # ------------------------------------------------------------------
    # Connection handling
    # ------------------------------------------------------------------

    async def handle_telephony_connection(self, telephony: BaseTransport) -> None:
        """Run one call to completion. Returns once both legs are closed."""
        session = self.sessions.create(telephony_transport=telephony)
        session.inbound_resampler = Resampler(
            self.config.audio.sample_rate, self.config.agent.input_sample_rate
        )
        session.outbound_resampler = Resampler(
            self.config.agent.output_sample_rate, self.config.audio.sample_rate
        )

        agent = self._agent_transport_factory()
        try:
            await agent.connect()
        except Exception as e:
            logger.error(f"[{session.session_id}] Failed to connect to agent: {e}")
            await self._teardown(session)
            return
        session.agent_transport = agent

        try:
            await agent.send(
                RealtimeSerializer.session_update(
                    voice=self.config.agent.voice,
                    instructions=agent_instructions(self.config),
                    input_sample_rate=self.config.agent.input_sample_rate,
                    output_sample_rate=self.config.agent.output_sample_rate,
                    server_vad=self.config.agent.server_vad,
                )
            )
            session.state = SessionState.AWAITING_BOTH_READY
            logger.info(f"[{session.session_id}] Agent connected, awaiting both legs")

            inbox: asyncio.Queue[tuple[Leg, Any]] = asyncio.Queue()
            session.spawn(self._read_leg(session, Leg.TELEPHONY, telephony, inbox))
            session.spawn(self._read_leg(session, Leg.AGENT, agent, inbox))

            await self._control_loop(session, inbox)
        except TransportClosed as e:
            logger.info(f"[{session.session_id}] Leg closed mid-send: {e}")
        except Exception as e:
            logger.error(f"[{session.session_id}] Bridge error: {e}")
        finally:
            await self._teardown(session)

    async def _read_leg(
        self,
        session: CallSession,
        leg: Leg,
        transport: BaseTransport,
        inbox: asyncio.Queue,
    ) -> None:
        """Pump one leg's messages into the session inbox until it closes."""
        try:
            while True:
                raw = await transport.recv()
                await inbox.put((leg, raw))
        except TransportClosed:
            logger.info(f"[{session.session_id}] {leg.value} leg closed")
        except Exception as e:
            logger.error(f"[{session.session_id}] {leg.value} leg error: {e}")
        await inbox.put((leg, _CLOSED))

    async def _control_loop(self, session: CallSession, inbox: asyncio.Queue) -> None:
        while session.is_active:
            leg, raw = await inbox.get()
            if raw is _CLOSED:
                return
            if leg is Leg.TELEPHONY:
                if not await self._on_telephony_message(session, raw):
                    return
            else:
                await self._on_agent_message(session, raw)

    # ------------------------------------------------------------------
    # Telephony -> agent
    # ------------------------------------------------------------------

    async def _on_telephony_message(self, session: CallSession, raw: bytes | str) -> bool:
        """Handle one Twilio frame. Returns False when the call should end."""
        try:
            events = self.telephony_serializer.deserialize(raw)
        except ValueError as e:
            logger.warning(f"[{session.session_id}] Dropping malformed telephony frame: {e}")
            return True

        for event in events:
            if isinstance(event, CallStarted):
                await self._on_call_started(session, event)

            elif isinstance(event, AudioFrame):
                await self._on_caller_audio(session, event)

            elif isinstance(event, CallEnded):
                logger.info(f"[{session.session_id}] Telephony stop (call: {session.call_id})")
                return False

            elif isinstance(event, CustomEvent):
                logger.debug(f"[{session.session_id}] Ignoring {event.custom_type}")

        return True

    async def _on_call_started(self, session: CallSession, event: CallStarted) -> None:
        if not session.set_stream_ids(event.stream_id, event.call_id):
            logger.warning(
                f"[{session.session_id}] Ignoring repeated start "
                f"(stream: {event.stream_id}, call: {event.call_id})"
            )
            return
        session.metadata.update(event.metadata)
        session.metadata["custom_parameters"] = event.custom_parameters
        logger.info(
            f"[{session.session_id}] Telephony ready "
            f"(stream: {session.stream_id}, call: {session.call_id})"
        )
        await self._maybe_greet(session)

    async def _on_caller_audio(self, session: CallSession, frame: AudioFrame) -> None:
        if session.state not in _RELAY_STATES:
            logger.debug(f"[{session.session_id}] Discarding caller audio before greeting")
            return

        pcm = mulaw_decode(frame.data)
        if session.inbound_resampler:
            pcm = session.inbound_resampler.process(pcm)

        agent = session.agent_transport
        await agent.send(RealtimeSerializer.input_audio_append(pcm))

        session.commit_bytes += len(frame.data)
        if session.commit_bytes >= self.config.agent.commit_threshold_bytes:
            await agent.send(RealtimeSerializer.input_audio_commit())
            session.commit_bytes = 0
            if not self.config.agent.server_vad and not session.turn_active:
                await agent.send(RealtimeSerializer.response_create())

    # ------------------------------------------------------------------
    # Agent -> telephony
    # ------------------------------------------------------------------

    async def _on_agent_message(self, session: CallSession, raw: bytes | str) -> None:
        try:
            event = self.agent_serializer.deserialize(raw)
        except ValueError as e:
            logger.warning(f"[{session.session_id}] Dropping malformed agent frame: {e}")
            return

        if event is None:
            return

        if isinstance(event, AudioDelta):
            await self._on_agent_audio(session, event.data)

        elif isinstance(event, TextDelta):
            for command in session.scanner.feed(event.text):
                logger.info(
                    f"[{session.session_id}] Command {command.kind.value}: {command.payload}"
                )
                # SMS delivery outlives the call; lookups do not
                session.spawn(
                    self.dispatcher.dispatch(session, command),
                    detached=command.kind is CommandKind.SEND,
                )

        elif isinstance(event, SessionReady):
            if session.agent_ready:
                logger.debug(f"[{session.session_id}] Agent {event.source}")
                return
            session.agent_ready = True
            logger.info(f"[{session.session_id}] Agent ready ({event.source})")
            await self._maybe_greet(session)

        elif isinstance(event, TurnStarted):
            session.turn_active = True
            if session.outbound_resampler:
                session.outbound_resampler.reset()

        elif isinstance(event, TurnEnded):
            session.turn_active = False
            session.scanner.end_turn()
            if session.state is SessionState.GREETING:
                session.state = SessionState.ACTIVE
                logger.info(f"[{session.session_id}] Greeting done, call active")

        elif isinstance(event, AgentError):
            logger.error(f"[{session.session_id}] Agent error {event.code}: {event.message}")

    async def _on_agent_audio(self, session: CallSession, pcm: bytes) -> None:
        if session.outbound_resampler:
            pcm = session.outbound_resampler.process(pcm)
        mulaw = mulaw_encode(pcm)
        if not mulaw:
            return
        if session.both_ready:
            await self._send_media(session, mulaw)
        else:
            session.pending_outbound.append(mulaw)

    async def _send_media(self, session: CallSession, mulaw: bytes) -> None:
        await session.telephony_transport.send(
            self.telephony_serializer.media_message(session.stream_id, mulaw)
        )

    # ------------------------------------------------------------------
    # Readiness
    # ------------------------------------------------------------------

    async def _maybe_greet(self, session: CallSession) -> None:
        """Send the greeting once both legs are ready, then flush queued audio."""
        if session.greeting_sent or not session.both_ready:
            return
        session.greeting_sent = True
        session.state = SessionState.GREETING
        await session.agent_transport.send(
            RealtimeSerializer.response_create(greeting_script(self.config))
        )
        logger.info(f"[{session.session_id}] Greeting requested (call: {session.call_id})")

        flushed = 0
        telephony = session.telephony_transport
        while session.pending_outbound and session.is_active and telephony.is_connected():
            await self._send_media(session, session.pending_outbound.popleft())
            flushed += 1
        if flushed:
            logger.debug(f"[{session.session_id}] Flushed {flushed} queued audio frames")

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def _teardown(self, session: CallSession) -> None:
        if session.state in (SessionState.CLOSING, SessionState.CLOSED):
            return
        session.state = SessionState.CLOSING

        dropped = session.discard_pending()
        if dropped:
            logger.debug(f"[{session.session_id}] Discarded {dropped} queued audio frames")

        owned = [t for t in session._tasks if t is not asyncio.current_task()]
        session.end()
        if owned:
            await asyncio.gather(*owned, return_exceptions=True)

        for transport in (session.agent_transport, session.telephony_transport):
            if transport is None:
                continue
            try:
                await transport.disconnect()
            except Exception as e:
                logger.warning(f"[{session.session_id}] Error closing transport: {e}")

        session.state = SessionState.CLOSED
        self.sessions.remove(session.session_id)
        logger.info(
            f"[{session.session_id}] Session closed "
            f"(call: {session.call_id or '-'}, duration: {session.duration_ms}ms)"
        )
