"""Command dispatcher: turns scanned tokens into one-shot side effects.

* ``MENU_SEARCH`` queries the menu index and asks the agent to speak the
  result, unless the agent is mid-turn (then the answer is dropped).
* ``SEND:<KIND>`` texts the matching link to the caller, at most once per
  call per kind.

Failures are logged and never propagate into the bridge.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

from tablebridge.config import BridgeConfig
from tablebridge.pipeline.scanner import Command, CommandKind, LinkKind
from tablebridge.serializers.realtime import RealtimeSerializer
from tablebridge.services.menu import format_menu_answer
from tablebridge.transports.base import TransportClosed

if TYPE_CHECKING:
    from tablebridge.services.messaging import MenuLookup, Messenger
    from tablebridge.session import CallerRegistry, CallSession


def link_body(config: BridgeConfig, kind: LinkKind) -> str | None:
    """SMS body for a link kind, or None if that link is not configured."""
    name = config.restaurant.name
    links = config.links
    templates = {
        LinkKind.MENU_DAY: (links.day_menu, f"{name} Day Menu: {{}}"),
        LinkKind.MENU_DINNER: (links.dinner_menu, f"{name} Dinner Menu: {{}}"),
        LinkKind.MENU_BEVERAGE: (links.beverage_menu, f"{name} Beverage Menu: {{}}"),
        LinkKind.OPENTABLE: (links.reservations, "Reservations: {}"),
        LinkKind.TOAST: (links.ordering, "Pickup ordering: {}"),
    }
    url, template = templates[kind]
    if not url:
        return None
    return template.format(url)


class CommandDispatcher:
    """Executes commands for a session against the menu and messaging collaborators."""

    def __init__(
        self,
        config: BridgeConfig,
        *,
        menu: MenuLookup,
        messenger: Messenger,
        callers: CallerRegistry,
    ) -> None:
        self.config = config
        self.menu = menu
        self.messenger = messenger
        self.callers = callers

    async def dispatch(self, session: CallSession, command: Command) -> None:
        if command.kind is CommandKind.MENU_SEARCH:
            await self._menu_search(session, command.payload)
        elif command.kind is CommandKind.SEND:
            await self._send_link(session, LinkKind(command.payload))

    # ------------------------------------------------------------------
    # MENU_SEARCH
    # ------------------------------------------------------------------

    async def _menu_search(self, session: CallSession, query: str) -> None:
        try:
            rows = await self.menu.search(query, self.config.menu.result_limit)
        except Exception as e:
            logger.error(f"[{session.session_id}] Menu search for {query!r} failed: {e}")
            return

        summary = format_menu_answer(query, rows, self.config.menu.spoken_limit)
        logger.info(f"[{session.session_id}] Menu search {query!r}: {len(rows)} results")

        if not session.is_active or session.agent_transport is None:
            return
        if session.turn_active:
            logger.error(
                f"[{session.session_id}] Agent turn in progress; "
                f"dropping menu answer for {query!r}"
            )
            return

        try:
            await session.agent_transport.send(RealtimeSerializer.response_create(summary))
        except TransportClosed:
            logger.warning(f"[{session.session_id}] Agent leg closed before menu answer")

    # ------------------------------------------------------------------
    # SEND:<KIND>
    # ------------------------------------------------------------------

    async def _send_link(self, session: CallSession, kind: LinkKind) -> None:
        body = link_body(self.config, kind)
        if body is None:
            logger.info(f"[{session.session_id}] No link configured for {kind.value}, skipping")
            return

        # Claimed before the first await
        if not session.claim_dispatch(kind.value):
            logger.debug(f"[{session.session_id}] {kind.value} already sent this call")
            return

        if not session.call_id:
            logger.error(f"[{session.session_id}] Cannot send {kind.value}: no call id yet")
            return

        try:
            to = await self.callers.get(session.call_id)
            await self.messenger.deliver(to, body)
        except Exception as e:
            logger.error(f"[{session.session_id}] Failed to send {kind.value} link: {e}")
            return

        logger.info(f"[{session.session_id}] Sent {kind.value} link (call: {session.call_id})")
