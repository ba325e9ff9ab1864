"""Incremental command-token scanner over the agent's streamed text.

The agent narrates side effects inline as bracketed tokens::

    [[MENU_SEARCH: ribeye]]
    [[SEND:MENU_DAY]]

Text deltas arrive in arbitrary fragments, so a token may be split across
several of them. The scanner appends each fragment to a per-call buffer
and only recognises a token once its closing ``]]`` has arrived.
Recognised tokens are removed from the buffer; the rest of the text is left
in place until the turn ends.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from loguru import logger


class CommandKind(str, Enum):
    MENU_SEARCH = "menu_search"
    SEND = "send"


class LinkKind(str, Enum):
    """Links that can be texted to the caller."""

    MENU_DAY = "MENU_DAY"
    MENU_DINNER = "MENU_DINNER"
    MENU_BEVERAGE = "MENU_BEVERAGE"
    OPENTABLE = "OPENTABLE"
    TOAST = "TOAST"


@dataclass(frozen=True)
class Command:
    """One recognised token.

    ``payload`` is the search query for MENU_SEARCH and a :class:`LinkKind`
    value for SEND.
    """

    kind: CommandKind
    payload: str


MENU_SEARCH_RE = re.compile(r"\[\[\s*MENU_SEARCH\s*:\s*([^\]]+?)\s*\]\]", re.IGNORECASE)
SEND_RE = re.compile(
    r"\[\[\s*SEND\s*:\s*(" + "|".join(k.value for k in LinkKind) + r")\s*\]\]",
    re.IGNORECASE,
)


class CommandScanner:
    """Accumulates agent text for one call and extracts complete tokens.

    At most one MENU_SEARCH is extracted per :meth:`feed`; further complete
    MENU_SEARCH tokens found in the same pass, and any with an empty query,
    are stripped and dropped.
    Every complete SEND token is extracted, in buffer order.
    """

    def __init__(self) -> None:
        self.buffer = ""

    def feed(self, fragment: str) -> list[Command]:
        """Append a text fragment and return the commands it completed."""
        if not fragment:
            return []
        self.buffer += fragment

        commands: list[Command] = []

        searches = [m.group(1).strip() for m in MENU_SEARCH_RE.finditer(self.buffer)]
        if searches:
            self.buffer = MENU_SEARCH_RE.sub("", self.buffer)
            for query in searches:
                if not query:
                    logger.warning("Ignoring menu search with an empty query")
                elif commands:
                    logger.warning(f"Ignoring extra menu search in one pass: {query!r}")
                else:
                    commands.append(Command(CommandKind.MENU_SEARCH, query))

        sends = list(SEND_RE.finditer(self.buffer))
        if sends:
            commands.extend(
                Command(CommandKind.SEND, LinkKind(m.group(1).upper()).value) for m in sends
            )
            self.buffer = SEND_RE.sub("", self.buffer)

        return commands

    def end_turn(self) -> None:
        """Drop accumulated text at a turn boundary."""
        self.buffer = ""
