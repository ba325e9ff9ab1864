"""Call session management for TableBridge.

Each accepted telephony connection gets a CallSession holding all of its
per-call state: both transports, readiness flags, the command scanner, the
outbound audio backlog and the resamplers. The SessionStore tracks active
sessions and the CallerRegistry caches caller addresses across calls.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Coroutine

from loguru import logger

from tablebridge.audio.resampler import Resampler
from tablebridge.pipeline.scanner import CommandScanner
from tablebridge.transports.base import BaseTransport


class SessionState(str, Enum):
    CONNECTING = "connecting"
    AWAITING_BOTH_READY = "awaiting_both_ready"
    GREETING = "greeting"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class CallSession:
    """Represents a single call flowing through the bridge.

    Only the session's own control loop and the side-effect tasks it spawns
    touch these fields, all on the same event loop.
    """

    # Unique session identifier
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    # Set once by the telephony ``start`` event
    stream_id: str = ""
    call_id: str = ""

    # Transports
    telephony_transport: BaseTransport | None = None
    agent_transport: BaseTransport | None = None

    # Agent text accumulator
    scanner: CommandScanner = field(default_factory=CommandScanner)

    # Link kinds already texted this call
    dispatched: set[str] = field(default_factory=set)

    # Readiness and turn state
    telephony_ready: bool = False
    agent_ready: bool = False
    greeting_sent: bool = False
    turn_active: bool = False
    state: SessionState = SessionState.CONNECTING

    # Encoded mu-law frames waiting for both legs to be ready
    pending_outbound: deque[bytes] = field(default_factory=deque)

    # Caller audio bytes appended since the last commit
    commit_bytes: int = 0

    # Resamplers (telephony <-> agent rates)
    inbound_resampler: Resampler | None = None
    outbound_resampler: Resampler | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    is_active: bool = True
    started_at: float = field(default_factory=time.time)
    ended_at: float | None = None

    # Reader and lookup tasks, cancelled on end()
    _tasks: list[asyncio.Task] = field(default_factory=list)
    # Delivery tasks, left to finish after end()
    _detached: set[asyncio.Task] = field(default_factory=set)

    @property
    def both_ready(self) -> bool:
        return self.telephony_ready and self.agent_ready

    def set_stream_ids(self, stream_id: str, call_id: str) -> bool:
        """Record the stream and call ids. Returns False if already set."""
        if self.telephony_ready:
            return False
        self.stream_id = stream_id
        self.call_id = call_id
        self.telephony_ready = True
        return True

    def claim_dispatch(self, kind: str) -> bool:
        """Claim a link kind for this call. Returns False if it was claimed before."""
        if kind in self.dispatched:
            return False
        self.dispatched.add(kind)
        return True

    def spawn(self, coro: Coroutine[Any, Any, Any], *, detached: bool = False) -> asyncio.Task:
        """Run a side effect in the background, owned by this session.

        Detached tasks survive :meth:`end`; the rest are cancelled by it.
        """
        task = asyncio.create_task(coro)
        if detached:
            self._detached.add(task)
            task.add_done_callback(self._detached.discard)
        else:
            self._tasks.append(task)
            task.add_done_callback(self._forget)
        return task

    def _forget(self, task: asyncio.Task) -> None:
        if task in self._tasks:
            self._tasks.remove(task)

    def discard_pending(self) -> int:
        """Drop queued outbound audio. Returns number of frames dropped."""
        dropped = len(self.pending_outbound)
        self.pending_outbound.clear()
        return dropped

    def end(self) -> None:
        """Mark the session as ended and cancel its owned tasks."""
        self.is_active = False
        self.ended_at = time.time()
        if self._tasks:
            current = asyncio.current_task()
            for task in list(self._tasks):
                if task is not current and not task.done():
                    task.cancel()
        self._tasks.clear()

    @property
    def duration_ms(self) -> int:
        """Call duration in milliseconds."""
        end = self.ended_at or time.time()
        return int((end - self.started_at) * 1000)


class SessionStore:
    """Store for active call sessions.

    Only touched from the event loop, so no locking is needed.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, CallSession] = {}

    def create(self, **kwargs) -> CallSession:
        """Create and store a new session."""
        session = CallSession(**kwargs)
        self._sessions[session.session_id] = session
        logger.info(f"Session created: {session.session_id}")
        return session

    def remove(self, session_id: str) -> None:
        """Remove a session from the store."""
        session = self._sessions.pop(session_id, None)
        if session:
            session.end()
            logger.info(
                f"Session removed: {session.session_id} "
                f"(duration: {session.duration_ms}ms)"
            )

    @property
    def active_count(self) -> int:
        """Number of active sessions."""
        return sum(1 for s in self._sessions.values() if s.is_active)

    @property
    def all_sessions(self) -> list[CallSession]:
        return list(self._sessions.values())


class CallerRegistry:
    """Process-wide ``call_id -> caller address`` cache.

    Populated lazily through ``resolver`` on first lookup and never evicted.
    The resolver runs outside the lock so a slow lookup for one call never
    blocks another; a concurrent duplicate lookup keeps the first answer.
    """

    def __init__(self, resolver: Callable[[str], Awaitable[str]]) -> None:
        self._resolver = resolver
        self._cache: dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def get(self, call_id: str) -> str:
        cached = self._cache.get(call_id)
        if cached is not None:
            return cached

        address = await self._resolver(call_id)

        async with self._lock:
            return self._cache.setdefault(call_id, address)

    def __contains__(self, call_id: str) -> bool:
        return call_id in self._cache

    def __len__(self) -> int:
        return len(self._cache)
