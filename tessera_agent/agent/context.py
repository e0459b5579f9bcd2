"""
Agent Context
=============
The explicit shared state every Agent is built with: one tool registry, one
session store, the currently installed completion provider, and the
per-session run locks. Constructed once (usually by AgentManager) and passed
by reference, so swapping the provider here is seen by every agent on its
next completion call.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Dict, Optional

from ..config import DEFAULT_MAX_TURNS
from ..tools.registry import ToolRegistry
from .providers.base import CompletionProvider
from .sessions import SessionStore


class _SessionLock:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.users = 0


@dataclass
class AgentContext:
    registry: ToolRegistry = field(default_factory=ToolRegistry)
    store: SessionStore = field(default_factory=SessionStore)
    provider: Optional[CompletionProvider] = None
    max_turns: int = DEFAULT_MAX_TURNS
    # One in-flight run per session id within this context. Writers in other
    # processes are not covered: the store stays last-writer-wins.
    serialize_sessions: bool = True
    _locks: Dict[str, _SessionLock] = field(default_factory=dict, repr=False)

    @asynccontextmanager
    async def session_lock(self, session_id: str):
        if not self.serialize_sessions:
            yield
            return

        entry = self._locks.get(session_id)
        if entry is None:
            entry = self._locks[session_id] = _SessionLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                self._locks.pop(session_id, None)

    def is_session_busy(self, session_id: str) -> bool:
        entry = self._locks.get(session_id)
        return bool(entry and entry.lock.locked())
