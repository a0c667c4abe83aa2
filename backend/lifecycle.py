"""Session creation, activity tracking and idle eviction."""

from typing import Dict, Optional, Set
import asyncio
import logging
import re
import secrets
import string
import time

import config
import voting
from broadcast import Broadcaster
from connection_registry import ConnectionRegistry
from errors import AlreadyExists, SessionNotFound
from models import Session
from session_store import SessionStore

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_PATTERN = re.compile(rf"^[A-Z0-9]{{{config.SESSION_CODE_LENGTH}}}$")


def normalize_code(raw) -> str:
    if not isinstance(raw, str):
        raise SessionNotFound()
    code = raw.strip().upper()
    if not CODE_PATTERN.match(code):
        raise SessionNotFound(f"Invalid session code '{raw}'")
    return code


class LifecycleManager:
    def __init__(self, store: SessionStore, registry: ConnectionRegistry,
                 broadcaster: Broadcaster,
                 idle_timeout: float = config.SESSION_IDLE_TIMEOUT_SECONDS,
                 empty_grace: float = config.EMPTY_SESSION_GRACE_SECONDS):
        self.store = store
        self.registry = registry
        self.broadcaster = broadcaster
        self.idle_timeout = idle_timeout
        self.empty_grace = empty_grace
        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._expiring: Set[asyncio.Task] = set()

    # --- Creation ---

    async def generate_code(self) -> str:
        for _ in range(config.MAX_SESSION_CODE_ATTEMPTS):
            code = ''.join(secrets.choice(CODE_ALPHABET)
                           for _ in range(config.SESSION_CODE_LENGTH))
            if await self.store.get(code) is None:
                return code
        raise RuntimeError("Failed to generate unique session code")

    async def create_session(self) -> Session:
        for _ in range(config.MAX_SESSION_CODE_ATTEMPTS):
            code = await self.generate_code()
            try:
                session = await self.store.create(code)
            except AlreadyExists:
                continue
            self.touch(code)
            return session
        raise RuntimeError("Failed to generate unique session code")

    async def ensure_session(self, code: str) -> Session:
        session = await self.store.get(code)
        if session is not None:
            return session
        try:
            session = await self.store.create(code)
        except AlreadyExists:
            # Lost a creation race; the winner's record is what we want
            session = await self.store.get(code)
            if session is None:
                raise SessionNotFound()
        self.touch(code)
        return session

    # --- Eviction timers ---

    def touch(self, code: str):
        """Activity occurred: push eviction out to the full idle timeout."""
        self._schedule(code, self.idle_timeout)

    def connection_dropped(self, code: str):
        if not self.registry.list_by_session(code):
            self._schedule(code, min(self.empty_grace, self.idle_timeout))

    def _schedule(self, code: str, delay: float):
        self._cancel(code)
        loop = asyncio.get_running_loop()
        self._timers[code] = loop.call_later(max(delay, 0), self._fire, code)

    def _cancel(self, code: str):
        handle = self._timers.pop(code, None)
        if handle is not None:
            handle.cancel()

    def _fire(self, code: str):
        self._timers.pop(code, None)
        task = asyncio.get_running_loop().create_task(self._expire_safely(code))
        self._expiring.add(task)
        task.add_done_callback(self._expiring.discard)

    async def _expire_safely(self, code: str):
        try:
            await self.expire(code)
        except Exception:
            logger.exception("Error while expiring session %s", code)

    async def expire(self, code: str, now: Optional[float] = None) -> bool:
        """Evict ``code`` if it is idle or has sat empty past the grace period.

        Returns True when the session was removed; otherwise the timer is
        re-armed for whatever time remains.
        """
        now = time.time() if now is None else now
        session = await self.store.get(code)
        if session is None:
            self._cancel(code)
            self.registry.drop_session(code)
            return False

        idle = now - session.last_activity_at
        empty = not self.registry.list_by_session(code)
        if idle >= self.idle_timeout:
            reason = "Session expired due to inactivity"
        elif empty and idle >= self.empty_grace:
            reason = "Session closed: no players connected"
        else:
            limit = min(self.empty_grace, self.idle_timeout) if empty else self.idle_timeout
            self._schedule(code, limit - idle)
            return False

        await self.broadcaster.broadcast(code, voting.session_ended_message(reason))
        await self.store.delete(code)
        self.registry.drop_session(code)
        self._cancel(code)
        logger.info("Evicted session %s (%s)", code, reason)
        return True

    def pending(self, code: str) -> bool:
        handle = self._timers.get(code)
        return handle is not None and not handle.cancelled()

    def shutdown(self):
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        for task in list(self._expiring):
            task.cancel()
        self._expiring.clear()
