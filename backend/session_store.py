"""Session storage with versioned, per-player atomic updates.

Records are stored as plain dicts together with a version counter, the way a
key-value backend keeps items. Every mutation goes through a conditional
write on that version: a writer that lost the race re-reads the record and
re-applies only its own change, so concurrent votes from different players
are never dropped.
"""

from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional, Tuple
import asyncio
import copy
import logging
import random
import time

import config
from errors import AlreadyExists, Conflict, SessionNotFound
from models import Player, Session

logger = logging.getLogger(__name__)

PlayerMutator = Callable[[Optional[Player]], Optional[Player]]
SessionMutator = Callable[[Session], Session]


class SessionStore(ABC):
    def __init__(self, max_retries: int = config.STORE_MAX_RETRIES,
                 retry_backoff: float = config.STORE_RETRY_BACKOFF):
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff

    # --- Backend primitives ---

    @abstractmethod
    async def _load(self, code: str) -> Optional[Tuple[int, dict]]:
        """Return ``(version, item)`` or None. The item must be a private copy."""

    @abstractmethod
    async def _put_if_absent(self, code: str, item: dict) -> bool:
        """Write a new record at version 1. False if the code exists."""

    @abstractmethod
    async def _put_if_version(self, code: str, item: dict, expected_version: int) -> bool:
        """Replace the record only if it is still at ``expected_version``."""

    @abstractmethod
    async def delete(self, code: str) -> None:
        ...

    @abstractmethod
    async def count(self) -> int:
        ...

    # --- Public API ---

    async def create(self, code: str) -> Session:
        session = Session(code=code)
        if not await self._put_if_absent(code, session.to_dict()):
            raise AlreadyExists(code)
        session.version = 1
        logger.info("Session created: %s", code)
        return session

    async def get(self, code: str) -> Optional[Session]:
        record = await self._load(code)
        if record is None:
            return None
        version, item = record
        try:
            return Session.from_dict(item, version)
        except (KeyError, TypeError, ValueError, AttributeError):
            logger.warning("Unreadable record for session %s, treating as missing", code)
            return None

    async def apply_player_update(self, code: str, player_name: str,
                                  mutator: PlayerMutator,
                                  after: Optional[SessionMutator] = None) -> Session:
        """Atomically replace one player's record.

        ``mutator`` gets the current player (None if absent) and returns the
        new record, or None to remove the player. ``after`` runs on the whole
        session within the same attempt, so session-level rules see the
        merged state.
        """
        def change(session: Session) -> Session:
            player = mutator(session.players.get(player_name))
            if player is None:
                session.players.pop(player_name, None)
            else:
                session.players[player_name] = player
            if after is not None:
                after(session)
            return session

        return await self._update(code, change)

    async def apply_session_update(self, code: str, mutator: SessionMutator) -> Session:
        return await self._update(code, mutator)

    async def _update(self, code: str, change: SessionMutator) -> Session:
        for attempt in range(1, self.max_retries + 1):
            session = await self.get(code)
            if session is None:
                raise SessionNotFound()
            change(session)
            session.last_activity_at = time.time()
            if await self._put_if_version(code, session.to_dict(), session.version):
                session.version += 1
                return session
            logger.warning("Version conflict on session %s (attempt %d/%d)",
                           code, attempt, self.max_retries)
            if attempt < self.max_retries and self.retry_backoff:
                await asyncio.sleep(random.uniform(0, self.retry_backoff * attempt))
        raise Conflict()


class InMemorySessionStore(SessionStore):
    """Process-local backend. Items are deep-copied in and out."""

    def __init__(self, max_retries: int = config.STORE_MAX_RETRIES,
                 retry_backoff: float = config.STORE_RETRY_BACKOFF):
        super().__init__(max_retries, retry_backoff)
        self._items: Dict[str, Tuple[int, dict]] = {}

    async def _load(self, code: str) -> Optional[Tuple[int, dict]]:
        record = self._items.get(code)
        if record is None:
            return None
        version, item = record
        return version, copy.deepcopy(item)

    async def _put_if_absent(self, code: str, item: dict) -> bool:
        if code in self._items:
            return False
        self._items[code] = (1, copy.deepcopy(item))
        return True

    async def _put_if_version(self, code: str, item: dict, expected_version: int) -> bool:
        record = self._items.get(code)
        if record is None or record[0] != expected_version:
            return False
        self._items[code] = (expected_version + 1, copy.deepcopy(item))
        return True

    async def delete(self, code: str) -> None:
        if self._items.pop(code, None) is not None:
            logger.info("Session deleted: %s", code)

    async def count(self) -> int:
        return len(self._items)

    def clear(self):
        self._items.clear()
