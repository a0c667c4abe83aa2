"""Planning poker session manager.

Consumes typed inbound events for a connection, applies the voting rules
through the session store, then fans the resulting state out to the session.
Domain errors go back to the originating connection only.
"""

from typing import Optional
import logging

import voting
from broadcast import Broadcaster
from connection_registry import ConnectionRegistry
from errors import (NameTaken, NotInSession, NotSpectator, PokerError, SessionNotFound,
                    SpectatorCannotVote)
from events import CastVoteEvent, DisconnectEvent, JoinEvent, LeaveEvent, ResetVotesEvent
from lifecycle import LifecycleManager, normalize_code
from models import Binding, Session
from session_store import InMemorySessionStore, SessionStore

logger = logging.getLogger(__name__)


class SessionManager:
    def __init__(self, hub, store: Optional[SessionStore] = None,
                 registry: Optional[ConnectionRegistry] = None):
        self.hub = hub
        self.store = store if store is not None else InMemorySessionStore()
        self.registry = registry if registry is not None else ConnectionRegistry()
        self.broadcaster = Broadcaster(self.registry, hub, on_stale=self._on_stale)
        self.lifecycle = LifecycleManager(self.store, self.registry, self.broadcaster)

    async def handle(self, connection_id: str, event) -> None:
        try:
            if isinstance(event, JoinEvent):
                await self.join(connection_id, event.session_code, event.player_name,
                                event.is_spectator)
            elif isinstance(event, CastVoteEvent):
                await self.cast_vote(connection_id, event.vote)
            elif isinstance(event, ResetVotesEvent):
                await self.reset_votes(connection_id)
            elif isinstance(event, LeaveEvent):
                await self.leave(connection_id, permanent=True)
            elif isinstance(event, DisconnectEvent):
                await self.leave(connection_id, permanent=False)
        except PokerError as e:
            logger.info("Rejected %s from %s: %s", event.type, connection_id, e.code)
            await self.broadcaster.send(connection_id, e.to_message())

    # --- Operations ---

    async def join(self, connection_id: str, session_code: Optional[str], player_name,
                   is_spectator: bool = False) -> Session:
        name = voting.clean_player_name(player_name)
        if session_code:
            code = normalize_code(session_code)
        else:
            code = await self.lifecycle.generate_code()
        await self.lifecycle.ensure_session(code)

        if self._held_by_other(code, name, connection_id):
            raise NameTaken(f'Player name "{name}" is already taken in this session')
        session = await self.store.apply_player_update(
            code, name, lambda p: voting.join_player(p, name, is_spectator))
        # Another connection may have claimed the name while the store was suspended.
        # No await between this check and bind().
        if self._held_by_other(code, name, connection_id):
            raise NameTaken(f'Player name "{name}" is already taken in this session')
        player = session.players[name]

        previous = self.registry.resolve(connection_id)
        superseded = self.registry.bind(connection_id, code, name, player.is_spectator)
        if previous is not None and previous.session_code != code:
            self.lifecycle.connection_dropped(previous.session_code)
        if superseded is not None and superseded != connection_id:
            await self.broadcaster.send(superseded, {
                "type": "superseded",
                "message": "You joined from another connection",
            })
            await self.hub.close(superseded)

        logger.info("Player '%s' joined session %s as %s", name, code,
                    "spectator" if player.is_spectator else "voter")
        await self.broadcaster.send(connection_id, voting.joined_message(code, player))
        await self.broadcaster.broadcast(code, voting.state_update_message(session))
        self.lifecycle.touch(code)
        return session

    async def cast_vote(self, connection_id: str, vote) -> Session:
        binding = self._require_binding(connection_id)
        if binding.is_spectator:
            raise SpectatorCannotVote()
        vote = voting.validate_vote(vote)

        session = await self.store.apply_player_update(
            binding.session_code, binding.player_name,
            lambda p: voting.cast_vote(p, vote), after=voting.auto_reveal)
        logger.info("Vote recorded for '%s' in session %s", binding.player_name,
                    binding.session_code)
        if session.votes_revealed:
            logger.info("Votes revealed in session %s", binding.session_code)

        await self.broadcaster.broadcast(binding.session_code,
                                         voting.state_update_message(session))
        self.lifecycle.touch(binding.session_code)
        return session

    async def reset_votes(self, connection_id: str) -> Session:
        binding = self._require_binding(connection_id)
        if not binding.is_spectator:
            raise NotSpectator()

        session = await self.store.apply_session_update(binding.session_code,
                                                        voting.reset_votes)
        logger.info("Votes reset by spectator '%s' in session %s", binding.player_name,
                    binding.session_code)

        await self.broadcaster.broadcast(binding.session_code, voting.votes_reset_message())
        await self.broadcaster.broadcast(binding.session_code,
                                         voting.state_update_message(session))
        self.lifecycle.touch(binding.session_code)
        return session

    async def leave(self, connection_id: str, permanent: bool = False) -> Optional[Session]:
        """Drop a connection. A permanent leave also removes the player and their vote."""
        binding = self.registry.unbind(connection_id)
        if binding is None:
            if permanent:
                raise NotInSession()
            return None
        code = binding.session_code

        if not permanent:
            logger.info("Player '%s' disconnected from session %s (state preserved)",
                        binding.player_name, code)
            self.lifecycle.connection_dropped(code)
            return None

        try:
            session = await self.store.apply_player_update(
                code, binding.player_name, lambda p: None, after=voting.auto_reveal)
        except SessionNotFound:
            return None
        logger.info("Player '%s' left session %s", binding.player_name, code)

        left = voting.player_left_message(binding.player_name)
        await self.broadcaster.send(connection_id, left)
        await self.broadcaster.broadcast(code, left)
        await self.broadcaster.broadcast(code, voting.state_update_message(session))
        self.lifecycle.touch(code)
        self.lifecycle.connection_dropped(code)
        return session

    # --- HTTP helpers ---

    async def create_session(self) -> Session:
        return await self.lifecycle.create_session()

    async def get_state(self, raw_code) -> dict:
        code = normalize_code(raw_code)
        session = await self.store.get(code)
        if session is None:
            raise SessionNotFound()
        return {
            "sessionCode": code,
            "state": voting.project_state(session),
            "shareUrl": voting.share_url(code),
        }

    # --- Internals ---

    def _require_binding(self, connection_id: str) -> Binding:
        binding = self.registry.resolve(connection_id)
        if binding is None:
            raise NotInSession()
        return binding

    def _held_by_other(self, code: str, name: str, connection_id: str) -> bool:
        """True when a different, still-open connection is bound to ``name``.

        A binding whose socket is already gone does not count; the joining
        connection supersedes it.
        """
        holder = self.registry.connection_for(code, name)
        if holder is None or holder == connection_id:
            return False
        return self.hub.is_open(holder)

    def _on_stale(self, binding: Binding):
        self.lifecycle.connection_dropped(binding.session_code)

    def clear(self):
        self.lifecycle.shutdown()
        self.registry.clear()
        if isinstance(self.store, InMemorySessionStore):
            self.store.clear()
