"""Maps live connection ids to the player identity they represent."""

from typing import Dict, List, Optional
import logging

from models import Binding

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    def __init__(self):
        self._bindings: Dict[str, Binding] = {}  # connection_id -> Binding
        self._by_session: Dict[str, Dict[str, str]] = {}  # session_code -> {player_name: connection_id}

    def bind(self, connection_id: str, session_code: str, player_name: str,
             is_spectator: bool) -> Optional[str]:
        """Bind a connection to a player. Returns the superseded connection id, if any.

        A connection already bound elsewhere is moved; a name already bound to
        another connection in the same session is taken over (reconnect).
        """
        if connection_id in self._bindings:
            self.unbind(connection_id)

        players = self._by_session.setdefault(session_code, {})
        superseded = players.get(player_name)
        if superseded is not None:
            self._bindings.pop(superseded, None)
            logger.info("Connection %s superseded by %s for '%s' in session %s",
                        superseded, connection_id, player_name, session_code)

        players[player_name] = connection_id
        self._bindings[connection_id] = Binding(connection_id, session_code,
                                                player_name, is_spectator)
        return superseded

    def resolve(self, connection_id: str) -> Optional[Binding]:
        return self._bindings.get(connection_id)

    def unbind(self, connection_id: str) -> Optional[Binding]:
        binding = self._bindings.pop(connection_id, None)
        if binding is None:
            return None
        players = self._by_session.get(binding.session_code)
        if players is not None:
            if players.get(binding.player_name) == connection_id:
                del players[binding.player_name]
            if not players:
                del self._by_session[binding.session_code]
        return binding

    def list_by_session(self, session_code: str) -> List[Binding]:
        players = self._by_session.get(session_code, {})
        return [self._bindings[cid] for cid in players.values()]

    def connection_for(self, session_code: str, player_name: str) -> Optional[str]:
        return self._by_session.get(session_code, {}).get(player_name)

    def drop_session(self, session_code: str) -> List[Binding]:
        players = self._by_session.pop(session_code, {})
        return [b for b in (self._bindings.pop(cid, None) for cid in players.values()) if b]

    def clear(self):
        self._bindings.clear()
        self._by_session.clear()
