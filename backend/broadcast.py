"""Best-effort fan-out of outbound messages to every connection of a session."""

from typing import Callable, Optional
import asyncio
import logging

import config
from connection_registry import ConnectionRegistry
from models import Binding

logger = logging.getLogger(__name__)


class Broadcaster:
    """Delivers messages through ``hub``, any object with ``async send(connection_id, message)``.

    A delivery that raises or exceeds the send timeout marks its connection
    stale: it is unbound from the registry and ``on_stale`` is called.
    """

    def __init__(self, registry: ConnectionRegistry, hub,
                 send_timeout: float = config.WS_SEND_TIMEOUT_SECONDS,
                 on_stale: Optional[Callable[[Binding], None]] = None):
        self.registry = registry
        self.hub = hub
        self.send_timeout = send_timeout
        self.on_stale = on_stale

    async def broadcast(self, session_code: str, message: dict) -> int:
        """Send one message to every live connection. Returns the delivered count."""
        recipients = self.registry.list_by_session(session_code)
        if not recipients:
            return 0
        results = await asyncio.gather(*(self._deliver(b, message) for b in recipients))
        return sum(results)

    async def send(self, connection_id: str, message: dict) -> bool:
        try:
            await asyncio.wait_for(self.hub.send(connection_id, message), self.send_timeout)
            return True
        except Exception:
            logger.warning("Failed to send %s to connection %s",
                           message.get("type"), connection_id)
            return False

    async def _deliver(self, binding: Binding, message: dict) -> bool:
        if await self.send(binding.connection_id, message):
            return True
        # Only drop the binding if it has not been replaced meanwhile
        if self.registry.resolve(binding.connection_id) is not None:
            self.registry.unbind(binding.connection_id)
            logger.info("Stale connection %s ('%s') removed from session %s",
                        binding.connection_id, binding.player_name, binding.session_code)
            if self.on_stale is not None:
                self.on_stale(binding)
        return False
