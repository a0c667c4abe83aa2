"""WebSocket transport for planning poker sessions."""

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from typing import Dict
import json
import time
import uuid
import logging

import config
from events import DisconnectEvent, parse_event
from session_manager import SessionManager

logger = logging.getLogger(__name__)


class ConnectionHub:
    """Owns the live sockets. The session core only ever sees connection ids."""

    def __init__(self):
        self.sockets: Dict[str, WebSocket] = {}

    def register(self, connection_id: str, websocket: WebSocket):
        self.sockets[connection_id] = websocket

    def unregister(self, connection_id: str):
        self.sockets.pop(connection_id, None)

    def is_open(self, connection_id: str) -> bool:
        return connection_id in self.sockets

    async def send(self, connection_id: str, message: dict):
        ws = self.sockets.get(connection_id)
        if ws is None:
            raise KeyError(f"Connection {connection_id} is not open")
        await ws.send_json(message)

    async def close(self, connection_id: str):
        ws = self.sockets.pop(connection_id, None)
        if ws is None:
            return
        try:
            await ws.close()
        except Exception:
            logger.debug("Connection %s was already closed", connection_id)


class SocketManager:
    def __init__(self):
        self.hub = ConnectionHub()
        self.sessions = SessionManager(self.hub)
        self.msg_timestamps: Dict[str, list] = {}

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        connection_id = uuid.uuid4().hex
        self.hub.register(connection_id, websocket)
        logger.info("Client %s connected", connection_id)

        try:
            while True:
                data = await websocket.receive_text()

                if len(data) > config.MAX_WS_MESSAGE_SIZE:
                    await self._send_error(websocket, "MessageTooLarge", "Message too large")
                    continue

                now = time.time()
                timestamps = self.msg_timestamps.setdefault(connection_id, [])
                timestamps[:] = [t for t in timestamps if now - t < 1.0]
                if len(timestamps) >= config.WS_RATE_LIMIT_PER_SEC:
                    await self._send_error(websocket, "RateLimited", "Too many messages")
                    continue
                timestamps.append(now)

                try:
                    message = json.loads(data)
                except json.JSONDecodeError:
                    await self._send_error(websocket, "InvalidMessage", "Invalid message format")
                    continue

                try:
                    event = parse_event(message)
                except ValidationError:
                    await self._send_error(websocket, "InvalidMessage",
                                           "Unknown or malformed event")
                    continue

                await self.sessions.handle(connection_id, event)
        except WebSocketDisconnect:
            logger.info("Client %s disconnected", connection_id)
        except Exception:
            logger.exception("WebSocket error for client %s", connection_id)
        finally:
            self.hub.unregister(connection_id)
            self.msg_timestamps.pop(connection_id, None)
            await self.sessions.handle(connection_id, DisconnectEvent())

    async def _send_error(self, websocket: WebSocket, code: str, message: str):
        await websocket.send_json({"type": "error", "code": code, "message": message})

    def clear(self):
        self.sessions.clear()
        self.msg_timestamps.clear()


socket_manager = SocketManager()
