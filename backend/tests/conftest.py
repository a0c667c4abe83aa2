import sys
import os
import asyncio
from collections import defaultdict

import pytest
import pytest_asyncio

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from session_manager import SessionManager
from session_store import InMemorySessionStore


class FakeHub:
    """Records outbound messages per connection id; ids in ``fail`` raise on send and count as closed."""

    def __init__(self):
        self.sent = defaultdict(list)
        self.fail = set()
        self.closed = []

    async def send(self, connection_id, message):
        if connection_id in self.fail:
            raise ConnectionError(f"{connection_id} is gone")
        self.sent[connection_id].append(message)

    async def close(self, connection_id):
        self.closed.append(connection_id)

    def is_open(self, connection_id):
        return connection_id not in self.fail and connection_id not in self.closed

    def of_type(self, connection_id, msg_type):
        return [m for m in self.sent[connection_id] if m["type"] == msg_type]

    def last(self, connection_id, msg_type):
        found = self.of_type(connection_id, msg_type)
        assert found, f"{connection_id} never received {msg_type}"
        return found[-1]


@pytest.fixture
def hub():
    return FakeHub()


@pytest_asyncio.fixture
async def manager(hub):
    mgr = SessionManager(hub, store=InMemorySessionStore(retry_backoff=0))
    yield mgr
    mgr.clear()
    await asyncio.sleep(0)
