"""
conftest.py – shared fixtures for the relay tests.

FakeTransport records every call instead of talking to Telegram and can be
told to fail for specific chats, which is how fan-out and announcement
failure paths are exercised without a network.
"""
import asyncio
from datetime import datetime, timezone

import pytest

from apps.transport import MessageHandle
from signals.config import RelayConfig
from signals.errors import TransportFailure
from storage import JsonStateBackend

CHANNEL = "@signals"
OWNER_A = 111
OWNER_B = 222


class FakeTransport:

    def __init__(self, fail_chats=(), fail_pin=False, fail_unpin=False):
        self.fail_chats = set(fail_chats)
        self.fail_pin = fail_pin
        self.fail_unpin = fail_unpin
        self.sent = []      # (kind, chat_id, text, image, reply_to)
        self.pins = []
        self.unpins = []
        self._next_id = 100

    def _deliver(self, kind, chat_id, text, image, reply_to):
        if chat_id in self.fail_chats:
            raise TransportFailure(f"{kind} to {chat_id} failed")
        self._next_id += 1
        self.sent.append((kind, chat_id, text, image, reply_to))
        return MessageHandle(chat_id, self._next_id)

    async def send_message(self, chat_id, text, reply_to=None):
        return self._deliver("message", chat_id, text, None, reply_to)

    async def send_image(self, chat_id, image, caption, reply_to=None):
        return self._deliver("image", chat_id, caption, image, reply_to)

    async def pin(self, chat_id, message_id):
        if self.fail_pin:
            raise TransportFailure("pin failed")
        self.pins.append((chat_id, message_id))

    async def unpin_all(self, chat_id):
        if self.fail_unpin:
            raise TransportFailure("unpin failed")
        self.unpins.append(chat_id)

    def texts_to(self, chat_id):
        return [t for _, c, t, _, _ in self.sent if c == chat_id]


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def cfg(tmp_path):
    return RelayConfig(
        bot_token="123:abc",
        channel=CHANNEL,
        owner_ids=(OWNER_A, OWNER_B),
        data_file=str(tmp_path / "data.json"),
        timezone="Asia/Jakarta",
        daily_time="23:30",
    )


@pytest.fixture
def backend(cfg):
    return JsonStateBackend(cfg.data_file, initial_owners=cfg.owner_ids)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def fixed_now():
    # 2026-10-19 20:00 UTC == 2026-10-20 03:00 in Asia/Jakarta
    return lambda: datetime(2026, 10, 19, 20, 0, tzinfo=timezone.utc)
