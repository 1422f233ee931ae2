"""Test doubles shared across the test modules."""

import asyncio


class FakeConnection:
    """In-memory stand-in for IrcConnection."""

    def __init__(self, nickname, on_connected=None, on_disconnected=None, fail_connect=False):
        self.nickname = nickname
        self.on_connected = on_connected
        self.on_disconnected = on_disconnected
        self.fail_connect = fail_connect
        self.starts = 0
        self.closed = False
        self.joined = False
        self.away = None
        self.sent = []
        self.reconnect_delays = []

    async def start(self):
        self.starts += 1
        if self.fail_connect:
            raise ConnectionRefusedError("connection refused")
        self.closed = False
        if self.on_connected:
            await self.on_connected(self)

    async def close(self):
        self.closed = True
        self.joined = False
        if self.on_disconnected:
            await self.on_disconnected(self, True)

    async def reconnect_later(self, delay, still_wanted):
        self.reconnect_delays.append(delay)
        await asyncio.sleep(delay)
        if still_wanted():
            await self.start()

    async def join_channel(self):
        self.joined = True

    async def set_away(self, reason=""):
        self.away = reason

    def queue_message(self, text):
        self.sent.append(("message", text))

    def queue_action(self, text):
        self.sent.append(("action", text))

    def owns_nick(self, nick):
        return self.nickname.lower() == nick.lower()
