# IRC transport client
import asyncio
import contextlib
from typing import Awaitable, Callable, Optional

import pydle

from core.models import IrcConfig

ConnectedHandler = Callable[["IrcConnection"], Awaitable[None]]
DisconnectedHandler = Callable[["IrcConnection", bool], Awaitable[None]]
ChannelMessageHandler = Callable[[str, str, bool], Awaitable[None]]

_ACTION = "ACTION"
_PRIVMSG = "PRIVMSG"
# pydle reports this nick until registration completes
_UNREGISTERED = "<unregistered>"


class IrcConnection(pydle.Client):
    """A single IRC connection bound to the bridged channel.

    Used both for the bridge's own relay connection and for every mirror.
    Outbound lines go through a queue that is only drained while the
    channel is joined, so nothing is sent before connect and join.
    """

    # Reconnects are scheduled by whoever owns the connection
    RECONNECT_ON_ERROR = False
    # Lines kept for a mirror that is down; the oldest are dropped past this
    MAX_BACKLOG = 500

    def __init__(
        self,
        nickname: str,
        config: IrcConfig,
        logger,
        on_connected: Optional[ConnectedHandler] = None,
        on_disconnected: Optional[DisconnectedHandler] = None,
        on_channel_message: Optional[ChannelMessageHandler] = None,
    ):
        super().__init__(nickname, realname=nickname)
        self.config = config
        # pydle keeps its own logger in self.logger
        self.log = logger
        self.requested_nick = nickname
        self._on_connected = on_connected
        self._on_disconnected = on_disconnected
        self._on_channel_message = on_channel_message
        self._outbound: asyncio.Queue = asyncio.Queue()
        self._joined = asyncio.Event()
        self._consumer_task: Optional[asyncio.Task] = None
        self._closed = False
        self._backlog_warned = False

    @property
    def channel(self) -> str:
        return self.config.channel

    @property
    def joined(self) -> bool:
        return self._joined.is_set()

    async def start(self):
        self.log.info(f"Connecting {self.requested_nick} to {self.config.server}:{self.config.port}")
        self._closed = False
        if self._consumer_task is None or self._consumer_task.done():
            self._consumer_task = asyncio.create_task(self._consume_outbound())
        await self.connect(
            hostname=self.config.server,
            port=self.config.port,
            tls=self.config.tls,
            tls_verify=self.config.tls_verify,
        )

    async def close(self):
        self._closed = True
        self._joined.clear()
        if self._consumer_task:
            self._consumer_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._consumer_task
            self._consumer_task = None
        if self.connected:
            await self.disconnect(expected=True)

    async def reconnect_later(self, delay: float, still_wanted: Callable[[], bool]):
        """Sleep, then reconnect; keep retrying on failure while still wanted."""
        while True:
            self.log.info(f"Reconnecting {self.requested_nick} in {delay:.0f}s")
            await asyncio.sleep(delay)
            if not still_wanted():
                return
            try:
                await self.start()
                return
            except (OSError, asyncio.TimeoutError) as exc:
                self.log.warning(f"Reconnect of {self.requested_nick} failed: {exc}")

    async def join_channel(self):
        await self.join(self.channel)

    async def set_away(self, reason: str = ""):
        # The connected handler reapplies presence after a reconnect
        if not self.connected:
            self.log.debug(f"{self.requested_nick} is not connected, skipping AWAY")
            return
        if reason:
            await self.rawmsg("AWAY", reason)
        else:
            await self.rawmsg("AWAY")

    def queue_message(self, text: str):
        self._enqueue((_PRIVMSG, text))

    def queue_action(self, text: str):
        self._enqueue((_ACTION, text))

    def _enqueue(self, item):
        if self._outbound.qsize() >= self.MAX_BACKLOG:
            self._outbound.get_nowait()
            if not self._backlog_warned:
                self.log.warning(f"Backlog for {self.requested_nick} is over {self.MAX_BACKLOG} lines, dropping the oldest")
                self._backlog_warned = True
        elif self._outbound.qsize() == 0:
            self._backlog_warned = False
        self._outbound.put_nowait(item)

    def owns_nick(self, nick: str) -> bool:
        current = self.nickname
        if not self.connected or not current or current == _UNREGISTERED:
            current = self.requested_nick
        return self.is_same_nick(current, nick)

    async def _consume_outbound(self):
        while True:
            kind, text = await self._outbound.get()
            await self._joined.wait()
            try:
                if kind == _ACTION:
                    await self.ctcp(self.channel, _ACTION, text)
                else:
                    await self.message(self.channel, text)
            except Exception as exc:
                self.log.error(f"Failed to send to {self.channel} as {self.nickname}: {exc}", exc_info=True)

    async def on_connect(self):
        await super().on_connect()
        self.log.info(f"IRC connected as {self.nickname}")
        if self._on_connected:
            await self._on_connected(self)

    async def on_join(self, channel, user):
        await super().on_join(channel, user)
        if self.is_same_nick(user, self.nickname) and self.is_same_channel(channel, self.channel):
            self._joined.set()

    async def on_disconnect(self, expected):
        await super().on_disconnect(expected)
        self._joined.clear()
        expected = expected or self._closed
        if not expected:
            self.log.warning(f"IRC connection for {self.requested_nick} lost")
        if self._on_disconnected:
            await self._on_disconnected(self, expected)

    async def on_channel_message(self, target, by, message):
        await super().on_channel_message(target, by, message)
        if self._on_channel_message and self.is_same_channel(target, self.channel):
            await self._on_channel_message(by, message, False)

    async def on_ctcp_action(self, by, target, contents):
        if self._on_channel_message and self.is_same_channel(target, self.channel):
            await self._on_channel_message(by, contents or "", True)
