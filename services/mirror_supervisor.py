import asyncio
from functools import partial
from typing import Callable, Dict, Optional

from aiohttp import ClientError
from slack_sdk.errors import SlackApiError

from core.models import AppConfig, MirrorSession
from core.session_registry import SessionRegistry
from transports.irc_client import IrcConnection

AWAY_REASON = "away on Slack"


class MirrorSupervisor:
    """Creates, reconnects and retires the IRC mirror of each Slack member."""

    def __init__(self, config: AppConfig, registry: SessionRegistry, slack_client, logger, connection_factory: Optional[Callable] = None):
        self.config = config
        self.registry = registry
        self.slack_client = slack_client
        self.logger = logger
        self.connection_factory = connection_factory or self._default_connection
        self.own_user_id: Optional[str] = None
        self._reconnects: Dict[str, asyncio.Task] = {}

    def _default_connection(self, nickname, on_connected, on_disconnected):
        return IrcConnection(
            nickname,
            self.config.irc,
            self.logger.getChild(nickname),
            on_connected=on_connected,
            on_disconnected=on_disconnected,
        )

    def is_blacklisted(self, display_name: str) -> bool:
        return display_name in self.config.blacklist_users

    async def start(self, user_id: str, display_name: str) -> Optional[MirrorSession]:
        if user_id == self.own_user_id:
            return None
        if self.is_blacklisted(display_name):
            self.logger.debug(f"Not mirroring blacklisted user {display_name}")
            return None
        if user_id in self.registry:
            self.logger.debug(f"{display_name} ({user_id}) is already mirrored")
            return self.registry.get(user_id)

        session = MirrorSession(
            id=user_id,
            display_name=display_name,
            nickname=display_name + self.config.irc.suffix,
        )
        # Callbacks are bound before connecting so an early disconnect is seen
        session.connection = self.connection_factory(
            session.nickname,
            partial(self._handle_connected, session),
            partial(self._handle_disconnected, session),
        )
        self.registry.put(user_id, session)
        self.logger.info(f"Mirroring {display_name} ({user_id}) as {session.nickname}")

        try:
            await session.connection.start()
        except (OSError, asyncio.TimeoutError) as exc:
            self.logger.warning(f"Could not connect mirror {session.nickname}: {exc}")
            self._schedule_reconnect(session)
        return session

    async def stop(self, user_id: str) -> None:
        pending = self._reconnects.pop(user_id, None)
        if pending is not None:
            pending.cancel()
        session = await self.registry.remove(user_id)
        if session is not None:
            self.logger.info(f"Stopped mirroring {session.display_name} ({user_id})")

    async def stop_all(self) -> None:
        for user_id in list(self.registry.snapshot()):
            await self.stop(user_id)

    async def _handle_connected(self, session: MirrorSession, connection) -> None:
        if not session.active:
            await connection.close()
            return
        await connection.join_channel()
        await connection.set_away(await self._away_reason(session.id))

    async def _away_reason(self, user_id: str) -> str:
        try:
            presence = await self.slack_client.get_presence(user_id)
        except (SlackApiError, ClientError) as exc:
            self.logger.warning(f"Could not get presence for {user_id}: {exc}")
            return ""
        return AWAY_REASON if presence == "away" else ""

    async def _handle_disconnected(self, session: MirrorSession, connection, expected: bool) -> None:
        if expected or not session.active:
            return
        self._schedule_reconnect(session)

    def _schedule_reconnect(self, session: MirrorSession) -> None:
        if not session.active:
            return
        pending = self._reconnects.get(session.id)
        if pending is not None and not pending.done():
            return
        task = asyncio.create_task(
            session.connection.reconnect_later(self.config.reconnect_delay, lambda: session.active)
        )
        self._reconnects[session.id] = task
        task.add_done_callback(partial(self._forget_reconnect, session.id))

    def _forget_reconnect(self, user_id: str, task: asyncio.Task) -> None:
        if self._reconnects.get(user_id) is task:
            del self._reconnects[user_id]
