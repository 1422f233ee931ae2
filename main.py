# Main entrypoint for the Slack/IRC bridge
from core.config import AppConfig, ConfigError, load_config
from core.message_router import MessageRouter
from core.session_registry import SessionRegistry
from services.mirror_supervisor import MirrorSupervisor
from services.presence_poller import PresencePoller
from services.presence_sync import PresenceSynchronizer
from transports.irc_client import IrcConnection
from transports.slack_client import SlackClient
from aiohttp import ClientError
from slack_sdk.errors import SlackApiError
import logging
import asyncio
import sys
import os


class BridgeApp:
    def __init__(self, config: AppConfig, slack_client=None, relay_connection=None, connection_factory=None):
        self.config = config
        # Main logger for app-wide events
        self.logger = logging.getLogger("SlackIrcBridge")
        self.irc_logger = self.logger.getChild("IRC")
        self.slack_logger = self.logger.getChild("Slack")

        self.registry = SessionRegistry(self.logger.getChild("Registry"))
        self.slack = slack_client or SlackClient(config.slack, self.slack_logger)
        self.supervisor = MirrorSupervisor(
            config, self.registry, self.slack, self.logger.getChild("Mirrors"), connection_factory
        )
        self.presence_sync = PresenceSynchronizer(self.registry, self.logger.getChild("Presence"))
        self.router = MessageRouter(
            config, self.registry, self.supervisor, self.presence_sync, self.slack, self.logger.getChild("Router")
        )
        self.presence_poller = PresencePoller(
            config, self.registry, self.slack, self.presence_sync, self.logger.getChild("PresencePoller")
        )
        self.relay = relay_connection or IrcConnection(
            config.irc.nick,
            config.irc,
            self.irc_logger,
            on_connected=self._relay_connected,
            on_disconnected=self._relay_disconnected,
            on_channel_message=self.router.relay_irc_to_slack,
        )
        self._stopping = False
        self._relay_reconnect = None

    async def _relay_connected(self, connection):
        await connection.join_channel()

    async def _relay_disconnected(self, connection, expected):
        if expected or self._stopping:
            return
        if self._relay_reconnect is not None and not self._relay_reconnect.done():
            return
        self._relay_reconnect = asyncio.create_task(
            connection.reconnect_later(self.config.reconnect_delay, lambda: not self._stopping)
        )

    async def bootstrap(self):
        """Resolve identity and channel, then mirror the current channel roster.

        Any Slack failure here is fatal: the bridge would otherwise run with a
        silently incomplete roster.
        """
        self.supervisor.own_user_id = await self.slack.auth_user_id()
        self.router.slack_channel_id = await self.slack.resolve_channel_id(self.config.slack.channel)
        self.logger.info(f"Bridging Slack #{self.config.slack.channel} ({self.router.slack_channel_id}) with IRC {self.config.irc.channel}")

        members = set(await self.slack.list_channel_members(self.router.slack_channel_id))
        for user in await self.slack.list_users():
            if user.id not in members:
                continue
            await self.supervisor.start(user.id, user.name)

    async def drain_slack_events(self):
        while not self._stopping:
            event = await self.slack.events.get()
            try:
                await self.router.handle_slack_event(event)
            except Exception as exc:
                self.logger.error(f"Failed to handle Slack event {event}: {exc}", exc_info=True)

    async def start(self):
        try:
            await self.bootstrap()
        except Exception:
            self.logger.error("Could not load the Slack roster")
            await self.stop()
            raise
        try:
            await self.relay.start()
        except (OSError, asyncio.TimeoutError) as exc:
            self.irc_logger.warning(f"Relay connection failed: {exc}")
            await self._relay_disconnected(self.relay, False)
        await self.slack.connect()
        tasks = [
            asyncio.create_task(self.drain_slack_events()),
            asyncio.create_task(self.presence_poller.start()),
        ]
        try:
            await asyncio.gather(*tasks)
        finally:
            for task in tasks:
                task.cancel()
            await self.stop()

    async def stop(self):
        if self._stopping:
            return
        self._stopping = True
        self.presence_poller.stop()
        if self._relay_reconnect is not None:
            self._relay_reconnect.cancel()
        await self.slack.close()
        await self.supervisor.stop_all()
        await self.relay.close()
        self.logger.info("Bridge stopped")


async def run(config: AppConfig):
    # pydle binds to the running loop, so everything is built inside it
    app = BridgeApp(config)
    await app.start()


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    # Suppress noisy INFO logs from third-party libraries
    logging.getLogger("pydle").setLevel(logging.WARNING)
    logging.getLogger("slack_sdk").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)

    config_path = os.environ.get("BRIDGE_CONFIG", "config.json")
    try:
        config = load_config(config_path)
    except ConfigError as exc:
        logging.error(f"{exc}. Exiting.")
        sys.exit(1)

    try:
        asyncio.run(run(config))
    except (SlackApiError, ClientError, LookupError) as exc:
        logging.error(f"Bridge startup failed: {exc}. Exiting.")
        sys.exit(1)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
