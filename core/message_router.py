# Routing logic for relaying messages/events between Slack and IRC
import html
from typing import Optional

from aiohttp import ClientError
from slack_sdk.errors import SlackApiError

from core.models import MessageSubtype, PresenceChangeEvent, SlackMessageEvent


class MessageRouter:
    def __init__(self, config, registry, supervisor, presence_sync, slack_client, logger):
        self.config = config
        self.registry = registry
        self.supervisor = supervisor
        self.presence_sync = presence_sync
        self.slack_client = slack_client
        self.logger = logger
        self.slack_channel_id: Optional[str] = None

    def icon_url_for(self, nick: str) -> Optional[str]:
        template = self.config.slack.icon
        if not template:
            return None
        return template.replace("$username", nick, 1)

    async def relay_irc_to_slack(self, nick: str, text: str, is_action: bool = False):
        # Mirrors' own lines come back through the relay connection
        if self.registry.owns_nick(nick):
            return
        if self.slack_channel_id is None:
            self.logger.warning(f"Slack channel not resolved yet, dropping message from {nick}")
            return
        content = f"_{text}_" if is_action else text
        try:
            await self.slack_client.post_message(
                self.slack_channel_id,
                content,
                username=nick,
                icon_url=self.icon_url_for(nick),
            )
            self.logger.debug(f"Relayed IRC message from {nick} to Slack")
        except (SlackApiError, ClientError) as exc:
            self.logger.error(f"Failed to relay IRC message from {nick} to Slack: {exc}", exc_info=True)

    async def handle_slack_event(self, event):
        if isinstance(event, PresenceChangeEvent):
            await self.presence_sync.apply(event.user, event.presence)
        elif isinstance(event, SlackMessageEvent):
            await self.relay_slack_message(event)

    async def relay_slack_message(self, event: SlackMessageEvent):
        if event.channel != self.slack_channel_id:
            return
        subtype = event.subtype

        if subtype is MessageSubtype.CHANNEL_JOIN:
            await self._mirror_joined_user(event.user)
            return
        if subtype is MessageSubtype.CHANNEL_LEAVE:
            await self.supervisor.stop(event.user)
            return
        if subtype is MessageSubtype.OTHER:
            return

        session = self.registry.get(event.user)
        if session is None:
            return
        text = html.unescape(event.text)

        if subtype is MessageSubtype.PLAIN:
            session.connection.queue_message(text)
        elif subtype is MessageSubtype.BOT_MESSAGE:
            if event.username:
                text = f"<{event.username}>{text}"
            session.connection.queue_action(text)
        elif subtype is MessageSubtype.ME_MESSAGE:
            session.connection.queue_action(text)

    async def _mirror_joined_user(self, user_id: str):
        try:
            user = await self.slack_client.get_user(user_id)
        except (SlackApiError, ClientError, KeyError) as exc:
            self.logger.error(f"Unable to get user info for {user_id}: {exc}", exc_info=True)
            return
        await self.supervisor.start(user.id, user.name)
